import os

# Default to a throwaway SQLite database for tests
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test_billing.db")
os.environ.setdefault("LOG_SAMPLE_2XX", "0")
