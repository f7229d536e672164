import asyncio
import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from billing_api.app import db as app_db  # noqa: E402


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def database(tmp_path):
    """Point the app at a fresh SQLite file with the schema created."""
    url = f"sqlite+aiosqlite:///{tmp_path / 'billing.db'}"
    app_db.configure(url)
    asyncio.run(app_db.create_all())
    yield url
    asyncio.run(app_db.dispose())


async def _seed(*rows):
    async with app_db.get_session() as session:
        session.add_all(rows)
        await session.commit()
    return rows


@pytest.fixture
def seed(database):
    """Return a coroutine function persisting rows in one transaction."""
    return _seed
