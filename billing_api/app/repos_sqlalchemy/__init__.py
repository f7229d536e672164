"""SQLAlchemy-backed repository implementations.

Repositories take an :class:`~sqlalchemy.ext.asyncio.AsyncSession` from the
caller and own the commit of the writes they perform.
"""

from . import invoice_reports_repo_sql, invoices_repo_sql

__all__ = ["invoice_reports_repo_sql", "invoices_repo_sql"]
