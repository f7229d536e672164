"""Queries behind the invoice reports screen."""

from __future__ import annotations

from datetime import date

from sqlalchemy import case, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import Invoice, InvoiceStatus, InvoiceType, Party
from ..reporting.bucketer import Period, ReportRow, rekey, window_start

ALL = "all"


def _active(value: str | None) -> str | None:
    """Return ``value`` unless it is blank or the ``all`` wildcard."""
    if value is None:
        return None
    value = value.strip()
    if not value or value.lower() == ALL:
        return None
    return value


async def list_report_invoices(
    session: AsyncSession,
    *,
    type: str | None = None,
    status: str | None = None,
    customer: str | None = None,
    search: str | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
) -> list[dict]:
    """Return invoice summaries matching the filters, newest date first.

    The date range applies only when both ends are given and is inclusive.
    """

    stmt = select(
        Invoice.id,
        Invoice.invoice_number,
        Invoice.date,
        Invoice.due_date,
        Invoice.status,
        Invoice.type,
        Invoice.sub_total,
        Invoice.tax,
        Invoice.discount,
        Invoice.total,
        Party.party_name,
    ).outerjoin(Party, Party.id == Invoice.party_id)

    if kind := _active(type):
        stmt = stmt.where(Invoice.type == kind)
    if state := _active(status):
        stmt = stmt.where(Invoice.status == state)
    if name := _active(customer):
        stmt = stmt.where(Party.party_name.ilike(f"%{name}%"))
    if search:
        pattern = f"%{search.strip()}%"
        stmt = stmt.where(
            or_(Invoice.invoice_number.ilike(pattern), Party.party_name.ilike(pattern))
        )
    if start_date and end_date:
        stmt = stmt.where(Invoice.date.between(start_date, end_date))

    result = await session.execute(stmt.order_by(Invoice.date.desc(), Invoice.id.desc()))
    return [
        {
            "id": row.id,
            "invoice_number": row.invoice_number,
            "date": row.date.isoformat() if row.date else None,
            "due_date": row.due_date.isoformat() if row.due_date else None,
            "status": row.status,
            "type": row.type,
            "sub_total": float(row.sub_total or 0),
            "tax": float(row.tax or 0),
            "discount": float(row.discount or 0),
            "amount": float(row.total or 0),
            "customer": row.party_name,
        }
        for row in result.all()
    ]


def _count_when(condition):
    return func.coalesce(func.sum(case((condition, 1), else_=0)), 0)


async def invoice_counts(session: AsyncSession, type: str | None = None) -> dict:
    """Return total, per-type and per-status invoice counts."""
    stmt = select(
        func.count(Invoice.id).label("total"),
        _count_when(Invoice.type == InvoiceType.SALES.value).label("sales"),
        _count_when(Invoice.type == InvoiceType.PURCHASE.value).label("purchase"),
        _count_when(Invoice.status == InvoiceStatus.PAID.value).label("paid"),
        _count_when(Invoice.status == InvoiceStatus.PENDING.value).label("pending"),
        _count_when(Invoice.status == InvoiceStatus.OVERDUE.value).label("overdue"),
        _count_when(Invoice.status == InvoiceStatus.DRAFT.value).label("draft"),
    )
    if kind := _active(type):
        stmt = stmt.where(Invoice.type == kind)
    row = (await session.execute(stmt)).one()
    return {key: int(value or 0) for key, value in row._mapping.items()}


async def chart_rows(
    session: AsyncSession,
    period: Period | str,
    today: date,
    type: str | None = None,
) -> list[ReportRow]:
    """Return ``(bucket, type, count)`` rows for the chart window.

    Counts are grouped per day in SQL and folded into period buckets here,
    so the rows come back in ascending bucket order on every backend.
    """

    period = Period.coerce(period)
    stmt = (
        select(Invoice.date, Invoice.type, func.count(Invoice.id))
        .where(Invoice.date >= window_start(period, today))
        .group_by(Invoice.date, Invoice.type)
        .order_by(Invoice.date, Invoice.type)
    )
    if kind := _active(type):
        stmt = stmt.where(Invoice.type == kind)

    buckets: dict[tuple, int] = {}
    for day, kind, count in (await session.execute(stmt)).all():
        key = (rekey(period, day), kind)
        buckets[key] = buckets.get(key, 0) + int(count)
    return [ReportRow(key, kind, count) for (key, kind), count in buckets.items()]


async def filter_options(session: AsyncSession) -> dict:
    """Return the distinct statuses, types and invoiced party names."""
    statuses = await session.scalars(
        select(Invoice.status).where(Invoice.status.is_not(None)).distinct()
    )
    types = await session.scalars(
        select(Invoice.type).where(Invoice.type.is_not(None)).distinct()
    )
    customers = await session.scalars(
        select(Party.party_name)
        .join(Invoice, Invoice.party_id == Party.id)
        .where(Party.party_name.is_not(None))
        .distinct()
    )
    return {
        "statuses": sorted(statuses.all()),
        "types": sorted(types.all()),
        "customers": sorted(customers.all()),
    }


__all__ = [
    "chart_rows",
    "filter_options",
    "invoice_counts",
    "list_report_invoices",
]
