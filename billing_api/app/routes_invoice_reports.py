from __future__ import annotations

"""Routes for the invoice reports screen: filtered list, stats and chart."""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from .db import session_dependency
from .reporting.bucketer import Period, build_chart
from .repos_sqlalchemy import invoice_reports_repo_sql
from .utils.responses import ok

router = APIRouter(prefix="/api/reports", tags=["invoice reports"])


def _parse_day(value: Optional[str]) -> Optional[date]:
    """Return the date part of ``value`` or ``None`` when it does not parse."""
    if not value:
        return None
    try:
        return date.fromisoformat(value.split("T")[0].strip())
    except ValueError:
        return None


@router.get("/invoices")
async def report_invoices(
    type: Optional[str] = None,
    status: Optional[str] = None,
    customer: Optional[str] = None,
    search: Optional[str] = None,
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    session: AsyncSession = Depends(session_dependency),
) -> dict:
    """Return invoice summaries filtered by type, status, party and dates.

    ``all`` or an empty value disables a filter. The date range needs both
    ``startDate`` and ``endDate`` and includes both days.
    """

    invoices = await invoice_reports_repo_sql.list_report_invoices(
        session,
        type=type,
        status=status,
        customer=customer,
        search=search,
        start_date=_parse_day(start_date),
        end_date=_parse_day(end_date),
    )
    return ok({"invoices": invoices, "total": len(invoices)})


@router.get("/invoice-stats")
async def invoice_stats(
    period: str = "weekly",
    type: str = "all",
    session: AsyncSession = Depends(session_dependency),
) -> dict:
    """Return invoice counts and the chart for ``period``."""
    period = Period.coerce(period)
    today = date.today()
    counts = await invoice_reports_repo_sql.invoice_counts(session, type)
    rows = await invoice_reports_repo_sql.chart_rows(session, period, today, type)
    chart = build_chart(period, rows, today)
    return ok({"period": period.value, "counts": counts, "chart": chart.as_payload()})


@router.get("/filter-options")
async def filter_options(session: AsyncSession = Depends(session_dependency)) -> dict:
    return ok(await invoice_reports_repo_sql.filter_options(session))
