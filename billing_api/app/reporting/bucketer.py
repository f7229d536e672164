"""Bucket grouped invoice counts into chart series.

Storage returns rows of ``(bucket key, invoice type, count)``. For a given
period the chart has a fixed category axis computed from today's date, and
two series (sales and purchase) aligned to it:

* ``weekly``: today and the six days before it, oldest first. Rows map by
  distance in days from today; anything older falls off the chart.
* ``monthly``: ``Week 1`` .. ``Week 5``. The distinct ISO weeks present in
  the rows are sorted and assigned to the five slots in order.
* ``yearly``: this month and the eleven before it. Rows are expected in
  ascending month order and are placed by their position in the input;
  a later row at the same position replaces an earlier one.
"""

from __future__ import annotations

import calendar
import enum
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Iterable, NamedTuple, Sequence

WEEKDAY_NAMES = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")
MONTH_NAMES = (
    "Jan",
    "Feb",
    "Mar",
    "Apr",
    "May",
    "Jun",
    "Jul",
    "Aug",
    "Sep",
    "Oct",
    "Nov",
    "Dec",
)
WEEK_SLOTS = 5

SERIES_NAMES = {"sales": "Sales Invoices", "purchase": "Purchase Invoices"}


class Period(str, enum.Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"

    @classmethod
    def coerce(cls, value: Any) -> "Period":
        """Return the matching period, defaulting to ``WEEKLY``."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.WEEKLY


class ReportRow(NamedTuple):
    """One grouped count from storage."""

    key: Any
    type: str
    count: int


@dataclass
class ChartSeries:
    """Category axis with index-aligned sales and purchase counts."""

    categories: list[str]
    sales: list[int] = field(default_factory=list)
    purchase: list[int] = field(default_factory=list)

    def as_payload(self) -> dict:
        return {
            "categories": list(self.categories),
            "series": [
                {"name": SERIES_NAMES["sales"], "data": list(self.sales)},
                {"name": SERIES_NAMES["purchase"], "data": list(self.purchase)},
            ],
        }


def _shift_months(day: date, months: int) -> date:
    """Return ``day`` moved by ``months``, clamping to the month's last day."""
    index = day.year * 12 + day.month - 1 + months
    year, month = divmod(index, 12)
    month += 1
    last = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last))


def build_categories(period: Period | str, today: date) -> list[str]:
    period = Period.coerce(period)
    if period is Period.WEEKLY:
        return [
            WEEKDAY_NAMES[(today - timedelta(days=back)).weekday()]
            for back in range(6, -1, -1)
        ]
    if period is Period.MONTHLY:
        return [f"Week {n}" for n in range(1, WEEK_SLOTS + 1)]
    return [
        MONTH_NAMES[_shift_months(today, -back).month - 1] for back in range(11, -1, -1)
    ]


def window_start(period: Period | str, today: date) -> date:
    """Return the earliest invoice date included in the chart query."""
    period = Period.coerce(period)
    if period is Period.WEEKLY:
        return today - timedelta(days=7)
    if period is Period.MONTHLY:
        return today - timedelta(days=30)
    return _shift_months(today, -12)


def rekey(period: Period | str, day: date) -> Any:
    """Return the bucket key of ``day`` for ``period``.

    Weekly buckets are the day itself, monthly buckets the ISO
    ``(year, week)`` pair and yearly buckets a ``"YYYY-MM"`` string.
    """
    period = Period.coerce(period)
    if period is Period.WEEKLY:
        return day
    if period is Period.MONTHLY:
        iso = day.isocalendar()
        return (iso[0], iso[1])
    return f"{day:%Y-%m}"


def _as_date(value: Any) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value[:10])
        except ValueError:
            return None
    return None


def build_chart(
    period: Period | str,
    rows: Iterable[ReportRow | Sequence[Any]],
    today: date | None = None,
) -> ChartSeries:
    """Return the chart series for ``rows`` grouped by ``period``.

    Rows with a type other than ``sales`` or ``purchase`` are ignored, as are
    weekly rows outside the seven-day axis.
    """

    period = Period.coerce(period)
    today = today or date.today()
    categories = build_categories(period, today)
    size = len(categories)
    chart = ChartSeries(categories, [0] * size, [0] * size)
    targets = {"sales": chart.sales, "purchase": chart.purchase}
    rows = [ReportRow(*row) for row in rows]

    if period is Period.WEEKLY:
        for row in rows:
            day = _as_date(row.key)
            target = targets.get(row.type)
            if day is None or target is None:
                continue
            index = size - 1 - (today - day).days
            if 0 <= index < size:
                target[index] += int(row.count)
    elif period is Period.MONTHLY:
        weeks = sorted({row.key for row in rows})
        slots = {week: index for index, week in enumerate(weeks[:size])}
        for row in rows:
            index = slots.get(row.key)
            target = targets.get(row.type)
            if index is not None and target is not None:
                target[index] += int(row.count)
    else:
        for index, row in enumerate(rows[:size]):
            target = targets.get(row.type)
            if target is not None:
                target[index] = int(row.count)

    return chart


__all__ = [
    "ChartSeries",
    "Period",
    "ReportRow",
    "build_categories",
    "build_chart",
    "rekey",
    "window_start",
]
