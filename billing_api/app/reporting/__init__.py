"""Invoice reporting helpers."""

from .bucketer import (
    ChartSeries,
    Period,
    ReportRow,
    build_categories,
    build_chart,
    rekey,
    window_start,
)

__all__ = [
    "ChartSeries",
    "Period",
    "ReportRow",
    "build_categories",
    "build_chart",
    "rekey",
    "window_start",
]
