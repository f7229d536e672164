# routes_metrics.py

"""Prometheus metrics and /metrics endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, generate_latest

router = APIRouter()

# Counters
http_errors_total = Counter(
    "http_errors_total", "Total HTTP errors", ["status", "method"]
)

invoices_written_total = Counter(
    "invoices_written_total", "Invoice writes by type and action", ["type", "action"]
)

invoice_audit_writes_total = Counter(
    "invoice_audit_writes_total", "Invoice history entries persisted"
)
invoice_audit_writes_total.inc(0)

invoice_audit_failures_total = Counter(
    "invoice_audit_failures_total", "Invoice history entries that failed to persist"
)
invoice_audit_failures_total.inc(0)


@router.get("/metrics")
async def metrics_endpoint() -> Response:
    """Expose Prometheus metrics."""
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
