"""Invoice billing: line items folded into invoice totals."""

from .invoice_service import (
    InvoiceNotFoundError,
    InvoiceSummary,
    InvoiceTotals,
    aggregate,
    diff_invoice,
    resolve_tax_type,
    summarize,
)

__all__ = [
    "InvoiceNotFoundError",
    "InvoiceSummary",
    "InvoiceTotals",
    "aggregate",
    "diff_invoice",
    "resolve_tax_type",
    "summarize",
]
