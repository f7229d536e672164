"""Service layer helpers for the API."""

from . import invoice_audit

__all__ = ["invoice_audit"]
