from __future__ import annotations

"""Sales and purchase invoice routes.

Both kinds share one implementation; :func:`build_router` binds it to an
invoice type and URL prefix. Every mutation is priced by the GST engine,
written in the request's session and then handed to the audit trail
without waiting for it.
"""

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from config import get_settings

from .billing.invoice_service import InvoiceNotFoundError
from .db import session_dependency
from .models import InvoiceType
from .repos_sqlalchemy import invoices_repo_sql
from .routes_metrics import invoices_written_total
from .schemas import InvoiceIn, PaymentUpdateIn
from .services import invoice_audit
from .services.invoice_audit import RequestContext
from .tax.gst_engine import GstRates
from .utils.pagination import Pagination
from .utils.pagination import pagination as paginate
from .utils.responses import ok

PREFIXES = {
    InvoiceType.SALES: "/api/invoices",
    InvoiceType.PURCHASE: "/api/purchase-invoices",
}


def _price(payload: InvoiceIn) -> invoices_repo_sql.PricedInvoice:
    settings = get_settings()
    return invoices_repo_sql.price_invoice(
        payload,
        GstRates.from_settings(settings),
        home_prefix=settings.home_state_pincode_prefix,
        tcs_rate=settings.tcs_rate,
    )


def _not_found(exc: InvoiceNotFoundError) -> HTTPException:
    return HTTPException(status_code=404, detail=str(exc))


def build_router(kind: InvoiceType) -> APIRouter:
    """Return the invoice router for ``kind``."""

    label = kind.value
    title = label.capitalize()
    router = APIRouter(prefix=PREFIXES[kind], tags=[f"{label} invoices"])

    @router.get("")
    async def list_invoices(
        session: AsyncSession = Depends(session_dependency),
    ) -> dict:
        return ok(await invoices_repo_sql.list_invoices(session, label))

    # declared before /{invoice_id} so the literal path wins
    @router.get("/next-number")
    async def next_number(session: AsyncSession = Depends(session_dependency)) -> dict:
        number = await invoices_repo_sql.next_invoice_number(session, label)
        return ok({"next_number": number})

    @router.post("", status_code=201)
    async def create_invoice(
        payload: InvoiceIn,
        request: Request,
        session: AsyncSession = Depends(session_dependency),
    ) -> dict:
        priced = _price(payload)
        invoice = await invoices_repo_sql.create_invoice(
            session, label, payload, priced
        )
        invoices_written_total.labels(type=label, action="created").inc()
        invoice_audit.record(
            invoice.id,
            "created",
            f"{title} invoice {invoice.invoice_number} created",
            {
                "invoice_number": invoice.invoice_number,
                "total": invoice.total,
                "tax_type": priced.tax_type.value,
                "items": len(priced.items),
            },
            RequestContext.from_request(request),
        )
        return ok(
            {
                "id": invoice.id,
                "invoice_number": invoice.invoice_number,
                "tax_type": priced.tax_type.value,
                "sub_total": float(invoice.sub_total),
                "tax": float(invoice.tax),
                "discount": float(invoice.discount),
                "total": float(invoice.total),
            }
        )

    @router.get("/{invoice_id}")
    async def get_invoice(
        invoice_id: int, session: AsyncSession = Depends(session_dependency)
    ) -> dict:
        try:
            invoice = await invoices_repo_sql.get_invoice(session, label, invoice_id)
        except InvoiceNotFoundError as exc:
            raise _not_found(exc) from exc
        return ok(invoice)

    @router.put("/{invoice_id}")
    async def update_invoice(
        invoice_id: int,
        payload: InvoiceIn,
        request: Request,
        session: AsyncSession = Depends(session_dependency),
    ) -> dict:
        priced = _price(payload)
        try:
            invoice, changes = await invoices_repo_sql.update_invoice(
                session, label, invoice_id, payload, priced
            )
        except InvoiceNotFoundError as exc:
            raise _not_found(exc) from exc
        invoices_written_total.labels(type=label, action="updated").inc()
        invoice_audit.record(
            invoice.id,
            "updated",
            f"{title} invoice {invoice.invoice_number} updated",
            changes,
            RequestContext.from_request(request),
        )
        return ok(
            {
                "id": invoice.id,
                "invoice_number": invoice.invoice_number,
                "tax_type": priced.tax_type.value,
                "total": float(invoice.total),
                "changes": changes,
            }
        )

    @router.delete("/{invoice_id}")
    async def delete_invoice(
        invoice_id: int,
        request: Request,
        session: AsyncSession = Depends(session_dependency),
    ) -> dict:
        try:
            number = await invoices_repo_sql.delete_invoice(session, label, invoice_id)
        except InvoiceNotFoundError as exc:
            raise _not_found(exc) from exc
        invoices_written_total.labels(type=label, action="deleted").inc()
        invoice_audit.record(
            invoice_id,
            "deleted",
            f"{title} invoice {number} deleted",
            {"invoice_number": number},
            RequestContext.from_request(request),
        )
        return ok({"id": invoice_id, "deleted": True})

    @router.get("/{invoice_id}/balance")
    async def invoice_balance(
        invoice_id: int, session: AsyncSession = Depends(session_dependency)
    ) -> dict:
        try:
            balance = await invoices_repo_sql.invoice_balance(
                session, label, invoice_id
            )
        except InvoiceNotFoundError as exc:
            raise _not_found(exc) from exc
        return ok(balance)

    @router.patch("/{invoice_id}/payment")
    async def update_payment(
        invoice_id: int,
        payload: PaymentUpdateIn,
        request: Request,
        session: AsyncSession = Depends(session_dependency),
    ) -> dict:
        try:
            invoice, changes = await invoices_repo_sql.update_payment(
                session,
                label,
                invoice_id,
                amount_paid=payload.amount_paid,
                status=payload.status.value,
                payment_mode=payload.payment_mode,
            )
        except InvoiceNotFoundError as exc:
            raise _not_found(exc) from exc
        invoices_written_total.labels(type=label, action="payment_updated").inc()
        invoice_audit.record(
            invoice.id,
            "payment_updated",
            f"Payment status updated for {label} invoice {invoice.invoice_number}",
            changes,
            RequestContext.from_request(request),
        )
        return ok(
            {
                "id": invoice.id,
                "status": invoice.status,
                "amount_paid": invoice.meta.get("amount_paid"),
                "payment_mode": invoice.meta.get("payment_mode"),
            }
        )

    @router.get("/{invoice_id}/history")
    async def invoice_history(
        invoice_id: int,
        page: Pagination = Depends(paginate),
        session: AsyncSession = Depends(session_dependency),
    ) -> dict:
        rows = await invoice_audit.list_history(
            session, invoice_id, limit=page.limit, cursor=page.cursor
        )
        return ok({"entries": rows, "next_cursor": page.next_cursor(rows)})

    return router


sales_router = build_router(InvoiceType.SALES)
purchase_router = build_router(InvoiceType.PURCHASE)

__all__ = ["build_router", "purchase_router", "sales_router"]
