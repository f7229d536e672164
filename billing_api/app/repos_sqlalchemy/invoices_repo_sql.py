"""SQLAlchemy implementation for invoice persistence."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..billing.invoice_service import (
    InvoiceNotFoundError,
    InvoiceSummary,
    InvoiceTotals,
    aggregate,
    diff_invoice,
    money,
    resolve_tax_type,
    summarize,
)
from ..models import Invoice, InvoiceItem, Party, Payment
from ..schemas import InvoiceIn
from ..tax.gst_engine import (
    DEFAULT_RATES,
    GstRates,
    LineItem,
    TaxType,
    compute_base_amount,
    compute_item_amounts,
    to_decimal,
)
from ..tax.item_meta import ItemMeta, load_mapping
from ..utils import invoice_counter

# invoice meta keys owned by the payment flow, kept across edits
PAYMENT_META_KEYS = ("amount_paid", "payment_mode")


@dataclass(frozen=True)
class PricedInvoice:
    """Everything computed from a payload before it is written."""

    tax_type: TaxType
    totals: InvoiceTotals
    summary: InvoiceSummary
    items: list[dict]


def price_invoice(
    payload: InvoiceIn,
    rates: GstRates = DEFAULT_RATES,
    *,
    home_prefix: str = "6",
    tcs_rate: Decimal | float = Decimal("1"),
) -> PricedInvoice:
    """Run the GST engine over ``payload`` and build item column values."""

    tax_type = resolve_tax_type(payload.tax_type, payload.shipping_address, home_prefix)
    line_items = [
        item.to_line_item(tax_type, payload.gst_applicable) for item in payload.items
    ]
    totals = aggregate(line_items, tax_type, payload.gst_applicable, rates)
    summary = summarize(
        totals,
        tax_type,
        gst_applicable=payload.gst_applicable,
        discount=payload.discount.model_dump() if payload.discount else None,
        additional_charges=[c.model_dump() for c in payload.additional_charges],
        apply_tcs=payload.apply_tcs,
        tcs_rate=tcs_rate,
    )

    items = []
    for raw, line in zip(payload.items, line_items):
        amounts = compute_item_amounts(line, tax_type, payload.gst_applicable, rates)
        items.append(
            {
                "description": raw.description,
                "hsn": raw.hsn,
                "uom": raw.uom,
                "quantity": line.quantity,
                "rate": money(line.rate),
                "discount": line.discount,
                "tax_amount": money(amounts.tax_amount),
                "amount": money(amounts.total_amount),
                "meta": ItemMeta.from_computation(
                    line, amounts, tax_type, rates
                ).as_dict(),
            }
        )
    return PricedInvoice(tax_type=tax_type, totals=totals, summary=summary, items=items)


def _invoice_meta(payload: InvoiceIn, priced: PricedInvoice) -> dict:
    meta = priced.summary.as_dict()
    meta.update(
        {
            "additional_charges": [
                {"name": c.name, "amount": float(c.amount or 0)}
                for c in payload.additional_charges
            ],
            "billing_address": payload.billing_address,
            "shipping_address": payload.shipping_address,
            "payment_mode": payload.payment_mode,
            "payment_terms": payload.payment_terms,
            "po_number": payload.po_number,
        }
    )
    return meta


def _apply_header(invoice: Invoice, payload: InvoiceIn, priced: PricedInvoice) -> None:
    invoice.invoice_number = payload.invoice_number
    invoice.date = payload.date
    invoice.due_date = payload.due_date
    invoice.party_id = payload.party_id
    invoice.status = payload.status.value
    invoice.sub_total = money(priced.totals.sub_total)
    invoice.tax = money(priced.totals.tax)
    invoice.discount = money(priced.totals.discount)
    invoice.total = money(priced.totals.total)
    invoice.notes = list(payload.notes)


def _tax_type_of(invoice: Invoice) -> TaxType:
    meta = load_mapping(invoice.meta)
    return TaxType.coerce(meta.get("tax_type") or meta.get("taxType"))


def _as_float(value: Any) -> float:
    return float(value) if value is not None else 0.0


def _item_dict(item: InvoiceItem) -> dict:
    meta = ItemMeta.from_raw(item.meta)
    line = meta.merge_into(
        LineItem(
            quantity=to_decimal(item.quantity),
            rate=to_decimal(item.rate),
            discount=to_decimal(item.discount, None),
        )
    )
    return {
        "id": item.id,
        "description": item.description,
        "hsn": item.hsn,
        "uom": item.uom,
        "quantity": _as_float(item.quantity),
        "rate": _as_float(item.rate),
        "discount": float(item.discount) if item.discount is not None else None,
        "tax_amount": _as_float(item.tax_amount),
        "amount": _as_float(item.amount),
        "sgst": float(line.sgst),
        "cgst": float(line.cgst),
        "igst": float(line.igst),
        "sgst_amount": float(meta.sgst_amount),
        "cgst_amount": float(meta.cgst_amount),
        "igst_amount": float(meta.igst_amount),
        "base_amount": float(money(compute_base_amount(line))),
        "percentage_value": (
            float(line.percentage_value) if line.percentage_value is not None else None
        ),
        "is_percentage_qty": line.is_percentage_qty,
        "meta": meta.as_dict(),
    }


def _invoice_dict(invoice: Invoice, party_name: str | None = None) -> dict:
    return {
        "id": invoice.id,
        "invoice_number": invoice.invoice_number,
        "date": invoice.date.isoformat() if invoice.date else None,
        "due_date": invoice.due_date.isoformat() if invoice.due_date else None,
        "party_id": invoice.party_id,
        "party_name": party_name,
        "type": invoice.type,
        "status": invoice.status,
        "sub_total": _as_float(invoice.sub_total),
        "tax": _as_float(invoice.tax),
        "discount": _as_float(invoice.discount),
        "total": _as_float(invoice.total),
        "notes": invoice.notes or [],
        "meta": dict(load_mapping(invoice.meta)),
        "tax_type": _tax_type_of(invoice).value,
    }


async def _items_by_invoice(
    session: AsyncSession, invoice_ids: Sequence[int]
) -> dict[int, list[dict]]:
    grouped: dict[int, list[dict]] = defaultdict(list)
    if not invoice_ids:
        return grouped
    result = await session.execute(
        select(InvoiceItem)
        .where(InvoiceItem.invoice_id.in_(invoice_ids))
        .order_by(InvoiceItem.id)
    )
    for item in result.scalars():
        grouped[item.invoice_id].append(_item_dict(item))
    return grouped


async def _load(session: AsyncSession, kind: str, invoice_id: int) -> Invoice:
    invoice = await session.scalar(
        select(Invoice).where(Invoice.id == invoice_id, Invoice.type == kind)
    )
    if invoice is None:
        raise InvoiceNotFoundError(kind, invoice_id)
    return invoice


async def list_invoices(session: AsyncSession, kind: str) -> list[dict]:
    """Return invoices of ``kind`` with party names and items, newest first."""
    result = await session.execute(
        select(Invoice, Party.party_name)
        .outerjoin(Party, Party.id == Invoice.party_id)
        .where(Invoice.type == kind)
        .order_by(Invoice.created_at.desc(), Invoice.id.desc())
    )
    rows = result.all()
    items = await _items_by_invoice(session, [invoice.id for invoice, _ in rows])
    invoices = []
    for invoice, party_name in rows:
        data = _invoice_dict(invoice, party_name)
        data["items"] = items.get(invoice.id, [])
        invoices.append(data)
    return invoices


async def get_invoice(session: AsyncSession, kind: str, invoice_id: int) -> dict:
    """Return one invoice with its party and items.

    Item rates and amounts come from each item's meta sidecar with defaults
    filled in. Raises :class:`InvoiceNotFoundError` when absent.
    """

    invoice = await _load(session, kind, invoice_id)
    party = (
        await session.get(Party, invoice.party_id) if invoice.party_id else None
    )
    data = _invoice_dict(invoice, party.party_name if party else None)
    data["party"] = (
        {
            "id": party.id,
            "party_name": party.party_name,
            "party_type": party.party_type,
            "gstin": party.gstin,
            "billing_address": party.billing_address,
        }
        if party
        else None
    )
    items = await _items_by_invoice(session, [invoice.id])
    data["items"] = items.get(invoice.id, [])
    return data


async def next_invoice_number(session: AsyncSession, kind: str) -> str:
    last = await session.scalar(
        select(Invoice.invoice_number)
        .where(Invoice.type == kind)
        .order_by(Invoice.created_at.desc(), Invoice.id.desc())
        .limit(1)
    )
    return invoice_counter.next_number(last)


async def create_invoice(
    session: AsyncSession, kind: str, payload: InvoiceIn, priced: PricedInvoice
) -> Invoice:
    """Insert the invoice and its items in one transaction."""
    invoice = Invoice(type=kind, meta=_invoice_meta(payload, priced))
    _apply_header(invoice, payload, priced)
    session.add(invoice)
    await session.flush()
    session.add_all(
        InvoiceItem(invoice_id=invoice.id, **values) for values in priced.items
    )
    await session.commit()
    return invoice


async def update_invoice(
    session: AsyncSession,
    kind: str,
    invoice_id: int,
    payload: InvoiceIn,
    priced: PricedInvoice,
) -> tuple[Invoice, dict]:
    """Replace header and items of an invoice and return the change set."""

    invoice = await _load(session, kind, invoice_id)
    before = {
        "status": invoice.status,
        "invoice_number": invoice.invoice_number,
        "party_id": invoice.party_id,
        "tax_type": _tax_type_of(invoice).value,
        "total": invoice.total,
    }
    old_meta = load_mapping(invoice.meta)
    meta = _invoice_meta(payload, priced)
    for key in PAYMENT_META_KEYS:
        if key in old_meta:
            meta[key] = old_meta[key]

    _apply_header(invoice, payload, priced)
    invoice.meta = meta
    await session.execute(delete(InvoiceItem).where(InvoiceItem.invoice_id == invoice.id))
    session.add_all(
        InvoiceItem(invoice_id=invoice.id, **values) for values in priced.items
    )
    await session.commit()

    after = {
        "status": invoice.status,
        "invoice_number": invoice.invoice_number,
        "party_id": invoice.party_id,
        "tax_type": priced.tax_type.value,
        "total": invoice.total,
    }
    return invoice, diff_invoice(before, after)


async def delete_invoice(session: AsyncSession, kind: str, invoice_id: int) -> str:
    """Delete an invoice with its items and return its number."""
    invoice = await _load(session, kind, invoice_id)
    number = invoice.invoice_number
    await session.execute(delete(InvoiceItem).where(InvoiceItem.invoice_id == invoice.id))
    await session.delete(invoice)
    await session.commit()
    return number


async def invoice_balance(session: AsyncSession, kind: str, invoice_id: int) -> dict:
    """Return total, amount paid and outstanding balance of an invoice."""
    invoice = await _load(session, kind, invoice_id)
    paid = await session.scalar(
        select(func.coalesce(func.sum(Payment.amount), 0)).where(
            Payment.invoice_id == invoice.id
        )
    )
    total = Decimal(str(invoice.total or 0))
    paid = Decimal(str(paid or 0))
    return {
        "invoice_id": invoice.id,
        "total": float(money(total)),
        "paid": float(money(paid)),
        "balance": float(money(total - paid)),
    }


async def update_payment(
    session: AsyncSession,
    kind: str,
    invoice_id: int,
    *,
    amount_paid: Decimal | None,
    status: str,
    payment_mode: str | None = None,
) -> tuple[Invoice, dict]:
    """Record payment progress on an invoice and return the change set."""

    invoice = await _load(session, kind, invoice_id)
    meta = dict(load_mapping(invoice.meta))
    old_paid = money(Decimal(str(meta.get("amount_paid") or 0)))
    new_paid = money(amount_paid or Decimal("0"))

    changes: dict[str, dict] = {}
    if old_paid != new_paid:
        changes["amount_paid"] = {"from": float(old_paid), "to": float(new_paid)}
    if invoice.status != status:
        changes["status"] = {"from": invoice.status, "to": status}

    meta["amount_paid"] = float(new_paid)
    meta["payment_mode"] = payment_mode or meta.get("payment_mode") or "Cash"
    invoice.meta = meta
    invoice.status = status
    await session.commit()
    return invoice, changes


__all__ = [
    "PricedInvoice",
    "create_invoice",
    "delete_invoice",
    "get_invoice",
    "invoice_balance",
    "list_invoices",
    "next_invoice_number",
    "price_invoice",
    "update_invoice",
    "update_payment",
]
