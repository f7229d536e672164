from __future__ import annotations

"""Invoice-level totals built from line item computations."""

import re
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable, Mapping, Sequence

from ..tax.gst_engine import (
    DEFAULT_RATES,
    HUNDRED,
    ZERO,
    GstRates,
    LineItem,
    LineItemComputation,
    TaxType,
    compute_item_amounts,
    to_decimal,
)

ROUND = Decimal("0.01")
PINCODE_RE = re.compile(r"\b\d{6}\b")


class InvoiceNotFoundError(LookupError):
    """Raised when an invoice of the requested kind does not exist."""

    def __init__(self, kind: str, invoice_id: int) -> None:
        super().__init__(f"{kind.capitalize()} invoice not found")
        self.kind = kind
        self.invoice_id = invoice_id


@dataclass(frozen=True)
class InvoiceTotals:
    """Sums of line item amounts for one invoice."""

    sub_total: Decimal = ZERO
    discount: Decimal = ZERO
    tax: Decimal = ZERO
    total: Decimal = ZERO
    sgst: Decimal = ZERO
    cgst: Decimal = ZERO
    igst: Decimal = ZERO


@dataclass(frozen=True)
class InvoiceSummary:
    """Invoice-level adjustments stored in the invoice ``meta`` column."""

    tax_type: TaxType
    gst_applicable: bool
    discount_type: str
    discount_input: Decimal
    discount_value: Decimal
    additional_charges_total: Decimal
    taxable_amount: Decimal
    apply_tcs: bool
    tcs: Decimal
    sgst_total: Decimal
    cgst_total: Decimal
    igst_total: Decimal
    total_tax: Decimal

    def as_dict(self) -> dict[str, Any]:
        return {
            "tax_type": self.tax_type.value,
            "gst_applicable": self.gst_applicable,
            "discount": {
                "type": self.discount_type,
                "value": float(self.discount_input),
            },
            "discount_value": float(self.discount_value),
            "additional_charges_total": float(self.additional_charges_total),
            "taxable_amount": float(self.taxable_amount),
            "apply_tcs": self.apply_tcs,
            "tcs": float(self.tcs),
            "sgst_total": float(self.sgst_total),
            "cgst_total": float(self.cgst_total),
            "igst_total": float(self.igst_total),
            "total_tax": float(self.total_tax),
        }


def money(value: Decimal) -> Decimal:
    """Round ``value`` to ₹0.01 using half-up rounding."""
    return value.quantize(ROUND, rounding=ROUND_HALF_UP)


def compute_items(
    items: Iterable[LineItem],
    tax_type: TaxType | str = TaxType.SGST_CGST,
    gst_applicable: bool = True,
    rates: GstRates = DEFAULT_RATES,
) -> list[LineItemComputation]:
    """Run :func:`compute_item_amounts` over ``items`` in input order."""
    return [
        compute_item_amounts(item, tax_type, gst_applicable, rates) for item in items
    ]


def aggregate(
    items: Iterable[LineItem],
    tax_type: TaxType | str = TaxType.SGST_CGST,
    gst_applicable: bool = True,
    rates: GstRates = DEFAULT_RATES,
) -> InvoiceTotals:
    """Fold line item computations into invoice totals.

    ``sub_total`` sums base amounts, ``discount`` sums line discounts, ``tax``
    sums tax amounts and ``total`` sums line totals. An empty ``items``
    yields all zeros. The result depends only on the inputs, so calling it
    again after an edit recomputes from scratch.
    """

    sub_total = discount = tax = total = sgst = cgst = igst = ZERO
    for amounts in compute_items(items, tax_type, gst_applicable, rates):
        sub_total += amounts.base_amount
        discount += amounts.discount_amount
        tax += amounts.tax_amount
        total += amounts.total_amount
        sgst += amounts.sgst_amount
        cgst += amounts.cgst_amount
        igst += amounts.igst_amount
    return InvoiceTotals(
        sub_total=sub_total,
        discount=discount,
        tax=tax,
        total=total,
        sgst=sgst,
        cgst=cgst,
        igst=igst,
    )


def extract_pincode(address: str | None) -> str | None:
    if not address:
        return None
    match = PINCODE_RE.search(address)
    return match.group(0) if match else None


def resolve_tax_type(
    requested: TaxType | str | None,
    shipping_address: str | None = None,
    home_prefix: str = "6",
) -> TaxType:
    """Return the GST regime for an invoice.

    An explicit ``requested`` regime wins. Otherwise the pincode found in
    ``shipping_address`` decides: pincodes starting with ``home_prefix`` are
    intra-state (``sgst_cgst``), any other pincode is inter-state (``igst``).
    Without a pincode the split regime is used.
    """

    if requested:
        return TaxType.coerce(requested)
    pincode = extract_pincode(shipping_address)
    if pincode is None:
        return TaxType.SGST_CGST
    return TaxType.SGST_CGST if pincode.startswith(home_prefix) else TaxType.IGST


def summarize(
    totals: InvoiceTotals,
    tax_type: TaxType,
    *,
    gst_applicable: bool = True,
    discount: Mapping[str, Any] | None = None,
    additional_charges: Sequence[Mapping[str, Any]] = (),
    apply_tcs: bool = False,
    tcs_rate: Decimal | float = Decimal("1"),
) -> InvoiceSummary:
    """Compute invoice-level discount, charges and TCS on top of ``totals``.

    ``discount`` is ``{"type": "flat" | "percent", "value": n}``; a percent
    discount applies to the sub-total. TCS is ``tcs_rate`` percent of
    ``sub_total - discount + charges`` and only when ``apply_tcs`` is set.
    """

    discount = discount or {}
    discount_type = "percent" if discount.get("type") == "percent" else "flat"
    discount_input = to_decimal(discount.get("value"))
    if discount_type == "percent":
        discount_value = totals.sub_total * discount_input / HUNDRED
    else:
        discount_value = discount_input

    charges_total = sum(
        (to_decimal(charge.get("amount")) for charge in additional_charges), ZERO
    )
    taxable = totals.sub_total - discount_value + charges_total
    tcs = taxable * to_decimal(tcs_rate) / HUNDRED if apply_tcs else ZERO
    split = tax_type is TaxType.SGST_CGST

    return InvoiceSummary(
        tax_type=tax_type,
        gst_applicable=gst_applicable,
        discount_type=discount_type,
        discount_input=discount_input,
        discount_value=money(discount_value),
        additional_charges_total=money(charges_total),
        taxable_amount=money(taxable),
        apply_tcs=apply_tcs,
        tcs=money(tcs),
        sgst_total=money(totals.sgst) if split else ZERO,
        cgst_total=money(totals.cgst) if split else ZERO,
        igst_total=ZERO if split else money(totals.igst),
        total_tax=money(totals.tax),
    )


def diff_invoice(old: Mapping[str, Any], new: Mapping[str, Any]) -> dict[str, dict]:
    """Return ``{field: {"from": old, "to": new}}`` for changed header fields.

    Totals are compared at two decimals so that re-saving an unchanged
    invoice records no change.
    """

    changes: dict[str, dict] = {}
    for field in ("status", "invoice_number", "party_id", "tax_type"):
        if old.get(field) != new.get(field):
            changes[field] = {"from": old.get(field), "to": new.get(field)}
    old_total = money(to_decimal(old.get("total")))
    new_total = money(to_decimal(new.get("total")))
    if old_total != new_total:
        changes["total"] = {"from": float(old_total), "to": float(new_total)}
    return changes


__all__ = [
    "InvoiceNotFoundError",
    "InvoiceSummary",
    "InvoiceTotals",
    "aggregate",
    "compute_items",
    "diff_invoice",
    "extract_pincode",
    "money",
    "resolve_tax_type",
    "summarize",
]
