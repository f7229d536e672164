from __future__ import annotations

"""GST calculation helpers for invoice line items.

Each line item is priced either by quantity (``quantity * rate``) or as a
percentage of its rate, then discounted, then taxed under one of two GST
regimes: split SGST + CGST for intra-state supplies or a single IGST for
inter-state supplies. Rates missing on an item fall back to an explicit
:class:`GstRates` value, never to hidden literals.

All arithmetic uses :class:`~decimal.Decimal`. Nothing is rounded here;
rounding to ₹0.01 happens when amounts are persisted.
"""

import enum
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping

ZERO = Decimal("0")
HUNDRED = Decimal("100")
# inputs must stay below 10 ** (MAX_EXPONENT + 1) in magnitude
MAX_EXPONENT = 9


class TaxType(str, enum.Enum):
    """GST regime applied to an invoice."""

    SGST_CGST = "sgst_cgst"
    IGST = "igst"

    @classmethod
    def coerce(cls, value: Any) -> "TaxType":
        """Return the matching member, defaulting to ``SGST_CGST``."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.SGST_CGST


@dataclass(frozen=True)
class GstRates:
    """Default GST percentages used when an item carries none."""

    sgst: Decimal = Decimal("9")
    cgst: Decimal = Decimal("9")
    igst: Decimal = Decimal("18")

    @classmethod
    def from_settings(cls, settings: Any) -> "GstRates":
        return cls(
            sgst=to_decimal(settings.default_sgst_rate, cls.sgst),
            cgst=to_decimal(settings.default_cgst_rate, cls.cgst),
            igst=to_decimal(settings.default_igst_rate, cls.igst),
        )


DEFAULT_RATES = GstRates()


def to_decimal(value: Any, default: Decimal | None = ZERO) -> Decimal | None:
    """Coerce ``value`` to ``Decimal`` or return ``default``.

    ``None``, empty strings, booleans, non-finite numbers, numbers of ten
    billion or more in magnitude and anything that does not parse as a
    number all yield ``default``.
    """
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            return default
    if not result.is_finite() or result.adjusted() > MAX_EXPONENT:
        return default
    return result


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def _pick(data: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in data:
            return data[key]
    return None


@dataclass(frozen=True)
class LineItem:
    """Raw pricing inputs of a single invoice line."""

    quantity: Decimal = ZERO
    rate: Decimal = ZERO
    discount: Decimal | None = None
    is_percentage_qty: bool = False
    percentage_value: Decimal | None = None
    sgst: Decimal | None = None
    cgst: Decimal | None = None
    igst: Decimal | None = None
    tax_type: TaxType = TaxType.SGST_CGST
    gst_applicable: bool = True

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "LineItem":
        """Build a line item from a loosely typed mapping.

        Both ``snake_case`` and ``camelCase`` keys are accepted. Malformed
        numbers are replaced with defaults instead of raising.
        """
        gst_applicable = _pick(data, "gst_applicable", "gstApplicable")
        return cls(
            quantity=to_decimal(data.get("quantity")),
            rate=to_decimal(data.get("rate")),
            discount=to_decimal(data.get("discount"), None),
            is_percentage_qty=_to_bool(
                _pick(data, "is_percentage_qty", "isPercentageQty")
            ),
            percentage_value=to_decimal(
                _pick(data, "percentage_value", "percentageValue"), None
            ),
            sgst=to_decimal(data.get("sgst"), None),
            cgst=to_decimal(data.get("cgst"), None),
            igst=to_decimal(data.get("igst"), None),
            tax_type=TaxType.coerce(_pick(data, "tax_type", "taxType")),
            gst_applicable=True if gst_applicable is None else _to_bool(gst_applicable),
        )


@dataclass(frozen=True)
class LineItemComputation:
    """Derived amounts for one line item."""

    base_amount: Decimal
    discount_amount: Decimal
    taxable_amount: Decimal
    tax_amount: Decimal
    sgst_amount: Decimal
    cgst_amount: Decimal
    igst_amount: Decimal
    total_amount: Decimal


def compute_base_amount(item: LineItem) -> Decimal:
    """Return the pre-discount amount for ``item``.

    In percentage mode the amount is ``percentage_value`` percent of
    ``rate``; otherwise it is ``quantity * rate``. Negative inputs are
    propagated unchanged.
    """
    if item.is_percentage_qty and item.percentage_value:
        return item.percentage_value / HUNDRED * item.rate
    return item.quantity * item.rate


def compute_item_amounts(
    item: LineItem,
    tax_type: TaxType | str | None = None,
    gst_applicable: bool | None = None,
    rates: GstRates = DEFAULT_RATES,
) -> LineItemComputation:
    """Compute discount, taxable value and GST components for ``item``.

    Parameters
    ----------
    item:
        Line item inputs.
    tax_type:
        ``"sgst_cgst"`` or ``"igst"``. ``None`` uses the item's own regime.
    gst_applicable:
        When false every tax component is zero. ``None`` uses the item's
        own flag.
    rates:
        Fallback percentages for items without explicit rates.

    ``total_amount`` is the taxable (post-discount, pre-tax) amount; tax is
    reported separately.
    """

    regime = item.tax_type if tax_type is None else TaxType.coerce(tax_type)
    applicable = item.gst_applicable if gst_applicable is None else gst_applicable

    base_amount = compute_base_amount(item)
    discount_amount = base_amount * (item.discount or ZERO) / HUNDRED
    taxable_amount = base_amount - discount_amount

    sgst_amount = cgst_amount = igst_amount = ZERO
    if applicable:
        if regime is TaxType.SGST_CGST:
            sgst_amount = taxable_amount * (item.sgst or rates.sgst) / HUNDRED
            cgst_amount = taxable_amount * (item.cgst or rates.cgst) / HUNDRED
        else:
            igst_amount = taxable_amount * (item.igst or rates.igst) / HUNDRED
    tax_amount = sgst_amount + cgst_amount + igst_amount

    return LineItemComputation(
        base_amount=base_amount,
        discount_amount=discount_amount,
        taxable_amount=taxable_amount,
        tax_amount=tax_amount,
        sgst_amount=sgst_amount,
        cgst_amount=cgst_amount,
        igst_amount=igst_amount,
        total_amount=taxable_amount,
    )


__all__ = [
    "DEFAULT_RATES",
    "GstRates",
    "LineItem",
    "LineItemComputation",
    "TaxType",
    "compute_base_amount",
    "compute_item_amounts",
    "to_decimal",
]
