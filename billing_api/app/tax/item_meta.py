from __future__ import annotations

"""Versioned tax sidecar stored alongside each invoice item.

Invoice items persist a small JSON blob carrying the GST rates, computed tax
amounts and percentage-mode inputs of the line. Older rows may hold the blob
as text, in ``camelCase``, partially filled or not at all, so parsing never
fails: every missing or malformed field falls back to its default.
"""

import json
import logging
from dataclasses import dataclass, replace
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Mapping

from .gst_engine import (
    DEFAULT_RATES,
    ZERO,
    GstRates,
    LineItem,
    LineItemComputation,
    TaxType,
    to_decimal,
)

META_VERSION = 1
ROUND = Decimal("0.01")

logger = logging.getLogger(__name__)

# stored key -> accepted spellings
_ALIASES: dict[str, tuple[str, ...]] = {
    "sgst": ("sgst",),
    "cgst": ("cgst",),
    "igst": ("igst",),
    "sgst_amount": ("sgst_amount", "sgstAmount"),
    "cgst_amount": ("cgst_amount", "cgstAmount"),
    "igst_amount": ("igst_amount", "igstAmount"),
    "taxable_amount": ("taxable_amount", "taxableAmount"),
    "percentage_value": ("percentage_value", "percentageValue"),
    "is_percentage_qty": ("is_percentage_qty", "isPercentageQty"),
}


def _money(value: Decimal) -> Decimal:
    return value.quantize(ROUND, rounding=ROUND_HALF_UP)


def _get(data: Mapping[str, Any], field: str) -> Any:
    for key in _ALIASES[field]:
        if key in data:
            return data[key]
    return None


def load_mapping(raw: Any) -> Mapping[str, Any]:
    if raw is None:
        return {}
    if isinstance(raw, (bytes, str)):
        try:
            raw = json.loads(raw)
        except ValueError:
            logger.warning("discarding unparsable meta blob")
            return {}
    if not isinstance(raw, Mapping):
        return {}
    return raw


@dataclass(frozen=True)
class ItemMeta:
    """Tax sidecar for one invoice item."""

    sgst: Decimal = DEFAULT_RATES.sgst
    cgst: Decimal = DEFAULT_RATES.cgst
    igst: Decimal = DEFAULT_RATES.igst
    sgst_amount: Decimal = ZERO
    cgst_amount: Decimal = ZERO
    igst_amount: Decimal = ZERO
    taxable_amount: Decimal = ZERO
    percentage_value: Decimal | None = None
    is_percentage_qty: bool = False
    version: int = META_VERSION

    @classmethod
    def from_raw(cls, raw: Any, rates: GstRates = DEFAULT_RATES) -> "ItemMeta":
        """Parse a stored blob, substituting defaults field by field.

        Zero or missing rates fall back to ``rates``.
        """
        data = load_mapping(raw)
        flag = _get(data, "is_percentage_qty")
        if isinstance(flag, str):
            flag = flag.strip().lower() in {"1", "true", "yes", "on"}
        version = data.get("v")
        return cls(
            sgst=to_decimal(_get(data, "sgst"), None) or rates.sgst,
            cgst=to_decimal(_get(data, "cgst"), None) or rates.cgst,
            igst=to_decimal(_get(data, "igst"), None) or rates.igst,
            sgst_amount=to_decimal(_get(data, "sgst_amount")),
            cgst_amount=to_decimal(_get(data, "cgst_amount")),
            igst_amount=to_decimal(_get(data, "igst_amount")),
            taxable_amount=to_decimal(_get(data, "taxable_amount")),
            percentage_value=to_decimal(_get(data, "percentage_value"), None) or None,
            is_percentage_qty=bool(flag),
            version=version if isinstance(version, int) else META_VERSION,
        )

    @classmethod
    def from_computation(
        cls,
        item: LineItem,
        computation: LineItemComputation,
        tax_type: TaxType,
        rates: GstRates = DEFAULT_RATES,
    ) -> "ItemMeta":
        """Build the sidecar written with a freshly computed item.

        Only the rates of the active regime are recorded; the other regime
        is stored as zero.
        """
        split = tax_type is TaxType.SGST_CGST
        return cls(
            sgst=(item.sgst or rates.sgst) if split else ZERO,
            cgst=(item.cgst or rates.cgst) if split else ZERO,
            igst=ZERO if split else (item.igst or rates.igst),
            sgst_amount=_money(computation.sgst_amount),
            cgst_amount=_money(computation.cgst_amount),
            igst_amount=_money(computation.igst_amount),
            taxable_amount=_money(computation.taxable_amount),
            percentage_value=item.percentage_value,
            is_percentage_qty=item.is_percentage_qty,
        )

    def as_dict(self) -> dict[str, Any]:
        return {
            "v": self.version,
            "sgst": float(self.sgst),
            "cgst": float(self.cgst),
            "igst": float(self.igst),
            "sgst_amount": float(self.sgst_amount),
            "cgst_amount": float(self.cgst_amount),
            "igst_amount": float(self.igst_amount),
            "taxable_amount": float(self.taxable_amount),
            "percentage_value": (
                float(self.percentage_value)
                if self.percentage_value is not None
                else None
            ),
            "is_percentage_qty": self.is_percentage_qty,
        }

    def merge_into(self, item: LineItem) -> LineItem:
        """Return ``item`` with unset rates and percentage inputs filled in."""
        return replace(
            item,
            sgst=item.sgst or self.sgst,
            cgst=item.cgst or self.cgst,
            igst=item.igst or self.igst,
            is_percentage_qty=item.is_percentage_qty or self.is_percentage_qty,
            percentage_value=(
                item.percentage_value
                if item.percentage_value is not None
                else self.percentage_value
            ),
        )


__all__ = ["ItemMeta", "META_VERSION", "load_mapping"]
