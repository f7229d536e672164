# schemas.py

"""Pydantic models for invoice payloads.

Clients send either ``snake_case`` or ``camelCase`` keys. Numeric fields are
lenient: values that do not parse as numbers are treated as absent and the
pricing engine substitutes its defaults.
"""

from __future__ import annotations

import datetime as dt
from decimal import Decimal
from typing import Any, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from .models import InvoiceStatus
from .tax.gst_engine import ZERO, LineItem, TaxType, to_decimal


def _lenient_decimal(value: Any) -> Decimal | None:
    return to_decimal(value, None)


def _date_only(value: Any) -> Any:
    """Truncate datetimes and ISO datetime strings to their date part."""
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, str):
        value = value.split("T")[0].strip()
        return value or None
    return value


class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class LineItemIn(_Payload):
    """One invoice line as submitted by the client."""

    description: str = ""
    hsn: str = ""
    uom: str = ""
    quantity: Optional[Decimal] = None
    rate: Optional[Decimal] = None
    discount: Optional[Decimal] = None
    is_percentage_qty: bool = Field(False, alias="isPercentageQty")
    percentage_value: Optional[Decimal] = Field(None, alias="percentageValue")
    sgst: Optional[Decimal] = None
    cgst: Optional[Decimal] = None
    igst: Optional[Decimal] = None

    @field_validator(
        "quantity",
        "rate",
        "discount",
        "percentage_value",
        "sgst",
        "cgst",
        "igst",
        mode="before",
    )
    @classmethod
    def lenient_numbers(cls, value: Any) -> Decimal | None:
        return _lenient_decimal(value)

    def to_line_item(
        self, tax_type: TaxType = TaxType.SGST_CGST, gst_applicable: bool = True
    ) -> LineItem:
        return LineItem(
            quantity=self.quantity if self.quantity is not None else ZERO,
            rate=self.rate if self.rate is not None else ZERO,
            discount=self.discount,
            is_percentage_qty=self.is_percentage_qty,
            percentage_value=self.percentage_value,
            sgst=self.sgst,
            cgst=self.cgst,
            igst=self.igst,
            tax_type=tax_type,
            gst_applicable=gst_applicable,
        )


class DiscountIn(_Payload):
    """Invoice-level discount, either flat or a percentage of the sub-total."""

    type: str = "flat"
    value: Optional[Decimal] = None

    @field_validator("value", mode="before")
    @classmethod
    def lenient_number(cls, value: Any) -> Decimal | None:
        return _lenient_decimal(value)


class ChargeIn(_Payload):
    name: str = ""
    amount: Optional[Decimal] = None

    @field_validator("amount", mode="before")
    @classmethod
    def lenient_number(cls, value: Any) -> Decimal | None:
        return _lenient_decimal(value)


class InvoiceIn(_Payload):
    """Create or replace payload for sales and purchase invoices."""

    invoice_number: str = Field(..., alias="invoiceNumber")
    date: dt.date
    due_date: Optional[dt.date] = Field(None, alias="dueDate")
    party_id: Optional[int] = Field(
        None,
        alias="partyId",
        validation_alias=AliasChoices("partyId", "party_id", "clientId"),
    )
    status: InvoiceStatus = InvoiceStatus.DRAFT
    tax_type: Optional[str] = Field(None, alias="taxType")
    gst_applicable: bool = Field(True, alias="gstApplicable")
    items: List[LineItemIn] = Field(default_factory=list)
    discount: Optional[DiscountIn] = None
    additional_charges: List[ChargeIn] = Field(
        default_factory=list, alias="additionalCharges"
    )
    apply_tcs: bool = Field(False, alias="applyTCS")
    notes: List[Any] = Field(default_factory=list)
    billing_address: str = Field("", alias="billingAddress")
    shipping_address: str = Field("", alias="shippingAddress")
    payment_mode: str = Field("Cash", alias="paymentMode")
    payment_terms: str = Field("", alias="paymentTerms")
    po_number: str = Field("", alias="poNumber")

    @field_validator("date", "due_date", mode="before")
    @classmethod
    def date_only(cls, value: Any) -> Any:
        return _date_only(value)


class PaymentUpdateIn(_Payload):
    """Payment status change for an invoice."""

    amount_paid: Optional[Decimal] = Field(None, alias="amountPaid")
    status: InvoiceStatus
    payment_mode: Optional[str] = Field(None, alias="paymentMode")

    @field_validator("amount_paid", mode="before")
    @classmethod
    def lenient_number(cls, value: Any) -> Decimal | None:
        return _lenient_decimal(value)


__all__ = [
    "ChargeIn",
    "DiscountIn",
    "InvoiceIn",
    "LineItemIn",
    "PaymentUpdateIn",
]
