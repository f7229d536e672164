"""Database models for the billing store.

These models describe the schema used by the application. They are kept
isolated from any application wiring so that they can be used in tests or
bootstrap scripts independently."""

from __future__ import annotations

import enum

from sqlalchemy import (
    JSON,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class InvoiceType(str, enum.Enum):
    SALES = "sales"
    PURCHASE = "purchase"


class InvoiceStatus(str, enum.Enum):
    PAID = "paid"
    PENDING = "pending"
    OVERDUE = "overdue"
    DRAFT = "draft"


class User(Base):
    """Application users; only read here to label audit entries."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=True)


class Party(Base):
    """Customers and vendors invoices are raised against."""

    __tablename__ = "parties"

    id = Column(Integer, primary_key=True)
    party_name = Column(String, nullable=False)
    party_type = Column(String, nullable=False, default="customer")
    gstin = Column(String, nullable=True)
    billing_address = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Invoice(Base):
    """Sales and purchase invoices with their aggregate amounts."""

    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True)
    invoice_number = Column(String, nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)
    due_date = Column(Date, nullable=True)
    party_id = Column(Integer, ForeignKey("parties.id"), nullable=True)
    type = Column(String, nullable=False, default=InvoiceType.SALES.value, index=True)
    status = Column(String, nullable=False, default=InvoiceStatus.DRAFT.value)
    sub_total = Column(Numeric(12, 2), nullable=False, default=0)
    tax = Column(Numeric(12, 2), nullable=False, default=0)
    discount = Column(Numeric(12, 2), nullable=False, default=0)
    total = Column(Numeric(12, 2), nullable=False, default=0)
    notes = Column(JSON, nullable=False, default=list)
    meta = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class InvoiceItem(Base):
    """Line items of an invoice with their persisted amounts."""

    __tablename__ = "invoice_items"

    id = Column(Integer, primary_key=True)
    invoice_id = Column(
        Integer, ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False
    )
    description = Column(String, nullable=False, default="")
    hsn = Column(String, nullable=False, default="")
    uom = Column(String, nullable=False, default="")
    quantity = Column(Numeric(12, 3), nullable=False, default=0)
    rate = Column(Numeric(12, 2), nullable=False, default=0)
    # percentage discount on the line
    discount = Column(Numeric(5, 2), nullable=True)
    tax_amount = Column(Numeric(12, 2), nullable=False, default=0)
    amount = Column(Numeric(12, 2), nullable=False, default=0)
    meta = Column(JSON, nullable=True)


class Payment(Base):
    """Payments recorded against invoices."""

    __tablename__ = "payments"

    id = Column(Integer, primary_key=True)
    invoice_id = Column(Integer, ForeignKey("invoices.id"), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    mode = Column(String, nullable=False, default="Cash")
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class InvoiceHistory(Base):
    """Append-only audit trail of invoice actions."""

    __tablename__ = "invoice_history"

    id = Column(Integer, primary_key=True)
    invoice_id = Column(Integer, nullable=False, index=True)
    action = Column(String, nullable=False)
    user_id = Column(Integer, nullable=True)
    user_name = Column(String, nullable=False)
    changes = Column(JSON, nullable=True)
    details = Column(Text, nullable=True)
    ip_address = Column(String, nullable=True)
    user_agent = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


__all__ = [
    "Base",
    "Invoice",
    "InvoiceHistory",
    "InvoiceItem",
    "InvoiceStatus",
    "InvoiceType",
    "Party",
    "Payment",
    "User",
]
