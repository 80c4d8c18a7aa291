# FILE: clinic_ledger/models/billing.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    Column,
    Integer,
    String,
    Numeric,
    Date,
    DateTime,
    Index,
    ForeignKey,
    Text,
)
from sqlalchemy.orm import relationship

from clinic_ledger.db.base import Base


class InvoiceStatus(str, Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"


class PaymentMethod(str, Enum):
    CASH = "cash"
    CARD = "card"
    CHECK = "check"
    BANK_TRANSFER = "bank_transfer"
    ONLINE = "online"
    INSURANCE = "insurance"
    OTHER = "other"


class Invoice(Base):
    """
    Invoice aggregate.

    subtotal / tax / discount / total / amount_paid / balance / status are
    denormalized onto the row and must always agree with the items and
    payments:

      total_amount = subtotal + tax_amount - discount_amount
      balance      = total_amount - amount_paid   (negative on overpayment)

    `version` is bumped by SQLAlchemy on every UPDATE and checked in the
    WHERE clause, so two writers working from the same snapshot cannot both
    succeed.
    """

    __tablename__ = "invoices"
    __table_args__ = (
        Index("ix_invoices_patient_date", "patient_id", "invoice_date"),
        Index("ix_invoices_status", "status"),
    )

    id = Column(Integer, primary_key=True, index=True)
    invoice_number = Column(String(32), unique=True, index=True, nullable=False)

    patient_id = Column(Integer, nullable=False, index=True)
    encounter_id = Column(Integer, nullable=True, index=True)

    invoice_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=True)

    subtotal = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    # percent, as given at creation
    tax_rate = Column(Numeric(6, 2), nullable=False, default=Decimal("0"))
    tax_amount = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    discount_amount = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    total_amount = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    amount_paid = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    balance = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))

    # pending | partial | paid
    status = Column(String(16), nullable=False, default=InvoiceStatus.PENDING.value)

    # last method used
    payment_method = Column(String(32), nullable=True)
    notes = Column(Text, nullable=True)

    created_by = Column(Integer, nullable=True)
    updated_by = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    version = Column(Integer, nullable=False, default=1)

    items = relationship(
        "InvoiceItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceItem.id",
    )
    payments = relationship(
        "Payment",
        back_populates="invoice",
        order_by="Payment.id",
    )

    __mapper_args__ = {"version_id_col": version}


class InvoiceItem(Base):
    __tablename__ = "invoice_items"
    __table_args__ = (Index("ix_invoice_items_invoice", "invoice_id"), )

    id = Column(Integer, primary_key=True, index=True)
    invoice_id = Column(
        Integer,
        ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
    )

    # catalog reference (procedure_codes.id), optional for free-text lines
    procedure_code_id = Column(Integer,
                               ForeignKey("procedure_codes.id"),
                               nullable=True)

    description = Column(String(300), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    unit_price = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))

    # quantity * unit_price
    line_total = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    invoice = relationship("Invoice", back_populates="items")
    procedure_code = relationship("ProcedureCode")


class Payment(Base):
    """
    Money received against one invoice.

    Immutable. A reversal is a second row with a negative amount and
    reverses_payment_id pointing at the original.
    """

    __tablename__ = "payments"
    __table_args__ = (
        Index("ix_payments_invoice", "invoice_id"),
        Index("ix_payments_patient_date", "patient_id", "payment_date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    payment_number = Column(String(32), unique=True, index=True, nullable=False)

    invoice_id = Column(Integer, ForeignKey("invoices.id"), nullable=False)
    patient_id = Column(Integer, nullable=False)

    payment_date = Column(Date, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    payment_method = Column(String(32), nullable=False)
    reference_number = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)

    reverses_payment_id = Column(Integer,
                                 ForeignKey("payments.id"),
                                 nullable=True,
                                 unique=True)

    processed_by = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    invoice = relationship("Invoice", back_populates="payments")
