# FILE: clinic_ledger/schemas/billing.py
from __future__ import annotations

from typing import Optional, List
from datetime import date, datetime
from pydantic import BaseModel, ConfigDict, field_validator
from decimal import Decimal

from clinic_ledger.models.billing import InvoiceStatus, PaymentMethod


class InvoiceItemIn(BaseModel):
    """
    One billable line. Either free text (description + unit_price) or a
    catalog reference; catalog values fill whatever is left out.
    """
    procedure_code_id: Optional[int] = None
    description: Optional[str] = None
    quantity: int = 1
    unit_price: Optional[Decimal] = None

    @field_validator("description")
    @classmethod
    def _strip(cls, v: Optional[str]) -> Optional[str]:
        v = (v or "").strip()
        return v or None


class InvoiceCreate(BaseModel):
    patient_id: int
    encounter_id: Optional[int] = None
    items: List[InvoiceItemIn] = []
    # percent; None -> BILLING_DEFAULT_TAX
    tax_rate: Optional[Decimal] = None
    discount_amount: Decimal = Decimal("0")
    due_date: Optional[date] = None
    notes: Optional[str] = None


class InvoiceAdminUpdate(BaseModel):
    """
    Administrative override. Merge-patch: only fields present in the
    request are applied.
    """
    status: Optional[InvoiceStatus] = None
    payment_method: Optional[PaymentMethod] = None
    notes: Optional[str] = None
    due_date: Optional[date] = None


class InvoiceItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    procedure_code_id: Optional[int] = None
    description: str
    quantity: int
    unit_price: Decimal
    line_total: Decimal


class InvoiceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    invoice_number: str
    patient_id: int
    encounter_id: Optional[int] = None

    invoice_date: date
    due_date: Optional[date] = None

    subtotal: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    discount_amount: Decimal
    total_amount: Decimal
    amount_paid: Decimal
    balance: Decimal

    status: str
    payment_method: Optional[str] = None
    notes: Optional[str] = None

    created_by: Optional[int] = None
    created_at: datetime
    updated_at: datetime

    items: List[InvoiceItemOut] = []


class InvoiceListOut(BaseModel):
    """List rows carry the aggregate only; items come with the detail read."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    invoice_number: str
    patient_id: int
    encounter_id: Optional[int] = None
    invoice_date: date
    due_date: Optional[date] = None
    total_amount: Decimal
    amount_paid: Decimal
    balance: Decimal
    status: str
    created_at: datetime
