# FILE: clinic_ledger/schemas/billing_payments.py
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict

from clinic_ledger.models.billing import PaymentMethod


class PaymentCreate(BaseModel):
    invoice_id: int
    # when given, must match the invoice's patient
    patient_id: Optional[int] = None
    amount: Decimal
    payment_method: PaymentMethod = PaymentMethod.CASH
    payment_date: Optional[date] = None
    reference_number: Optional[str] = None
    notes: Optional[str] = None


class PaymentReverseIn(BaseModel):
    reason: str
    reversal_date: Optional[date] = None


class PaymentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    payment_number: str
    invoice_id: int
    patient_id: int
    payment_date: date
    amount: Decimal
    payment_method: str
    reference_number: Optional[str] = None
    notes: Optional[str] = None
    reverses_payment_id: Optional[int] = None
    processed_by: Optional[int] = None
    created_at: datetime
