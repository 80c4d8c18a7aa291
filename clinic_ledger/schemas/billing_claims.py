# FILE: clinic_ledger/schemas/billing_claims.py
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, field_validator

from clinic_ledger.models.claims import ClaimStatus


class PayerInfo(BaseModel):
    insurance_company: str = ""
    policy_number: str = ""
    group_number: Optional[str] = None
    subscriber_name: Optional[str] = None
    subscriber_relationship: Optional[str] = "Self"

    @field_validator("insurance_company", "policy_number", mode="before")
    @classmethod
    def _strip(cls, v):
        return (v or "").strip()


class ClaimSubmitIn(BaseModel):
    patient_id: int
    payer: PayerInfo
    service_date: Optional[date] = None
    diagnosis_codes: List[str] = []
    procedure_codes: List[str] = []
    total_charged: Optional[Decimal] = None
    encounter_id: Optional[int] = None
    invoice_id: Optional[int] = None
    notes: Optional[str] = None


class ClaimAdjudicateIn(BaseModel):
    """
    Payer response, applied as a merge-patch.

    A field left out of the request is untouched; a field sent as null is
    cleared. Use `model_fields_set` / `exclude_unset` to tell them apart.
    """
    status: Optional[ClaimStatus] = None
    amount_approved: Optional[Decimal] = None
    amount_paid: Optional[Decimal] = None
    patient_responsibility: Optional[Decimal] = None
    response_date: Optional[date] = None
    denial_reason: Optional[str] = None
    notes: Optional[str] = None


class ClaimOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    claim_number: str
    patient_id: int
    encounter_id: Optional[int] = None
    invoice_id: Optional[int] = None

    insurance_company: str
    policy_number: str
    group_number: Optional[str] = None
    subscriber_name: Optional[str] = None
    subscriber_relationship: str

    claim_date: date
    service_date: date
    diagnosis_codes: List[str] = []
    procedure_codes: List[str] = []

    total_charged: Decimal
    amount_approved: Optional[Decimal] = None
    amount_paid: Optional[Decimal] = None
    patient_responsibility: Optional[Decimal] = None

    status: str
    submission_date: date
    response_date: Optional[date] = None
    denial_reason: Optional[str] = None
    notes: Optional[str] = None

    created_by: Optional[int] = None
    created_at: datetime
    updated_at: datetime
