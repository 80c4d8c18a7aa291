# FILE: clinic_ledger/models/claims.py
from __future__ import annotations

from datetime import datetime
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
    JSON,
)
from sqlalchemy.orm import relationship

from clinic_ledger.db.base import Base


class ClaimStatus(str, Enum):
    SUBMITTED = "submitted"
    IN_REVIEW = "in_review"
    APPROVED = "approved"
    DENIED = "denied"
    APPEALED = "appealed"
    PAID = "paid"


class InsuranceClaim(Base):
    """
    One claim submission to a payer.

    amount_approved / amount_paid / patient_responsibility stay NULL until
    the payer responds; NULL means "no figure yet", not zero.
    """

    __tablename__ = "insurance_claims"
    __table_args__ = (
        Index("ix_insurance_claims_patient_date", "patient_id", "claim_date"),
        Index("ix_insurance_claims_status", "status"),
    )

    id = Column(Integer, primary_key=True, index=True)
    claim_number = Column(String(32), unique=True, index=True, nullable=False)

    patient_id = Column(Integer, nullable=False, index=True)
    encounter_id = Column(Integer, nullable=True)
    invoice_id = Column(Integer, ForeignKey("invoices.id"), nullable=True)

    # payer / subscriber
    insurance_company = Column(String(200), nullable=False)
    policy_number = Column(String(100), nullable=False)
    group_number = Column(String(100), nullable=True)
    subscriber_name = Column(String(200), nullable=True)
    subscriber_relationship = Column(String(50), nullable=False, default="Self")

    claim_date = Column(Date, nullable=False)
    service_date = Column(Date, nullable=False)

    # ["J06.9", ...] / ["99213", ...]
    diagnosis_codes = Column(JSON, nullable=False, default=list)
    procedure_codes = Column(JSON, nullable=False, default=list)

    total_charged = Column(Numeric(12, 2), nullable=False)
    amount_approved = Column(Numeric(12, 2), nullable=True)
    amount_paid = Column(Numeric(12, 2), nullable=True)
    patient_responsibility = Column(Numeric(12, 2), nullable=True)

    status = Column(String(16), nullable=False, default=ClaimStatus.SUBMITTED.value)
    submission_date = Column(Date, nullable=False)
    response_date = Column(Date, nullable=True)
    denial_reason = Column(Text, nullable=True)
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

    invoice = relationship("Invoice")
