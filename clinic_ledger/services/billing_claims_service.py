# FILE: clinic_ledger/services/billing_claims_service.py
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import desc
from sqlalchemy.orm import Session

from clinic_ledger.core.errors import NotFoundError, ValidationError
from clinic_ledger.db.session import atomic
from clinic_ledger.models.billing import Invoice
from clinic_ledger.models.claims import ClaimStatus, InsuranceClaim
from clinic_ledger.schemas.billing_claims import ClaimAdjudicateIn, ClaimSubmitIn
from clinic_ledger.services.billing_invoices import non_negative_amount, positive_amount
from clinic_ledger.services.billing_numbers import DocumentKind, next_document_number
from clinic_ledger.utils.timezone import today_local

logger = logging.getLogger(__name__)

# -----------------------------
# Lifecycle
# -----------------------------
ALLOWED_TRANSITIONS: Dict[ClaimStatus, frozenset] = {
    ClaimStatus.SUBMITTED: frozenset({
        ClaimStatus.IN_REVIEW,
        ClaimStatus.APPROVED,
        ClaimStatus.DENIED,
        ClaimStatus.PAID,
    }),
    ClaimStatus.IN_REVIEW: frozenset({
        ClaimStatus.APPROVED,
        ClaimStatus.DENIED,
        ClaimStatus.PAID,
    }),
    ClaimStatus.APPROVED: frozenset({ClaimStatus.PAID}),
    ClaimStatus.DENIED: frozenset({ClaimStatus.APPEALED}),
    ClaimStatus.APPEALED: frozenset({
        ClaimStatus.IN_REVIEW,
        ClaimStatus.APPROVED,
        ClaimStatus.DENIED,
        ClaimStatus.PAID,
    }),
    ClaimStatus.PAID: frozenset(),
}

# statuses that carry a payer decision (and so a response date)
ADJUDICATED = frozenset({ClaimStatus.APPROVED, ClaimStatus.DENIED, ClaimStatus.PAID})

MONEY_FIELDS = ("amount_approved", "amount_paid", "patient_responsibility")
PATCH_FIELDS = MONEY_FIELDS + ("response_date", "denial_reason", "notes")


def can_transition(current: ClaimStatus, target: ClaimStatus) -> bool:
    return current == target or target in ALLOWED_TRANSITIONS[current]


def _normalize_codes(codes: Optional[Iterable[str]]) -> List[str]:
    """Trim, upper-case, drop blanks and repeats; first occurrence wins."""
    out: List[str] = []
    for c in codes or []:
        s = str(c or "").strip().upper()
        if s and s not in out:
            out.append(s)
    return out


def _status(value) -> ClaimStatus:
    try:
        return ClaimStatus(getattr(value, "value", value))
    except ValueError:
        raise ValidationError(f"Unknown claim status: {value!r}")


# -----------------------------
# Public operations
# -----------------------------
def submit_claim(db: Session, *, inp: ClaimSubmitIn,
                 actor_id: Optional[int]) -> InsuranceClaim:
    payer = inp.payer
    missing = [
        name for name, present in (
            ("patient_id", bool(inp.patient_id) and int(inp.patient_id) > 0),
            ("insurance_company", bool(payer.insurance_company)),
            ("policy_number", bool(payer.policy_number)),
            ("service_date", inp.service_date is not None),
            ("total_charged", inp.total_charged is not None),
        ) if not present
    ]
    if missing:
        raise ValidationError("Required fields missing: " + ", ".join(missing),
                              details={"missing": missing})

    total_charged = positive_amount(inp.total_charged, "total_charged")

    today = today_local()
    if inp.service_date > today:
        raise ValidationError("service_date cannot be in the future")

    with atomic(db):
        if inp.invoice_id is not None:
            inv = db.get(Invoice, int(inp.invoice_id))
            if not inv:
                raise NotFoundError(f"Invoice {inp.invoice_id} not found")
            if int(inv.patient_id) != int(inp.patient_id):
                raise ValidationError(
                    f"Invoice {inv.invoice_number} belongs to a different patient")

        claim = InsuranceClaim(
            claim_number=next_document_number(db, DocumentKind.CLAIM, today.year),
            patient_id=int(inp.patient_id),
            encounter_id=inp.encounter_id,
            invoice_id=inp.invoice_id,
            insurance_company=payer.insurance_company,
            policy_number=payer.policy_number,
            group_number=(payer.group_number or None),
            subscriber_name=(payer.subscriber_name or None),
            subscriber_relationship=(payer.subscriber_relationship or "Self"),
            claim_date=today,
            service_date=inp.service_date,
            diagnosis_codes=_normalize_codes(inp.diagnosis_codes),
            procedure_codes=_normalize_codes(inp.procedure_codes),
            total_charged=total_charged,
            status=ClaimStatus.SUBMITTED.value,
            submission_date=today,
            notes=(inp.notes or None),
            created_by=actor_id,
        )
        db.add(claim)
        db.flush()

    logger.info("Claim %s submitted patient=%s payer=%s charged=%s by=%s",
                claim.claim_number, claim.patient_id, claim.insurance_company,
                claim.total_charged, actor_id)
    return claim


def adjudicate_claim(db: Session, *, claim_id: int, patch: ClaimAdjudicateIn,
                     actor_id: Optional[int]) -> InsuranceClaim:
    """
    Apply a payer response as a merge-patch.

    Only the fields present in `patch` change; a field sent as null is
    cleared. The merged claim is validated as a whole before anything is
    written.
    """
    fields: Dict[str, Any] = patch.model_dump(exclude_unset=True)
    if not fields:
        raise ValidationError("Nothing to update")
    if "status" in fields and fields["status"] is None:
        raise ValidationError("status cannot be cleared")

    for name in MONEY_FIELDS:
        if fields.get(name) is not None:
            fields[name] = non_negative_amount(fields[name], name)
    if "denial_reason" in fields and fields["denial_reason"] is not None:
        fields["denial_reason"] = fields["denial_reason"].strip() or None

    with atomic(db):
        claim = (db.query(InsuranceClaim).filter(
            InsuranceClaim.id == int(claim_id)).populate_existing().with_for_update()
                 .first())
        if not claim:
            raise NotFoundError(f"Claim {claim_id} not found")

        current = _status(claim.status)
        target = _status(fields["status"]) if "status" in fields else current
        if not can_transition(current, target):
            raise ValidationError(
                f"Claim {claim.claim_number} cannot move from {current.value} to {target.value}")

        merged: Dict[str, Any] = {
            name: fields[name] if name in fields else getattr(claim, name)
            for name in PATCH_FIELDS
        }

        if target == ClaimStatus.SUBMITTED and any(
                merged[name] is not None for name in MONEY_FIELDS):
            raise ValidationError(
                "Payer amounts can only be recorded once the claim has left submitted")
        if target == ClaimStatus.DENIED and not merged["denial_reason"]:
            raise ValidationError("denial_reason is required for a denied claim")
        if target == ClaimStatus.PAID and merged["amount_paid"] is None:
            raise ValidationError("amount_paid is required for a paid claim")

        charged = Decimal(str(claim.total_charged))
        for name in ("amount_approved", "amount_paid"):
            if merged[name] is not None and merged[name] > charged:
                raise ValidationError(f"{name} cannot exceed total_charged ({charged})")

        if target != current and target in ADJUDICATED and "response_date" not in fields:
            merged["response_date"] = today_local()

        for name, value in merged.items():
            setattr(claim, name, value)
        claim.status = target.value
        claim.updated_by = actor_id
        db.flush()

    if target != current:
        logger.info("Claim %s %s -> %s by %s", claim.claim_number, current.value,
                    target.value, actor_id)
    else:
        logger.info("Claim %s updated (%s) by %s", claim.claim_number,
                    ", ".join(sorted(fields)), actor_id)
    return claim


def get_claim(db: Session, claim_id: int) -> InsuranceClaim:
    with atomic(db):
        claim = (db.query(InsuranceClaim).filter(
            InsuranceClaim.id == int(claim_id)).populate_existing().first())
        if not claim:
            raise NotFoundError(f"Claim {claim_id} not found")
    return claim


def list_claims(
    db: Session,
    *,
    patient_id: Optional[int] = None,
    status: Optional[str] = None,
) -> List[InsuranceClaim]:
    with atomic(db):
        q = db.query(InsuranceClaim).populate_existing()
        if patient_id is not None:
            q = q.filter(InsuranceClaim.patient_id == int(patient_id))
        if status:
            q = q.filter(InsuranceClaim.status == _status(status).value)
        rows = q.order_by(desc(InsuranceClaim.claim_date),
                          desc(InsuranceClaim.created_at),
                          desc(InsuranceClaim.id)).all()
    return rows
