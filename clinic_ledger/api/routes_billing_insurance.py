# FILE: clinic_ledger/api/routes_billing_insurance.py
from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from clinic_ledger.api.deps import Actor, current_actor, get_db
from clinic_ledger.models.claims import ClaimStatus
from clinic_ledger.schemas.billing_claims import (
    ClaimAdjudicateIn,
    ClaimOut,
    ClaimSubmitIn,
)
from clinic_ledger.services import billing_claims_service

router = APIRouter(prefix="/billing/claims", tags=["Billing Insurance"])


@router.post("", response_model=ClaimOut, status_code=201)
def submit_claim(
        inp: ClaimSubmitIn,
        db: Session = Depends(get_db),
        actor: Actor = Depends(current_actor),
):
    return billing_claims_service.submit_claim(db, inp=inp, actor_id=actor.id)


@router.get("", response_model=List[ClaimOut])
def list_claims(
        patient_id: Optional[int] = Query(default=None),
        status: Optional[ClaimStatus] = Query(default=None),
        db: Session = Depends(get_db),
        actor: Actor = Depends(current_actor),
):
    return billing_claims_service.list_claims(db, patient_id=patient_id, status=status)


@router.get("/{claim_id}", response_model=ClaimOut)
def get_claim(
        claim_id: int,
        db: Session = Depends(get_db),
        actor: Actor = Depends(current_actor),
):
    return billing_claims_service.get_claim(db, claim_id)


@router.patch("/{claim_id}", response_model=ClaimOut)
def adjudicate_claim(
        claim_id: int,
        patch: ClaimAdjudicateIn,
        db: Session = Depends(get_db),
        actor: Actor = Depends(current_actor),
):
    return billing_claims_service.adjudicate_claim(db,
                                                   claim_id=claim_id,
                                                   patch=patch,
                                                   actor_id=actor.id)
