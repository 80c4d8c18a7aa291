# FILE: clinic_ledger/api/routes_billing_payments.py
from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from clinic_ledger.api.deps import Actor, current_actor, get_db
from clinic_ledger.schemas.billing_payments import (
    PaymentCreate,
    PaymentOut,
    PaymentReverseIn,
)
from clinic_ledger.services import billing_payment_service

router = APIRouter(prefix="/billing/payments", tags=["Billing Payments"])


@router.post("", response_model=PaymentOut, status_code=201)
def record_payment(
        inp: PaymentCreate,
        db: Session = Depends(get_db),
        actor: Actor = Depends(current_actor),
):
    return billing_payment_service.record_payment(db, inp=inp, actor_id=actor.id)


@router.get("", response_model=List[PaymentOut])
def list_payments(
        patient_id: Optional[int] = Query(default=None),
        invoice_id: Optional[int] = Query(default=None),
        db: Session = Depends(get_db),
        actor: Actor = Depends(current_actor),
):
    return billing_payment_service.list_payments(db,
                                                 patient_id=patient_id,
                                                 invoice_id=invoice_id)


@router.get("/{payment_id}", response_model=PaymentOut)
def get_payment(
        payment_id: int,
        db: Session = Depends(get_db),
        actor: Actor = Depends(current_actor),
):
    return billing_payment_service.get_payment(db, payment_id)


@router.post("/{payment_id}/reverse", response_model=PaymentOut, status_code=201)
def reverse_payment(
        payment_id: int,
        inp: PaymentReverseIn,
        db: Session = Depends(get_db),
        actor: Actor = Depends(current_actor),
):
    return billing_payment_service.reverse_payment(
        db,
        payment_id=payment_id,
        reason=inp.reason,
        reversal_date=inp.reversal_date,
        actor_id=actor.id,
    )
