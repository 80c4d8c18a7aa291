# FILE: clinic_ledger/api/routes_billing.py
from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from clinic_ledger.api.deps import Actor, current_actor, get_db
from clinic_ledger.models.billing import InvoiceStatus
from clinic_ledger.schemas.billing import (
    InvoiceAdminUpdate,
    InvoiceCreate,
    InvoiceListOut,
    InvoiceOut,
)
from clinic_ledger.schemas.catalog import CodeOut
from clinic_ledger.services import billing_invoices
from clinic_ledger.services.catalog import search_codes

router = APIRouter(prefix="/billing", tags=["Billing"])
logger = logging.getLogger(__name__)


@router.post("/invoices", response_model=InvoiceOut, status_code=201)
def create_invoice(
        inp: InvoiceCreate,
        db: Session = Depends(get_db),
        actor: Actor = Depends(current_actor),
):
    return billing_invoices.create_invoice(db, inp=inp, actor_id=actor.id)


@router.get("/invoices", response_model=List[InvoiceListOut])
def list_invoices(
        patient_id: Optional[int] = Query(default=None),
        status: Optional[InvoiceStatus] = Query(default=None),
        db: Session = Depends(get_db),
        actor: Actor = Depends(current_actor),
):
    return billing_invoices.list_invoices(db, patient_id=patient_id, status=status)


@router.get("/invoices/{invoice_id}", response_model=InvoiceOut)
def get_invoice(
        invoice_id: int,
        db: Session = Depends(get_db),
        actor: Actor = Depends(current_actor),
):
    return billing_invoices.get_invoice(db, invoice_id)


@router.patch("/invoices/{invoice_id}", response_model=InvoiceOut)
def update_invoice(
        invoice_id: int,
        patch: InvoiceAdminUpdate,
        db: Session = Depends(get_db),
        actor: Actor = Depends(current_actor),
):
    billing_invoices.update_invoice_admin(db,
                                          invoice_id=invoice_id,
                                          patch=patch,
                                          actor_id=actor.id)
    return billing_invoices.get_invoice(db, invoice_id)


@router.get("/codes", response_model=List[CodeOut])
def codes(
        kind: str = Query(..., description="cpt | icd10"),
        search: Optional[str] = Query(default=None),
        category: Optional[str] = Query(default=None),
        db: Session = Depends(get_db),
        actor: Actor = Depends(current_actor),
):
    return search_codes(db, kind, search=search, category=category)
