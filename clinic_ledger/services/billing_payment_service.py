# FILE: clinic_ledger/services/billing_payment_service.py
from __future__ import annotations

import logging
from datetime import date
from typing import List, Optional

from sqlalchemy import desc
from sqlalchemy.orm import Session

from clinic_ledger.core.errors import NotFoundError, ValidationError
from clinic_ledger.db.session import atomic
from clinic_ledger.models.billing import Payment
from clinic_ledger.schemas.billing_payments import PaymentCreate
from clinic_ledger.services.billing_invoices import (
    apply_payment,
    lock_invoice,
    post_to_invoice,
    retry_on_conflict,
)
from clinic_ledger.services.billing_math import money2
from clinic_ledger.services.billing_numbers import DocumentKind, next_document_number
from clinic_ledger.utils.timezone import today_local

logger = logging.getLogger(__name__)


def record_payment(db: Session, *, inp: PaymentCreate,
                   actor_id: Optional[int]) -> Payment:
    if not inp.invoice_id or int(inp.invoice_id) <= 0:
        raise ValidationError("invoice_id is required")

    pay_date = inp.payment_date or today_local()
    if pay_date > today_local():
        raise ValidationError("payment_date cannot be in the future")

    return apply_payment(
        db,
        invoice_id=int(inp.invoice_id),
        amount=inp.amount,
        method=inp.payment_method,
        payment_date=pay_date,
        reference_number=(inp.reference_number or "").strip() or None,
        notes=inp.notes,
        processed_by=actor_id,
        patient_id=inp.patient_id,
    )


def reverse_payment(
    db: Session,
    *,
    payment_id: int,
    reason: str,
    actor_id: Optional[int],
    reversal_date: Optional[date] = None,
) -> Payment:
    """
    Cancel a payment by recording its negative twin.

    The original row is never touched; the invoice aggregate moves back by
    the same amount under the same locking as a normal payment.
    """
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("A reason is required to reverse a payment")
    r_date = reversal_date or today_local()

    def _once():
        orig = (db.query(Payment).filter(
            Payment.id == int(payment_id)).populate_existing().first())
        if not orig:
            raise NotFoundError(f"Payment {payment_id} not found")
        if money2(orig.amount) <= 0:
            raise ValidationError(
                f"Payment {orig.payment_number} is a reversal and cannot be reversed")
        if r_date < orig.payment_date:
            raise ValidationError("reversal_date cannot precede the payment date")

        inv = lock_invoice(db, orig.invoice_id)

        already = (db.query(Payment.payment_number).filter(
            Payment.reverses_payment_id == orig.id).first())
        if already:
            raise ValidationError(
                f"Payment {orig.payment_number} already reversed by {already[0]}")

        amount = money2(orig.amount)
        rev = Payment(
            payment_number=next_document_number(db, DocumentKind.PAYMENT,
                                                r_date.year),
            invoice_id=inv.id,
            patient_id=orig.patient_id,
            payment_date=r_date,
            amount=-amount,
            payment_method=orig.payment_method,
            reference_number=orig.payment_number,
            notes=f"Reversal of {orig.payment_number}: {reason}",
            processed_by=actor_id,
            reverses_payment_id=orig.id,
        )
        db.add(rev)
        post_to_invoice(inv, -amount, actor_id=actor_id)
        db.flush()
        return rev, orig, inv

    rev, orig, inv = retry_on_conflict(db, _once,
                                       what=f"reversal of payment {payment_id}")

    logger.info("Payment %s reversed by %s (%s): paid=%s balance=%s status=%s",
                orig.payment_number, rev.payment_number, reason, inv.amount_paid,
                inv.balance, inv.status)
    return rev


def get_payment(db: Session, payment_id: int) -> Payment:
    with atomic(db):
        pay = db.get(Payment, int(payment_id))
        if not pay:
            raise NotFoundError(f"Payment {payment_id} not found")
    return pay


def list_payments(
    db: Session,
    *,
    patient_id: Optional[int] = None,
    invoice_id: Optional[int] = None,
) -> List[Payment]:
    """
    Payment history, newest first. id breaks ties so repeated same-day
    payments still come back most-recent-first.
    """
    with atomic(db):
        q = db.query(Payment)
        if patient_id is not None:
            q = q.filter(Payment.patient_id == int(patient_id))
        if invoice_id is not None:
            q = q.filter(Payment.invoice_id == int(invoice_id))
        rows = q.order_by(desc(Payment.payment_date), desc(Payment.created_at),
                          desc(Payment.id)).all()
    return rows
