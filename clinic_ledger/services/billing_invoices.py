# FILE: clinic_ledger/services/billing_invoices.py
from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, TypeVar

from sqlalchemy import desc
from sqlalchemy.orm import Session, selectinload

from clinic_ledger.core.config import settings
from clinic_ledger.core.errors import (
    ConcurrencyConflict,
    NotFoundError,
    ValidationError,
)
from clinic_ledger.db.session import atomic
from clinic_ledger.models.billing import (
    Invoice,
    InvoiceItem,
    InvoiceStatus,
    Payment,
    PaymentMethod,
)
from clinic_ledger.schemas.billing import (
    InvoiceAdminUpdate,
    InvoiceCreate,
    InvoiceItemIn,
)
from clinic_ledger.services.billing_math import (
    D,
    compute_invoice_totals,
    derive_invoice_status,
    line_total,
    money2,
)
from clinic_ledger.services.billing_numbers import DocumentKind, next_document_number
from clinic_ledger.services.catalog import require_billable
from clinic_ledger.utils.timezone import today_local

logger = logging.getLogger(__name__)

T = TypeVar("T")

DESCRIPTION_MAX = InvoiceItem.__table__.c.description.type.length


# -------------------------
# Input helpers
# -------------------------
def _money(x, field: str) -> Decimal:
    try:
        v = D(x)
    except ValueError:
        raise ValidationError(f"{field} must be a number")
    if not v.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    return money2(v)


def positive_amount(x, field: str = "amount") -> Decimal:
    v = _money(x, field)
    if v <= 0:
        raise ValidationError(f"{field} must be > 0")
    return v


def non_negative_amount(x, field: str) -> Decimal:
    v = _money(x, field)
    if v < 0:
        raise ValidationError(f"{field} must be >= 0")
    return v


def payment_method_value(method) -> str:
    try:
        return PaymentMethod(getattr(method, "value", method)).value
    except ValueError:
        raise ValidationError(f"Unknown payment method: {method!r}")


def _tax_rate(x) -> Decimal:
    rate = _money(settings.BILLING_DEFAULT_TAX if x is None else x, "tax_rate")
    if rate < 0 or rate > 100:
        raise ValidationError("tax_rate must be between 0 and 100")
    return rate


def _resolve_item(db: Session, idx: int, it: InvoiceItemIn) -> Dict[str, Any]:
    """Validate one line; a catalog reference fills a missing description/price."""
    label = f"items[{idx}]"

    if it.quantity is None or int(it.quantity) < 1:
        raise ValidationError(f"{label}.quantity must be >= 1")
    qty = int(it.quantity)

    description = it.description
    price = it.unit_price

    if it.procedure_code_id is not None:
        pc = require_billable(db, it.procedure_code_id)
        description = description or pc.description
        if price is None:
            price = pc.unit_price

    if not description:
        raise ValidationError(f"{label}.description is required")
    if len(description) > DESCRIPTION_MAX:
        raise ValidationError(
            f"{label}.description is longer than {DESCRIPTION_MAX} characters")
    if price is None:
        raise ValidationError(f"{label}.unit_price is required")

    unit_price = non_negative_amount(price, f"{label}.unit_price")

    return {
        "procedure_code_id": it.procedure_code_id,
        "description": description,
        "quantity": qty,
        "unit_price": unit_price,
        "line_total": line_total(qty, unit_price),
    }


# -------------------------
# Aggregate
# -------------------------
def lock_invoice(db: Session, invoice_id: int) -> Invoice:
    """
    Load the invoice for a read-modify-write.

    FOR UPDATE serializes writers where the backend supports row locks;
    populate_existing discards whatever the identity map held so the
    version we compare against is the one we just read.
    """
    inv = (db.query(Invoice).filter(Invoice.id == int(invoice_id)).populate_existing()
           .with_for_update().first())
    if not inv:
        raise NotFoundError(f"Invoice {invoice_id} not found")
    return inv


def post_to_invoice(inv: Invoice,
                    signed_amount: Decimal,
                    *,
                    method: Optional[str] = None,
                    actor_id: Optional[int] = None) -> None:
    """
    Move amount_paid by signed_amount and re-derive balance and status.
    Every payment and reversal goes through here.
    """
    total = money2(inv.total_amount)
    new_paid = money2(D(inv.amount_paid) + D(signed_amount))

    inv.amount_paid = new_paid
    inv.balance = money2(total - new_paid)
    inv.status = derive_invoice_status(new_paid, total).value
    if method:
        inv.payment_method = method
    inv.updated_by = actor_id


def retry_on_conflict(db: Session, op: Callable[[], T], *, what: str) -> T:
    """
    Run op() as one unit of work; if the version check finds a concurrent
    writer, roll back and run it again on fresh data.
    """
    attempts = max(1, int(settings.PAYMENT_MAX_RETRIES or 1))
    for attempt in range(1, attempts + 1):
        try:
            with atomic(db):
                return op()
        except ConcurrencyConflict:
            if attempt >= attempts:
                logger.error("Giving up on %s after %s attempts", what, attempt)
                raise
            logger.warning("Concurrent update on %s, retrying (%s/%s)", what,
                           attempt, attempts)
    raise ConcurrencyConflict(f"Could not complete {what}")


# -------------------------
# Public operations
# -------------------------
def create_invoice(db: Session, *, inp: InvoiceCreate,
                   actor_id: Optional[int]) -> Invoice:
    if not inp.patient_id or int(inp.patient_id) <= 0:
        raise ValidationError("patient_id is required")
    if not inp.items:
        raise ValidationError("At least one invoice item is required")

    tax_rate = _tax_rate(inp.tax_rate)
    discount = non_negative_amount(inp.discount_amount or 0, "discount_amount")

    issue_date = today_local()
    if inp.due_date is not None and inp.due_date < issue_date:
        raise ValidationError("due_date cannot be before the invoice date")

    with atomic(db):
        lines = [_resolve_item(db, i, it) for i, it in enumerate(inp.items)]

        totals = compute_invoice_totals(
            [(ln["quantity"], ln["unit_price"]) for ln in lines], tax_rate, discount)
        if totals["total_amount"] < 0:
            raise ValidationError(
                f"discount_amount {discount} exceeds subtotal plus tax "
                f"({totals['subtotal'] + totals['tax_amount']})")

        # numbered only once the invoice is known to be valid
        invoice_number = next_document_number(db, DocumentKind.INVOICE,
                                               issue_date.year)

        inv = Invoice(
            invoice_number=invoice_number,
            patient_id=int(inp.patient_id),
            encounter_id=inp.encounter_id,
            invoice_date=issue_date,
            due_date=inp.due_date,
            subtotal=totals["subtotal"],
            tax_rate=tax_rate,
            tax_amount=totals["tax_amount"],
            discount_amount=totals["discount_amount"],
            total_amount=totals["total_amount"],
            amount_paid=Decimal("0.00"),
            balance=totals["total_amount"],
            # re-derived by the first payment
            status=InvoiceStatus.PENDING.value,
            notes=(inp.notes or None),
            created_by=actor_id,
        )
        inv.items = [InvoiceItem(**ln) for ln in lines]
        db.add(inv)
        db.flush()

    logger.info("Invoice %s created patient=%s total=%s items=%s by=%s",
                inv.invoice_number, inv.patient_id, inv.total_amount,
                len(lines), actor_id)
    return inv


def get_invoice(db: Session, invoice_id: int) -> Invoice:
    with atomic(db):
        inv = (db.query(Invoice).options(selectinload(Invoice.items)).populate_existing().filter(
            Invoice.id == int(invoice_id)).first())
        if not inv:
            raise NotFoundError(f"Invoice {invoice_id} not found")
    return inv


def get_invoice_by_number(db: Session, invoice_number: str) -> Invoice:
    with atomic(db):
        inv = (db.query(Invoice).options(selectinload(Invoice.items)).populate_existing().filter(
            Invoice.invoice_number == (invoice_number or "").strip()).first())
        if not inv:
            raise NotFoundError(f"Invoice {invoice_number!r} not found")
    return inv


def list_invoices(
    db: Session,
    *,
    patient_id: Optional[int] = None,
    status: Optional[str] = None,
) -> List[Invoice]:
    with atomic(db):
        q = db.query(Invoice).populate_existing()
        if patient_id is not None:
            q = q.filter(Invoice.patient_id == int(patient_id))
        if status:
            try:
                st = InvoiceStatus(getattr(status, "value", status)).value
            except ValueError:
                raise ValidationError(f"Unknown invoice status: {status!r}")
            q = q.filter(Invoice.status == st)
        rows = q.order_by(desc(Invoice.invoice_date), desc(Invoice.created_at),
                          desc(Invoice.id)).all()
    return rows


def update_invoice_admin(db: Session, *, invoice_id: int,
                         patch: InvoiceAdminUpdate,
                         actor_id: Optional[int]) -> Invoice:
    """
    Administrative edit of status / payment_method / notes / due_date.
    This is the only path that sets status without deriving it.
    """
    fields = patch.model_dump(exclude_unset=True)
    if not fields:
        raise ValidationError("Nothing to update")
    if "status" in fields and fields["status"] is None:
        raise ValidationError("status cannot be cleared")

    with atomic(db):
        inv = lock_invoice(db, invoice_id)

        if "status" in fields:
            new_status = InvoiceStatus(getattr(fields["status"], "value",
                                               fields["status"])).value
            derived = derive_invoice_status(inv.amount_paid, inv.total_amount).value
            if new_status != derived:
                logger.warning(
                    "Invoice %s status overridden to %s (derived %s) by %s",
                    inv.invoice_number, new_status, derived, actor_id)
            inv.status = new_status

        if "payment_method" in fields:
            pm = fields["payment_method"]
            inv.payment_method = payment_method_value(pm) if pm is not None else None

        if "notes" in fields:
            inv.notes = fields["notes"] or None

        if "due_date" in fields:
            due: Optional[date] = fields["due_date"]
            if due is not None and due < inv.invoice_date:
                raise ValidationError("due_date cannot be before the invoice date")
            inv.due_date = due

        inv.updated_by = actor_id
        db.flush()

    return inv


def apply_payment(
    db: Session,
    *,
    invoice_id: int,
    amount,
    method=PaymentMethod.CASH,
    payment_date: Optional[date] = None,
    reference_number: Optional[str] = None,
    notes: Optional[str] = None,
    processed_by: Optional[int] = None,
    patient_id: Optional[int] = None,
) -> Payment:
    """
    Record a payment and move the invoice aggregate in the same transaction.

      amount_paid' = amount_paid + amount
      balance'     = total_amount - amount_paid'
      status'      = derive_invoice_status(amount_paid', total_amount)

    Overpayment is kept (negative balance, status paid). Concurrent payments
    on one invoice are serialized by the row lock / version check; a loser
    is replayed on fresh data, so no payment is dropped.
    """
    amt = positive_amount(amount, "amount")
    method_v = payment_method_value(method)
    pay_date = payment_date or today_local()

    def _once():
        inv = lock_invoice(db, invoice_id)
        if patient_id is not None and int(patient_id) != int(inv.patient_id):
            raise ValidationError(
                f"Invoice {inv.invoice_number} does not belong to patient {patient_id}")

        payment_number = next_document_number(db, DocumentKind.PAYMENT,
                                              pay_date.year)
        pay = Payment(
            payment_number=payment_number,
            invoice_id=inv.id,
            patient_id=inv.patient_id,
            payment_date=pay_date,
            amount=amt,
            payment_method=method_v,
            reference_number=(reference_number or None),
            notes=(notes or None),
            processed_by=processed_by,
        )
        db.add(pay)
        post_to_invoice(inv, amt, method=method_v, actor_id=processed_by)
        db.flush()
        return pay, inv

    pay, inv = retry_on_conflict(db, _once, what=f"payment on invoice {invoice_id}")

    logger.info("Payment %s of %s applied to %s: paid=%s balance=%s status=%s",
                pay.payment_number, pay.amount, inv.invoice_number,
                inv.amount_paid, inv.balance, inv.status)
    if money2(inv.balance) < 0:
        logger.info("Invoice %s overpaid by %s", inv.invoice_number,
                    -money2(inv.balance))
    return pay
