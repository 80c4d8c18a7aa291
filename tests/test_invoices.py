"""
Invoice ledger: creation, reads, listing and the administrative override.
"""

import logging
from datetime import timedelta
from decimal import Decimal

import pytest

from clinic_ledger.core.errors import AllocationError, NotFoundError, ValidationError
from clinic_ledger.models import Invoice, InvoiceStatus
from clinic_ledger.schemas.billing import (
    InvoiceAdminUpdate,
    InvoiceCreate,
    InvoiceItemIn,
)
from clinic_ledger.services import billing_invoices
from clinic_ledger.services.billing_invoices import (
    apply_payment,
    create_invoice,
    get_invoice,
    get_invoice_by_number,
    list_invoices,
    update_invoice_admin,
)
from clinic_ledger.utils.timezone import today_local

from conftest import ACTOR_ID


class TestCreateInvoice:

    def test_totals_and_initial_state(self, make_invoice):
        inv = make_invoice([(2, "50"), (1, "25")], tax_rate=10, discount=5)

        assert inv.subtotal == Decimal("125.00")
        assert inv.tax_amount == Decimal("12.50")
        assert inv.discount_amount == Decimal("5.00")
        assert inv.total_amount == Decimal("132.50")
        assert inv.amount_paid == Decimal("0.00")
        assert inv.balance == Decimal("132.50")
        assert inv.status == InvoiceStatus.PENDING.value
        assert inv.invoice_date == today_local()
        assert inv.invoice_number == f"INV-{today_local().year}-00001"
        assert [it.line_total for it in inv.items] == [Decimal("100.00"), Decimal("25.00")]
        assert inv.created_by == ACTOR_ID

    def test_numbers_increase(self, make_invoice):
        a = make_invoice()
        b = make_invoice()
        assert a.invoice_number.endswith("-00001")
        assert b.invoice_number.endswith("-00002")

    def test_zero_total_starts_pending(self, db, make_invoice):
        inv = make_invoice([(1, "0")])
        assert inv.total_amount == Decimal("0.00")
        assert inv.status == InvoiceStatus.PENDING.value
        assert get_invoice(db, inv.id).status == InvoiceStatus.PENDING.value

    def test_long_description_rejected(self, db):
        inp = InvoiceCreate(
            patient_id=1,
            items=[InvoiceItemIn(description="x" * 301, unit_price=Decimal("10"))],
        )
        with pytest.raises(ValidationError):
            create_invoice(db, inp=inp, actor_id=ACTOR_ID)
        assert db.query(Invoice).count() == 0

    def test_description_at_column_length(self, db):
        inp = InvoiceCreate(
            patient_id=1,
            items=[InvoiceItemIn(description="x" * 300, unit_price=Decimal("10"))],
        )
        inv = create_invoice(db, inp=inp, actor_id=ACTOR_ID)
        assert len(inv.items[0].description) == 300

    def test_catalog_item_fills_description_and_price(self, db, catalog):
        inp = InvoiceCreate(
            patient_id=3,
            items=[
                InvoiceItemIn(procedure_code_id=catalog["office"].id),
                InvoiceItemIn(procedure_code_id=catalog["cbc"].id,
                              quantity=2,
                              unit_price=Decimal("20")),
            ],
        )
        inv = create_invoice(db, inp=inp, actor_id=ACTOR_ID)

        office, cbc = inv.items
        assert office.description == catalog["office"].description
        assert office.unit_price == Decimal("85.00")
        assert cbc.unit_price == Decimal("20.00")
        assert inv.subtotal == Decimal("125.00")

    def test_unknown_catalog_code(self, db, catalog):
        inp = InvoiceCreate(patient_id=3, items=[InvoiceItemIn(procedure_code_id=9999)])
        with pytest.raises(NotFoundError):
            create_invoice(db, inp=inp, actor_id=ACTOR_ID)

    def test_inactive_catalog_code(self, db, catalog):
        inp = InvoiceCreate(patient_id=3,
                            items=[InvoiceItemIn(procedure_code_id=catalog["retired"].id)])
        with pytest.raises(ValidationError):
            create_invoice(db, inp=inp, actor_id=ACTOR_ID)

    @pytest.mark.parametrize("items", [
        [],
        [InvoiceItemIn(description="Visit", quantity=0, unit_price=Decimal("10"))],
        [InvoiceItemIn(description="Visit", quantity=1, unit_price=Decimal("-1"))],
        [InvoiceItemIn(description="  ", quantity=1, unit_price=Decimal("10"))],
        [InvoiceItemIn(description="Visit", quantity=1)],
    ])
    def test_invalid_items(self, db, items):
        with pytest.raises(ValidationError):
            create_invoice(db, inp=InvoiceCreate(patient_id=1, items=items), actor_id=ACTOR_ID)
        assert db.query(Invoice).count() == 0

    def test_discount_larger_than_total(self, make_invoice):
        with pytest.raises(ValidationError):
            make_invoice([(1, "10")], discount=20)

    def test_negative_tax_rate(self, make_invoice):
        with pytest.raises(ValidationError):
            make_invoice(tax_rate=-1)

    def test_due_date_before_issue(self, db):
        inp = InvoiceCreate(
            patient_id=1,
            items=[InvoiceItemIn(description="Visit", unit_price=Decimal("10"))],
            due_date=today_local() - timedelta(days=1),
        )
        with pytest.raises(ValidationError):
            create_invoice(db, inp=inp, actor_id=ACTOR_ID)

    def test_allocation_failure_creates_nothing(self, db, monkeypatch):

        def broken(*args, **kwargs):
            raise AllocationError("counter down")

        monkeypatch.setattr(billing_invoices, "next_document_number", broken)
        inp = InvoiceCreate(patient_id=1,
                            items=[InvoiceItemIn(description="Visit", unit_price=Decimal("10"))])
        with pytest.raises(AllocationError):
            create_invoice(db, inp=inp, actor_id=ACTOR_ID)
        assert db.query(Invoice).count() == 0


class TestReadInvoice:

    def test_get_is_idempotent(self, db, make_invoice):
        inv = make_invoice([(2, "50"), (1, "25")], tax_rate=10, discount=5)
        a = get_invoice(db, inv.id)
        b = get_invoice(db, inv.id)
        assert (a.total_amount, a.balance, a.status, a.version) == \
            (b.total_amount, b.balance, b.status, b.version)
        assert len(b.items) == 2

    def test_get_by_number(self, db, make_invoice):
        inv = make_invoice()
        assert get_invoice_by_number(db, inv.invoice_number).id == inv.id

    def test_missing(self, db):
        with pytest.raises(NotFoundError):
            get_invoice(db, 404)
        with pytest.raises(NotFoundError):
            get_invoice_by_number(db, "INV-2025-99999")

    def test_list_newest_first_and_filters(self, db, make_invoice):
        first = make_invoice(patient_id=1)
        second = make_invoice(patient_id=2)
        third = make_invoice(patient_id=1)
        apply_payment(db, invoice_id=third.id, amount=Decimal("100"))

        assert [i.id for i in list_invoices(db)] == [third.id, second.id, first.id]
        assert [i.id for i in list_invoices(db, patient_id=1)] == [third.id, first.id]
        assert [i.id for i in list_invoices(db, status="paid")] == [third.id]

    def test_list_unknown_status(self, db):
        with pytest.raises(ValidationError):
            list_invoices(db, status="void")


class TestAdminUpdate:

    def test_status_override_is_logged(self, db, make_invoice, caplog):
        inv = make_invoice()
        with caplog.at_level(logging.WARNING, logger="clinic_ledger.services.billing_invoices"):
            out = update_invoice_admin(db,
                                       invoice_id=inv.id,
                                       patch=InvoiceAdminUpdate(status=InvoiceStatus.PAID),
                                       actor_id=ACTOR_ID)
        assert out.status == "paid"
        # aggregate figures are untouched by an override
        assert out.balance == Decimal("100.00")
        assert "overridden" in caplog.text

    def test_merge_patch_leaves_unset_fields(self, db, make_invoice):
        inv = make_invoice()
        update_invoice_admin(db,
                             invoice_id=inv.id,
                             patch=InvoiceAdminUpdate(notes="call patient"),
                             actor_id=ACTOR_ID)
        out = update_invoice_admin(db,
                                   invoice_id=inv.id,
                                   patch=InvoiceAdminUpdate(payment_method="card"),
                                   actor_id=ACTOR_ID)
        assert out.notes == "call patient"
        assert out.payment_method == "card"
        assert out.status == "pending"

    def test_explicit_null_clears(self, db, make_invoice):
        inv = make_invoice()
        update_invoice_admin(db,
                             invoice_id=inv.id,
                             patch=InvoiceAdminUpdate(notes="x"),
                             actor_id=ACTOR_ID)
        out = update_invoice_admin(db,
                                   invoice_id=inv.id,
                                   patch=InvoiceAdminUpdate(notes=None),
                                   actor_id=ACTOR_ID)
        assert out.notes is None

    def test_empty_patch(self, db, make_invoice):
        inv = make_invoice()
        with pytest.raises(ValidationError):
            update_invoice_admin(db, invoice_id=inv.id, patch=InvoiceAdminUpdate(),
                                 actor_id=ACTOR_ID)

    def test_status_cannot_be_cleared(self, db, make_invoice):
        inv = make_invoice()
        with pytest.raises(ValidationError):
            update_invoice_admin(db,
                                 invoice_id=inv.id,
                                 patch=InvoiceAdminUpdate(status=None),
                                 actor_id=ACTOR_ID)

    def test_missing_invoice(self, db):
        with pytest.raises(NotFoundError):
            update_invoice_admin(db,
                                 invoice_id=1,
                                 patch=InvoiceAdminUpdate(notes="x"),
                                 actor_id=ACTOR_ID)
