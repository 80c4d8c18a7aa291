"""
Insurance claim lifecycle: submission, adjudication as a merge-patch, and
the allowed status transitions.
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from clinic_ledger.core.errors import NotFoundError, ValidationError
from clinic_ledger.models import ClaimStatus, InsuranceClaim
from clinic_ledger.schemas.billing_claims import (
    ClaimAdjudicateIn,
    ClaimSubmitIn,
    PayerInfo,
)
from clinic_ledger.services.billing_claims_service import (
    adjudicate_claim,
    can_transition,
    get_claim,
    list_claims,
    submit_claim,
)
from clinic_ledger.utils.timezone import today_local

from conftest import ACTOR_ID


def claim_input(**overrides):
    data = dict(
        patient_id=1,
        payer=PayerInfo(insurance_company="Acme Health", policy_number="POL-778"),
        service_date=today_local(),
        diagnosis_codes=["j06.9", " J06.9 ", "I10"],
        procedure_codes=["99213"],
        total_charged=Decimal("200"),
    )
    data.update(overrides)
    return ClaimSubmitIn(**data)


@pytest.fixture
def claim(db):
    return submit_claim(db, inp=claim_input(), actor_id=ACTOR_ID)


def adjudicate(db, claim, **fields):
    return adjudicate_claim(db, claim_id=claim.id, patch=ClaimAdjudicateIn(**fields),
                            actor_id=ACTOR_ID)


class TestSubmit:

    def test_initial_state(self, claim):
        assert claim.status == "submitted"
        assert claim.claim_number == f"CLM-{today_local().year}-00001"
        assert claim.claim_date == today_local()
        assert claim.submission_date == today_local()
        assert claim.total_charged == Decimal("200.00")
        assert claim.amount_approved is None
        assert claim.amount_paid is None
        assert claim.patient_responsibility is None
        assert claim.diagnosis_codes == ["J06.9", "I10"]
        assert claim.subscriber_relationship == "Self"

    def test_missing_fields_listed(self, db):
        inp = claim_input(payer=PayerInfo(insurance_company=" "),
                          service_date=None,
                          total_charged=None)
        with pytest.raises(ValidationError) as ei:
            submit_claim(db, inp=inp, actor_id=ACTOR_ID)
        assert ei.value.details["missing"] == [
            "insurance_company", "policy_number", "service_date", "total_charged"
        ]

    def test_non_positive_charge(self, db):
        with pytest.raises(ValidationError):
            submit_claim(db, inp=claim_input(total_charged=Decimal("0")), actor_id=ACTOR_ID)

    def test_future_service_date(self, db):
        inp = claim_input(service_date=today_local() + timedelta(days=2))
        with pytest.raises(ValidationError):
            submit_claim(db, inp=inp, actor_id=ACTOR_ID)

    def test_linked_invoice(self, db, make_invoice):
        inv = make_invoice(patient_id=1)
        c = submit_claim(db, inp=claim_input(invoice_id=inv.id), actor_id=ACTOR_ID)
        assert c.invoice_id == inv.id

    def test_linked_invoice_missing(self, db):
        with pytest.raises(NotFoundError):
            submit_claim(db, inp=claim_input(invoice_id=77), actor_id=ACTOR_ID)
        assert db.query(InsuranceClaim).count() == 0

    def test_linked_invoice_other_patient(self, db, make_invoice):
        inv = make_invoice(patient_id=2)
        with pytest.raises(ValidationError):
            submit_claim(db, inp=claim_input(invoice_id=inv.id), actor_id=ACTOR_ID)


class TestAdjudicate:

    def test_denial_keeps_amounts_null(self, db, claim):
        out = adjudicate(db, claim, status="denied", denial_reason="non-covered service")
        assert out.status == "denied"
        assert out.denial_reason == "non-covered service"
        assert out.amount_approved is None
        assert out.amount_paid is None
        assert out.response_date == today_local()

    def test_denial_requires_reason(self, db, claim):
        with pytest.raises(ValidationError):
            adjudicate(db, claim, status="denied")
        assert get_claim(db, claim.id).status == "submitted"

    def test_approve_then_pay(self, db, claim):
        adjudicate(db, claim, status="in_review")
        approved = adjudicate(db, claim, status="approved",
                              amount_approved=Decimal("180"),
                              patient_responsibility=Decimal("20"))
        assert approved.amount_approved == Decimal("180.00")

        paid = adjudicate(db, claim, status="paid", amount_paid=Decimal("180"))
        assert paid.status == "paid"
        # untouched by the second patch
        assert paid.amount_approved == Decimal("180.00")
        assert paid.patient_responsibility == Decimal("20.00")

    def test_paid_requires_amount(self, db, claim):
        with pytest.raises(ValidationError):
            adjudicate(db, claim, status="paid")

    def test_amounts_not_allowed_while_submitted(self, db, claim):
        with pytest.raises(ValidationError):
            adjudicate(db, claim, amount_approved=Decimal("10"))

    def test_amount_over_charge(self, db, claim):
        with pytest.raises(ValidationError):
            adjudicate(db, claim, status="approved", amount_approved=Decimal("250"))

    def test_negative_amount(self, db, claim):
        with pytest.raises(ValidationError):
            adjudicate(db, claim, status="approved", amount_approved=Decimal("-1"))

    def test_explicit_null_clears_field(self, db, claim):
        adjudicate(db, claim, status="approved", amount_approved=Decimal("150"),
                   notes="partial coverage")
        out = adjudicate(db, claim, notes=None)
        assert out.notes is None
        assert out.amount_approved == Decimal("150.00")
        assert out.status == "approved"

    def test_unset_fields_untouched(self, db, claim):
        adjudicate(db, claim, notes="sent to payer portal")
        out = adjudicate(db, claim, status="in_review")
        assert out.notes == "sent to payer portal"

    def test_appeal_cycle(self, db, claim):
        adjudicate(db, claim, status="denied", denial_reason="missing referral")
        adjudicate(db, claim, status="appealed")
        out = adjudicate(db, claim, status="approved", amount_approved=Decimal("200"))
        assert out.status == "approved"

    def test_illegal_transition(self, db, claim):
        adjudicate(db, claim, status="paid", amount_paid=Decimal("200"))
        with pytest.raises(ValidationError):
            adjudicate(db, claim, status="denied", denial_reason="too late")

    def test_empty_patch(self, db, claim):
        with pytest.raises(ValidationError):
            adjudicate(db, claim)

    def test_status_cannot_be_cleared(self, db, claim):
        with pytest.raises(ValidationError):
            adjudicate(db, claim, status=None)

    def test_missing_claim(self, db):
        with pytest.raises(NotFoundError):
            adjudicate_claim(db, claim_id=5, patch=ClaimAdjudicateIn(notes="x"),
                             actor_id=ACTOR_ID)


@pytest.mark.parametrize("current,target,allowed", [
    (ClaimStatus.SUBMITTED, ClaimStatus.IN_REVIEW, True),
    (ClaimStatus.SUBMITTED, ClaimStatus.APPEALED, False),
    (ClaimStatus.APPROVED, ClaimStatus.PAID, True),
    (ClaimStatus.APPROVED, ClaimStatus.DENIED, False),
    (ClaimStatus.DENIED, ClaimStatus.APPEALED, True),
    (ClaimStatus.PAID, ClaimStatus.SUBMITTED, False),
    (ClaimStatus.PAID, ClaimStatus.PAID, True),
])
def test_transitions(current, target, allowed):
    assert can_transition(current, target) is allowed


def test_list_claims(db):
    a = submit_claim(db, inp=claim_input(patient_id=1), actor_id=ACTOR_ID)
    b = submit_claim(db, inp=claim_input(patient_id=2), actor_id=ACTOR_ID)
    adjudicate(db, b, status="in_review")

    assert [c.id for c in list_claims(db)] == [b.id, a.id]
    assert [c.id for c in list_claims(db, patient_id=1)] == [a.id]
    assert [c.id for c in list_claims(db, status="in_review")] == [b.id]
    with pytest.raises(ValidationError):
        list_claims(db, status="lost")
