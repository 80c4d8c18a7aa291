"""
Shared fixtures: a file-backed SQLite database per test so that worker
threads in the concurrency tests each get their own connection.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET", "test-secret")

from decimal import Decimal

import pytest

from clinic_ledger.db.base import Base
from clinic_ledger.db.session import make_engine, make_session_factory
from clinic_ledger.models import ProcedureCode, DiagnosisCode
from clinic_ledger.schemas.billing import InvoiceCreate, InvoiceItemIn
from clinic_ledger.services.billing_invoices import create_invoice

ACTOR_ID = 7


@pytest.fixture
def engine(tmp_path):
    eng = make_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def db(session_factory):
    s = session_factory()
    yield s
    s.close()


@pytest.fixture
def catalog(db):
    office = ProcedureCode(code="99213",
                           description="Office visit, established patient",
                           category="E&M",
                           unit_price=Decimal("85.00"))
    cbc = ProcedureCode(code="85025",
                        description="Complete blood count",
                        category="Lab",
                        unit_price=Decimal("25.00"))
    retired = ProcedureCode(code="99201",
                            description="Retired new-patient visit",
                            category="E&M",
                            unit_price=Decimal("40.00"),
                            is_active=False)
    uri = DiagnosisCode(code="J06.9",
                        description="Acute upper respiratory infection",
                        category="Respiratory")
    db.add_all([office, cbc, retired, uri])
    db.commit()
    return {"office": office, "cbc": cbc, "retired": retired, "uri": uri}


@pytest.fixture
def make_invoice(db):
    """Create an invoice from (quantity, unit_price) pairs."""

    def _make(lines=((1, "100.00"), ), *, patient_id=1, tax_rate=0, discount=0):
        inp = InvoiceCreate(
            patient_id=patient_id,
            items=[
                InvoiceItemIn(description=f"Service {i}",
                              quantity=q,
                              unit_price=Decimal(str(p)))
                for i, (q, p) in enumerate(lines, 1)
            ],
            tax_rate=Decimal(str(tax_rate)),
            discount_amount=Decimal(str(discount)),
        )
        return create_invoice(db, inp=inp, actor_id=ACTOR_ID)

    return _make
