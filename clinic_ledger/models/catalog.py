# FILE: clinic_ledger/models/catalog.py
from __future__ import annotations

from decimal import Decimal

from sqlalchemy import (
    Boolean,
    Column,
    Integer,
    Numeric,
    String,
)

from clinic_ledger.db.base import Base


class ProcedureCode(Base):
    """CPT-style billable procedure. Read-only for the ledger."""
    __tablename__ = "procedure_codes"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(20), nullable=False, unique=True, index=True)
    description = Column(String(300), nullable=False)
    category = Column(String(60), nullable=True, index=True)
    unit_price = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    is_active = Column(Boolean, nullable=False, default=True)


class DiagnosisCode(Base):
    """ICD-10 diagnosis code. Read-only for the ledger."""
    __tablename__ = "diagnosis_codes"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(20), nullable=False, unique=True, index=True)
    description = Column(String(300), nullable=False)
    category = Column(String(60), nullable=True, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
