# FILE: clinic_ledger/services/catalog.py
from __future__ import annotations

from typing import List, Optional, Union

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from clinic_ledger.core.errors import NotFoundError, ValidationError
from clinic_ledger.models.catalog import DiagnosisCode, ProcedureCode

CODE_KINDS = {"cpt": ProcedureCode, "icd10": DiagnosisCode}


def get_procedure_code(db: Session, code_id: int) -> ProcedureCode:
    pc = db.get(ProcedureCode, int(code_id))
    if not pc:
        raise NotFoundError(f"Procedure code {code_id} not found")
    return pc


def get_procedure_code_by_code(db: Session, code: str) -> ProcedureCode:
    pc = (db.query(ProcedureCode).filter(
        ProcedureCode.code == (code or "").strip().upper()).first())
    if not pc:
        raise NotFoundError(f"Procedure code {code!r} not found")
    return pc


def require_billable(db: Session, code_id: int) -> ProcedureCode:
    """Catalog row an invoice line may reference: must exist and be active."""
    pc = get_procedure_code(db, code_id)
    if not pc.is_active:
        raise ValidationError(f"Procedure code {pc.code} is inactive")
    return pc


def search_codes(
    db: Session,
    kind: str,
    *,
    search: Optional[str] = None,
    category: Optional[str] = None,
    limit: int = 50,
) -> List[Union[ProcedureCode, DiagnosisCode]]:
    model = CODE_KINDS.get((kind or "").lower())
    if model is None:
        raise ValidationError("kind must be 'cpt' or 'icd10'")

    q = db.query(model).filter(model.is_active.is_(True))

    s = (search or "").strip().lower()
    if s:
        like = f"%{s}%"
        q = q.filter(
            or_(func.lower(model.code).like(like),
                func.lower(model.description).like(like)))

    if category:
        q = q.filter(model.category == category)

    return q.order_by(model.code.asc()).limit(max(1, min(int(limit), 200))).all()
