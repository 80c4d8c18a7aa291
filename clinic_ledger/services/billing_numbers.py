# FILE: clinic_ledger/services/billing_numbers.py
from __future__ import annotations

import logging
import re
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple, Union

from sqlalchemy import select, update
from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_ledger.core.config import settings
from clinic_ledger.core.errors import (
    AllocationError,
    SequenceStorageUnavailable,
    ValidationError,
)
from clinic_ledger.models.sequence import DocumentSequence
from clinic_ledger.utils.timezone import today_local

logger = logging.getLogger(__name__)


class DocumentKind(str, Enum):
    INVOICE = "invoice"
    PAYMENT = "payment"
    CLAIM = "claim"
    LAB_ORDER = "lab-order"
    IMAGING_ORDER = "imaging-order"


PREFIXES = {
    DocumentKind.INVOICE: "INV",
    DocumentKind.PAYMENT: "PAY",
    DocumentKind.CLAIM: "CLM",
    DocumentKind.LAB_ORDER: "LAB",
    DocumentKind.IMAGING_ORDER: "IMG",
}

_NUMBER_RE = re.compile(r"^([A-Z]+)-(\d{4})-(\d+)$")

_seq = DocumentSequence.__table__


def _kind(kind: Union[DocumentKind, str]) -> DocumentKind:
    try:
        return DocumentKind(kind)
    except ValueError:
        raise ValidationError(f"Unknown document kind: {kind!r}")


def _year(year: Optional[int]) -> int:
    if year is None:
        return today_local().year
    y = int(year)
    if not 1900 <= y <= 9999:
        raise ValidationError(f"Year out of range: {year}")
    return y


def format_document_number(kind: Union[DocumentKind, str],
                           year: int,
                           value: int,
                           *,
                           padding: Optional[int] = None) -> str:
    k = _kind(kind)
    pad = int(padding if padding is not None else settings.SEQUENCE_PADDING)
    return f"{PREFIXES[k]}-{int(year)}-{str(int(value)).zfill(pad)}"


def parse_document_number(number: str) -> Tuple[DocumentKind, int, int]:
    """INV-2025-00001 -> (DocumentKind.INVOICE, 2025, 1)"""
    m = _NUMBER_RE.match((number or "").strip())
    if not m:
        raise ValidationError(f"Malformed document number: {number!r}")
    prefix, year, value = m.groups()
    for k, p in PREFIXES.items():
        if p == prefix:
            return k, int(year), int(value)
    raise ValidationError(f"Unknown document prefix: {prefix}")


def _increment(db: Session, kind: str, year: int) -> int:
    """
    One atomic read-and-increment of the (kind, year) counter.

    The counter row stays write-locked until the caller's transaction ends,
    so a rolled-back document also rolls back its number.
    """
    dialect = db.get_bind().dialect.name

    if dialect in ("sqlite", "postgresql"):
        ins = sqlite.insert(_seq) if dialect == "sqlite" else postgresql.insert(_seq)
        stmt = (ins.values(kind=kind, year=year, last_value=1).on_conflict_do_update(
            index_elements=[_seq.c.kind, _seq.c.year],
            set_={
                "last_value": _seq.c.last_value + 1,
                "updated_at": datetime.utcnow(),
            },
        ).returning(_seq.c.last_value))
        return int(db.execute(stmt).scalar_one())

    if dialect in ("mysql", "mariadb"):
        stmt = mysql.insert(_seq).values(
            kind=kind, year=year,
            last_value=1).on_duplicate_key_update(
                last_value=_seq.c.last_value + 1,
                updated_at=datetime.utcnow(),
            )
        db.execute(stmt)
    else:
        res = db.execute(
            update(_seq).where(_seq.c.kind == kind, _seq.c.year == year).values(
                last_value=_seq.c.last_value + 1))
        if res.rowcount == 0:
            db.execute(_seq.insert().values(kind=kind, year=year, last_value=1))

    return int(
        db.execute(
            select(_seq.c.last_value).where(_seq.c.kind == kind,
                                            _seq.c.year == year)).scalar_one())


def next_document_number(
    db: Session,
    kind: Union[DocumentKind, str],
    year: Optional[int] = None,
) -> str:
    """
    Allocate the next human-readable number for a document kind and year,
    e.g. INV-2025-00001.

    Joins the caller's transaction; the caller commits. Never falls back to
    counting rows: if the counter cannot be incremented nothing is returned.
    """
    k = _kind(kind)
    y = _year(year)

    try:
        n = _increment(db, k.value, y)
    except OperationalError as e:
        logger.error("Sequence store unavailable kind=%s year=%s: %s", k.value, y, e)
        raise SequenceStorageUnavailable(
            f"Could not allocate {k.value} number: sequence store unavailable"
        ) from e
    except SQLAlchemyError as e:
        logger.error("Sequence allocation failed kind=%s year=%s: %s", k.value, y, e)
        raise AllocationError(f"Could not allocate {k.value} number") from e

    number = format_document_number(k, y, n)
    logger.debug("Allocated %s", number)
    return number
