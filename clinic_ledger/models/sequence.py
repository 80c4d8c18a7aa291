# FILE: clinic_ledger/models/sequence.py
from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    UniqueConstraint,
)

from clinic_ledger.db.base import Base


class DocumentSequence(Base):
    """
    One counter per (document kind, calendar year).

    last_value is the last number handed out; only ever changed by a single
    `UPDATE ... SET last_value = last_value + 1`.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (UniqueConstraint("kind",
                                       "year",
                                       name="uq_document_sequences_kind_year"), )

    id = Column(Integer, primary_key=True, index=True)
    kind = Column(String(32), nullable=False)
    year = Column(Integer, nullable=False)
    last_value = Column(Integer, nullable=False, default=0)
    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )
