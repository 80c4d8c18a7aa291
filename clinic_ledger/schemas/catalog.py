# FILE: clinic_ledger/schemas/catalog.py
from __future__ import annotations

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict


class CodeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    code: str
    description: str
    category: Optional[str] = None
    # procedure codes only
    unit_price: Optional[Decimal] = None
