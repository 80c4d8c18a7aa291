# clinic_ledger/api/deps.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Generator, Optional

from fastapi import Header, HTTPException
from jose import jwt, JWTError
from sqlalchemy.orm import Session

from clinic_ledger.core.config import settings
from clinic_ledger.db.session import SessionLocal


# =========================================================
# DB
# =========================================================
def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# =========================================================
# AUTH (tokens are issued elsewhere; we only verify them)
# =========================================================
@dataclass(frozen=True)
class Actor:
    id: int
    email: Optional[str] = None
    role: Optional[str] = None


def _extract_bearer(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    parts = authorization.split()
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1]
    return None


def _decode_token(raw_token: str) -> dict:
    try:
        return jwt.decode(raw_token, settings.JWT_SECRET, algorithms=[settings.JWT_ALG])
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token")


def current_actor(authorization: Optional[str] = Header(None)) -> Actor:
    raw = _extract_bearer(authorization)
    if not raw:
        raise HTTPException(status_code=401, detail="Missing token")

    payload = _decode_token(raw)
    uid = payload.get("uid")
    try:
        actor_id = int(uid)
    except (TypeError, ValueError):
        raise HTTPException(status_code=401, detail="Token has no staff id")

    return Actor(id=actor_id, email=payload.get("sub"), role=payload.get("role"))
