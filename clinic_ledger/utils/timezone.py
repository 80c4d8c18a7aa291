# FILE: clinic_ledger/utils/timezone.py
from __future__ import annotations

from datetime import datetime, date
from zoneinfo import ZoneInfo

from clinic_ledger.core.config import settings


def clinic_tz() -> ZoneInfo:
    return ZoneInfo(settings.TIMEZONE or "UTC")


def now_local() -> datetime:
    """
    Returns a *naive* datetime representing clinic-local time.
    DateTime columns are naive, so we strip tzinfo after converting.
    """
    return datetime.now(clinic_tz()).replace(tzinfo=None)


def today_local() -> date:
    return now_local().date()
