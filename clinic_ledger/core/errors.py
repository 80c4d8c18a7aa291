# clinic_ledger/core/errors.py
from __future__ import annotations

from typing import Any, Optional


class LedgerError(RuntimeError):
    """
    Base for every error a public ledger operation raises.

    status_code / code are what the HTTP layer renders; services never
    look at them.
    """
    status_code: int = 400
    code: str = "ledger_error"

    def __init__(self, msg: str, *, details: Optional[Any] = None):
        super().__init__(msg)
        self.msg = msg
        self.details = details


class ValidationError(LedgerError):
    status_code = 400
    code = "validation_error"


class NotFoundError(LedgerError):
    status_code = 404
    code = "not_found"


class ConcurrencyConflict(LedgerError):
    status_code = 409
    code = "concurrency_conflict"


class AllocationError(LedgerError):
    status_code = 503
    code = "allocation_error"


class StorageUnavailable(LedgerError):
    status_code = 503
    code = "storage_unavailable"


class SequenceStorageUnavailable(AllocationError, StorageUnavailable):
    """Counter table could not be reached; the parent document is not created."""
    code = "sequence_storage_unavailable"
