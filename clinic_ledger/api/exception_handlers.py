# FILE: clinic_ledger/api/exception_handlers.py
from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from clinic_ledger.core.errors import LedgerError

logger = logging.getLogger(__name__)


def error_envelope(status_code: int,
                   msg: str,
                   code: Optional[str] = None,
                   details: Any = None) -> JSONResponse:
    """{"ok": false, "error": {"msg", "code", "details"}}"""
    body = {"ok": False, "error": {"msg": msg, "code": code, "details": details}}
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(LedgerError)
    async def ledger_exception_handler(request: Request, exc: LedgerError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.warning("%s %s -> %s: %s", request.method, request.url.path,
                           exc.code, exc.msg)
        return error_envelope(exc.status_code, exc.msg, exc.code, exc.details)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        # auth failures carry a plain string detail
        msg = exc.detail if isinstance(exc.detail, str) else "Request failed"
        return error_envelope(exc.status_code, msg)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return error_envelope(422, "Validation error", "request_invalid",
                              [{k: v for k, v in e.items() if k != "ctx"} for e in exc.errors()])

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return error_envelope(500, "Internal server error", "internal_error")
