# FILE: medstore/api/exception_handlers.py
from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

from medstore.services.errors import LedgerError
from medstore.utils.resp import err

logger = logging.getLogger(__name__)


def ledger_error_response(e: LedgerError) -> JSONResponse:
    return err(str(e), e.status_code, code=e.code, details=e.details or None)


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        # exc.detail can be str/dict/list
        msg = exc.detail if isinstance(exc.detail, str) else "Request failed"
        return err(msg, exc.status_code, code="HTTP_ERROR")

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        # ctx may hold the raw exception object
        details = [{k: v for k, v in e.items() if k != "ctx"} for e in exc.errors()]
        return err("Validation error", 422, code="VALIDATION_ERROR", details=details)

    @app.exception_handler(LedgerError)
    async def ledger_exception_handler(request: Request, exc: LedgerError) -> JSONResponse:
        return ledger_error_response(exc)

    @app.exception_handler(IntegrityError)
    async def integrity_exception_handler(request: Request, exc: IntegrityError) -> JSONResponse:
        logger.warning("Integrity error on %s %s: %s", request.method, request.url.path, exc.orig)
        return err("Database constraint error (duplicate/invalid reference).", 409, code="CONFLICT")

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return err("Internal server error", 500, code="INTERNAL_ERROR")


def safe_err(e: Exception) -> JSONResponse:
    """Route-level fallback: service rejections keep their code, the rest is logged."""
    if isinstance(e, LedgerError):
        return ledger_error_response(e)
    if isinstance(e, IntegrityError):
        logger.warning("Integrity error: %s", e.orig)
        return err("Database constraint error (duplicate/invalid reference).", 409, code="CONFLICT")
    logger.exception("Request failed")
    return err("Internal server error", 500, code="INTERNAL_ERROR")
