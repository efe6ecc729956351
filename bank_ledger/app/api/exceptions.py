from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..core.errors import (
    AccountNotFoundError,
    DuplicateIdempotencyKeyError,
    LedgerError,
    StoreConflictError,
)


logger = logging.getLogger(__name__)


def _message(status_code: int, message: str, headers: dict[str, str] | None = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"message": message}, headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(LedgerError)
    async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
        # InvalidAmount, InsufficientFunds, RecipientNotFound, SelfTransfer, ...
        return _message(400, exc.message)

    @app.exception_handler(DuplicateIdempotencyKeyError)
    async def duplicate_idempotency_handler(
        request: Request, exc: DuplicateIdempotencyKeyError
    ) -> JSONResponse:
        return _message(409, exc.message)

    @app.exception_handler(AccountNotFoundError)
    async def account_not_found_handler(
        request: Request, exc: AccountNotFoundError
    ) -> JSONResponse:
        logger.error("principal.account_missing", extra={"path": request.url.path})
        return _message(500, "Internal server error")

    @app.exception_handler(StoreConflictError)
    async def store_conflict_handler(request: Request, exc: StoreConflictError) -> JSONResponse:
        logger.error("ledger.store_conflict", extra={"path": request.url.path})
        return _message(500, "Internal server error")

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = exc.errors()
        if not errors:
            return _message(400, "Invalid request")
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        detail = first.get("msg", "Invalid request")
        return _message(400, f"{location}: {detail}" if location else detail)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        return _message(exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))
