"""
Error taxonomy and global exception handlers — prevents stack-trace leakage to clients.

Every domain failure is a ``WardenError`` tagged with an ``ErrorKind`` so
callers branch on the kind, never on message text.  Each kind is mapped
exactly once to an HTTP response by the handlers registered below.
"""

from __future__ import annotations

import logging
from enum import Enum

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)

UNAUTHORIZED_DETAIL = "Could not validate credentials"


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    AUTH = "auth"
    FORBIDDEN = "forbidden"
    RATE_LIMITED = "rate_limited"
    INFRASTRUCTURE = "infrastructure"


class RejectionKind(str, Enum):
    """Why a presented credential was refused, in evaluation order."""

    MISSING = "missing"
    MALFORMED = "malformed"
    INVALID_SIGNATURE = "invalid_signature"
    EXPIRED = "expired"
    NO_CLAIM = "no_claim"
    UNKNOWN_ACCOUNT = "unknown_account"
    INACTIVE_ACCOUNT = "inactive_account"


class WardenError(Exception):
    kind: ErrorKind = ErrorKind.INFRASTRUCTURE
    status_code: int = 500

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message


class ValidationError(WardenError):
    kind = ErrorKind.VALIDATION
    status_code = 400


class ConflictError(WardenError):
    kind = ErrorKind.CONFLICT
    status_code = 409


class NotFoundError(WardenError):
    kind = ErrorKind.NOT_FOUND
    status_code = 404


class AuthError(WardenError):
    kind = ErrorKind.AUTH
    status_code = 401

    def __init__(self, message: str = UNAUTHORIZED_DETAIL) -> None:
        super().__init__(message)


class CredentialRejected(AuthError):
    """A bearer credential failed verification.

    ``rejection`` is for logs and tests only; the client always sees the
    same generic 401.
    """

    def __init__(self, rejection: RejectionKind) -> None:
        super().__init__(UNAUTHORIZED_DETAIL)
        self.rejection = rejection

    def __str__(self) -> str:
        return f"credential rejected: {self.rejection.value}"


class ForbiddenError(WardenError):
    kind = ErrorKind.FORBIDDEN
    status_code = 403


class RateLimitedError(WardenError):
    kind = ErrorKind.RATE_LIMITED
    status_code = 429


class InfrastructureError(WardenError):
    kind = ErrorKind.INFRASTRUCTURE
    status_code = 500


class HashingError(InfrastructureError):
    pass


def _error_body(detail: object) -> dict:
    return {"detail": detail, "success": False}


async def _http_exception_handler(_request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.detail),
        headers=getattr(exc, "headers", None),
    )


async def _request_validation_handler(
    _request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")}
        for err in exc.errors()
    ]
    return JSONResponse(status_code=400, content=_error_body(errors))


def _make_warden_error_handler(expose_detail: bool):
    async def _warden_error_handler(_request: Request, exc: WardenError) -> JSONResponse:
        if isinstance(exc, AuthError):
            return JSONResponse(
                status_code=exc.status_code,
                content=_error_body(exc.message),
                headers={"WWW-Authenticate": "Bearer"},
            )
        if isinstance(exc, InfrastructureError):
            logger.error("Infrastructure failure: %s", exc, exc_info=True)
            body = _error_body("Internal server error")
            if expose_detail:
                body["error"] = str(exc.__cause__ or exc)
            return JSONResponse(status_code=exc.status_code, content=body)
        return JSONResponse(status_code=exc.status_code, content=_error_body(exc.message))

    return _warden_error_handler


def _make_generic_handler(expose_detail: bool, label: str):
    async def _handler(_request: Request, exc: Exception) -> JSONResponse:
        logger.exception("%s: %s", label, exc)
        body = _error_body("Internal server error")
        if expose_detail:
            body["error"] = str(exc)
        return JSONResponse(status_code=500, content=body)

    return _handler


def register_exception_handlers(app: FastAPI, expose_detail: bool = False) -> None:
    """Attach all exception handlers to the FastAPI app."""
    app.add_exception_handler(HTTPException, _http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _request_validation_handler)  # type: ignore[arg-type]
    app.add_exception_handler(WardenError, _make_warden_error_handler(expose_detail))  # type: ignore[arg-type]
    app.add_exception_handler(
        SQLAlchemyError, _make_generic_handler(expose_detail, "Database error")  # type: ignore[arg-type]
    )
    app.add_exception_handler(Exception, _make_generic_handler(expose_detail, "Unhandled exception"))
