"""FastAPI middleware for request tracing, error handling, and CORS.

Middleware stack (applied bottom-up):
    1. RequestIDMiddleware — injects X-Request-ID into every request/response
    2. ErrorHandlerMiddleware — catches domain exceptions -> structured JSON errors
    3. CORSMiddleware — handles browser-based clients

Error mapping:
    PermissionDeniedError    -> 403  (wrong actor; do not retry)
    AuthenticationRequired   -> 401
    NotFoundError            -> 404
    ConflictError            -> 409  (lost a race; refresh and retry)
    DuplicateOperationError  -> 409
    InvalidStateError        -> 422  (precondition failed; details say whose turn it is)
    EscrowValidationError    -> 400
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

import structlog
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from arbitrated_escrow.domain.exceptions import (
    AuthenticationRequiredError,
    ConflictError,
    DuplicateOperationError,
    EscrowError,
    EscrowValidationError,
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
)
from arbitrated_escrow.logging_config import bind_request_context

if TYPE_CHECKING:
    from fastapi import FastAPI, Request, Response

logger = structlog.get_logger(__name__)


def _error_response(status_code: int, exc: EscrowError) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": exc.code, "message": exc.message, "details": exc.details},
    )


def _log_fields(exc: EscrowError) -> dict[str, object]:
    fields: dict[str, object] = {"code": exc.code}
    for name in ("transaction_id", "action", "required", "current_status", "awaiting", "field"):
        value = getattr(exc, name, None)
        if value is not None:
            fields[name] = value
    return fields


# Most specific first: DeletionRefusedError is both a permission and a state
# error and must surface as 403.
_STATUS_BY_ERROR: tuple[tuple[type[EscrowError], int, str], ...] = (
    (PermissionDeniedError, 403, "permission.denied"),
    (AuthenticationRequiredError, 401, "auth.missing_identity"),
    (NotFoundError, 404, "lookup.not_found"),
    (ConflictError, 409, "transaction.conflict_returned"),
    (DuplicateOperationError, 409, "idempotency.duplicate"),
    (InvalidStateError, 422, "state_machine.invalid_transition"),
    (EscrowValidationError, 400, "validation.failed"),
)


def _classify(exc: EscrowError) -> tuple[int, str]:
    for error_type, status_code, event in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code, event
    return 400, "domain.error"


# ---------------------------------------------------------------------------
# 1. Request ID Middleware
# ---------------------------------------------------------------------------
class RequestIDMiddleware(BaseHTTPMiddleware):
    """Inject a unique X-Request-ID into every request for log correlation."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        # Use client-provided ID or generate one
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))

        # Bind to structlog context for all log entries in this request,
        # including side effects scheduled while serving it
        context = {"request_id": request_id}
        if request.headers.get("X-User-Id"):
            context["actor_uid"] = request.headers["X-User-Id"]
        bind_request_context(**context)

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


# ---------------------------------------------------------------------------
# 2. Error Handler Middleware
# ---------------------------------------------------------------------------
class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Catch domain exceptions and return structured JSON error responses."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        try:
            return await call_next(request)
        except EscrowError as exc:
            status_code, event = _classify(exc)
            log = logger.error if event == "domain.error" else logger.warning
            log(event, path=request.url.path, status_code=status_code, **_log_fields(exc))
            return _error_response(status_code, exc)
        except Exception as exc:
            logger.exception("unhandled.error", error=str(exc))
            return JSONResponse(
                status_code=500,
                content={
                    "error": "INTERNAL_ERROR",
                    "message": "An unexpected error occurred",
                },
            )


# ---------------------------------------------------------------------------
# Setup function
# ---------------------------------------------------------------------------
def setup_middleware(app: FastAPI) -> None:
    """Register all middleware on the FastAPI application.

    Order matters — middleware is applied bottom-up, so the last added
    middleware runs first.
    """
    # CORS (runs first)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Tighten in production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Error handling (runs second)
    app.add_middleware(ErrorHandlerMiddleware)

    # Request ID (runs last = outermost)
    app.add_middleware(RequestIDMiddleware)
