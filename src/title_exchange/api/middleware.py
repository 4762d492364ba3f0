"""FastAPI middleware for request tracing, error handling, and CORS.

Middleware stack (applied bottom-up):
    1. RequestIDMiddleware — injects X-Request-ID into every request/response
    2. ErrorHandlerMiddleware — catches domain exceptions -> structured JSON errors
    3. CORSMiddleware — handles browser-based clients
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

import structlog
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from title_exchange.domain.exceptions import (
    AssetError,
    AuthorizationError,
    InvalidStateError,
    InvalidStateTransitionError,
    InvalidValueError,
    MarketplaceError,
    PaymentError,
    ResourceError,
)

if TYPE_CHECKING:
    from fastapi import FastAPI, Request, Response

logger = structlog.get_logger(__name__)

# Error category -> HTTP status. Checked in order; first match wins.
ERROR_STATUS_CODES: tuple[tuple[type[MarketplaceError], int], ...] = (
    (AuthorizationError, 403),
    (ResourceError, 404),
    (InvalidStateError, 409),
    (InvalidValueError, 422),
    (AssetError, 422),
    (PaymentError, 402),
)


def status_for(exc: MarketplaceError) -> int:
    """Return the HTTP status code for a domain error (400 if uncategorised)."""
    for error_cls, status_code in ERROR_STATUS_CODES:
        if isinstance(exc, error_cls):
            return status_code
    return 400


# ---------------------------------------------------------------------------
# 1. Request ID Middleware
# ---------------------------------------------------------------------------
class RequestIDMiddleware(BaseHTTPMiddleware):
    """Inject a unique X-Request-ID into every request for log correlation."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))

        # Bind to structlog context for all log entries in this request
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

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
        except InvalidStateTransitionError as exc:
            logger.warning(
                "state_machine.invalid_transition",
                current=exc.current_state,
                attempted=exc.attempted_event,
            )
            return JSONResponse(
                status_code=409,
                content={"error": exc.code, "message": exc.message},
            )
        except MarketplaceError as exc:
            status_code = status_for(exc)
            log = logger.error if status_code == 402 else logger.warning
            log("domain.error", error=exc.message, code=exc.code, status=status_code)
            return JSONResponse(
                status_code=status_code,
                content={"error": exc.code, "message": exc.message},
            )
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
