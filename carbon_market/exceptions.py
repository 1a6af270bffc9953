"""
Custom exception classes and FastAPI exception handlers.

The service layer raises domain-specific errors (like
InsufficientInventoryError) without importing HTTP concepts. The handlers
registered here translate them into HTTP responses with a consistent body:

    {"error": "<message>", "error_type": "<kind>", ...kind-specific fields}

Exception hierarchy:
    CarbonMarketError (base)
    ├── ValidationError              — malformed or missing request fields (400)
    ├── NotFoundError                — project/credit/transaction absent (404)
    ├── InsufficientInventoryError   — fewer AVAILABLE credits than requested (400)
    ├── InvalidSignatureError        — webhook authenticity failure (400)
    ├── UpstreamPaymentError         — payment processor call failed (502)
    ├── InternalError                — unexpected failure, retryable (500)
    ├── UnauthorizedAccessError      — acting on another user's resource (403)
    ├── DuplicateEmailError          — signup with a registered email (409)
    └── InvalidCredentialsError      — bad login (401)

Anything that is not a CarbonMarketError is logged with its traceback and
collapsed to a generic 500 so no internal detail leaks to the caller.
"""

import logging
import uuid

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Base exception
# ---------------------------------------------------------------------------

class CarbonMarketError(Exception):
    """Base exception for all Carbon Market domain errors."""

    status_code = 500
    error_type = "error"

    def __init__(self, detail: str = "An error occurred"):
        self.detail = detail
        super().__init__(self.detail)


# ---------------------------------------------------------------------------
# Domain exceptions
# ---------------------------------------------------------------------------

class ValidationError(CarbonMarketError):
    """Raised when request input is malformed or a required field is missing."""

    status_code = 400
    error_type = "validation_error"


class NotFoundError(CarbonMarketError):
    """Raised when a referenced project, credit or transaction does not exist."""

    status_code = 404
    error_type = "not_found"

    def __init__(self, resource: str, resource_id: uuid.UUID | str | None = None):
        self.resource = resource
        self.resource_id = resource_id
        if resource_id is None:
            super().__init__(f"{resource} not found")
        else:
            super().__init__(f"{resource} {resource_id} not found")


class InsufficientInventoryError(CarbonMarketError):
    """
    Raised when a checkout asks for more credits than are AVAILABLE.

    Attributes:
        project_id: The project whose credit pool was too small.
        requested: Number of credits the buyer asked for.
        available: Number of credits that could actually be reserved.
    """

    status_code = 400
    error_type = "insufficient_inventory"

    def __init__(self, project_id: uuid.UUID, requested: int, available: int):
        self.project_id = project_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient credits available: requested {requested}, "
            f"available {available}"
        )


class InvalidSignatureError(CarbonMarketError):
    """Raised when a webhook's signature does not verify against the shared secret."""

    status_code = 400
    error_type = "invalid_signature"

    def __init__(self, detail: str = "Invalid signature"):
        super().__init__(detail)


class UpstreamPaymentError(CarbonMarketError):
    """Raised when the payment processor rejects or fails a request."""

    status_code = 502
    error_type = "upstream_payment_error"

    def __init__(self, detail: str = "Payment processor request failed"):
        super().__init__(detail)


class InternalError(CarbonMarketError):
    """
    Raised for unexpected failures the caller may retry.

    The message is logged but never returned: the response always carries
    the generic "Internal server error" text.
    """

    status_code = 500
    error_type = "internal_error"


class UnauthorizedAccessError(CarbonMarketError):
    """Raised when a user attempts to act on a resource they don't own."""

    status_code = 403
    error_type = "unauthorized_access"

    def __init__(self, detail: str = "You do not have access to this resource"):
        super().__init__(detail)


class DuplicateEmailError(CarbonMarketError):
    """Raised when attempting to register with an email that's already in use."""

    status_code = 409
    error_type = "duplicate_email"

    def __init__(self, email: str):
        self.email = email
        super().__init__(f"Email {email} is already registered")


class InvalidCredentialsError(CarbonMarketError):
    """Raised when login credentials are incorrect."""

    status_code = 401
    error_type = "invalid_credentials"

    def __init__(self):
        super().__init__("Invalid email or password")


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------

def register_exception_handlers(app: FastAPI) -> None:
    """
    Register custom exception handlers with the FastAPI application.

    Handlers are looked up by the exception's MRO, so the specific
    InsufficientInventoryError handler wins over the CarbonMarketError one.

    This is called once during app startup in main.py.
    """

    @app.exception_handler(InsufficientInventoryError)
    async def insufficient_inventory_handler(
        request: Request, exc: InsufficientInventoryError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": exc.detail,
                "error_type": exc.error_type,
                "requested": exc.requested,
                "available": exc.available,
            },
        )

    @app.exception_handler(InternalError)
    async def internal_error_handler(
        request: Request, exc: InternalError
    ) -> JSONResponse:
        logger.error("Internal error on %s %s: %s", request.method, request.url.path, exc.detail)
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": "Internal server error", "error_type": exc.error_type},
        )

    @app.exception_handler(CarbonMarketError)
    async def domain_error_handler(
        request: Request, exc: CarbonMarketError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail, "error_type": exc.error_type},
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        # Malformed input is a 400, not FastAPI's default 422
        return JSONResponse(
            status_code=400,
            content={
                "error": "Validation error",
                "error_type": "validation_error",
                "details": [
                    {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")}
                    for err in exc.errors()
                ],
            },
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error"},
        )
