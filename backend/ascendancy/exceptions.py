"""
Domain Exceptions — error taxonomy shared by services and routes,
plus the FastAPI handlers that turn them into client-safe JSON.
"""
import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AscendancyError(Exception):
    """Base class for all domain errors."""

    status_code = 500
    public_message = "Something went wrong. Please try again."

    def __init__(self, message: str = "", errors: Optional[list] = None):
        self.message = message or self.public_message
        self.errors = errors or []
        super().__init__(self.message)


class ValidationError(AscendancyError):
    """Malformed input. The message and field errors are safe to show."""

    status_code = 400
    public_message = "Validation error"


class AuthError(AscendancyError):
    status_code = 401
    public_message = "Authentication failed"


class NotFoundError(AscendancyError):
    status_code = 404
    public_message = "Not found"


class GatewayError(AscendancyError):
    """Upstream rejection from Adumo. Detail is logged, never returned."""

    status_code = 502
    public_message = "The payment provider could not process the request. Please try again."

    def __init__(self, message: str = "", status_code: Optional[int] = None, response_data: Optional[dict] = None):
        self.upstream_status = status_code
        self.response_data = response_data or {}
        super().__init__(message)


class ReplayDetected(AscendancyError):
    """A callback for an already-reconciled merchant reference. Acknowledged, not failed."""

    status_code = 200
    public_message = "Payment already processed"

    def __init__(self, merchant_reference: str, status: str = ""):
        self.merchant_reference = merchant_reference
        self.status = status
        super().__init__(f"Replay for {merchant_reference} (status={status})")


class AmountMismatch(AscendancyError):
    status_code = 400
    public_message = "Payment could not be verified"

    def __init__(self, merchant_reference: str, expected: int, received: int):
        self.merchant_reference = merchant_reference
        self.expected = expected
        self.received = received
        super().__init__(
            f"Amount mismatch for {merchant_reference}: expected {expected}, got {received}"
        )


class ConfigurationError(AscendancyError):
    status_code = 503
    public_message = "Service is not configured. Please contact support."


class RateLimitExceeded(AscendancyError):
    status_code = 429
    public_message = "Too many requests. Please try again later."

    def __init__(self, retry_after: int):
        self.retry_after = retry_after
        super().__init__(f"Rate limit exceeded. Try again in {retry_after} seconds.")


def register_exception_handlers(app: FastAPI) -> None:
    """Attach JSON handlers for the domain taxonomy."""

    @app.exception_handler(ValidationError)
    async def _validation(request: Request, exc: ValidationError):
        body = {"message": exc.message}
        if exc.errors:
            body["errors"] = exc.errors
        return JSONResponse(status_code=exc.status_code, content=body)

    @app.exception_handler(RateLimitExceeded)
    async def _rate_limited(request: Request, exc: RateLimitExceeded):
        return JSONResponse(
            status_code=exc.status_code,
            content={"message": exc.message},
            headers={"Retry-After": str(exc.retry_after)},
        )

    @app.exception_handler(GatewayError)
    async def _gateway(request: Request, exc: GatewayError):
        logger.error(
            "Gateway error on %s %s: %s (upstream=%s)",
            request.method, request.url.path, exc.message, exc.upstream_status,
        )
        return JSONResponse(status_code=exc.status_code, content={"message": exc.public_message})

    @app.exception_handler(AmountMismatch)
    async def _amount_mismatch(request: Request, exc: AmountMismatch):
        logger.warning("Rejected callback: %s", exc.message)
        return JSONResponse(status_code=exc.status_code, content={"message": exc.public_message})

    @app.exception_handler(ConfigurationError)
    async def _configuration(request: Request, exc: ConfigurationError):
        logger.critical("Configuration error: %s", exc.message)
        return JSONResponse(status_code=exc.status_code, content={"message": exc.public_message})

    @app.exception_handler(AscendancyError)
    async def _domain(request: Request, exc: AscendancyError):
        # AuthError, NotFoundError and anything else in the taxonomy
        return JSONResponse(status_code=exc.status_code, content={"message": exc.message})
