"""
Domain errors and their HTTP translation.

Services raise these; the handlers registered in ``register_exception_handlers``
turn them into JSON responses. Anything else becomes a logged 500.
"""

from fastapi import FastAPI, Request
from fastapi.responses import ORJSONResponse
from loguru import logger


class ShopError(Exception):
    """Base class for errors that are safe to show to the client."""

    status_code: int = 400
    default_detail: str = "Request could not be processed"

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class ValidationError(ShopError):
    status_code = 400
    default_detail = "Validation failed"


class InsufficientStockError(ShopError):
    status_code = 400
    default_detail = "Insufficient stock"


class EmptyCartError(ShopError):
    status_code = 400
    default_detail = "Cart is empty"


class AuthenticationError(ShopError):
    status_code = 401
    default_detail = "Invalid credentials"


class ForbiddenError(ShopError):
    status_code = 403
    default_detail = "Not allowed to access this resource"


class NotFoundError(ShopError):
    status_code = 404
    default_detail = "Not found"


class InvalidStateError(ShopError):
    status_code = 409
    default_detail = "Operation not allowed in the current state"


class InvalidTransitionError(InvalidStateError):
    default_detail = "Invalid status transition"


class NotCancellableError(InvalidStateError):
    default_detail = "Order not found or cannot be cancelled"


class LockedError(InvalidStateError):
    default_detail = "Record can no longer be modified"


class AlreadyExistsError(ShopError):
    status_code = 409
    default_detail = "Record already exists"


class GatewayError(ShopError):
    status_code = 502
    default_detail = "Payment provider error"

    def __init__(self, detail: str | None = None, upstream_status: int | None = None) -> None:
        super().__init__(detail)
        self.upstream_status = upstream_status


class GatewayTimeoutError(GatewayError):
    status_code = 504
    default_detail = "Payment provider did not respond in time"


async def shop_error_handler(request: Request, exc: ShopError) -> ORJSONResponse:
    """Translate a domain error into its HTTP status."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.detail}")
    else:
        logger.info(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.detail}")
    return ORJSONResponse(status_code=exc.status_code, content={"error": exc.detail})


async def unhandled_error_handler(request: Request, exc: Exception) -> ORJSONResponse:
    """Log unexpected errors server-side and hide the details from the client."""
    logger.opt(exception=exc).error(f"Unhandled error on {request.method} {request.url.path}")
    return ORJSONResponse(status_code=500, content={"error": "Something went wrong!"})


def register_exception_handlers(app: FastAPI) -> None:
    """Attach the error handlers to the application."""
    app.add_exception_handler(ShopError, shop_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
