"""Error handling and response models."""
from typing import Optional, TypeVar

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from application.results import Failure, Result
from domain.order import InvalidStatusTransition, OrderNotFound, ValidationFailure
from infrastructure.config import SERVICE_NAME
from infrastructure.logging import get_logger

T = TypeVar("T")

logger = get_logger(SERVICE_NAME)


class ErrorResponse(BaseModel):
    """Standard error response format."""
    status_code: int
    detail: str
    error_type: Optional[str] = None


def unwrap(result: Result[T]) -> T:
    """Return the success value or raise the failure's error for the handlers below."""
    if isinstance(result, Failure):
        raise result.error
    return result.value


def _error_response(status_code: int, detail, error_type: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder({"detail": detail, "error_type": error_type}),
    )


async def validation_error_handler(request: Request, exc: ValidationFailure) -> JSONResponse:
    """Handle domain validation errors with 400 status."""
    logger.warning("Validation error", path=request.url.path, error=str(exc))
    return _error_response(status.HTTP_400_BAD_REQUEST, str(exc), "ValidationFailure")


async def not_found_error_handler(request: Request, exc: OrderNotFound) -> JSONResponse:
    logger.warning("Order not found", path=request.url.path, error=str(exc))
    return _error_response(status.HTTP_404_NOT_FOUND, str(exc), "OrderNotFound")


async def invalid_transition_error_handler(request: Request, exc: InvalidStatusTransition) -> JSONResponse:
    logger.warning(
        "Invalid status transition",
        path=request.url.path,
        from_status=exc.from_status.value,
        to_status=exc.to_status.value if exc.to_status else None,
    )
    return _error_response(status.HTTP_400_BAD_REQUEST, str(exc), "InvalidStatusTransition")


async def generic_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle generic exceptions with 500 status without exposing internals."""
    logger.error(
        f"Internal server error: {type(exc).__name__}",
        path=request.url.path,
        exc_info=(type(exc), exc, exc.__traceback__),
    )
    return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error", "InternalServerError")


async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle FastAPI request validation errors with detailed messages."""
    logger.warning("Request validation failed", path=request.url.path, errors=exc.errors())
    return _error_response(status.HTTP_400_BAD_REQUEST, exc.errors(), "RequestValidationError")
