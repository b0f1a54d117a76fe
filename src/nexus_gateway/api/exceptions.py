"""Exception handling utilities for API routes.

Every failure leaves the gateway as ``{"success": false, "error": <message>}``;
these helpers keep status codes and messages consistent across routers.
"""

import functools
import logging
from typing import Any, Callable, Dict, TypeVar, cast

from fastapi import HTTPException
from fastapi.responses import JSONResponse

from ..errors import ErrorCode, GatewayError

logger = logging.getLogger(__name__)

# TypeVar for wrapping async functions
F = TypeVar("F", bound=Callable[..., Any])

STATUS_BY_CODE: Dict[ErrorCode, int] = {
    ErrorCode.DEVICE_NOT_FOUND: 404,
    ErrorCode.UNKNOWN_DEVICE_TYPE: 400,
    ErrorCode.DUPLICATE_DEVICE: 409,
    ErrorCode.VALIDATION_ERROR: 422,
    ErrorCode.NOT_CONFIGURED: 503,
    ErrorCode.SESSION_FAILED: 502,
    ErrorCode.AUTHENTICATION_FAILED: 502,
    ErrorCode.DEVICE_FETCH_FAILED: 502,
    ErrorCode.STORAGE_ERROR: 500,
    ErrorCode.INTERNAL_ERROR: 500,
}


def error_response(status_code: int, message: str) -> JSONResponse:
    """Uniform failure body."""
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


def status_for(error: GatewayError) -> int:
    return STATUS_BY_CODE.get(error.code, 500)


# ============================================================================
# HTTP Error Factory Functions
# ============================================================================


def invalid_request(message: str) -> HTTPException:
    """Create a standardized 422 error for invalid request data.

    Args:
        message: Detailed validation error message
    """
    return HTTPException(status_code=422, detail=f"Invalid request: {message}")


def storage_error(message: str) -> HTTPException:
    """Create a standardized 500 error for storage/file system errors."""
    return HTTPException(status_code=500, detail=f"Storage error: {message}")


# ============================================================================
# Error Handling Decorators
# ============================================================================


def handle_storage_errors(func: F) -> F:
    """Decorator for consistent error handling across API endpoints.

    Handles common storage and validation exceptions:
    - HTTPException and GatewayError: Pass through (handled app-wide)
    - ValueError: User input validation errors (422 status)
    - OSError: File system errors (500 status)
    """

    @functools.wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return await func(*args, **kwargs)
        except (HTTPException, GatewayError):
            raise
        except ValueError as e:
            logger.error(f"Validation error in {func.__name__}: {e}", exc_info=True)
            raise invalid_request(str(e)) from e
        except OSError as e:
            logger.error(f"Storage error in {func.__name__}: {e}", exc_info=True)
            raise storage_error(str(e)) from e

    return cast(F, wrapper)
