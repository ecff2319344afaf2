"""Error handling utilities."""

import logging
import traceback
from typing import Optional, Callable, Any
from functools import wraps

from pydantic import BaseModel

from .exceptions import (
    TestMatrixError,
    ValidationError,
    NotFoundError,
    ConflictError,
    StoreError,
)

logger = logging.getLogger(__name__)


class OperationResult(BaseModel):
    """Outcome of one matrix operation, as reported to a caller."""

    success: bool
    message: str
    data: Any = None
    error: Optional[str] = None
    error_type: Optional[str] = None


def handle_errors(error_message: str = "An error occurred"):
    """
    Decorator for error handling.

    Known errors are logged and re-raised unchanged; anything else is wrapped
    in a StoreError, since the only foreign failures expected are I/O ones.

    Args:
        error_message: Custom error message prefix

    Usage:
        @handle_errors("Failed to read status workbook")
        def read(self):
            ...
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except TestMatrixError as e:
                logger.error(f"{error_message}: {e}")
                raise
            except Exception as e:
                logger.error(f"{error_message}: Unexpected error: {e}")
                logger.debug(traceback.format_exc())
                raise StoreError(f"{error_message}: {str(e)}") from e
        return wrapper
    return decorator


def run_operation(
    func: Callable[[], Any],
    success_message: str,
    failure_message: str,
) -> OperationResult:
    """
    Run an operation and report it as an OperationResult.

    Expected failures (validation, missing records, conflicts) carry their own
    message; unexpected failures report ``failure_message`` plus the
    underlying error text.
    """
    try:
        data = func()
    except (ValidationError, NotFoundError, ConflictError) as e:
        logger.warning(f"{failure_message}: {e}")
        return OperationResult(
            success=False,
            message=str(e),
            error=str(e),
            error_type=type(e).__name__,
        )
    except Exception as e:
        logger.error(f"{failure_message}: {e}")
        logger.debug(traceback.format_exc())
        return OperationResult(
            success=False,
            message=failure_message,
            error=str(e),
            error_type=type(e).__name__,
        )

    return OperationResult(success=True, message=success_message, data=data)
