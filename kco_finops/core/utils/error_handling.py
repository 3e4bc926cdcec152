"""
Error responses for failures that are not FinOpsExceptions.

Unexpected errors are logged server-side under a short error id and turned
into an HTTPException whose body matches FinOpsException.to_dict(), so
clients see one error shape regardless of where a request failed.
"""

import logging
import uuid
from typing import Optional, Dict, Any

import polars as pl
from fastapi import HTTPException, status

from kco_finops.core.exceptions import ErrorCategory, ErrorCode
from kco_finops.core.utils.logging import safe_error_log

logger = logging.getLogger(__name__)


# Checked in order; UnicodeDecodeError is a ValueError subclass
_CATEGORY_BY_TYPE = (
    (UnicodeDecodeError, ErrorCategory.INGEST, ErrorCode.CSV_UNREADABLE),
    (pl.exceptions.PolarsError, ErrorCategory.INGEST, ErrorCode.CSV_UNREADABLE),
    (ValueError, ErrorCategory.VALIDATION, ErrorCode.INVALID_PARAMETER),
    (KeyError, ErrorCategory.NOT_FOUND, ErrorCode.RESOURCE_NOT_FOUND),
)

_STATUS_BY_CATEGORY = {
    ErrorCategory.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorCategory.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCategory.INGEST: status.HTTP_400_BAD_REQUEST,
    ErrorCategory.INTERNAL: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def generate_error_id() -> str:
    return f"ERR-{uuid.uuid4().hex[:12].upper()}"


def categorize_error(error: Exception) -> tuple:
    """(ErrorCategory, ErrorCode) for an arbitrary exception."""
    for error_type, category, code in _CATEGORY_BY_TYPE:
        if isinstance(error, error_type):
            return category, code
    return ErrorCategory.INTERNAL, ErrorCode.INTERNAL_ERROR


def safe_error_response(
    error: Exception,
    operation: str = "operation",
    context: Optional[Dict[str, Any]] = None
) -> HTTPException:
    """
    Convert an unexpected exception into an HTTPException.

    The client gets a generic message and the error id; the exception text
    and stack trace only go to the logs.

    Args:
        error: The exception that occurred
        operation: What was being done, e.g. "CSV processing"
        context: Extra fields for the log line

    Returns:
        HTTPException to raise from the route
    """
    if isinstance(error, HTTPException):
        return error

    error_id = generate_error_id()
    category, code = categorize_error(error)
    http_status = _STATUS_BY_CATEGORY[category]

    safe_error_log(
        logger,
        f"{operation} failed [{error_id}]",
        error,
        error_id=error_id,
        error_category=category.value,
        operation=operation,
        **(context or {})
    )

    if category == ErrorCategory.INGEST:
        message = "The uploaded file could not be parsed as CSV."
    else:
        message = f"Failed to complete {operation}. Please try again or contact support."

    return HTTPException(
        status_code=http_status,
        detail={
            "success": False,
            "error": message,
            "error_code": code.value,
            "category": category.value,
            "http_status": http_status,
            "error_id": error_id,
        }
    )
