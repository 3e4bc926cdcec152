"""
Structured Error Handling
Provides error hierarchy with categorization, error codes, and structured context.
"""

from typing import Dict, Any, Optional
from enum import Enum


class ErrorCategory(str, Enum):
    """Error categories for classification and handling."""
    VALIDATION = "VALIDATION"  # Input validation errors
    NOT_FOUND = "NOT_FOUND"  # Unknown dataset or view
    INGEST = "INGEST"  # Uploaded file could not be processed
    INTERNAL = "INTERNAL"  # Unexpected server-side failure


class ErrorCode(str, Enum):
    """Standardized error codes for monitoring and debugging."""
    # Ingest errors
    CSV_UNREADABLE = "CSV_UNREADABLE"
    CSV_EMPTY = "CSV_EMPTY"
    MISSING_FILE = "MISSING_FILE"

    # Validation errors (400 equivalent)
    INVALID_PARAMETER = "INVALID_PARAMETER"
    PAYLOAD_TOO_LARGE = "PAYLOAD_TOO_LARGE"

    # Lookup errors (404 equivalent)
    DATASET_NOT_FOUND = "DATASET_NOT_FOUND"
    VIEW_NOT_FOUND = "VIEW_NOT_FOUND"
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"

    INTERNAL_ERROR = "INTERNAL_ERROR"


class FinOpsException(Exception):
    """
    Base exception for all FinOps service errors.

    Provides structured error information for API responses and logging.
    """

    def __init__(
        self,
        message: str,
        category: ErrorCategory,
        error_code: ErrorCode,
        http_status: int = 500,
        context: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None
    ):
        """
        Initialize structured exception.

        Args:
            message: Human-readable error message
            category: Error category for classification
            error_code: Standardized error code
            http_status: HTTP status code to return
            context: Additional context (dataset_id, filename, etc.)
            original_error: Original exception if wrapped
        """
        super().__init__(message)
        self.message = message
        self.category = category
        self.error_code = error_code
        self.http_status = http_status
        self.context = context or {}
        self.original_error = original_error

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        result = {
            "success": False,
            "error": self.message,
            "error_code": self.error_code.value,
            "category": self.category.value,
            "http_status": self.http_status
        }

        if self.context:
            result["context"] = self.context

        return result


# ============================================
# Ingest Errors
# ============================================

class CsvIngestError(FinOpsException):
    """Uploaded CSV could not be decoded or parsed."""

    def __init__(
        self,
        message: str = "Failed to process CSV file",
        error_code: ErrorCode = ErrorCode.CSV_UNREADABLE,
        http_status: int = 400,
        context: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(
            message=message,
            category=ErrorCategory.INGEST,
            error_code=error_code,
            http_status=http_status,
            context=context,
            original_error=original_error
        )


class EmptyCsvError(CsvIngestError):
    """CSV parsed to zero data rows."""

    def __init__(self, context: Optional[Dict[str, Any]] = None):
        super().__init__(
            message="CSV file appeared empty or could not be parsed.",
            error_code=ErrorCode.CSV_EMPTY,
            context=context
        )


class MissingFileError(CsvIngestError):
    """Upload request carried no file."""

    def __init__(self):
        super().__init__(
            message="No file uploaded",
            error_code=ErrorCode.MISSING_FILE
        )


# ============================================
# Validation Errors
# ============================================

class ValidationError(FinOpsException):
    """
    Input validation error.
    Request is malformed and should not be retried without changes.
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INVALID_PARAMETER,
        context: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(
            message=message,
            category=ErrorCategory.VALIDATION,
            error_code=error_code,
            http_status=400,
            context=context,
            original_error=original_error
        )


class InvalidParameterError(ValidationError):
    """A query parameter has an unsupported value."""

    def __init__(
        self,
        parameter: str,
        value: Any,
        allowed: Optional[list] = None
    ):
        context: Dict[str, Any] = {"parameter": parameter, "value": value}
        message = f"Invalid value for {parameter}: {value}"
        if allowed:
            context["allowed"] = allowed
            message += f" (allowed: {', '.join(str(a) for a in allowed)})"

        super().__init__(message=message, context=context)


class PayloadTooLargeError(ValidationError):
    """Uploaded file too large."""

    def __init__(
        self,
        size: int,
        max_size: int,
        context: Optional[Dict[str, Any]] = None
    ):
        context = context or {}
        context["payload_size"] = size
        context["max_size"] = max_size

        super().__init__(
            message=f"Payload too large: {size} bytes (max: {max_size} bytes)",
            error_code=ErrorCode.PAYLOAD_TOO_LARGE,
            context=context
        )
        self.http_status = 413


# ============================================
# Lookup Errors
# ============================================

class DatasetNotFoundError(FinOpsException):
    """No stored dataset with the given id (never uploaded, evicted or expired)."""

    def __init__(self, dataset_id: str):
        super().__init__(
            message=f"Dataset not found: {dataset_id}",
            category=ErrorCategory.NOT_FOUND,
            error_code=ErrorCode.DATASET_NOT_FOUND,
            http_status=404,
            context={"dataset_id": dataset_id}
        )


class SavedViewNotFoundError(FinOpsException):
    """No saved explorer view with the given id."""

    def __init__(self, dataset_id: str, view_id: str):
        super().__init__(
            message=f"Saved view not found: {view_id}",
            category=ErrorCategory.NOT_FOUND,
            error_code=ErrorCode.VIEW_NOT_FOUND,
            http_status=404,
            context={"dataset_id": dataset_id, "view_id": view_id}
        )


class ResourceNotFoundError(FinOpsException):
    """No resource with the given id in a dataset's inventory."""

    def __init__(self, dataset_id: str, resource_id: str):
        super().__init__(
            message=f"Resource not found: {resource_id}",
            category=ErrorCategory.NOT_FOUND,
            error_code=ErrorCode.RESOURCE_NOT_FOUND,
            http_status=404,
            context={"dataset_id": dataset_id, "resource_id": resource_id}
        )
