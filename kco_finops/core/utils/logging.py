"""
Structured Logging

JSON log lines for the API service, with OpenTelemetry trace ids when a span
is active and dataset-scoped loggers for the ingest and dashboard services.
"""

import logging
import re
import sys
from typing import Any, Dict, Optional
from datetime import datetime, timezone
from pythonjsonlogger import jsonlogger
from opentelemetry import trace

from kco_finops.app.config import settings


class StructuredJsonFormatter(jsonlogger.JsonFormatter):
    """
    One JSON object per log record.

    Every line carries severity, logger name, service metadata and, inside a
    traced request, the trace and span ids.
    """

    def add_fields(
        self,
        log_record: Dict[str, Any],
        record: logging.LogRecord,
        message_dict: Dict[str, Any]
    ):
        super().add_fields(log_record, record, message_dict)

        log_record["timestamp"] = datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat()
        log_record["severity"] = record.levelname
        log_record["logger"] = record.name

        span_context = trace.get_current_span().get_span_context()
        if span_context.is_valid:
            log_record["trace_id"] = format(span_context.trace_id, "032x")
            log_record["span_id"] = format(span_context.span_id, "016x")

        log_record.setdefault("service", settings.app_name)
        log_record.setdefault("version", settings.app_version)
        log_record.setdefault("environment", settings.environment)


# Third-party loggers that are too chatty at INFO
_QUIET_LOGGERS = ("uvicorn.access", "multipart", "asyncio", "httpx")


def setup_logging(log_level: Optional[str] = None) -> None:
    """
    Install the JSON handler on the root logger.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL.
                   Defaults to settings.log_level
    """
    level = (log_level or settings.log_level).upper()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredJsonFormatter(
        fmt="%(timestamp)s %(severity)s %(logger)s %(message)s",
        json_ensure_ascii=False
    ))

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).debug("Logging configured", extra={"log_level": level})


def should_include_stacktrace() -> bool:
    """Stack traces are logged outside production only."""
    return not settings.is_production


# Credentials that can show up in billing exports or exception text
_SENSITIVE_PATTERNS = [
    (re.compile(r'AKIA[0-9A-Z]{16}'), '[REDACTED_AWS_KEY]'),
    (re.compile(r'Bearer\s+[A-Za-z0-9\-_.]+', re.IGNORECASE), 'Bearer [REDACTED]'),
    (re.compile(r'(secret|password|token|sig)=[^&\s]+', re.IGNORECASE), r'\1=[REDACTED]'),
    (re.compile(r'[\w.+-]+@[\w-]+\.[\w.]+'), '[REDACTED_EMAIL]'),
]

MAX_ERROR_MESSAGE_LENGTH = 300


def sanitize_error_message(message: str) -> str:
    """Redact credentials and e-mail addresses, then cap the length."""
    for pattern, replacement in _SENSITIVE_PATTERNS:
        message = pattern.sub(replacement, message)
    if len(message) > MAX_ERROR_MESSAGE_LENGTH:
        message = message[:MAX_ERROR_MESSAGE_LENGTH] + "... [TRUNCATED]"
    return message


def safe_error_log(
    logger: logging.Logger,
    message: str,
    error: Exception,
    **extra_context
) -> None:
    """
    Log a failure with its exception type.

    Outside production the stack trace is attached; in production only the
    sanitized exception message is logged.
    """
    extra = {"error_type": type(error).__name__, **extra_context}

    if should_include_stacktrace():
        logger.error(message, exc_info=error, extra=extra)
    else:
        logger.error(f"{message}: {sanitize_error_message(str(error))}", extra=extra)


class StructuredLogger:
    """
    Logger with bound context fields.

    Keyword arguments given to a log call are merged into the bound context
    and emitted as JSON fields.
    """

    def __init__(self, logger: logging.Logger, **context):
        self.logger = logger
        self.context = {k: v for k, v in context.items() if v is not None}

    def bind(self, **context) -> "StructuredLogger":
        """New logger with additional bound fields."""
        return StructuredLogger(self.logger, **{**self.context, **context})

    def _log(self, level: int, msg: str, **kwargs):
        exc_info = kwargs.pop("exc_info", False)
        if exc_info and not should_include_stacktrace():
            exc_info = False
        self.logger.log(level, msg, exc_info=exc_info, stacklevel=3, extra={**self.context, **kwargs})

    def debug(self, msg: str, **kwargs):
        self._log(logging.DEBUG, msg, **kwargs)

    def info(self, msg: str, **kwargs):
        self._log(logging.INFO, msg, **kwargs)

    def warning(self, msg: str, **kwargs):
        self._log(logging.WARNING, msg, **kwargs)

    def error(self, msg: str, **kwargs):
        self._log(logging.ERROR, msg, **kwargs)


def create_structured_logger(
    name: str,
    dataset_id: Optional[str] = None,
    filename: Optional[str] = None
) -> StructuredLogger:
    """
    Logger bound to a dataset and/or an uploaded file.

    The file name is emitted as `upload_filename`; `filename` is a reserved
    LogRecord attribute.
    """
    return StructuredLogger(
        logging.getLogger(name),
        dataset_id=dataset_id,
        upload_filename=filename,
    )
