"""Structured logging helpers: correlation ids, bound context fields, PII masking and timing."""

import inspect
import logging
import re
import time
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from functools import wraps
from typing import Any, Callable, Dict, Optional

from realty_crm.utils.logging_config import LoggingConfig, get_logger


_correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

# Structured fields whose values are always passed through mask_sensitive_data
SENSITIVE_FIELDS = frozenset({"email", "phone", "cpf", "owner_email", "owner_phone"})

_MASK_PATTERNS = (
    (re.compile(r"[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}", re.IGNORECASE), "[REDACTED_EMAIL]"),
    (re.compile(r"\b\d{3}\.\d{3}\.\d{3}-\d{2}\b"), "[REDACTED_CPF]"),
    (re.compile(r"\b\+?\d[\d\s().-]{7,}\b"), "[REDACTED_PHONE]"),
    (re.compile(r"(?i)(api[_-]?key|token|secret|password|auth)[\s:=]+([A-Za-z0-9_-]{20,})"), r"\1=[REDACTED]"),
)


def generate_correlation_id() -> str:
    """Generate a unique correlation ID for request tracing."""
    return f"req_{uuid.uuid4().hex[:12]}"


def get_correlation_id() -> Optional[str]:
    return _correlation_id_var.get()


def set_correlation_id(correlation_id: Optional[str]) -> None:
    _correlation_id_var.set(correlation_id)


@contextmanager
def correlation_context(correlation_id: Optional[str] = None):
    """Run a block under one correlation id, restoring the previous id afterwards.

    Activity records written inside the block carry the id as ``request_id``.
    """
    correlation_id = correlation_id or generate_correlation_id()
    token = _correlation_id_var.set(correlation_id)
    try:
        yield correlation_id
    finally:
        _correlation_id_var.reset(token)


def mask_sensitive_data(text: str) -> str:
    """Mask emails, CPF numbers, phone numbers and tokens in free text."""
    if not text or not LoggingConfig.LOG_MASK_SENSITIVE:
        return text
    for pattern, replacement in _MASK_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


class StructuredLogger:
    """Logger wrapper taking keyword fields, with optional bound context.

    >>> log = get_structured_logger(__name__).bind(tenant_id="t1", property_id="p1")
    >>> log.info("Listing created", listing_id="l1")
    """

    def __init__(self, logger: logging.Logger, context: Optional[Dict[str, Any]] = None):
        self.logger = logger
        self.context = dict(context or {})

    def bind(self, **fields: Any) -> "StructuredLogger":
        """Child logger that adds ``fields`` to every record."""
        return StructuredLogger(self.logger, dict(self.context, **fields))

    def _get_extra(self, **kwargs: Any) -> Dict[str, Any]:
        extra = dict(self.context, **kwargs)

        correlation_id = get_correlation_id()
        if correlation_id:
            extra["correlation_id"] = correlation_id

        for key in SENSITIVE_FIELDS.intersection(extra):
            if isinstance(extra[key], str):
                extra[key] = mask_sensitive_data(extra[key])
        return extra

    def debug(self, message: str, **kwargs: Any) -> None:
        if self.logger.isEnabledFor(logging.DEBUG):
            self.logger.debug(message, extra=self._get_extra(**kwargs))

    def info(self, message: str, **kwargs: Any) -> None:
        self.logger.info(message, extra=self._get_extra(**kwargs))

    def warning(self, message: str, **kwargs: Any) -> None:
        self.logger.warning(message, extra=self._get_extra(**kwargs))

    def error(self, message: str, exc_info: bool = False, **kwargs: Any) -> None:
        self.logger.error(message, extra=self._get_extra(**kwargs), exc_info=exc_info)

    def exception(self, message: str, **kwargs: Any) -> None:
        self.logger.exception(message, extra=self._get_extra(**kwargs))


def get_structured_logger(name: str) -> StructuredLogger:
    return StructuredLogger(get_logger(name))


@contextmanager
def log_timing(operation_name: str, logger: Optional[StructuredLogger] = None, **context: Any):
    """Time a block; debug on completion, warning past the slow-operation threshold."""
    logger = logger or get_structured_logger(__name__)
    started = time.perf_counter()
    outcome = "ok"
    try:
        yield
    except Exception:
        outcome = "error"
        raise
    finally:
        elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
        logger.debug(
            f"Completed {operation_name}",
            operation=operation_name,
            outcome=outcome,
            processing_time_ms=elapsed_ms,
            **context,
        )
        threshold = LoggingConfig.LOG_SLOW_OPERATION_THRESHOLD_MS
        if elapsed_ms > threshold:
            logger.warning(
                f"Slow operation detected: {operation_name}",
                operation=operation_name,
                processing_time_ms=elapsed_ms,
                threshold_ms=threshold,
                **context,
            )


def timed(operation_name: Optional[str] = None, logger: Optional[StructuredLogger] = None):
    """Decorator wrapping a function or coroutine in ``log_timing``.

    A ``tenant_id`` keyword or second positional argument (after ``self``)
    is attached to the timing records.
    """
    def decorator(func: Callable) -> Callable:
        op_name = operation_name or f"{func.__module__}.{func.__name__}"
        log = logger or get_structured_logger(func.__module__)

        def tenant_of(args, kwargs) -> Dict[str, Any]:
            tenant_id = kwargs.get("tenant_id")
            if tenant_id is None and len(args) > 1 and isinstance(args[1], str):
                tenant_id = args[1]
            return {"tenant_id": tenant_id} if tenant_id else {}

        @wraps(func)
        def sync_wrapper(*args, **kwargs):
            with log_timing(op_name, logger=log, **tenant_of(args, kwargs)):
                return func(*args, **kwargs)

        @wraps(func)
        async def async_wrapper(*args, **kwargs):
            with log_timing(op_name, logger=log, **tenant_of(args, kwargs)):
                return await func(*args, **kwargs)

        if inspect.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator
