"""
Structured logging configuration with correlation IDs and performance timing.
"""
import logging
import sys
import time
import uuid
from typing import Any, Dict, Optional
from contextlib import contextmanager
from contextvars import ContextVar
import structlog

# Context variables for message-scoped data
correlation_id_var: ContextVar[Optional[str]] = ContextVar('correlation_id', default=None)
sender_id_var: ContextVar[Optional[str]] = ContextVar('sender_id', default=None)
request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)

_service_context: Dict[str, str] = {
    "service": "statement-dispatch",
    "version": "1.0.0",
}


def add_correlation_id(
    logger, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """Add correlation ID to log events."""
    correlation_id = correlation_id_var.get() or str(uuid.uuid4())[:8]
    event_dict.setdefault("correlation_id", correlation_id)
    return event_dict


def add_message_context(
    logger, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """Add inbound message context to log events."""
    sender_id = sender_id_var.get()
    if sender_id:
        event_dict.setdefault("sender_id", sender_id)

    request_id = request_id_var.get()
    if request_id:
        event_dict.setdefault("request_id", request_id)

    return event_dict


def add_service_context(
    logger, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """Add service context to log events."""
    event_dict.update(_service_context)
    return event_dict


def add_timestamp(
    logger, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """Add ISO format timestamp to log events."""
    event_dict["timestamp"] = time.time()
    event_dict["iso_timestamp"] = time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())
    return event_dict


def setup_logging(
    log_level: str = "INFO",
    service_name: str = "statement-dispatch",
    service_version: str = "1.0.0",
) -> None:
    """
    Configure structured logging.

    Args:
        log_level: Minimum level passed through to the stdlib root logger
        service_name: Value of the ``service`` field on every event
        service_version: Value of the ``version`` field on every event
    """
    _service_context["service"] = service_name
    _service_context["version"] = service_version

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
        force=True,
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            add_timestamp,
            add_service_context,
            add_message_context,
            add_correlation_id,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


def get_business_logger() -> structlog.stdlib.BoundLogger:
    """Get a business event logger instance."""
    return structlog.get_logger("business")


def get_performance_logger() -> structlog.stdlib.BoundLogger:
    """Get a performance logger instance."""
    return structlog.get_logger("performance")


def get_correlation_id() -> Optional[str]:
    """Get correlation ID from current context."""
    return correlation_id_var.get()


@contextmanager
def correlation_context(correlation_id: str = None, sender_id: str = None,
                        request_id: str = None):
    """
    Context manager for setting correlation context.

    Values are reset on exit so one message's context never leaks into the
    next message handled by the same worker.

    Args:
        correlation_id: Correlation ID, usually the inbound message ID
        sender_id: Normalized sender phone number
        request_id: Audit record ID
    """
    tokens = []
    if correlation_id:
        tokens.append((correlation_id_var, correlation_id_var.set(correlation_id)))
    if sender_id:
        tokens.append((sender_id_var, sender_id_var.set(sender_id)))
    if request_id:
        tokens.append((request_id_var, request_id_var.set(request_id)))

    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)


@contextmanager
def performance_timing(operation_name: str, **context):
    """
    Context manager for timing operations.

    Args:
        operation_name: Name of the operation being timed
    """
    start_time = time.time()
    logger = get_performance_logger()

    try:
        yield
    finally:
        duration = time.time() - start_time
        logger.info(
            "Operation completed",
            operation=operation_name,
            duration_ms=round(duration * 1000, 2),
            **context
        )


def log_business_event(event_type: str, **kwargs):
    """
    Log a structured business event.

    Args:
        event_type: Type of business event
        **kwargs: Additional event data
    """
    logger = get_business_logger()
    logger.info("Business event", event_type=event_type, **kwargs)
