"""
Shared logging configuration for the marketplace entitlements layer.
"""

import sys
import structlog
import logging
import uuid
from typing import Any, Dict, Optional
from contextvars import ContextVar

from opentelemetry import trace

# Context variables for correlation IDs
request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)
user_id_var: ContextVar[Optional[str]] = ContextVar('user_id', default=None)
acting_role_var: ContextVar[Optional[str]] = ContextVar('acting_role', default=None)
company_id_var: ContextVar[Optional[str]] = ContextVar('company_id', default=None)

ADMIN_ROLE = "admin"

_CORRELATION_FIELDS = (
    ("request_id", request_id_var),
    ("acting_user_id", user_id_var),
    ("acting_role", acting_role_var),
    ("company_id", company_id_var),
)


def configure_logging(service_name: str, log_level: str = "info") -> None:
    """Configure structured JSON logging for a service."""

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            add_service_context,
            add_trace_context,
            add_correlation_context,
            structlog.processors.JSONRenderer()
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )


def add_service_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    # Logger names are "<service>.<component>"
    logger_name = event_dict.get("logger", "")
    if "." in logger_name:
        event_dict["service"] = logger_name.split(".")[0]
    return event_dict


def add_trace_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add the active span's trace and span ids."""
    current_span = trace.get_current_span()
    if current_span and current_span.is_recording():
        span_context = current_span.get_span_context()
        if span_context.trace_id != 0:
            event_dict["trace_id"] = f"{span_context.trace_id:032x}"
        if span_context.span_id != 0:
            event_dict["span_id"] = f"{span_context.span_id:016x}"
    return event_dict


def add_correlation_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Tag events with the request and the principal acting in it.

    Events logged while an admin acts carry ``acting_admin`` so role changes
    can be matched against the audit trail. Explicit event keys win.
    """
    for key, var in _CORRELATION_FIELDS:
        value = var.get()
        if value:
            event_dict.setdefault(key, value)

    if acting_role_var.get() == ADMIN_ROLE and user_id_var.get():
        event_dict.setdefault("acting_admin", user_id_var.get())

    return event_dict


def set_request_id(request_id: Optional[str] = None) -> str:
    """Set request ID in context, generating one when absent."""
    if request_id is None:
        request_id = str(uuid.uuid4())
    request_id_var.set(request_id)
    return request_id


def set_user_context(user_id: Optional[str] = None, company_id: Optional[str] = None,
                     role: Optional[str] = None):
    """Set the acting user, their role tier and the company in logging context."""
    if user_id:
        user_id_var.set(user_id)
    if role:
        acting_role_var.set(role)
    if company_id:
        company_id_var.set(company_id)


def clear_context():
    for _, var in _CORRELATION_FIELDS:
        var.set(None)


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)
