"""
Observability helpers for the marketplace entitlements layer.
Ties structured logs, Prometheus counters and span events together.
"""

from typing import Optional

from opentelemetry import trace

from .logging import configure_logging, get_logger, set_request_id, set_user_context
from .metrics import get_metrics_collector


def add_span_event(name: str, **attributes):
    """Attach an event to the active span, if any."""
    span = trace.get_current_span()
    if span and span.is_recording():
        span.add_event(name, {k: str(v) for k, v in attributes.items() if v is not None})


class ObservabilityManager:
    """Centralized observability manager for services."""

    def __init__(self, service_name: str, log_level: str = "info"):
        self.service_name = service_name
        self.log_level = log_level

        configure_logging(self.service_name, self.log_level)
        self.metrics = get_metrics_collector(self.service_name)
        self.logger = get_logger(f"{service_name}.observability")

        self.logger.info("Observability initialized",
                         service=service_name,
                         log_level=log_level)

    def trace_request(self, request_id: Optional[str] = None,
                      user_id: Optional[str] = None,
                      company_id: Optional[str] = None):
        """Set up request context for logs and spans."""
        if request_id:
            set_request_id(request_id)
        if user_id or company_id:
            set_user_context(user_id, company_id)

        span = trace.get_current_span()
        if span and span.is_recording():
            for key, value in (("request_id", request_id), ("user_id", user_id), ("company_id", company_id)):
                if value:
                    span.set_attribute(key, value)

    def log_error(self, error_type: str, error_message: str, **kwargs):
        """Log error with full context."""
        self.logger.error(
            "Error occurred",
            error_type=error_type,
            error_message=error_message,
            **kwargs
        )
        self.metrics.record_error(error_type)
        add_span_event("error", error_type=error_type, error_message=error_message)

    def log_business_event(self, event_type: str, **kwargs):
        """Log business event with full context."""
        self.logger.info(
            "Business event",
            event_type=event_type,
            **kwargs
        )
        self.metrics.record_business_event(event_type)
        add_span_event("business_event", event_type=event_type, **kwargs)


def get_observability_manager(service_name: str, **kwargs) -> ObservabilityManager:
    """Get an observability manager for a service."""
    return ObservabilityManager(service_name, **kwargs)
