"""
Unit tests for structured log correlation.
"""

import pytest

from shared.logging import (
    add_correlation_context, add_service_context, clear_context, set_request_id, set_user_context,
)


@pytest.fixture(autouse=True)
def clean_context():
    clear_context()
    yield
    clear_context()


class TestCorrelationContext:
    """Test cases for add_correlation_context."""

    def test_empty_context_adds_nothing(self):
        assert add_correlation_context(None, "info", {"event": "x"}) == {"event": "x"}

    def test_request_and_actor(self):
        set_request_id("req-1")
        set_user_context(user_id="owner-1", company_id="company-1", role="freemium_business")

        event = add_correlation_context(None, "info", {"event": "Membership synced"})

        assert event["request_id"] == "req-1"
        assert event["acting_user_id"] == "owner-1"
        assert event["acting_role"] == "freemium_business"
        assert event["company_id"] == "company-1"
        assert "acting_admin" not in event

    def test_admin_actions_are_attributed(self):
        set_user_context(user_id="admin-1", role="admin")

        event = add_correlation_context(None, "info", {"event": "Bulk role change"})

        assert event["acting_admin"] == "admin-1"

    def test_event_keys_win(self):
        set_user_context(user_id="admin-1", company_id="company-1", role="admin")

        event = add_correlation_context(None, "info", {"event": "x", "company_id": "academy-1"})

        assert event["company_id"] == "academy-1"

    def test_clear_context(self):
        set_request_id("req-1")
        set_user_context(user_id="admin-1", company_id="company-1", role="admin")
        clear_context()

        assert add_correlation_context(None, "info", {}) == {}

    def test_generated_request_id(self):
        request_id = set_request_id()

        assert add_correlation_context(None, "info", {})["request_id"] == request_id


class TestServiceContext:
    """Test cases for add_service_context."""

    def test_service_from_logger_name(self):
        assert add_service_context(None, "info", {"logger": "entitlements.cascade"})["service"] == "entitlements"

    def test_plain_logger_name(self):
        assert "service" not in add_service_context(None, "info", {"logger": "entitlements"})
