"""
Unit tests for the PostgreSQL persistence adapter.
"""

from datetime import datetime, timezone

import pytest
from unittest.mock import AsyncMock, MagicMock

from shared.errors import InfrastructureError
from service_entitlements.app.persistence.postgres import PostgreSQLPersistence
from service_entitlements.app.tiers.models import (
    AuditEntry, BusinessKind, MembershipStatus, StudentStatus, CASCADE_STUDENT_STATUSES,
)


class TestPostgreSQLPersistence:
    """Test cases for PostgreSQLPersistence."""

    @pytest.fixture
    def conn(self):
        """Mock asyncpg connection."""
        return AsyncMock()

    @pytest.fixture
    def persistence(self, conn):
        """Persistence wired to a mock pool."""
        persistence = PostgreSQLPersistence("postgres://localhost:5432/marketplace_test")
        pool = MagicMock()
        pool.acquire.return_value.__aenter__.return_value = conn
        persistence.pool = pool
        return persistence

    @pytest.mark.asyncio
    async def test_get_role(self, persistence, conn):
        conn.fetchval.return_value = "premium_talent"

        assert await persistence.get_role("user-1") == "premium_talent"
        assert conn.fetchval.await_args.args[1] == "user-1"

    @pytest.mark.asyncio
    async def test_query_error_is_wrapped(self, persistence, conn):
        conn.execute.side_effect = OSError("connection reset")

        with pytest.raises(InfrastructureError) as exc_info:
            await persistence.set_role("user-1", "admin")

        assert exc_info.value.message == "set_role failed"

    @pytest.mark.asyncio
    async def test_get_company(self, persistence, conn):
        conn.fetchrow.return_value = {
            "id": "academy-1",
            "name": "Film Academy",
            "business_type": "academy",
            "status": "premium",
            "created_by": "owner-1",
            "students_premium_enabled": None,
        }

        company = await persistence.get_company("academy-1")

        assert company.is_academy
        assert company.is_premium
        assert company.owner_id == "owner-1"
        assert company.students_premium_enabled is False

    @pytest.mark.asyncio
    async def test_unknown_business_type_is_company(self, persistence, conn):
        conn.fetchrow.return_value = {
            "id": "c-9", "name": "Legacy", "business_type": "agency",
            "status": "active", "created_by": None, "students_premium_enabled": False,
        }

        company = await persistence.get_company("c-9")

        assert company.business_kind == BusinessKind.COMPANY
        assert company.owner_id is None

    @pytest.mark.asyncio
    async def test_missing_company(self, persistence, conn):
        conn.fetchrow.return_value = None
        assert await persistence.get_company("ghost-co") is None

    @pytest.mark.asyncio
    async def test_list_accepted_members(self, persistence, conn):
        conn.fetch.return_value = [
            {"company_id": "company-1", "user_id": "member-1", "status": "accepted", "role": "editor"},
        ]

        members = await persistence.list_accepted_members("company-1")

        assert members[0].user_id == "member-1"
        assert members[0].status == MembershipStatus.ACCEPTED
        assert conn.fetch.await_args.args[2] == "accepted"

    @pytest.mark.asyncio
    async def test_list_academy_students_passes_statuses(self, persistence, conn):
        conn.fetch.return_value = [
            {"academy_id": "academy-1", "student_email": "a@mail.test", "status": "graduated"},
        ]

        students = await persistence.list_academy_students("academy-1", CASCADE_STUDENT_STATUSES)

        assert students[0].status == StudentStatus.GRADUATED
        assert conn.fetch.await_args.args[2] == ["enrolled", "graduated", "active"]

    @pytest.mark.asyncio
    async def test_append_audit(self, persistence, conn):
        created_at = datetime(2025, 3, 1, tzinfo=timezone.utc)
        entry = AuditEntry(user_id="u-1", old_role=None, new_role="premium_talent",
                           changed_by=None, reason="Auto-upgrade", created_at=created_at)

        await persistence.append(entry)

        assert conn.execute.await_args.args[1:] == ("u-1", None, None, "premium_talent", "Auto-upgrade", created_at)

    @pytest.mark.asyncio
    async def test_counts_default_to_zero(self, persistence, conn):
        conn.fetchval.return_value = None
        since = datetime(2025, 3, 1, tzinfo=timezone.utc)

        assert await persistence.count_user_applications("u-1", since) == 0
        assert await persistence.count_company_applications("c-1", since) == 0

    @pytest.mark.asyncio
    async def test_health_check(self, persistence, conn):
        conn.fetchval.return_value = 1
        assert await persistence.health_check() is True

        conn.fetchval.side_effect = OSError("down")
        assert await persistence.health_check() is False

    @pytest.mark.asyncio
    async def test_health_check_not_started(self):
        persistence = PostgreSQLPersistence("postgres://localhost:5432/marketplace_test")
        assert await persistence.health_check() is False
