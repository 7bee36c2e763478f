"""
PostgreSQL persistence layer for Entitlements Service.

Reads and writes the marketplace tables owned by the managed backend. The
schema is not created here; the service only touches existing rows.
"""

from typing import Optional, List, Sequence
from datetime import datetime

import asyncpg
from shared.logging import get_logger
from shared.errors import InfrastructureError
from ..tiers.models import (
    Company, BusinessKind, Membership, MembershipStatus, AcademyStudent,
    AuditEntry, StudentStatus,
)
from .ports import EntitlementsStore


class PostgreSQLPersistence(EntitlementsStore):
    """asyncpg-backed implementation of every storage port."""

    def __init__(self, dsn: str):
        self.dsn = dsn
        self.logger = get_logger("entitlements.persistence.postgres")
        self.pool: Optional[asyncpg.Pool] = None

    async def start(self):
        """Start the persistence layer."""
        try:
            self.pool = await asyncpg.create_pool(
                self.dsn,
                min_size=2,
                max_size=10,
                command_timeout=30
            )
            self.logger.info("PostgreSQL persistence started")

        except Exception as e:
            self.logger.error("Failed to start PostgreSQL persistence", error=str(e))
            raise InfrastructureError("Failed to connect to PostgreSQL", details={"error": str(e)})

    async def stop(self):
        """Stop the persistence layer."""
        if self.pool:
            await self.pool.close()
            self.logger.info("PostgreSQL persistence stopped")

    async def _fetchrow(self, operation: str, query: str, *args):
        try:
            async with self.pool.acquire() as conn:
                return await conn.fetchrow(query, *args)
        except Exception as e:
            self.logger.error("Query failed", operation=operation, error=str(e))
            raise InfrastructureError(f"{operation} failed", details={"error": str(e)})

    async def _fetch(self, operation: str, query: str, *args):
        try:
            async with self.pool.acquire() as conn:
                return await conn.fetch(query, *args)
        except Exception as e:
            self.logger.error("Query failed", operation=operation, error=str(e))
            raise InfrastructureError(f"{operation} failed", details={"error": str(e)})

    async def _fetchval(self, operation: str, query: str, *args):
        try:
            async with self.pool.acquire() as conn:
                return await conn.fetchval(query, *args)
        except Exception as e:
            self.logger.error("Query failed", operation=operation, error=str(e))
            raise InfrastructureError(f"{operation} failed", details={"error": str(e)})

    async def _execute(self, operation: str, query: str, *args) -> str:
        try:
            async with self.pool.acquire() as conn:
                return await conn.execute(query, *args)
        except Exception as e:
            self.logger.error("Statement failed", operation=operation, error=str(e))
            raise InfrastructureError(f"{operation} failed", details={"error": str(e)})

    # Roles

    async def get_role(self, user_id: str) -> Optional[str]:
        return await self._fetchval("get_role", """
            SELECT role FROM user_roles WHERE user_id = $1
        """, user_id)

    async def set_role(self, user_id: str, role: str) -> None:
        await self._execute("set_role", """
            INSERT INTO user_roles (user_id, role) VALUES ($1, $2)
            ON CONFLICT (user_id) DO UPDATE SET role = EXCLUDED.role
        """, user_id, role)

    # Companies

    async def get_company(self, company_id: str) -> Optional[Company]:
        row = await self._fetchrow("get_company", """
            SELECT id, name, business_type, status, created_by, students_premium_enabled
            FROM companies WHERE id = $1
        """, company_id)
        if not row:
            return None
        return self._row_to_company(row)

    async def update_company_status(self, company_id: str, status: str) -> None:
        await self._execute("update_company_status", """
            UPDATE companies SET status = $2, updated_at = NOW() WHERE id = $1
        """, company_id, status)

    async def set_students_premium(self, academy_id: str, enabled: bool) -> None:
        await self._execute("set_students_premium", """
            UPDATE companies SET students_premium_enabled = $2, updated_at = NOW() WHERE id = $1
        """, academy_id, enabled)

    async def list_accepted_members(self, company_id: str) -> List[Membership]:
        rows = await self._fetch("list_accepted_members", """
            SELECT company_id, user_id, status, role
            FROM company_user_roles
            WHERE company_id = $1 AND status = $2 AND user_id IS NOT NULL
            ORDER BY created_at ASC
        """, company_id, MembershipStatus.ACCEPTED.value)
        return [self._row_to_membership(row) for row in rows]

    async def get_membership(self, company_id: str, user_id: str) -> Optional[Membership]:
        row = await self._fetchrow("get_membership", """
            SELECT company_id, user_id, status, role
            FROM company_user_roles WHERE company_id = $1 AND user_id = $2
        """, company_id, user_id)
        return self._row_to_membership(row) if row else None

    async def list_academy_students(self, academy_id: str,
                                    statuses: Sequence[StudentStatus]) -> List[AcademyStudent]:
        rows = await self._fetch("list_academy_students", """
            SELECT academy_id, student_email, status
            FROM academy_students
            WHERE academy_id = $1 AND status = ANY($2::text[])
            ORDER BY created_at ASC
        """, academy_id, [s.value for s in statuses])
        return [self._row_to_student(row) for row in rows]

    async def find_student(self, academy_id: str, email: str) -> Optional[AcademyStudent]:
        row = await self._fetchrow("find_student", """
            SELECT academy_id, student_email, status
            FROM academy_students
            WHERE academy_id = $1 AND lower(student_email) = lower($2)
        """, academy_id, email)
        return self._row_to_student(row) if row else None

    # Users

    async def find_user_id_by_email(self, email: str) -> Optional[str]:
        user_id = await self._fetchval("find_user_id_by_email", """
            SELECT id FROM auth.users WHERE lower(email) = lower($1)
        """, email)
        return str(user_id) if user_id is not None else None

    async def get_user_email(self, user_id: str) -> Optional[str]:
        return await self._fetchval("get_user_email", """
            SELECT email FROM auth.users WHERE id = $1
        """, user_id)

    # Audit

    async def append(self, entry: AuditEntry) -> None:
        await self._execute("append_audit", """
            INSERT INTO role_change_audit (user_id, changed_by, old_role, new_role, reason, created_at)
            VALUES ($1, $2, $3, $4, $5, $6)
        """, entry.user_id, entry.changed_by, entry.old_role, entry.new_role,
            entry.reason, entry.created_at)

    # Settings

    async def get_setting(self, category: str, key: str) -> Optional[str]:
        return await self._fetchval("get_setting", """
            SELECT value FROM admin_settings WHERE category = $1 AND key = $2
        """, category, key)

    async def put_setting(self, category: str, key: str, value: str) -> None:
        await self._execute("put_setting", """
            INSERT INTO admin_settings (category, key, value, updated_at)
            VALUES ($1, $2, $3, NOW())
            ON CONFLICT (category, key) DO UPDATE SET
                value = EXCLUDED.value,
                updated_at = EXCLUDED.updated_at
        """, category, key, value)

    # Applications

    async def count_user_applications(self, user_id: str, since: datetime) -> int:
        count = await self._fetchval("count_user_applications", """
            SELECT COUNT(*) FROM applications WHERE user_id = $1 AND created_at >= $2
        """, user_id, since)
        return count or 0

    async def count_company_applications(self, company_id: str, since: datetime) -> int:
        count = await self._fetchval("count_company_applications", """
            SELECT COUNT(*)
            FROM applications a
            JOIN opportunities o ON o.id = a.opportunity_id
            WHERE o.company_id = $1 AND a.created_at >= $2
        """, company_id, since)
        return count or 0

    def _row_to_company(self, row) -> Company:
        """Convert database row to Company object."""
        try:
            kind = BusinessKind(row['business_type'])
        except ValueError:
            kind = BusinessKind.COMPANY
        return Company(
            company_id=str(row['id']),
            name=row['name'],
            business_kind=kind,
            status=row['status'],
            owner_id=str(row['created_by']) if row['created_by'] else None,
            students_premium_enabled=bool(row['students_premium_enabled'])
        )

    def _row_to_membership(self, row) -> Membership:
        return Membership(
            company_id=str(row['company_id']),
            user_id=str(row['user_id']),
            status=MembershipStatus(row['status']),
            role=row['role']
        )

    def _row_to_student(self, row) -> AcademyStudent:
        return AcademyStudent(
            academy_id=str(row['academy_id']),
            student_email=row['student_email'],
            status=StudentStatus(row['status'])
        )

    async def health_check(self) -> bool:
        """Check database health."""
        try:
            async with self.pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
                return True
        except Exception:
            return False
