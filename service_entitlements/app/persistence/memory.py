"""
In-memory persistence for Entitlements Service.

Used for local runs and tests. Individual operations can be made to fail via
``fail_on`` to exercise partial-failure and fail-open paths.
"""

from datetime import datetime
from typing import Dict, List, Optional, Sequence, Set, Tuple

from shared.errors import InfrastructureError
from shared.logging import get_logger
from ..tiers.models import (
    Company, Membership, MembershipStatus, AcademyStudent, AuditEntry, StudentStatus,
)
from .ports import EntitlementsStore


class InMemoryPersistence(EntitlementsStore):
    """Dictionary-backed implementation of every storage port."""

    def __init__(self):
        self.logger = get_logger("entitlements.persistence.memory")
        self.roles: Dict[str, str] = {}
        self.companies: Dict[str, Company] = {}
        self.memberships: List[Membership] = []
        self.students: List[AcademyStudent] = []
        self.users: Dict[str, str] = {}  # user_id -> email
        self.audit: List[AuditEntry] = []
        self.settings: Dict[Tuple[str, str], str] = {}
        # (user_id, company_id, created_at)
        self.applications: List[Tuple[str, Optional[str], datetime]] = []
        # operation name -> ids that fail; "*" fails every call
        self.fail_on: Dict[str, Set[str]] = {}

    def _maybe_fail(self, operation: str, key: str = "*"):
        targets = self.fail_on.get(operation)
        if targets and ("*" in targets or key in targets):
            raise InfrastructureError(f"{operation} failed", details={"key": key})

    # Seeding helpers

    def add_company(self, company: Company) -> Company:
        self.companies[company.company_id] = company
        return company

    def add_user(self, user_id: str, email: Optional[str] = None, role: Optional[str] = None):
        if email:
            self.users[user_id] = email
        if role:
            self.roles[user_id] = role

    def add_membership(self, membership: Membership) -> Membership:
        self.memberships.append(membership)
        return membership

    def add_student(self, student: AcademyStudent) -> AcademyStudent:
        self.students.append(student)
        return student

    def record_application(self, user_id: str, company_id: Optional[str], created_at: datetime):
        self.applications.append((user_id, company_id, created_at))

    # RoleStore

    async def get_role(self, user_id: str) -> Optional[str]:
        self._maybe_fail("get_role", user_id)
        return self.roles.get(user_id)

    async def set_role(self, user_id: str, role: str) -> None:
        self._maybe_fail("set_role", user_id)
        self.roles[user_id] = role

    # CompanyDirectory

    async def get_company(self, company_id: str) -> Optional[Company]:
        self._maybe_fail("get_company", company_id)
        return self.companies.get(company_id)

    async def update_company_status(self, company_id: str, status: str) -> None:
        self._maybe_fail("update_company_status", company_id)
        self.companies[company_id].status = status

    async def set_students_premium(self, academy_id: str, enabled: bool) -> None:
        self._maybe_fail("set_students_premium", academy_id)
        self.companies[academy_id].students_premium_enabled = enabled

    async def list_accepted_members(self, company_id: str) -> List[Membership]:
        self._maybe_fail("list_accepted_members", company_id)
        return [
            m for m in self.memberships
            if m.company_id == company_id and m.status == MembershipStatus.ACCEPTED and m.user_id
        ]

    async def get_membership(self, company_id: str, user_id: str) -> Optional[Membership]:
        for membership in self.memberships:
            if membership.company_id == company_id and membership.user_id == user_id:
                return membership
        return None

    async def list_academy_students(self, academy_id: str,
                                    statuses: Sequence[StudentStatus]) -> List[AcademyStudent]:
        self._maybe_fail("list_academy_students", academy_id)
        wanted = set(statuses)
        return [s for s in self.students if s.academy_id == academy_id and s.status in wanted]

    async def find_student(self, academy_id: str, email: str) -> Optional[AcademyStudent]:
        for student in self.students:
            if student.academy_id == academy_id and student.student_email.lower() == email.lower():
                return student
        return None

    # UserDirectory

    async def find_user_id_by_email(self, email: str) -> Optional[str]:
        self._maybe_fail("find_user_id_by_email", email)
        for user_id, user_email in self.users.items():
            if user_email.lower() == email.lower():
                return user_id
        return None

    async def get_user_email(self, user_id: str) -> Optional[str]:
        return self.users.get(user_id)

    # AuditLog

    async def append(self, entry: AuditEntry) -> None:
        self._maybe_fail("append", entry.user_id)
        self.audit.append(entry)

    # SettingsStore

    async def get_setting(self, category: str, key: str) -> Optional[str]:
        self._maybe_fail("get_setting", key)
        return self.settings.get((category, key))

    async def put_setting(self, category: str, key: str, value: str) -> None:
        self._maybe_fail("put_setting", key)
        self.settings[(category, key)] = value

    # ApplicationLedger

    async def count_user_applications(self, user_id: str, since: datetime) -> int:
        self._maybe_fail("count_user_applications", user_id)
        return sum(1 for uid, _, created in self.applications if uid == user_id and created >= since)

    async def count_company_applications(self, company_id: str, since: datetime) -> int:
        self._maybe_fail("count_company_applications", company_id)
        return sum(1 for _, cid, created in self.applications if cid == company_id and created >= since)
