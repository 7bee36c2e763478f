"""
Storage and audit ports consumed by the cascade and quota engines.

The engines only see these interfaces; the PostgreSQL adapter backs them in
production and the in-memory adapter backs them in tests and local runs.
Adapters raise ``InfrastructureError`` when the backend fails.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional, Sequence

from ..tiers.models import Company, Membership, AcademyStudent, AuditEntry, StudentStatus


class RoleStore(ABC):
    """Current role tier per user."""

    @abstractmethod
    async def get_role(self, user_id: str) -> Optional[str]:
        """Return the stored role value, or None when the user has none."""

    @abstractmethod
    async def set_role(self, user_id: str, role: str) -> None:
        """Upsert the user's role."""


class CompanyDirectory(ABC):
    """Companies, their members and academy students."""

    @abstractmethod
    async def get_company(self, company_id: str) -> Optional[Company]:
        ...

    @abstractmethod
    async def update_company_status(self, company_id: str, status: str) -> None:
        ...

    @abstractmethod
    async def set_students_premium(self, academy_id: str, enabled: bool) -> None:
        ...

    @abstractmethod
    async def list_accepted_members(self, company_id: str) -> List[Membership]:
        ...

    @abstractmethod
    async def get_membership(self, company_id: str, user_id: str) -> Optional[Membership]:
        ...

    @abstractmethod
    async def list_academy_students(self, academy_id: str,
                                    statuses: Sequence[StudentStatus]) -> List[AcademyStudent]:
        ...

    @abstractmethod
    async def find_student(self, academy_id: str, email: str) -> Optional[AcademyStudent]:
        ...


class UserDirectory(ABC):
    """Lookup of authentication users."""

    @abstractmethod
    async def find_user_id_by_email(self, email: str) -> Optional[str]:
        ...

    @abstractmethod
    async def get_user_email(self, user_id: str) -> Optional[str]:
        ...


class AuditLog(ABC):
    """Append-only role change audit."""

    @abstractmethod
    async def append(self, entry: AuditEntry) -> None:
        ...


class SettingsStore(ABC):
    """Administrative key/value settings."""

    @abstractmethod
    async def get_setting(self, category: str, key: str) -> Optional[str]:
        ...

    @abstractmethod
    async def put_setting(self, category: str, key: str, value: str) -> None:
        ...


class ApplicationLedger(ABC):
    """Counts of job applications, the action gated by monthly quotas."""

    @abstractmethod
    async def count_user_applications(self, user_id: str, since: datetime) -> int:
        """Applications submitted by a talent user at or after ``since``."""

    @abstractmethod
    async def count_company_applications(self, company_id: str, since: datetime) -> int:
        """Applications received by the company's opportunities at or after ``since``."""


class EntitlementsStore(RoleStore, CompanyDirectory, UserDirectory, AuditLog,
                        SettingsStore, ApplicationLedger):
    """All ports backed by one storage engine."""

    async def start(self):
        """Open connections."""

    async def stop(self):
        """Close connections."""

    async def health_check(self) -> bool:
        return True
