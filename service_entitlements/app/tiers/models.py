"""
Tier, principal and audit data models for Entitlements Service.
"""

from typing import Dict, Any, Optional, List
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class PrincipalKind(str, Enum):
    """Kinds of principal a tier can be resolved for."""
    TALENT = "talent"
    BUSINESS = "business"


class BusinessKind(str, Enum):
    """Business type stored on a company."""
    COMPANY = "company"
    ACADEMY = "academy"


class SubscriptionTier(str, Enum):
    """Company subscription levels accepted by the cascade."""
    FREEMIUM = "freemium"
    PREMIUM = "premium"


class RoleTier(str, Enum):
    """Individual role tier held by a user."""
    FREEMIUM_TALENT = "freemium_talent"
    PREMIUM_TALENT = "premium_talent"
    FREEMIUM_BUSINESS = "freemium_business"
    PREMIUM_BUSINESS = "premium_business"
    ACADEMY_PREMIUM = "academy_premium"
    ADMIN = "admin"


class MembershipStatus(str, Enum):
    """Company membership status."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class StudentStatus(str, Enum):
    """Academy student enrollment status."""
    INVITED = "invited"
    ENROLLED = "enrolled"
    ACTIVE = "active"
    GRADUATED = "graduated"
    WITHDRAWN = "withdrawn"


# Students in these states receive academy-wide premium toggles
CASCADE_STUDENT_STATUSES = (StudentStatus.ENROLLED, StudentStatus.GRADUATED, StudentStatus.ACTIVE)


class CompanyStatus(str, Enum):
    """Company status written by subscription changes."""
    ACTIVE = "active"
    PREMIUM = "premium"


@dataclass
class Company:
    """Business principal."""
    company_id: str
    name: str
    business_kind: BusinessKind = BusinessKind.COMPANY
    status: str = CompanyStatus.ACTIVE.value
    owner_id: Optional[str] = None
    students_premium_enabled: bool = False

    @property
    def is_academy(self) -> bool:
        return self.business_kind == BusinessKind.ACADEMY

    @property
    def is_premium(self) -> bool:
        return self.status == CompanyStatus.PREMIUM.value


@dataclass
class Membership:
    """A user's membership in a company."""
    company_id: str
    user_id: str
    status: MembershipStatus = MembershipStatus.ACCEPTED
    role: Optional[str] = None


@dataclass
class AcademyStudent:
    """A student row of an academy, keyed by email."""
    academy_id: str
    student_email: str
    status: StudentStatus = StudentStatus.ENROLLED


@dataclass
class AuditEntry:
    """Append-only record of one effective tier change."""
    user_id: str
    old_role: Optional[str]
    new_role: str
    changed_by: Optional[str]
    reason: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_record(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "changed_by": self.changed_by,
            "old_role": self.old_role,
            "new_role": self.new_role,
            "reason": self.reason,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class CascadeResult:
    """Tri-partition outcome of a cascade.

    Every processed member lands in exactly one of the three lists.
    """
    succeeded: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def succeeded_count(self) -> int:
        return len(self.succeeded)

    @property
    def failed_count(self) -> int:
        return len(self.failed)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)

    @property
    def total(self) -> int:
        return self.succeeded_count + self.failed_count + self.skipped_count
