"""
Tier model package.

Defines the role tiers held by users, the principals they belong to, and the
pure resolver that maps a principal's subscription facts to its tier. The
cascade and quota modules build on these types.
"""

from .models import (
    PrincipalKind, BusinessKind, SubscriptionTier, RoleTier, MembershipStatus,
    StudentStatus, CompanyStatus, Company, Membership, AcademyStudent,
    AuditEntry, CascadeResult, CASCADE_STUDENT_STATUSES,
)
from .resolver import (
    resolve_tier, company_status_for, is_talent_tier, is_business_tier,
    is_premium_tier, is_admin_tier, parse_role,
)

__all__ = [
    "PrincipalKind", "BusinessKind", "SubscriptionTier", "RoleTier", "MembershipStatus",
    "StudentStatus", "CompanyStatus", "Company", "Membership", "AcademyStudent",
    "AuditEntry", "CascadeResult", "CASCADE_STUDENT_STATUSES",
    "resolve_tier", "company_status_for", "is_talent_tier", "is_business_tier",
    "is_premium_tier", "is_admin_tier", "parse_role",
]
