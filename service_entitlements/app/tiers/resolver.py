"""
Tier resolution for Entitlements Service.

Maps (principal kind, premium flag, academy flag) to the canonical role tier.
The same mapping is used by the subscription cascade and when a membership
request is approved. ``admin`` is never produced here; callers that must
protect platform admins check for it before calling.
"""

from typing import Optional, Union

from .models import PrincipalKind, RoleTier, SubscriptionTier, CompanyStatus

# Legacy values still present in role storage
LEGACY_TALENT_ROLE = "talent"
LEGACY_BUSINESS_ROLE = "business"

_TALENT_ROLES = frozenset({
    RoleTier.FREEMIUM_TALENT.value,
    RoleTier.PREMIUM_TALENT.value,
    LEGACY_TALENT_ROLE,
})

_BUSINESS_ROLES = frozenset({
    RoleTier.FREEMIUM_BUSINESS.value,
    RoleTier.PREMIUM_BUSINESS.value,
    RoleTier.ACADEMY_PREMIUM.value,
    LEGACY_BUSINESS_ROLE,
})

_PREMIUM_ROLES = frozenset({
    RoleTier.PREMIUM_TALENT.value,
    RoleTier.PREMIUM_BUSINESS.value,
    RoleTier.ACADEMY_PREMIUM.value,
})

RoleLike = Union[RoleTier, str, None]


def _role_value(role: RoleLike) -> Optional[str]:
    if role is None:
        return None
    if isinstance(role, RoleTier):
        return role.value
    return str(role)


def resolve_tier(principal_kind: PrincipalKind, is_premium: bool, is_academy: bool = False) -> RoleTier:
    """Resolve the role tier for a principal."""
    if principal_kind == PrincipalKind.TALENT:
        return RoleTier.PREMIUM_TALENT if is_premium else RoleTier.FREEMIUM_TALENT

    if is_premium and is_academy:
        return RoleTier.ACADEMY_PREMIUM
    if is_premium:
        return RoleTier.PREMIUM_BUSINESS
    return RoleTier.FREEMIUM_BUSINESS


def company_status_for(subscription: SubscriptionTier) -> CompanyStatus:
    """Company status stored for a subscription tier."""
    return CompanyStatus.PREMIUM if subscription == SubscriptionTier.PREMIUM else CompanyStatus.ACTIVE


def is_talent_tier(role: RoleLike) -> bool:
    return _role_value(role) in _TALENT_ROLES


def is_business_tier(role: RoleLike) -> bool:
    return _role_value(role) in _BUSINESS_ROLES


def is_premium_tier(role: RoleLike) -> bool:
    return _role_value(role) in _PREMIUM_ROLES


def is_admin_tier(role: RoleLike) -> bool:
    return _role_value(role) == RoleTier.ADMIN.value


def parse_role(role: RoleLike) -> Optional[RoleTier]:
    """Parse a stored role value, folding legacy values onto freemium tiers."""
    value = _role_value(role)
    if value is None:
        return None
    if value == LEGACY_TALENT_ROLE:
        return RoleTier.FREEMIUM_TALENT
    if value == LEGACY_BUSINESS_ROLE:
        return RoleTier.FREEMIUM_BUSINESS
    try:
        return RoleTier(value)
    except ValueError:
        return None
