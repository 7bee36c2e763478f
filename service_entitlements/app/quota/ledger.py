"""
Monthly action quotas for Entitlements Service.

Limits live in the settings table under category ``system`` and key
``max_<action>_per_month_<principal>_<tier>``. A limit of 0 means unlimited.
Every failure while reading the limit or counting usage fails open: the
check reports ``can_apply=True`` so an outage never blocks a user.

The check and the subsequent action are not atomic; concurrent requests can
exceed a limit by the number of in-flight actions.
"""

from typing import Callable, Optional, Dict, Any
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

from shared.logging import get_logger
from shared.errors import ValidationError
from shared.metrics import MetricsCollector
from ..tiers.models import RoleTier
from ..tiers.resolver import LEGACY_TALENT_ROLE
from ..persistence.ports import EntitlementsStore
from ..cache.redis_cache import LimitCache

LIMIT_SETTINGS_CATEGORY = "system"


class ActionKind(str, Enum):
    """Actions gated by a monthly quota."""
    APPLICATIONS = "applications"


class QuotaPrincipalKind(str, Enum):
    TALENT = "talent"
    COMPANY = "company"


class LimitTier(str, Enum):
    """Tier component of a limit setting key."""
    FREEMIUM = "freemium"
    PREMIUM = "premium"


@dataclass
class QuotaPrincipal:
    """Who a quota is checked for. ``role`` is looked up when omitted."""
    kind: QuotaPrincipalKind
    principal_id: str
    role: Optional[str] = None


@dataclass
class ApplicationLimit:
    limit: int
    current: int
    remaining: int
    can_apply: bool

    @classmethod
    def unlimited(cls) -> "ApplicationLimit":
        return cls(limit=0, current=0, remaining=0, can_apply=True)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "limit": self.limit,
            "current": self.current,
            "remaining": self.remaining,
            "canApply": self.can_apply,
        }


def limit_setting_key(action_kind: ActionKind, principal_kind: QuotaPrincipalKind, tier: LimitTier) -> str:
    """Settings key holding the monthly limit, e.g. ``max_applications_per_month_talent_freemium``."""
    return f"max_{action_kind.value}_per_month_{principal_kind.value}_{tier.value}"


def month_start(now: datetime) -> datetime:
    """First instant of the calendar month containing ``now``, in UTC."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    now = now.astimezone(timezone.utc)
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def parse_limit(raw: Optional[str]) -> int:
    """Parse a stored limit. Missing means unlimited; garbage raises ValueError."""
    if raw is None or str(raw).strip() == "":
        return 0
    limit = int(str(raw).strip())
    if limit < 0:
        raise ValueError(f"negative limit: {raw}")
    return limit


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class QuotaLedger:
    """Checks monthly action quotas for talents and companies."""

    def __init__(self, store: EntitlementsStore, cache: Optional[LimitCache] = None,
                 clock: Optional[Callable[[], datetime]] = None,
                 metrics: Optional[MetricsCollector] = None):
        self.store = store
        self.cache = cache
        self.clock = clock or _utcnow
        self.metrics = metrics
        self.logger = get_logger("entitlements.quota")

    async def check_quota(self, principal: QuotaPrincipal,
                          action_kind: ActionKind = ActionKind.APPLICATIONS) -> ApplicationLimit:
        """Report the principal's limit and usage for the current month."""
        try:
            tier = await self._limit_tier(principal)
            if tier is None:
                self._record(principal, "unlimited")
                return ApplicationLimit.unlimited()

            limit = await self._configured_limit(limit_setting_key(action_kind, principal.kind, tier))
            if limit == 0:
                self._record(principal, "unlimited")
                return ApplicationLimit.unlimited()

            current = await self._count(principal, month_start(self.clock()))

        except Exception as e:
            self.logger.error("Quota check failed, allowing action",
                              principal=principal.kind.value,
                              principal_id=principal.principal_id,
                              action=action_kind.value,
                              error=str(e))
            self._record(principal, "fail_open")
            return ApplicationLimit.unlimited()

        result = ApplicationLimit(
            limit=limit,
            current=current,
            remaining=max(0, limit - current),
            can_apply=current < limit,
        )
        self._record(principal, "allowed" if result.can_apply else "denied")
        self.logger.debug("Quota checked",
                          principal=principal.kind.value,
                          principal_id=principal.principal_id,
                          tier=tier.value,
                          limit=limit,
                          current=current)
        return result

    async def check_talent_application_limit(self, user_id: str, role: Optional[str] = None) -> ApplicationLimit:
        return await self.check_quota(QuotaPrincipal(QuotaPrincipalKind.TALENT, user_id, role))

    async def check_company_application_limit(self, company_id: str, role: Optional[str] = None) -> ApplicationLimit:
        return await self.check_quota(QuotaPrincipal(QuotaPrincipalKind.COMPANY, company_id, role))

    async def set_limit(self, principal_kind: QuotaPrincipalKind, tier: LimitTier, limit: int,
                        action_kind: ActionKind = ActionKind.APPLICATIONS) -> str:
        """Store a monthly limit and drop its cached value. Returns the settings key."""
        if limit < 0:
            raise ValidationError("Limit must be zero or positive", details={"limit": limit})

        key = limit_setting_key(action_kind, principal_kind, tier)
        await self.store.put_setting(LIMIT_SETTINGS_CATEGORY, key, str(limit))
        if self.cache is not None:
            await self.cache.invalidate_limit(key)

        self.logger.info("Quota limit updated", key=key, limit=limit)
        return key

    async def _limit_tier(self, principal: QuotaPrincipal) -> Optional[LimitTier]:
        if principal.kind == QuotaPrincipalKind.TALENT:
            role = principal.role or await self.store.get_role(principal.principal_id)
            if role == RoleTier.PREMIUM_TALENT.value:
                return LimitTier.PREMIUM
            if role in (RoleTier.FREEMIUM_TALENT.value, LEGACY_TALENT_ROLE):
                return LimitTier.FREEMIUM
            # Unknown role or not a talent: no talent quota applies
            return None

        role = principal.role
        if role is None:
            company = await self.store.get_company(principal.principal_id)
            if company is not None and company.owner_id:
                role = await self.store.get_role(company.owner_id)
        if role == RoleTier.PREMIUM_BUSINESS.value:
            return LimitTier.PREMIUM
        return LimitTier.FREEMIUM

    async def _configured_limit(self, key: str) -> int:
        if self.cache is not None:
            cached = await self.cache.get_limit(key)
            if cached is not None:
                return parse_limit(cached["value"])

        raw = await self.store.get_setting(LIMIT_SETTINGS_CATEGORY, key)
        limit = parse_limit(raw)
        if self.cache is not None:
            await self.cache.set_limit(key, raw)
        return limit

    async def _count(self, principal: QuotaPrincipal, since: datetime) -> int:
        if principal.kind == QuotaPrincipalKind.TALENT:
            return await self.store.count_user_applications(principal.principal_id, since)
        return await self.store.count_company_applications(principal.principal_id, since)

    def _record(self, principal: QuotaPrincipal, decision: str):
        if self.metrics is not None:
            self.metrics.increment_counter("quota_checks_total", principal=principal.kind.value, decision=decision)
