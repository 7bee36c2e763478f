"""
Tier cascade engine for Entitlements Service.

Propagates a subscription or premium change to every affected user. Members
are processed one at a time; a failing member is recorded and the batch
continues. Nothing is rolled back, the partial outcome is returned instead.
"""

from typing import Dict, Any, Optional, Sequence
from dataclasses import dataclass, field

from shared.logging import get_logger
from shared.errors import NotFoundError, ValidationError, ServiceError, AccessLayerException
from shared.metrics import MetricsCollector
from shared.observability import add_span_event
from ..tiers.models import (
    PrincipalKind, SubscriptionTier, RoleTier, Company, AuditEntry, CascadeResult,
    MembershipStatus, CASCADE_STUDENT_STATUSES,
)
from ..tiers.resolver import (
    resolve_tier, company_status_for, is_admin_tier, is_talent_tier,
)
from ..persistence.ports import EntitlementsStore

BULK_CHANGE_REASON = "Bulk change from admin panel"


@dataclass
class CompanySummary:
    """Company state before and after a subscription change."""
    company_id: str
    name: str
    old_status: str
    new_status: str
    new_member_role: str


@dataclass
class SubscriptionChangeResult:
    company: CompanySummary
    members: CascadeResult


@dataclass
class AcademyToggleResult:
    academy_id: str
    enable_premium: bool
    total_students: int
    students: CascadeResult


@dataclass
class StudentUpgradeResult:
    """Outcome of the enrollment-triggered upgrade of a single student."""
    upgraded: bool
    message: str
    current_role: Optional[str] = None
    academy_name: Optional[str] = None


@dataclass
class _MemberOutcome:
    changed: bool
    old_role: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)


class CascadeEngine:
    """Applies tier changes across company members and academy students."""

    def __init__(self, store: EntitlementsStore, metrics: Optional[MetricsCollector] = None):
        self.store = store
        self.metrics = metrics
        self.logger = get_logger("entitlements.cascade")

    async def apply_subscription_change(self, company_id: str, new_subscription: SubscriptionTier,
                                        changed_by: Optional[str]) -> SubscriptionChangeResult:
        """Change a company's subscription and cascade the tier to its accepted members."""
        company = await self._load_company(company_id)
        old_status = company.status

        new_status = company_status_for(new_subscription).value
        target = resolve_tier(PrincipalKind.BUSINESS,
                              new_subscription == SubscriptionTier.PREMIUM,
                              company.is_academy)
        self.logger.info("Changing company subscription",
                         company_id=company_id,
                         old_status=old_status,
                         new_status=new_status,
                         member_role=target.value)

        try:
            await self.store.update_company_status(company_id, new_status)
        except AccessLayerException as e:
            self.logger.error("Error updating company status", company_id=company_id, error=e.message)
            raise ServiceError("Failed to update company status", details={"company_id": company_id})

        try:
            members = await self.store.list_accepted_members(company_id)
        except AccessLayerException as e:
            self.logger.error("Error fetching company members", company_id=company_id, error=e.message)
            raise ServiceError("Failed to fetch company members", details={"company_id": company_id})

        reason = f"Company subscription changed to {new_subscription.value}"
        result = CascadeResult()
        with self._timed("subscription_change"):
            for member in members:
                await self._process(
                    "subscription_change", member.user_id, result,
                    self._set_business_member(member.user_id, target, changed_by, reason),
                )

        self._log_summary("subscription_change", result, company_id=company_id)
        return SubscriptionChangeResult(
            company=CompanySummary(
                company_id=company_id,
                name=company.name,
                old_status=old_status,
                new_status=new_status,
                new_member_role=target.value,
            ),
            members=result,
        )

    async def apply_academy_student_premium_toggle(self, academy_id: str, enable_premium: bool,
                                                   changed_by: Optional[str]) -> AcademyToggleResult:
        """Grant or revoke premium talent for every enrolled, active or graduated student."""
        academy = await self._load_company(academy_id, label="Academy")
        if not academy.is_academy:
            raise ValidationError("Company is not an academy", details={"academy_id": academy_id})

        try:
            students = await self.store.list_academy_students(academy_id, CASCADE_STUDENT_STATUSES)
        except AccessLayerException as e:
            self.logger.error("Error fetching academy students", academy_id=academy_id, error=e.message)
            raise ServiceError("Failed to fetch academy students", details={"academy_id": academy_id})

        target = resolve_tier(PrincipalKind.TALENT, enable_premium)
        action = "enabled" if enable_premium else "disabled"
        reason = f'Academy "{academy.name}" {action} premium for students'

        result = CascadeResult()
        with self._timed("academy_toggle"):
            for student in students:
                await self._process(
                    "academy_toggle", student.student_email, result,
                    self._set_student(student.student_email, target, changed_by, reason),
                )

        try:
            await self.store.set_students_premium(academy_id, enable_premium)
        except AccessLayerException as e:
            self.logger.error("Error updating academy premium flag", academy_id=academy_id, error=e.message)

        self._log_summary("academy_toggle", result, academy_id=academy_id, enable_premium=enable_premium)
        return AcademyToggleResult(
            academy_id=academy_id,
            enable_premium=enable_premium,
            total_students=len(students),
            students=result,
        )

    async def sync_member_tier(self, company_id: str, user_id: str,
                               changed_by: Optional[str]) -> CascadeResult:
        """Apply the company's current tier to one newly accepted member."""
        company = await self._load_company(company_id)

        membership = await self.store.get_membership(company_id, user_id)
        if membership is None:
            raise NotFoundError("Membership not found",
                                details={"company_id": company_id, "user_id": user_id})
        if membership.status != MembershipStatus.ACCEPTED:
            raise ValidationError("Membership is not accepted",
                                  details={"company_id": company_id, "user_id": user_id,
                                           "status": membership.status.value})

        target = resolve_tier(PrincipalKind.BUSINESS, company.is_premium, company.is_academy)

        reason = f"Membership accepted in {company.name}"
        result = CascadeResult()
        await self._process(
            "membership_sync", user_id, result,
            self._set_business_member(user_id, target, changed_by, reason),
        )
        self._log_summary("membership_sync", result, company_id=company_id)
        return result

    async def upgrade_enrolled_student(self, academy_id: str, user_id: str) -> StudentUpgradeResult:
        """Upgrade a freemium talent enrolled in an academy.

        System-triggered, so the audit entry carries no acting user.
        """
        academy = await self._load_company(academy_id, label="Academy")
        if not academy.is_academy:
            return StudentUpgradeResult(upgraded=False, message="Company is not an academy")

        email = await self.store.get_user_email(user_id)
        if not email:
            raise NotFoundError("User not found", details={"user_id": user_id})

        enrollment = await self.store.find_student(academy_id, email)
        if enrollment is None:
            return StudentUpgradeResult(upgraded=False,
                                        message="User is not enrolled in this academy",
                                        academy_name=academy.name)

        current = await self.store.get_role(user_id)
        if current != RoleTier.FREEMIUM_TALENT.value:
            self.logger.info("No upgrade needed", user_id=user_id, current_role=current)
            return StudentUpgradeResult(upgraded=False,
                                        message="User already has a premium or different role",
                                        current_role=current,
                                        academy_name=academy.name)

        try:
            await self.store.set_role(user_id, RoleTier.PREMIUM_TALENT.value)
        except AccessLayerException as e:
            self.logger.error("Error upgrading student role", user_id=user_id, error=e.message)
            raise ServiceError("Failed to update role", details={"user_id": user_id})

        await self._audit(AuditEntry(
            user_id=user_id,
            old_role=current,
            new_role=RoleTier.PREMIUM_TALENT.value,
            changed_by=None,
            reason=f'Auto-upgrade: student enrolled in academy "{academy.name}"',
        ))
        self._count("student_upgrade", "succeeded")
        self.logger.info("Student upgraded", user_id=user_id, academy_id=academy_id)
        return StudentUpgradeResult(upgraded=True,
                                    message=f"User upgraded to {RoleTier.PREMIUM_TALENT.value}",
                                    current_role=RoleTier.PREMIUM_TALENT.value,
                                    academy_name=academy.name)

    async def apply_bulk_role_change(self, user_ids: Sequence[str], new_role: RoleTier,
                                     changed_by: Optional[str]) -> CascadeResult:
        """Assign a tier directly to an explicit list of users."""
        if not user_ids:
            raise ValidationError("At least one user id is required")

        result = CascadeResult()
        with self._timed("bulk_role_change"):
            for user_id in user_ids:
                await self._process(
                    "bulk_role_change", user_id, result,
                    self._set_direct(user_id, new_role, changed_by),
                )

        self._log_summary("bulk_role_change", result, new_role=new_role.value)
        return result

    # Per-member steps. Each returns an outcome or raises; _process turns
    # exceptions into failures.

    async def _set_business_member(self, user_id: str, target: RoleTier,
                                   changed_by: Optional[str], reason: str) -> _MemberOutcome:
        current = await self.store.get_role(user_id) or RoleTier.FREEMIUM_BUSINESS.value
        if is_admin_tier(current):
            return _MemberOutcome(changed=False, old_role=current, details={"skip": "admin"})
        if current == target.value:
            return _MemberOutcome(changed=False, old_role=current, details={"skip": "unchanged"})

        await self._change_role(user_id, current, target.value, changed_by, reason)
        return _MemberOutcome(changed=True, old_role=current)

    async def _set_student(self, email: str, target: RoleTier,
                           changed_by: Optional[str], reason: str) -> _MemberOutcome:
        user_id = await self.store.find_user_id_by_email(email)
        if not user_id:
            return _MemberOutcome(changed=False, details={"skip": "no_user"})

        current = await self.store.get_role(user_id)
        if is_admin_tier(current):
            return _MemberOutcome(changed=False, old_role=current, details={"skip": "admin"})
        if current == target.value:
            return _MemberOutcome(changed=False, old_role=current, details={"skip": "unchanged"})
        if current and not is_talent_tier(current):
            return _MemberOutcome(changed=False, old_role=current, details={"skip": "not_talent"})

        await self._change_role(user_id, current, target.value, changed_by, reason)
        return _MemberOutcome(changed=True, old_role=current)

    async def _set_direct(self, user_id: str, new_role: RoleTier,
                          changed_by: Optional[str]) -> _MemberOutcome:
        current = await self.store.get_role(user_id)
        if current == new_role.value:
            return _MemberOutcome(changed=False, old_role=current, details={"skip": "unchanged"})

        await self._change_role(user_id, current, new_role.value, changed_by, BULK_CHANGE_REASON)
        return _MemberOutcome(changed=True, old_role=current)

    async def _change_role(self, user_id: str, old_role: Optional[str], new_role: str,
                           changed_by: Optional[str], reason: str):
        await self.store.set_role(user_id, new_role)
        await self._audit(AuditEntry(
            user_id=user_id,
            old_role=old_role,
            new_role=new_role,
            changed_by=changed_by,
            reason=reason,
        ))
        self.logger.info("Role changed", user_id=user_id, old_role=old_role, new_role=new_role)

    async def _audit(self, entry: AuditEntry):
        # The role write already happened; a lost audit row is logged, not retried.
        try:
            await self.store.append(entry)
        except AccessLayerException as e:
            self.logger.error("Error recording role change audit", **entry.to_record(), error=e.message)

    async def _process(self, operation: str, member_key: str, result: CascadeResult, step):
        try:
            outcome = await step
        except Exception as e:
            message = e.message if isinstance(e, AccessLayerException) else str(e)
            self.logger.error("Error processing member", operation=operation, member=member_key, error=message)
            result.failed.append(member_key)
            result.errors.append(f"{member_key}: {message}")
            self._count(operation, "failed")
            return

        if outcome.changed:
            result.succeeded.append(member_key)
            self._count(operation, "succeeded")
        else:
            self.logger.debug("Member skipped", operation=operation, member=member_key,
                              current_role=outcome.old_role, **outcome.details)
            result.skipped.append(member_key)
            self._count(operation, "skipped")

    async def _load_company(self, company_id: str, label: str = "Company") -> Company:
        company = await self.store.get_company(company_id)
        if company is None:
            raise NotFoundError(f"{label} not found", details={"company_id": company_id})
        return company

    def _timed(self, operation: str):
        if self.metrics is None:
            return _NullTimer()
        return self.metrics.time_operation("cascade_duration_seconds", operation=operation)

    def _count(self, operation: str, outcome: str):
        if self.metrics is not None:
            self.metrics.increment_counter("cascade_members_total", operation=operation, outcome=outcome)

    def _log_summary(self, operation: str, result: CascadeResult, **context):
        self.logger.info("Cascade complete",
                         operation=operation,
                         succeeded=result.succeeded_count,
                         failed=result.failed_count,
                         skipped=result.skipped_count,
                         **context)
        add_span_event("cascade_complete",
                       operation=operation,
                       succeeded=result.succeeded_count,
                       failed=result.failed_count,
                       skipped=result.skipped_count)


class _NullTimer:
    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False
