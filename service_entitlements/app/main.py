"""
Entitlements service for the talent marketplace.

Exposes tier cascades, monthly quota checks, and the profile state and
navigation decisions consumed by the UI shell.
"""

from typing import Optional, Dict
from dataclasses import asdict

from fastapi import Header, Query
from shared.base_service import BaseService
from shared.errors import AuthorizationError, ServiceError
from shared.observability import get_observability_manager

from .cascade.engine import CascadeEngine
from .quota.ledger import QuotaLedger
from .profile.state_machine import (
    ProfileThresholds, derive_profile_state, derive_disclosure, signals_from_completeness,
    build_state_info,
)
from .profile.navigation import (
    SessionFacts, compute_canonical_route, matching_guards, decide_redirect,
    infer_flow_state, next_navigation_step,
)
from .persistence.ports import EntitlementsStore
from .persistence.postgres import PostgreSQLPersistence
from .cache.redis_cache import LimitCache
from .auth.client import AuthClient
from .auth.guards import RequestAuthenticator
from .models import (
    ChangeSubscriptionRequest, ChangeSubscriptionResponse, CompanySummaryResponse,
    AcademyPremiumRequest, AcademyPremiumResponse,
    StudentUpgradeRequest, StudentUpgradeResponse,
    SyncMemberTierRequest, SyncMemberTierResponse,
    BulkRoleChangeRequest, BulkRoleChangeResponse, FailedUser,
    ApplicationLimitResponse, SetApplicationLimitRequest, SetApplicationLimitResponse,
    ProfileStateRequest, ProfileStateResponse, ProfileStateInfoResponse, DisclosureResponse,
    NavigationResolveRequest, NavigationResolveResponse,
)


class EntitlementsService(BaseService):
    """Entitlements service implementation."""

    def __init__(self, persistence: Optional[EntitlementsStore] = None,
                 cache: Optional[LimitCache] = None,
                 auth_client: Optional[AuthClient] = None):
        super().__init__("entitlements", 8011)

        self.observability = get_observability_manager(
            "entitlements",
            log_level=self.config.log_level
        )

        self.persistence = persistence or PostgreSQLPersistence(self.config.postgres_dsn)
        # Injected persistence runs without the default Redis cache
        if cache is None and persistence is None and self.config.enable_limit_cache:
            cache = LimitCache(self.config.redis_url, self.config.limit_cache_ttl_seconds)
        self.cache = cache
        self.auth_client = auth_client or AuthClient(self.config.auth_service_url,
                                                     timeout=self.config.auth_timeout_seconds)

        self.thresholds = ProfileThresholds.from_config(self.config)
        self.state_info = build_state_info(self.thresholds)

        self.cascade = CascadeEngine(self.persistence, metrics=self.metrics)
        self.quota = QuotaLedger(self.persistence, cache=self.cache, metrics=self.metrics)
        self.authenticator = RequestAuthenticator(self.auth_client, self.persistence)

        self._setup_entitlements_routes()

    def _setup_entitlements_routes(self):
        """Set up entitlements-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "entitlements",
                "message": "Marketplace - Entitlements Service",
                "version": "1.0.0",
                "capabilities": ["tier_cascade", "quota_ledger", "profile_state", "navigation"]
            }

        @self.app.post("/change-company-subscription", response_model=ChangeSubscriptionResponse)
        async def change_company_subscription(request: ChangeSubscriptionRequest,
                                              authorization: Optional[str] = Header(None)):
            """Change a company's subscription and cascade the tier to its members."""
            caller = await self.authenticator.require_admin(authorization)
            self.observability.trace_request(user_id=caller.user_id, company_id=request.company_id)

            result = await self.cascade.apply_subscription_change(
                request.company_id, request.new_subscription, caller.user_id
            )
            members = result.members

            self.observability.log_business_event(
                "company_subscription_changed",
                company_id=request.company_id,
                new_status=result.company.new_status,
                members_updated=members.succeeded_count,
                members_failed=members.failed_count,
                members_skipped=members.skipped_count
            )
            if members.failed:
                self.observability.log_error(
                    "member_cascade_incomplete",
                    f"{members.failed_count} member role updates failed",
                    company_id=request.company_id,
                    failed=members.failed
                )

            return ChangeSubscriptionResponse(
                company=CompanySummaryResponse(
                    id=result.company.company_id,
                    name=result.company.name,
                    old_status=result.company.old_status,
                    new_status=result.company.new_status,
                    new_member_role=result.company.new_member_role,
                ),
                members_updated=members.succeeded_count,
                members_failed=members.failed_count,
                members_skipped=members.skipped_count,
                errors=members.errors or None,
            )

        @self.app.post("/bulk-update-academy-students", response_model=AcademyPremiumResponse)
        async def bulk_update_academy_students(request: AcademyPremiumRequest,
                                               authorization: Optional[str] = Header(None)):
            """Grant or revoke premium for every student of an academy."""
            caller = await self.authenticator.require_admin(authorization)
            self.observability.trace_request(user_id=caller.user_id, company_id=request.academy_id)

            result = await self.cascade.apply_academy_student_premium_toggle(
                request.academy_id, request.enable_premium, caller.user_id
            )
            students = result.students

            self.observability.log_business_event(
                "academy_students_premium_updated",
                academy_id=request.academy_id,
                enable_premium=request.enable_premium,
                students_updated=students.succeeded_count,
                students_failed=students.failed_count
            )

            return AcademyPremiumResponse(
                students_updated=students.succeeded_count,
                students_skipped=students.skipped_count,
                students_failed=students.failed_count,
                total_students=result.total_students,
                enable_premium=result.enable_premium,
                errors=students.errors or None,
            )

        @self.app.post("/upgrade-academy-student-role", response_model=StudentUpgradeResponse)
        async def upgrade_academy_student_role(request: StudentUpgradeRequest,
                                               authorization: Optional[str] = Header(None)):
            """Upgrade a freemium talent after enrolling in an academy."""
            caller = await self.authenticator.authenticate(authorization)
            if caller.user_id != request.user_id and not caller.is_admin:
                raise AuthorizationError("Students can only upgrade their own role")

            result = await self.cascade.upgrade_enrolled_student(request.academy_id, request.user_id)
            if result.upgraded:
                self.observability.log_business_event(
                    "academy_student_upgraded",
                    user_id=request.user_id,
                    academy_id=request.academy_id
                )

            return StudentUpgradeResponse(
                upgraded=result.upgraded,
                message=result.message,
                current_role=result.current_role,
                academy_name=result.academy_name,
            )

        @self.app.post("/memberships/sync-tier", response_model=SyncMemberTierResponse)
        async def sync_member_tier(request: SyncMemberTierRequest,
                                   authorization: Optional[str] = Header(None)):
            """Apply the company's tier to a newly accepted member."""
            caller = await self.authenticator.require_company_manager(authorization, request.company_id)

            result = await self.cascade.sync_member_tier(request.company_id, request.user_id, caller.user_id)
            if result.failed:
                self.observability.log_error(
                    "membership_sync_failed",
                    "; ".join(result.errors),
                    user_id=request.user_id,
                    company_id=request.company_id
                )
                raise ServiceError("Failed to update member role",
                                   details={"user_id": request.user_id, "errors": result.errors})

            updated = bool(result.succeeded)
            new_role = await self.persistence.get_role(request.user_id) if updated else None
            return SyncMemberTierResponse(user_id=request.user_id, updated=updated, new_role=new_role)

        @self.app.post("/admin/bulk-change-roles", response_model=BulkRoleChangeResponse)
        async def bulk_change_roles(request: BulkRoleChangeRequest,
                                    authorization: Optional[str] = Header(None)):
            """Assign a role tier directly to a list of users."""
            caller = await self.authenticator.require_admin(authorization)

            result = await self.cascade.apply_bulk_role_change(request.user_ids, request.new_role, caller.user_id)

            self.observability.log_business_event(
                "bulk_role_change",
                new_role=request.new_role.value,
                succeeded=result.succeeded_count,
                failed=result.failed_count
            )

            errors_by_user: Dict[str, str] = {}
            for error in result.errors:
                user_id, _, message = error.partition(": ")
                errors_by_user[user_id] = message

            return BulkRoleChangeResponse(
                message=f"Roles updated: {result.succeeded_count} succeeded, "
                        f"{result.failed_count} failed, {result.skipped_count} unchanged",
                succeeded=result.succeeded,
                skipped=result.skipped,
                failed=[FailedUser(user_id=u, error=errors_by_user.get(u, "")) for u in result.failed],
            )

        @self.app.get("/application-limits/talent/{user_id}", response_model=ApplicationLimitResponse)
        async def talent_application_limit(user_id: str,
                                           role: Optional[str] = Query(None, description="Caller's role tier"),
                                           authorization: Optional[str] = Header(None)):
            """Monthly application quota for a talent."""
            await self.authenticator.authenticate(authorization)
            limit = await self.quota.check_talent_application_limit(user_id, role)
            return ApplicationLimitResponse(**asdict(limit))

        @self.app.get("/application-limits/company/{company_id}", response_model=ApplicationLimitResponse)
        async def company_application_limit(company_id: str,
                                            role: Optional[str] = Query(None, description="Owner's role tier"),
                                            authorization: Optional[str] = Header(None)):
            """Monthly received-applications quota for a company."""
            await self.authenticator.authenticate(authorization)
            limit = await self.quota.check_company_application_limit(company_id, role)
            return ApplicationLimitResponse(**asdict(limit))

        @self.app.put("/admin/settings/application-limits", response_model=SetApplicationLimitResponse)
        async def set_application_limit(request: SetApplicationLimitRequest,
                                        authorization: Optional[str] = Header(None)):
            """Set a monthly application limit."""
            caller = await self.authenticator.require_admin(authorization)
            key = await self.quota.set_limit(request.principal, request.tier, request.limit)

            self.observability.log_business_event(
                "application_limit_updated",
                key=key,
                limit=request.limit,
                changed_by=caller.user_id
            )
            return SetApplicationLimitResponse(key=key, limit=request.limit)

        @self.app.post("/profile/state", response_model=ProfileStateResponse)
        async def profile_state(request: ProfileStateRequest):
            """Derive profile state, disclosure and display info."""
            if request.has_signals:
                state = derive_profile_state(
                    request.completeness,
                    has_strong_portfolio=bool(request.has_strong_portfolio),
                    has_experience=bool(request.has_experience),
                    has_education=bool(request.has_education),
                    social_link_count=request.social_link_count or 0,
                    thresholds=self.thresholds,
                )
            else:
                signals = signals_from_completeness(request.completeness)
                state = derive_profile_state(
                    request.completeness,
                    has_strong_portfolio=signals.has_strong_portfolio,
                    has_experience=signals.has_experience,
                    has_education=signals.has_education,
                    social_link_count=signals.social_link_count,
                    thresholds=self.thresholds,
                )

            return ProfileStateResponse(
                state=state,
                info=ProfileStateInfoResponse(**self.state_info[state].to_dict()),
                disclosure=DisclosureResponse(**derive_disclosure(state).to_dict()),
            )

        @self.app.post("/navigation/resolve", response_model=NavigationResolveResponse)
        async def navigation_resolve(request: NavigationResolveRequest):
            """Canonical route and auto-redirect decision for a session."""
            state = request.profile_state
            if state is None:
                completeness = request.completeness or 0
                signals = signals_from_completeness(completeness)
                state = derive_profile_state(
                    completeness,
                    has_strong_portfolio=signals.has_strong_portfolio,
                    has_experience=signals.has_experience,
                    has_education=signals.has_education,
                    social_link_count=signals.social_link_count,
                    thresholds=self.thresholds,
                )

            session = SessionFacts(
                role=request.role,
                email_confirmed=request.email_confirmed,
                current_path=request.current_path,
                query=request.query,
                fragment=request.fragment,
            )
            canonical = compute_canonical_route(session.role, session.email_confirmed, state, session.current_path)
            flow_state = infer_flow_state(session.current_path)
            next_step = next_navigation_step(flow_state, session.email_confirmed, state) if flow_state else None

            return NavigationResolveResponse(
                canonical_route=canonical,
                redirect_to=decide_redirect(session, state),
                guards=sorted(g.value for g in matching_guards(session, canonical)),
                profile_state=state,
                flow_state=flow_state.value if flow_state else None,
                next_step=next_step.value if next_step else None,
            )

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check entitlements service dependencies."""
        dependencies = {}

        try:
            dependencies["postgres"] = "ok" if await self.persistence.health_check() else "error"
        except Exception:
            dependencies["postgres"] = "error"

        if self.cache is not None:
            try:
                dependencies["redis"] = "ok" if await self.cache.health_check() else "error"
            except Exception:
                dependencies["redis"] = "error"

        return dependencies

    async def start(self):
        """Start entitlements service components."""
        await self.persistence.start()

        if self.cache is not None:
            try:
                await self.cache.start()
            except Exception as e:
                # Quota checks read settings directly when the cache is down
                self.logger.warning("Limit cache unavailable, continuing without it", error=str(e))
                self.cache = None
                self.quota.cache = None

        self.logger.info("Entitlements service started",
                         limit_cache=self.cache is not None,
                         profile_thresholds=asdict(self.thresholds))

    async def stop(self):
        """Stop entitlements service components."""
        await self.persistence.stop()
        if self.cache is not None:
            await self.cache.stop()

        self.logger.info("Entitlements service stopped")


def create_app():
    """Create entitlements service application."""
    service = EntitlementsService()
    return service.app


if __name__ == "__main__":
    service = EntitlementsService()
    service.run()
