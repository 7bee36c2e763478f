"""
Navigation routing driven by role tier and profile state.

Everything here except ``RedirectScheduler`` is pure: callers pass the session
facts explicitly and get a route or a decision back. The scheduler is the thin
effectful layer that debounces and performs the redirect.
"""

import asyncio
from typing import Awaitable, Callable, FrozenSet, Iterable, Optional, Union
from dataclasses import dataclass
from enum import Enum

from shared.logging import get_logger
from ..tiers.models import RoleTier
from ..tiers.resolver import is_business_tier, is_talent_tier
from .state_machine import ProfileState

AUTH_ROUTE = "/auth"
ROOT_ROUTE = "/"
EMAIL_VERIFICATION_ROUTE = "/email-verification"
ONBOARDING_ROUTE = "/onboarding"
TALENT_DASHBOARD_ROUTE = "/talent-dashboard"
BUSINESS_DASHBOARD_ROUTE = "/business-dashboard"

# Paths the user must never be pulled away from
PROTECTED_PATH_MARKERS = ("/settings", "/opportunities")

RECOVERY_QUERY_MARKERS = ("reset=true",)
RECOVERY_FRAGMENT_MARKERS = ("type=recovery", "error=", "error_code=")

logger = get_logger("entitlements.navigation")


class NavigationFlowState(str, Enum):
    """Step of the registration to dashboard journey, inferred from the path."""
    REGISTRATION = "registration"
    EMAIL_VERIFICATION = "email-verification"
    WELCOME = "welcome"
    ONBOARDING = "onboarding"
    DASHBOARD = "dashboard"


_FLOW_PATH_MARKERS = (
    (("/register", "/user-selector"), NavigationFlowState.REGISTRATION),
    (("/email-verification",), NavigationFlowState.EMAIL_VERIFICATION),
    (("/welcome",), NavigationFlowState.WELCOME),
    (("/onboarding",), NavigationFlowState.ONBOARDING),
    ((TALENT_DASHBOARD_ROUTE, BUSINESS_DASHBOARD_ROUTE), NavigationFlowState.DASHBOARD),
)


def infer_flow_state(path: str) -> Optional[NavigationFlowState]:
    for markers, state in _FLOW_PATH_MARKERS:
        if any(marker in path for marker in markers):
            return state
    return None


def next_navigation_step(current: NavigationFlowState, email_confirmed: bool,
                         profile_state: ProfileState) -> NavigationFlowState:
    """Step that follows ``current`` for a user with the given facts."""
    if current in (NavigationFlowState.REGISTRATION, NavigationFlowState.EMAIL_VERIFICATION):
        return NavigationFlowState.WELCOME if email_confirmed else NavigationFlowState.EMAIL_VERIFICATION
    if current == NavigationFlowState.WELCOME:
        if profile_state == ProfileState.NEW:
            return NavigationFlowState.ONBOARDING
        return NavigationFlowState.DASHBOARD
    if current == NavigationFlowState.ONBOARDING:
        if profile_state >= ProfileState.ESTABLISHED:
            return NavigationFlowState.DASHBOARD
        return NavigationFlowState.ONBOARDING
    return NavigationFlowState.DASHBOARD


@dataclass(frozen=True)
class SessionFacts:
    """Explicit session input to the router. ``role`` is None when signed out."""
    role: Optional[str]
    email_confirmed: bool
    current_path: str
    query: str = ""
    fragment: str = ""

    @property
    def authenticated(self) -> bool:
        return self.role is not None


def compute_canonical_route(role: Union[RoleTier, str, None], email_confirmed: bool,
                            profile_state: ProfileState, current_path: str = ROOT_ROUTE) -> str:
    """Route the principal belongs on. ``current_path`` does not affect the result."""
    if not role:
        return AUTH_ROUTE
    if is_business_tier(role):
        return BUSINESS_DASHBOARD_ROUTE
    if is_talent_tier(role):
        if not email_confirmed:
            return EMAIL_VERIFICATION_ROUTE
        if profile_state == ProfileState.NEW:
            return ONBOARDING_ROUTE
        return TALENT_DASHBOARD_ROUTE
    return ROOT_ROUTE


class RedirectGuard(str, Enum):
    """Named exceptions that suppress an automatic redirect."""
    RECOVERY_FLOW = "recovery_flow"
    PROTECTED_PATH = "protected_path"
    ALREADY_CANONICAL = "already_canonical"


def is_recovery_flow(query: str, fragment: str) -> bool:
    return (any(marker in query for marker in RECOVERY_QUERY_MARKERS)
            or any(marker in fragment for marker in RECOVERY_FRAGMENT_MARKERS))


def is_protected_path(path: str) -> bool:
    return any(marker in path for marker in PROTECTED_PATH_MARKERS)


def matching_guards(session: SessionFacts, canonical_route: str) -> FrozenSet[RedirectGuard]:
    """Guards that fire for this session and target."""
    guards = set()
    if is_recovery_flow(session.query, session.fragment):
        guards.add(RedirectGuard.RECOVERY_FLOW)
    if is_protected_path(session.current_path):
        guards.add(RedirectGuard.PROTECTED_PATH)
    if session.current_path == canonical_route:
        guards.add(RedirectGuard.ALREADY_CANONICAL)
    return frozenset(guards)


def _needs_onboarding(profile_state: ProfileState) -> bool:
    return profile_state < ProfileState.ESTABLISHED


def should_auto_redirect(current_path: str, canonical_route: str,
                         guards: Iterable[RedirectGuard],
                         role: Optional[str] = None,
                         profile_state: ProfileState = ProfileState.NEW) -> bool:
    """Decide whether the shell should move the user to ``canonical_route``.

    Any matched guard wins. Otherwise a redirect only fires from the landing
    and auth pages, from registration once signed in, and away from onboarding
    when the profile no longer needs it or the user is a business.
    """
    if any(guards):
        return False
    if current_path == canonical_route:
        return False

    if current_path == ROOT_ROUTE and canonical_route != ROOT_ROUTE:
        return True
    if current_path == AUTH_ROUTE and canonical_route != AUTH_ROUTE:
        return True
    if "/register" in current_path and role is not None:
        return True
    if ONBOARDING_ROUTE in current_path:
        if not _needs_onboarding(profile_state):
            return True
        if role is not None and is_business_tier(role):
            return True
    return False


def decide_redirect(session: SessionFacts, profile_state: ProfileState) -> Optional[str]:
    """Target route for an automatic redirect, or None to stay put."""
    if not session.authenticated:
        return None

    canonical = compute_canonical_route(session.role, session.email_confirmed,
                                        profile_state, session.current_path)
    guards = matching_guards(session, canonical)
    if should_auto_redirect(session.current_path, canonical, guards,
                            role=session.role, profile_state=profile_state):
        return canonical

    if guards:
        logger.debug("Redirect suppressed",
                     current_path=session.current_path,
                     canonical_route=canonical,
                     guards=sorted(g.value for g in guards))
    return None


Navigate = Callable[[str], Awaitable[None]]


class RedirectScheduler:
    """Debounced, non-reentrant redirect executor.

    ``request`` evaluates the decision and, when a redirect is due and none is
    pending, schedules ``navigate`` after the debounce delay.
    """

    def __init__(self, navigate: Navigate, debounce_ms: int = 300):
        self.navigate = navigate
        self.debounce_seconds = debounce_ms / 1000.0
        self.transitioning = False
        self._task: Optional[asyncio.Task] = None
        self.logger = get_logger("entitlements.navigation.scheduler")

    @classmethod
    def from_config(cls, navigate: Navigate, config) -> "RedirectScheduler":
        return cls(navigate, debounce_ms=config.redirect_debounce_ms)

    async def request(self, session: SessionFacts, profile_state: ProfileState) -> Optional[str]:
        """Schedule a redirect if one is due. Returns the scheduled target."""
        if self.transitioning:
            return None

        target = decide_redirect(session, profile_state)
        if target is None:
            return None

        self.transitioning = True
        self.logger.info("Auto-redirect scheduled", current_path=session.current_path, target=target)
        self._task = asyncio.create_task(self._run(target))
        return target

    async def _run(self, target: str):
        try:
            await asyncio.sleep(self.debounce_seconds)
            await self.navigate(target)
        except Exception as e:
            self.logger.error("Auto-redirect failed", target=target, error=str(e))
        finally:
            self.transitioning = False

    async def wait(self):
        """Wait for the pending redirect, if any."""
        if self._task is not None:
            await self._task

    def cancel(self):
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self.transitioning = False
