"""
Profile state machine and progressive disclosure.

A talent profile moves through four ordered states as it fills in. Each state
unlocks a feature set; feature sets only grow along the order, so a profile
never loses a feature by progressing.
"""

from typing import FrozenSet, List, Optional, Tuple
from dataclasses import dataclass, field
from enum import Enum


class ProfileState(str, Enum):
    """Ordered profile completion states."""
    NEW = "new"
    IN_PROGRESS = "in-progress"
    ESTABLISHED = "established"
    COMPLETE = "complete"

    @property
    def rank(self) -> int:
        return _STATE_ORDER.index(self)

    # str comparison would order by value; compare by rank instead
    def __lt__(self, other):
        if not isinstance(other, ProfileState):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, ProfileState):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, ProfileState):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, ProfileState):
            return NotImplemented
        return self.rank >= other.rank


_STATE_ORDER = (ProfileState.NEW, ProfileState.IN_PROGRESS, ProfileState.ESTABLISHED, ProfileState.COMPLETE)


@dataclass(frozen=True)
class ProfileThresholds:
    """Completeness percentages at which each state starts."""
    in_progress: int = 20
    established: int = 60
    complete: int = 80
    complete_min_social_links: int = 2

    def __post_init__(self):
        if not 0 <= self.in_progress <= self.established <= self.complete <= 100:
            raise ValueError("profile thresholds must satisfy 0 <= in_progress <= established <= complete <= 100")
        if self.complete_min_social_links < 0:
            raise ValueError("complete_min_social_links must not be negative")

    @classmethod
    def from_config(cls, config) -> "ProfileThresholds":
        return cls(
            in_progress=config.profile_in_progress_threshold,
            established=config.profile_established_threshold,
            complete=config.profile_complete_threshold,
            complete_min_social_links=config.profile_complete_min_social_links,
        )


DEFAULT_THRESHOLDS = ProfileThresholds()


@dataclass(frozen=True)
class ProfileSignals:
    """Inputs to the state derivation besides the completeness percentage."""
    has_strong_portfolio: bool = False
    has_experience: bool = False
    has_education: bool = False
    social_link_count: int = 0


def signals_from_completeness(completeness_pct: float) -> ProfileSignals:
    """Approximate signals for callers that only know the completeness percentage."""
    return ProfileSignals(
        has_strong_portfolio=completeness_pct > 50,
        has_experience=completeness_pct > 40,
        has_education=completeness_pct > 30,
        social_link_count=1,
    )


def derive_profile_state(completeness_pct: float,
                         has_strong_portfolio: bool = False,
                         has_experience: bool = False,
                         has_education: bool = False,
                         social_link_count: int = 0,
                         thresholds: ProfileThresholds = DEFAULT_THRESHOLDS) -> ProfileState:
    """Derive the profile state from completeness and content signals."""
    pct = max(0.0, min(100.0, float(completeness_pct)))

    if (pct >= thresholds.complete
            and has_strong_portfolio
            and (has_experience or has_education)
            and social_link_count >= thresholds.complete_min_social_links):
        return ProfileState.COMPLETE
    if pct >= thresholds.established:
        return ProfileState.ESTABLISHED
    if pct >= thresholds.in_progress:
        return ProfileState.IN_PROGRESS
    return ProfileState.NEW


class Feature(str, Enum):
    GUIDED_SETUP = "guided_setup"
    PROFILE_TEMPLATES = "profile_templates"
    BASIC_PROFILE = "basic_profile"
    OPPORTUNITY_SEARCH = "opportunity_search"
    BASIC_PORTFOLIO = "basic_portfolio"
    JOB_APPLICATIONS = "job_applications"
    ADVANCED_PORTFOLIO = "advanced_portfolio"
    PROFESSIONAL_NETWORKING = "professional_networking"
    SEARCH_PRIORITY = "search_priority"
    VERIFIED_PROFILE = "verified_profile"
    PREMIUM_PORTFOLIO = "premium_portfolio"
    EXCLUSIVE_OPPORTUNITIES = "exclusive_opportunities"
    FEATURED_PROFILE = "featured_profile"
    PRIORITY_SUPPORT = "priority_support"


# Features first unlocked at each state
_UNLOCKED_AT = {
    ProfileState.NEW: (
        Feature.GUIDED_SETUP, Feature.PROFILE_TEMPLATES,
        Feature.BASIC_PROFILE, Feature.OPPORTUNITY_SEARCH,
    ),
    ProfileState.IN_PROGRESS: (Feature.BASIC_PORTFOLIO, Feature.JOB_APPLICATIONS),
    ProfileState.ESTABLISHED: (
        Feature.ADVANCED_PORTFOLIO, Feature.PROFESSIONAL_NETWORKING, Feature.SEARCH_PRIORITY,
    ),
    ProfileState.COMPLETE: (
        Feature.VERIFIED_PROFILE, Feature.PREMIUM_PORTFOLIO, Feature.EXCLUSIVE_OPPORTUNITIES,
        Feature.FEATURED_PROFILE, Feature.PRIORITY_SUPPORT,
    ),
}

_RECOMMENDED_ACTIONS = {
    ProfileState.NEW: ["Complete your basic information", "Add a profile photo", "Define your specialty"],
    ProfileState.IN_PROGRESS: ["Add your skills", "Write your biography", "Connect social networks"],
    ProfileState.ESTABLISHED: ["Polish your portfolio", "Connect more social networks", "Request recommendations"],
    ProfileState.COMPLETE: ["Keep your profile up to date", "Share professional content", "Join premium projects"],
}


@dataclass(frozen=True)
class DisclosureConfig:
    state: ProfileState
    features: FrozenSet[Feature]
    show_advanced_settings: bool = False
    show_portfolio_section: bool = False
    show_networking_features: bool = False
    show_premium_options: bool = False
    recommended_actions: Tuple[str, ...] = ()

    def to_dict(self):
        return {
            "state": self.state.value,
            "features": sorted(f.value for f in self.features),
            "showAdvancedSettings": self.show_advanced_settings,
            "showPortfolioSection": self.show_portfolio_section,
            "showNetworkingFeatures": self.show_networking_features,
            "showPremiumOptions": self.show_premium_options,
            "recommendedActions": list(self.recommended_actions),
        }


def derive_disclosure(state: ProfileState) -> DisclosureConfig:
    """Feature set and UI sections unlocked at ``state``."""
    features = frozenset(
        feature
        for unlocked_state in _STATE_ORDER if unlocked_state <= state
        for feature in _UNLOCKED_AT[unlocked_state]
    )
    return DisclosureConfig(
        state=state,
        features=features,
        show_portfolio_section=state >= ProfileState.IN_PROGRESS,
        show_advanced_settings=state >= ProfileState.ESTABLISHED,
        show_networking_features=state >= ProfileState.ESTABLISHED,
        show_premium_options=state >= ProfileState.COMPLETE,
        recommended_actions=tuple(_RECOMMENDED_ACTIONS[state]),
    )


class DisclosureLevel(str, Enum):
    """Content levels a client can gate behind profile progress."""
    BASIC = "basic"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


def is_level_visible(config: DisclosureConfig, level: DisclosureLevel) -> bool:
    if level == DisclosureLevel.INTERMEDIATE:
        return config.show_portfolio_section or config.show_advanced_settings
    if level == DisclosureLevel.ADVANCED:
        return config.show_networking_features or config.show_premium_options
    return True


@dataclass(frozen=True)
class ProfileStateInfo:
    state: ProfileState
    label: str
    description: str
    completion_range: Tuple[int, int]
    next_steps: List[str] = field(default_factory=list)
    benefits: List[str] = field(default_factory=list)

    def to_dict(self):
        return {
            "state": self.state.value,
            "label": self.label,
            "description": self.description,
            "completionRange": list(self.completion_range),
            "nextSteps": list(self.next_steps),
            "benefits": list(self.benefits),
        }


def build_state_info(thresholds: Optional[ProfileThresholds] = None):
    """Display metadata per state, with completion ranges taken from ``thresholds``."""
    t = thresholds or DEFAULT_THRESHOLDS
    return {
        ProfileState.NEW: ProfileStateInfo(
            state=ProfileState.NEW,
            label="New",
            description="Just registered, needs initial setup",
            completion_range=(0, max(0, t.in_progress - 1)),
            next_steps=["Complete your basic information", "Add a profile photo",
                        "Define your professional specialty"],
            benefits=["Step-by-step guided setup", "Professional templates available",
                      "Dedicated support for new users"],
        ),
        ProfileState.IN_PROGRESS: ProfileStateInfo(
            state=ProfileState.IN_PROGRESS,
            label="In progress",
            description="Partially complete profile, keep improving",
            completion_range=(t.in_progress, max(t.in_progress, t.established - 1)),
            next_steps=["Add your key skills", "Write an engaging biography",
                        "Include your work experience"],
            benefits=["More visibility in searches", "Access to basic opportunities",
                      "Personalised recommendations"],
        ),
        ProfileState.ESTABLISHED: ProfileStateInfo(
            state=ProfileState.ESTABLISHED,
            label="Established",
            description="Profile ready to receive opportunities",
            completion_range=(t.established, max(t.established, t.complete - 1)),
            next_steps=["Add your portfolio or previous work", "Connect more social networks",
                        "Get recommendations"],
            benefits=["Full access to opportunities", "Priority in recommendations",
                      "Direct contact from companies"],
        ),
        ProfileState.COMPLETE: ProfileStateInfo(
            state=ProfileState.COMPLETE,
            label="Complete",
            description="Optimised profile with portfolio and outstanding experience",
            completion_range=(t.complete, 100),
            next_steps=["Keep your information up to date", "Share professional content",
                        "Take part in featured projects"],
            benefits=["Maximum visibility and priority", "Access to premium opportunities",
                      "Exclusive project invitations", "Verified and featured profile"],
        ),
    }


PROFILE_STATES = build_state_info()
