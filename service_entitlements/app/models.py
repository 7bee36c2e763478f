"""
Request and response models for the Entitlements Service API.

Field names are snake_case in Python and camelCase on the wire.
"""

from typing import Optional, List

from pydantic import BaseModel, ConfigDict, Field, StrictBool
from pydantic.alias_generators import to_camel

from .tiers.models import SubscriptionTier, RoleTier
from .quota.ledger import QuotaPrincipalKind, LimitTier
from .profile.state_machine import ProfileState


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Cascades

class ChangeSubscriptionRequest(ApiModel):
    company_id: str = Field(..., min_length=1, description="Company ID")
    new_subscription: SubscriptionTier = Field(..., description="freemium or premium")


class CompanySummaryResponse(ApiModel):
    id: str
    name: str
    old_status: str
    new_status: str
    new_member_role: RoleTier


class ChangeSubscriptionResponse(ApiModel):
    success: bool = True
    company: CompanySummaryResponse
    members_updated: int
    members_failed: int
    members_skipped: int
    errors: Optional[List[str]] = None


class AcademyPremiumRequest(ApiModel):
    academy_id: str = Field(..., min_length=1, description="Academy company ID")
    enable_premium: StrictBool = Field(..., description="Grant or revoke premium for students")


class AcademyPremiumResponse(ApiModel):
    success: bool = True
    students_updated: int
    students_skipped: int
    students_failed: int
    total_students: int
    enable_premium: bool
    errors: Optional[List[str]] = None


class StudentUpgradeRequest(ApiModel):
    user_id: str = Field(..., min_length=1)
    academy_id: str = Field(..., min_length=1)


class StudentUpgradeResponse(ApiModel):
    success: bool = True
    upgraded: bool
    message: str
    current_role: Optional[str] = None
    academy_name: Optional[str] = None


class SyncMemberTierRequest(ApiModel):
    company_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)


class SyncMemberTierResponse(ApiModel):
    success: bool = True
    user_id: str
    updated: bool
    new_role: Optional[RoleTier] = None


class BulkRoleChangeRequest(ApiModel):
    user_ids: List[str] = Field(..., min_length=1, description="Users to update")
    new_role: RoleTier


class FailedUser(ApiModel):
    user_id: str
    error: str


class BulkRoleChangeResponse(ApiModel):
    message: str
    succeeded: List[str]
    skipped: List[str]
    failed: List[FailedUser]


# Quotas

class ApplicationLimitResponse(ApiModel):
    limit: int
    current: int
    remaining: int
    can_apply: bool


class SetApplicationLimitRequest(ApiModel):
    principal: QuotaPrincipalKind
    tier: LimitTier
    limit: int = Field(..., ge=0, description="Monthly limit, 0 for unlimited")


class SetApplicationLimitResponse(ApiModel):
    success: bool = True
    key: str
    limit: int


# Profile and navigation

class ProfileStateRequest(ApiModel):
    completeness: float = Field(..., ge=0, le=100, description="Profile completeness percentage")
    has_strong_portfolio: Optional[bool] = None
    has_experience: Optional[bool] = None
    has_education: Optional[bool] = None
    social_link_count: Optional[int] = Field(None, ge=0)

    @property
    def has_signals(self) -> bool:
        return any(v is not None for v in (
            self.has_strong_portfolio, self.has_experience, self.has_education, self.social_link_count,
        ))


class ProfileStateInfoResponse(ApiModel):
    state: ProfileState
    label: str
    description: str
    completion_range: List[int]
    next_steps: List[str]
    benefits: List[str]


class DisclosureResponse(ApiModel):
    state: ProfileState
    features: List[str]
    show_advanced_settings: bool
    show_portfolio_section: bool
    show_networking_features: bool
    show_premium_options: bool
    recommended_actions: List[str]


class ProfileStateResponse(ApiModel):
    state: ProfileState
    info: ProfileStateInfoResponse
    disclosure: DisclosureResponse


class NavigationResolveRequest(ApiModel):
    role: Optional[str] = None
    email_confirmed: bool = False
    current_path: str = Field("/", min_length=1)
    query: str = ""
    fragment: str = ""
    profile_state: Optional[ProfileState] = None
    completeness: Optional[float] = Field(None, ge=0, le=100)


class NavigationResolveResponse(ApiModel):
    canonical_route: str
    redirect_to: Optional[str] = None
    guards: List[str]
    profile_state: ProfileState
    flow_state: Optional[str] = None
    next_step: Optional[str] = None
