"""
Unit tests for tier resolution.
"""

import pytest

from service_entitlements.app.tiers import (
    PrincipalKind, RoleTier, SubscriptionTier, CompanyStatus, CascadeResult,
    resolve_tier, company_status_for, is_talent_tier, is_business_tier,
    is_premium_tier, is_admin_tier, parse_role,
)


class TestResolveTier:
    """Test cases for resolve_tier."""

    @pytest.mark.parametrize("is_premium,is_academy,expected", [
        (True, True, RoleTier.ACADEMY_PREMIUM),
        (True, False, RoleTier.PREMIUM_BUSINESS),
        (False, True, RoleTier.FREEMIUM_BUSINESS),
        (False, False, RoleTier.FREEMIUM_BUSINESS),
    ])
    def test_business(self, is_premium, is_academy, expected):
        assert resolve_tier(PrincipalKind.BUSINESS, is_premium, is_academy) == expected

    def test_talent(self):
        assert resolve_tier(PrincipalKind.TALENT, True) == RoleTier.PREMIUM_TALENT
        assert resolve_tier(PrincipalKind.TALENT, False) == RoleTier.FREEMIUM_TALENT
        # academy flag only matters for businesses
        assert resolve_tier(PrincipalKind.TALENT, True, True) == RoleTier.PREMIUM_TALENT

    def test_never_resolves_admin(self):
        for kind in PrincipalKind:
            for premium in (True, False):
                for academy in (True, False):
                    assert resolve_tier(kind, premium, academy) != RoleTier.ADMIN

    def test_company_status_for(self):
        assert company_status_for(SubscriptionTier.PREMIUM) == CompanyStatus.PREMIUM
        assert company_status_for(SubscriptionTier.FREEMIUM) == CompanyStatus.ACTIVE


class TestTierPredicates:
    """Test cases for role predicates and parsing."""

    def test_talent_tiers(self):
        assert is_talent_tier("freemium_talent")
        assert is_talent_tier(RoleTier.PREMIUM_TALENT)
        assert is_talent_tier("talent")
        assert not is_talent_tier("freemium_business")
        assert not is_talent_tier(None)

    def test_business_tiers_include_academy(self):
        assert is_business_tier("academy_premium")
        assert is_business_tier("premium_business")
        assert is_business_tier("business")
        assert not is_business_tier("admin")
        assert not is_business_tier("unknown")

    def test_premium_and_admin(self):
        assert is_premium_tier("premium_talent")
        assert is_premium_tier("academy_premium")
        assert not is_premium_tier("freemium_business")
        assert is_admin_tier("admin")
        assert not is_admin_tier(None)

    def test_parse_role(self):
        assert parse_role("talent") == RoleTier.FREEMIUM_TALENT
        assert parse_role("business") == RoleTier.FREEMIUM_BUSINESS
        assert parse_role("premium_business") == RoleTier.PREMIUM_BUSINESS
        assert parse_role("superuser") is None
        assert parse_role(None) is None


class TestCascadeResult:
    """Test cases for CascadeResult counts."""

    def test_counts(self):
        result = CascadeResult(succeeded=["a", "b"], failed=["c"], skipped=["d"])
        assert result.succeeded_count == 2
        assert result.failed_count == 1
        assert result.skipped_count == 1
        assert result.total == 4
