"""
Unit tests for Entitlements main service.
"""

import pytest
from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch
from fastapi.testclient import TestClient

from shared.errors import AuthenticationError
from service_entitlements.app.main import EntitlementsService
from service_entitlements.app.auth.client import AuthClient
from service_entitlements.app.quota.ledger import LIMIT_SETTINGS_CATEGORY


def bearer(user_id):
    return {"Authorization": f"Bearer {user_id}"}


class TestEntitlementsService:
    """Test cases for EntitlementsService."""

    @pytest.fixture
    def auth_client(self):
        """Auth client that accepts any token except ``bad`` and treats it as the user id."""
        client = AsyncMock(spec=AuthClient)

        async def verify(token):
            if token == "bad":
                raise AuthenticationError("Invalid token")
            return {"user_id": token, "email": f"{token}@example.test"}

        client.verify_token.side_effect = verify
        return client

    @pytest.fixture
    def entitlements_service(self, store, auth_client):
        """Create EntitlementsService over the seeded in-memory store."""
        return EntitlementsService(persistence=store, auth_client=auth_client)

    @pytest.fixture
    def client(self, entitlements_service):
        """Create test client."""
        return TestClient(entitlements_service.app)

    def test_root_endpoint(self, client):
        response = client.get("/")
        assert response.status_code == 200

        data = response.json()
        assert data["service"] == "entitlements"
        assert "tier_cascade" in data["capabilities"]
        assert "quota_ledger" in data["capabilities"]

    def test_health_endpoint(self, client):
        response = client.get("/health")
        assert response.status_code == 200

        data = response.json()
        assert data["status"] == "ok"
        assert data["dependencies"] == {"postgres": "ok"}

    def test_service_initialization(self, entitlements_service, store):
        assert entitlements_service.service_name == "entitlements"
        assert entitlements_service.port == 8011
        assert entitlements_service.persistence is store
        assert entitlements_service.cache is None
        assert entitlements_service.quota.cache is None

    # Subscription cascade

    def test_change_company_subscription(self, client, store):
        response = client.post(
            "/change-company-subscription",
            json={"companyId": "company-1", "newSubscription": "premium"},
            headers=bearer("admin-1")
        )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["company"] == {
            "id": "company-1",
            "name": "Acme Studio",
            "oldStatus": "active",
            "newStatus": "premium",
            "newMemberRole": "premium_business",
        }
        assert data["membersUpdated"] == 3
        assert data["membersSkipped"] == 1
        assert data["membersFailed"] == 0
        assert data["errors"] is None
        assert store.roles["admin-1"] == "admin"
        assert store.roles["member-2"] == "premium_business"

    def test_change_company_subscription_partial_failure(self, client, store, entitlements_service):
        store.fail_on["set_role"] = {"member-1"}

        with patch.object(entitlements_service.observability, "log_error") as mock_log_error:
            response = client.post(
                "/change-company-subscription",
                json={"companyId": "company-1", "newSubscription": "premium"},
                headers=bearer("admin-1")
            )

        mock_log_error.assert_called_once()
        assert mock_log_error.call_args.args[0] == "member_cascade_incomplete"
        assert mock_log_error.call_args.kwargs["failed"] == ["member-1"]
        assert response.status_code == 200
        data = response.json()
        assert data["membersUpdated"] == 2
        assert data["membersFailed"] == 1
        assert data["errors"][0].startswith("member-1")

    def test_change_company_subscription_requires_admin(self, client):
        response = client.post(
            "/change-company-subscription",
            json={"companyId": "company-1", "newSubscription": "premium"},
            headers=bearer("owner-1")
        )

        assert response.status_code == 403
        assert response.json()["code"] == "AUTHORIZATION_ERROR"

    def test_change_company_subscription_unauthenticated(self, client):
        payload = {"companyId": "company-1", "newSubscription": "premium"}

        assert client.post("/change-company-subscription", json=payload).status_code == 401
        response = client.post("/change-company-subscription", json=payload, headers=bearer("bad"))
        assert response.status_code == 401

    def test_change_company_subscription_unknown_company(self, client):
        response = client.post(
            "/change-company-subscription",
            json={"companyId": "ghost-co", "newSubscription": "premium"},
            headers=bearer("admin-1")
        )

        assert response.status_code == 404

    def test_change_company_subscription_invalid_tier(self, client):
        response = client.post(
            "/change-company-subscription",
            json={"companyId": "company-1", "newSubscription": "gold"},
            headers=bearer("admin-1")
        )

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    # Academy students

    def test_bulk_update_academy_students(self, client, store):
        response = client.post(
            "/bulk-update-academy-students",
            json={"academyId": "academy-1", "enablePremium": True},
            headers=bearer("admin-1")
        )

        assert response.status_code == 200
        data = response.json()
        assert data["studentsUpdated"] == 2
        assert data["studentsSkipped"] == 3
        assert data["studentsFailed"] == 0
        assert data["totalStudents"] == 5
        assert data["enablePremium"] is True
        assert store.companies["academy-1"].students_premium_enabled is True

    def test_bulk_update_academy_students_rejects_non_boolean(self, client):
        response = client.post(
            "/bulk-update-academy-students",
            json={"academyId": "academy-1", "enablePremium": "yes"},
            headers=bearer("admin-1")
        )

        assert response.status_code == 400

    def test_bulk_update_academy_students_not_academy(self, client):
        response = client.post(
            "/bulk-update-academy-students",
            json={"academyId": "company-1", "enablePremium": True},
            headers=bearer("admin-1")
        )

        assert response.status_code == 400

    # Single-user operations

    def test_upgrade_academy_student_role(self, client, store):
        response = client.post(
            "/upgrade-academy-student-role",
            json={"userId": "student-1", "academyId": "academy-1"},
            headers=bearer("student-1")
        )

        assert response.status_code == 200
        data = response.json()
        assert data["upgraded"] is True
        assert data["currentRole"] == "premium_talent"
        assert data["academyName"] == "Film Academy"
        assert store.audit[-1].changed_by is None

    def test_upgrade_academy_student_role_not_enrolled(self, client):
        response = client.post(
            "/upgrade-academy-student-role",
            json={"userId": "talent-premium", "academyId": "academy-1"},
            headers=bearer("talent-premium")
        )

        assert response.status_code == 200
        assert response.json()["upgraded"] is False
        assert response.json()["message"] == "User is not enrolled in this academy"

    def test_upgrade_academy_student_role_for_someone_else(self, client):
        response = client.post(
            "/upgrade-academy-student-role",
            json={"userId": "student-1", "academyId": "academy-1"},
            headers=bearer("talent-1")
        )

        assert response.status_code == 403

    def test_sync_member_tier(self, client, store):
        store.companies["company-1"].status = "premium"

        response = client.post(
            "/memberships/sync-tier",
            json={"companyId": "company-1", "userId": "member-1"},
            headers=bearer("owner-1")
        )

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "userId": "member-1",
            "updated": True,
            "newRole": "premium_business",
        }

    def test_sync_member_tier_unchanged(self, client):
        response = client.post(
            "/memberships/sync-tier",
            json={"companyId": "company-1", "userId": "member-1"},
            headers=bearer("owner-1")
        )

        assert response.status_code == 200
        assert response.json()["updated"] is False
        assert response.json()["newRole"] is None

    def test_sync_member_tier_failure(self, client, store, entitlements_service):
        store.fail_on["set_role"] = {"*"}
        store.companies["company-1"].status = "premium"

        with patch.object(entitlements_service.observability, "log_error") as mock_log_error:
            response = client.post(
                "/memberships/sync-tier",
                json={"companyId": "company-1", "userId": "member-1"},
                headers=bearer("owner-1")
            )

        mock_log_error.assert_called_once()
        assert mock_log_error.call_args.args[0] == "membership_sync_failed"

        assert response.status_code == 500
        assert response.json()["code"] == "SERVICE_ERROR"

    def test_sync_member_tier_non_member(self, client, store):
        store.companies["company-1"].status = "premium"
        store.add_user("outsider", email="outsider@mail.test", role="freemium_talent")

        response = client.post(
            "/memberships/sync-tier",
            json={"companyId": "company-1", "userId": "outsider"},
            headers=bearer("owner-1")
        )

        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"
        assert store.roles["outsider"] == "freemium_talent"

    def test_sync_member_tier_pending_member(self, client, store):
        store.companies["company-1"].status = "premium"

        response = client.post(
            "/memberships/sync-tier",
            json={"companyId": "company-1", "userId": "talent-1"},
            headers=bearer("owner-1")
        )

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"
        assert store.roles["talent-1"] == "freemium_talent"

    def test_sync_member_tier_not_owner(self, client):
        response = client.post(
            "/memberships/sync-tier",
            json={"companyId": "company-1", "userId": "member-2"},
            headers=bearer("member-1")
        )

        assert response.status_code == 403

    def test_bulk_change_roles(self, client, store):
        store.fail_on["set_role"] = {"member-2"}

        response = client.post(
            "/admin/bulk-change-roles",
            json={"userIds": ["talent-1", "talent-premium", "member-2"], "newRole": "premium_talent"},
            headers=bearer("admin-1")
        )

        assert response.status_code == 200
        data = response.json()
        assert data["succeeded"] == ["talent-1"]
        assert data["skipped"] == ["talent-premium"]
        assert data["failed"][0]["userId"] == "member-2"
        assert data["failed"][0]["error"]
        assert data["message"] == "Roles updated: 1 succeeded, 1 failed, 1 unchanged"

    def test_bulk_change_roles_empty(self, client):
        response = client.post(
            "/admin/bulk-change-roles",
            json={"userIds": [], "newRole": "premium_talent"},
            headers=bearer("admin-1")
        )

        assert response.status_code == 400

    # Quotas

    def test_talent_application_limit(self, client, store):
        for _ in range(2):
            store.record_application("talent-1", None, datetime.now(timezone.utc))

        response = client.get("/application-limits/talent/talent-1", headers=bearer("talent-1"))

        assert response.status_code == 200
        assert response.json() == {"limit": 5, "current": 2, "remaining": 3, "canApply": True}

    def test_talent_application_limit_fails_open(self, client, store):
        store.fail_on["count_user_applications"] = {"*"}

        response = client.get("/application-limits/talent/talent-1", headers=bearer("talent-1"))

        assert response.status_code == 200
        assert response.json() == {"limit": 0, "current": 0, "remaining": 0, "canApply": True}

    def test_company_application_limit_with_role(self, client):
        response = client.get(
            "/application-limits/company/company-1",
            params={"role": "premium_business"},
            headers=bearer("owner-1")
        )

        assert response.status_code == 200
        assert response.json()["limit"] == 100

    def test_set_application_limit(self, client, store):
        response = client.put(
            "/admin/settings/application-limits",
            json={"principal": "talent", "tier": "freemium", "limit": 10},
            headers=bearer("admin-1")
        )

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "key": "max_applications_per_month_talent_freemium",
            "limit": 10,
        }
        assert store.settings[(LIMIT_SETTINGS_CATEGORY, "max_applications_per_month_talent_freemium")] == "10"

    def test_set_application_limit_negative(self, client):
        response = client.put(
            "/admin/settings/application-limits",
            json={"principal": "company", "tier": "premium", "limit": -5},
            headers=bearer("admin-1")
        )

        assert response.status_code == 400

    # Profile and navigation

    def test_profile_state_with_signals(self, client):
        response = client.post("/profile/state", json={
            "completeness": 90,
            "hasStrongPortfolio": True,
            "hasEducation": True,
            "socialLinkCount": 2,
        })

        assert response.status_code == 200
        data = response.json()
        assert data["state"] == "complete"
        assert data["info"]["completionRange"] == [80, 100]
        assert data["disclosure"]["showPremiumOptions"] is True

    def test_profile_state_from_completeness_only(self, client):
        response = client.post("/profile/state", json={"completeness": 90})

        # one social link approximated, so never complete
        assert response.json()["state"] == "established"

    def test_profile_state_out_of_range(self, client):
        assert client.post("/profile/state", json={"completeness": 120}).status_code == 400

    def test_navigation_resolve(self, client):
        response = client.post("/navigation/resolve", json={
            "role": "freemium_talent",
            "emailConfirmed": True,
            "currentPath": "/",
            "profileState": "new",
        })

        assert response.status_code == 200
        data = response.json()
        assert data["canonicalRoute"] == "/onboarding"
        assert data["redirectTo"] == "/onboarding"
        assert data["guards"] == []
        assert data["profileState"] == "new"

    def test_navigation_resolve_guarded(self, client):
        response = client.post("/navigation/resolve", json={
            "role": "freemium_talent",
            "emailConfirmed": True,
            "currentPath": "/settings",
            "fragment": "type=recovery",
            "completeness": 70,
        })

        data = response.json()
        assert data["profileState"] == "established"
        assert data["canonicalRoute"] == "/talent-dashboard"
        assert data["redirectTo"] is None
        assert data["guards"] == ["protected_path", "recovery_flow"]

    def test_navigation_resolve_flow_step(self, client):
        response = client.post("/navigation/resolve", json={
            "role": "freemium_talent",
            "emailConfirmed": True,
            "currentPath": "/onboarding",
            "profileState": "established",
        })

        data = response.json()
        assert data["flowState"] == "onboarding"
        assert data["nextStep"] == "dashboard"
        assert data["redirectTo"] == "/talent-dashboard"

    def test_navigation_resolve_on_dashboard(self, client):
        response = client.post("/navigation/resolve", json={
            "role": "premium_business",
            "emailConfirmed": True,
            "currentPath": "/business-dashboard",
            "profileState": "new",
        })

        data = response.json()
        assert data["flowState"] == "dashboard"
        assert data["nextStep"] == "dashboard"
        assert data["redirectTo"] is None

    # Lifecycle

    @pytest.mark.asyncio
    async def test_check_dependencies_redis_error(self, entitlements_service):
        cache = AsyncMock()
        cache.health_check.side_effect = ConnectionError("down")
        entitlements_service.cache = cache

        dependencies = await entitlements_service._check_dependencies()

        assert dependencies == {"postgres": "ok", "redis": "error"}

    @pytest.mark.asyncio
    async def test_start_without_cache(self, entitlements_service):
        cache = AsyncMock()
        cache.start.side_effect = ConnectionError("refused")
        entitlements_service.cache = cache
        entitlements_service.quota.cache = cache

        await entitlements_service.start()

        assert entitlements_service.cache is None
        assert entitlements_service.quota.cache is None

    @pytest.mark.asyncio
    async def test_stop_service(self, entitlements_service):
        with patch.object(entitlements_service.persistence, "stop", new_callable=AsyncMock) as mock_stop:
            await entitlements_service.stop()

        mock_stop.assert_awaited_once()
