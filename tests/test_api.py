from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select

from hrpulse import billing, db
from hrpulse.db import get_db
from hrpulse.guards import get_access_store
from hrpulse.main import app
from hrpulse.models import Tenant, User
from hrpulse.security import issue_token


@pytest.fixture()
def client(tmp_path):
    database_url = f"sqlite:///{tmp_path}/test.db"
    db.reset_engine(database_url)
    db.init_db()

    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def register_tenant(client: TestClient, slug: str = "acme-inc") -> str:
    response = client.post(
        "/auth/register",
        json={
            "tenant_name": "Acme Inc",
            "tenant_slug": slug,
            "email": f"owner@{slug}.com",
            "full_name": "Owner User",
        },
    )
    assert response.status_code == 201, response.text
    return response.json()["access_token"]


def create_platform_admin(email: str = "ops@platform.io") -> str:
    with db.SessionLocal() as session:
        admin = User(email=email, full_name="Platform Operator", role="platform_admin", tenant_id=None)
        session.add(admin)
        session.flush()
        token = issue_token(session, admin.id)
        session.commit()
    return token


def tenant_id_for(slug: str) -> int:
    with db.SessionLocal() as session:
        return session.scalar(select(Tenant.id).where(Tenant.slug == slug))


def auth_headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def set_tier(client: TestClient, admin_token: str, slug: str, tier: str, **body) -> dict:
    response = client.patch(
        f"/platform/tenants/{tenant_id_for(slug)}/tier",
        headers=auth_headers(admin_token),
        json={"tier": tier, **body},
    )
    assert response.status_code == 200, response.text
    return response.json()


class FailingStore:
    def get_user(self, user_id: int) -> None:
        raise ConnectionError("database unreachable")

    def get_tenant(self, tenant_id: int) -> None:
        raise ConnectionError("database unreachable")


class UnreachableSession:
    def scalar(self, *args, **kwargs) -> None:
        raise ConnectionError("database unreachable")

    def get(self, *args, **kwargs) -> None:
        raise ConnectionError("database unreachable")


def test_register_and_tenant_user_management(client: TestClient) -> None:
    token = register_tenant(client)

    tenant = client.get("/tenants/me", headers=auth_headers(token))
    assert tenant.status_code == 200
    assert tenant.json()["slug"] == "acme-inc"
    assert tenant.json()["subscription_tier"] == "tier1"
    assert tenant.json()["max_employees"] == 25

    created_user = client.post(
        "/tenants/me/users",
        headers=auth_headers(token),
        json={"email": "manager@acme-inc.com", "full_name": "Team Manager", "role": "manager"},
    )
    assert created_user.status_code == 201, created_user.text
    assert created_user.json()["role"] == "manager"

    users = client.get("/tenants/me/users", headers=auth_headers(token))
    assert [user["role"] for user in users.json()] == ["tenant_admin", "manager"]


def test_tier_catalog_is_public(client: TestClient) -> None:
    response = client.get("/subscription/tiers")
    assert response.status_code == 200

    tiers = {tier["id"]: tier for tier in response.json()["tiers"]}
    assert "platform_internal" not in tiers
    assert tiers["tier1"]["maxSeats"] == 25
    assert tiers["tier5"]["maxSeats"] is None
    assert set(tiers["tier3"]) >= {"id", "displayName", "monthlyPrice", "yearlyPrice", "maxSeats", "features"}


def test_tier_info_reports_current_tier(client: TestClient) -> None:
    token = register_tenant(client)

    response = client.get("/subscription/tier-info", headers=auth_headers(token))
    assert response.status_code == 200
    body = response.json()
    assert body["tier"] == "tier1"
    assert body["features"]["basicFeedback"] is True
    assert body["features"]["apiAccess"] is False
    assert body["features"]["supportLevel"] == "email"
    assert body["maxEmployees"] == 25
    assert body["unlimitedSeats"] is False
    assert "basicFeedback" in body["enabledFeatures"]
    assert "apiAccess" not in body["enabledFeatures"]


def test_guarded_route_requires_authentication(client: TestClient) -> None:
    response = client.get("/reports/custom")

    assert response.status_code == 401
    assert response.json() == {"message": "Authentication required", "errorCode": "AUTHENTICATION_REQUIRED"}

    invalid = client.get("/reports/custom", headers=auth_headers("not-a-token"))
    assert invalid.status_code == 401
    assert invalid.json()["errorCode"] == "AUTHENTICATION_REQUIRED"


def test_feature_denied_for_tier_carries_upgrade_details(client: TestClient) -> None:
    token = register_tenant(client, slug="beta-co")
    admin_token = create_platform_admin()
    set_tier(client, admin_token, "beta-co", "tier2")

    response = client.get("/reports/custom", headers=auth_headers(token))

    assert response.status_code == 403
    assert response.json() == {
        "message": "feature 'customReports' not available in 'tier2' tier",
        "errorCode": "FEATURE_NOT_AVAILABLE",
        "feature": "customReports",
        "currentTier": "tier2",
        "upgradeRequired": True,
    }


def test_upgrade_takes_effect_on_next_request(client: TestClient) -> None:
    token = register_tenant(client, slug="gamma-labs")
    admin_token = create_platform_admin()

    assert client.get("/reports/export", headers=auth_headers(token)).status_code == 403

    set_tier(client, admin_token, "gamma-labs", "tier3")
    allowed = client.get("/reports/custom", headers=auth_headers(token), params={"group_by": "status"})
    assert allowed.status_code == 200, allowed.text
    assert allowed.json()["group_by"] == "status"
    assert client.get("/reports/export", headers=auth_headers(token)).status_code == 200

    set_tier(client, admin_token, "gamma-labs", "free_vip")
    downgraded = client.get("/reports/advanced", headers=auth_headers(token))
    assert downgraded.status_code == 403
    assert downgraded.json()["currentTier"] == "free_vip"


def test_programmatic_feature_check(client: TestClient) -> None:
    token = register_tenant(client)

    denied = client.get("/features/apiAccess", headers=auth_headers(token))
    assert denied.status_code == 200
    assert denied.json() == {
        "feature": "apiAccess",
        "allowed": False,
        "reason": "feature 'apiAccess' not available in 'tier1' tier",
        "tier": "tier1",
    }

    allowed = client.get("/features/basicFeedback", headers=auth_headers(token))
    assert allowed.json() == {"feature": "basicFeedback", "allowed": True, "tier": "tier1"}

    unknown = client.get("/features/teleportation", headers=auth_headers(token))
    assert unknown.status_code == 404
    assert unknown.json()["errorCode"] == "UNKNOWN_FEATURE"


def test_platform_admin_is_never_feature_gated(client: TestClient) -> None:
    admin_token = create_platform_admin()

    response = client.get("/features/apiAccess", headers=auth_headers(admin_token))
    assert response.json() == {"feature": "apiAccess", "allowed": True}


def test_storage_failure_returns_validation_error(client: TestClient) -> None:
    token = register_tenant(client)
    app.dependency_overrides[get_access_store] = FailingStore

    response = client.get("/reports/advanced", headers=auth_headers(token))
    assert response.status_code == 500
    assert response.json() == {
        "message": "Failed to validate feature access",
        "errorCode": "FEATURE_VALIDATION_ERROR",
    }

    programmatic = client.get("/features/basicFeedback", headers=auth_headers(token))
    assert programmatic.json() == {"feature": "basicFeedback", "allowed": False, "reason": "feature validation failed"}


def test_tier_info_survives_enrichment_failure(client: TestClient) -> None:
    token = register_tenant(client)
    app.dependency_overrides[get_access_store] = FailingStore

    response = client.get("/subscription/tier-info", headers=auth_headers(token))
    assert response.status_code == 200
    assert response.json()["maxEmployees"] == 25


def test_employee_seat_limit_is_enforced(client: TestClient) -> None:
    token = register_tenant(client, slug="small-shop")
    admin_token = create_platform_admin()
    set_tier(client, admin_token, "small-shop", "tier1", max_employees=2)

    for index in range(2):
        created = client.post(
            "/tenants/me/employees",
            headers=auth_headers(token),
            json={"full_name": f"Jane Doe {index}", "email": f"jane{index}@small-shop.com"},
        )
        assert created.status_code == 201, created.text
        assert created.json()["feedback_slug"].startswith(f"jane-doe-{index}-")

    rejected = client.post(
        "/tenants/me/employees",
        headers=auth_headers(token),
        json={"full_name": "One Too Many", "email": "extra@small-shop.com"},
    )
    assert rejected.status_code == 403
    assert rejected.json()["errorCode"] == "EMPLOYEE_LIMIT_REACHED"
    assert rejected.json()["maxEmployees"] == 2
    assert rejected.json()["upgradeRequired"] is True

    listing = client.get("/tenants/me/employees", headers=auth_headers(token))
    assert listing.status_code == 200
    assert listing.json()["seats_used"] == 2
    assert listing.json()["max_employees"] == 2

    set_tier(client, admin_token, "small-shop", "tier1", max_employees=-1)
    unlimited = client.post(
        "/tenants/me/employees",
        headers=auth_headers(token),
        json={"full_name": "One Too Many", "email": "extra@small-shop.com"},
    )
    assert unlimited.status_code == 201, unlimited.text
    assert client.get("/tenants/me", headers=auth_headers(token)).json()["max_employees"] is None


def test_tier_changes_are_platform_only_and_audited(client: TestClient) -> None:
    token = register_tenant(client, slug="delta-co")
    tenant_id = tenant_id_for("delta-co")

    forbidden = client.patch(
        f"/platform/tenants/{tenant_id}/tier",
        headers=auth_headers(token),
        json={"tier": "tier5"},
    )
    assert forbidden.status_code == 403
    assert forbidden.json()["errorCode"] == "PLATFORM_ADMIN_REQUIRED"

    admin_token = create_platform_admin()
    invalid = client.patch(
        f"/platform/tenants/{tenant_id}/tier",
        headers=auth_headers(admin_token),
        json={"tier": "gold"},
    )
    assert invalid.status_code == 422
    assert invalid.json()["errorCode"] == "INVALID_TIER"

    upgraded = set_tier(client, admin_token, "delta-co", "tier4")
    assert upgraded["subscription_tier"] == "tier4"
    assert upgraded["max_employees"] == 500

    audit = client.get(
        "/platform/billing-audit",
        headers=auth_headers(admin_token),
        params={"tenant_id": tenant_id},
    )
    assert audit.status_code == 200
    entries = audit.json()
    assert len(entries) == 1
    assert entries[0]["action"] == "tier_change"
    assert entries[0]["old_value"] == {"subscriptionTier": "tier1", "maxEmployees": 25}
    assert entries[0]["new_value"] == {"subscriptionTier": "tier4", "maxEmployees": 500}


def test_token_lookup_failure_on_guarded_route_returns_validation_error(client: TestClient) -> None:
    token = register_tenant(client)
    app.dependency_overrides[get_db] = UnreachableSession

    response = client.get("/reports/advanced", headers=auth_headers(token))
    assert response.status_code == 500
    assert response.json() == {
        "message": "Failed to validate feature access",
        "errorCode": "FEATURE_VALIDATION_ERROR",
    }


def test_employee_user_link_must_belong_to_tenant(client: TestClient) -> None:
    victim_token = register_tenant(client, slug="victim-co")
    victim_user_id = client.get("/tenants/me/users", headers=auth_headers(victim_token)).json()[0]["id"]
    token = register_tenant(client, slug="other-co")

    cross_tenant = client.post(
        "/tenants/me/employees",
        headers=auth_headers(token),
        json={"full_name": "Mallory", "email": "mallory@other-co.com", "user_id": victim_user_id},
    )
    assert cross_tenant.status_code == 422
    assert cross_tenant.json()["errorCode"] == "INVALID_REFERENCE"

    dangling = client.post(
        "/tenants/me/employees",
        headers=auth_headers(token),
        json={"full_name": "Ghost", "email": "ghost@other-co.com", "user_id": 99999},
    )
    assert dangling.status_code == 422
    assert dangling.json()["errorCode"] == "INVALID_REFERENCE"

    own_user_id = client.get("/tenants/me/users", headers=auth_headers(token)).json()[0]["id"]
    linked = client.post(
        "/tenants/me/employees",
        headers=auth_headers(token),
        json={"full_name": "Owner User", "email": "owner@other-co.com", "user_id": own_user_id},
    )
    assert linked.status_code == 201, linked.text
    assert linked.json()["user_id"] == own_user_id

    listing = client.get("/tenants/me/employees", headers=auth_headers(token)).json()
    assert listing["seats_used"] == 1


def test_feedback_slug_collision_across_tenants_is_retried(client: TestClient, monkeypatch) -> None:
    first_token = register_tenant(client, slug="one-co")
    second_token = register_tenant(client, slug="two-co")
    suffixes = iter(["abcd0123", "abcd0123", "ef456789"])
    monkeypatch.setattr(billing.secrets, "token_hex", lambda nbytes: next(suffixes))

    first = client.post(
        "/tenants/me/employees",
        headers=auth_headers(first_token),
        json={"full_name": "Jane Doe", "email": "jane@one-co.com"},
    )
    assert first.status_code == 201, first.text
    assert first.json()["feedback_slug"] == "jane-doe-abcd0123"

    second = client.post(
        "/tenants/me/employees",
        headers=auth_headers(second_token),
        json={"full_name": "Jane Doe", "email": "jane@two-co.com"},
    )
    assert second.status_code == 201, second.text
    assert second.json()["feedback_slug"] == "jane-doe-ef456789"


def test_duplicate_employee_email_is_a_conflict(client: TestClient) -> None:
    token = register_tenant(client)
    body = {"full_name": "Jane Doe", "email": "jane@acme-inc.com"}

    assert client.post("/tenants/me/employees", headers=auth_headers(token), json=body).status_code == 201
    duplicate = client.post("/tenants/me/employees", headers=auth_headers(token), json=body)
    assert duplicate.status_code == 409
    assert duplicate.json()["errorCode"] == "CONFLICT"
