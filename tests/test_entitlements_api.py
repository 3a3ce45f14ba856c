import uuid
from datetime import datetime, timedelta, timezone
from typing import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from core.plan_constants import LinkRequestStatus, PlanType
from database import get_db
from web.deps import get_request_time
from web.main import app

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture()
def client(db_session: Session, now) -> Generator[TestClient, None, None]:
    app.dependency_overrides[get_db] = lambda: db_session
    app.dependency_overrides[get_request_time] = lambda: now
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()


def test_root_health(client: TestClient) -> None:
    response = client.get("/")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_entitlements_for_paid_organisation(client: TestClient, db_session: Session, make_org) -> None:
    org = make_org(plan_type=PlanType.PRO, plan_end_at=NOW + timedelta(days=30))
    db_session.commit()

    response = client.get(f"/api/v1/orgs/{org.id}/entitlements")

    assert response.status_code == 200
    payload = response.json()
    assert payload["organizationId"] == str(org.id)
    assert payload["planType"] == "PRO"
    assert payload["wasUpdated"] is False
    assert payload["entitlements"]["canAccessOrgPage"] is True
    assert payload["entitlements"]["supportTier"] == "CHAT"
    assert payload["entitlements"]["isTrial"] is False


def test_entitlements_for_unknown_organisation(client: TestClient) -> None:
    org_id = uuid.uuid4()

    response = client.get(f"/api/v1/orgs/{org_id}/entitlements")

    assert response.status_code == 404
    assert response.json()["detail"] == {
        "code": "organization.not_found",
        "message": "Organization not found",
        "organizationId": str(org_id),
    }


def test_trial_lifecycle_over_http(client: TestClient, db_session: Session, make_org) -> None:
    org = make_org()
    db_session.commit()

    started = client.post(f"/api/v1/orgs/{org.id}/trial", json={})
    again = client.post(f"/api/v1/orgs/{org.id}/trial", json={})
    status_view = client.get(f"/api/v1/orgs/{org.id}/trial")
    extended = client.post(f"/api/v1/orgs/{org.id}/trial/extend", json={"extraDays": 3})
    entitlements = client.get(f"/api/v1/orgs/{org.id}/entitlements")

    assert started.status_code == 201
    assert started.json()["status"] == "ACTIVE"
    assert started.json()["endsAt"].startswith("2026-03-15T12:00:00")
    assert again.status_code == 409
    assert again.json()["detail"]["code"] == "TRIAL_ALREADY_USED"
    assert status_view.json()["active"] is True
    assert extended.status_code == 200
    assert extended.json()["endsAt"].startswith("2026-03-18T12:00:00")
    assert entitlements.json()["entitlements"]["isTrial"] is True
    assert entitlements.json()["entitlements"]["canShowBadge"] is False


@pytest.mark.parametrize(
    ("body", "code"),
    [({"durationDays": 30}, "TRIAL_DURATION_INVALID"), ({"planType": "BUSINESS"}, "TRIAL_PLAN_INVALID")],
)
def test_invalid_trial_request(client: TestClient, db_session: Session, make_org, body, code) -> None:
    org = make_org()
    db_session.commit()

    response = client.post(f"/api/v1/orgs/{org.id}/trial", json=body)

    assert response.status_code == 400
    assert response.json()["detail"]["code"] == code


def test_extend_without_trial(client: TestClient, db_session: Session, make_org) -> None:
    org = make_org()
    db_session.commit()

    response = client.post(f"/api/v1/orgs/{org.id}/trial/extend", json={"extraDays": 2})

    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "TRIAL_NOT_FOUND"


def test_quota_check_reports_limit_reached(client: TestClient, db_session: Session, make_org, make_workspace) -> None:
    enterprise = make_org(plan_type=PlanType.ENTERPRISE, enterprise_max_linked_orgs=1)
    member = make_org()
    make_workspace(enterprise, member)
    db_session.commit()

    blocked = client.post(f"/api/v1/enterprise/{enterprise.id}/quota/check", json={"resource": "LINKED_ORGS"})
    relink = client.post(
        f"/api/v1/enterprise/{enterprise.id}/quota/check",
        json={"resource": "LINKED_ORGS", "linkedOrganizationId": str(member.id)},
    )
    snapshot = client.get(f"/api/v1/enterprise/{enterprise.id}/quota")

    assert blocked.status_code == 409
    assert blocked.json() == {
        "error": "LIMIT_REACHED",
        "resource": "LINKED_ORGS",
        "limit": 1,
        "current": 1,
        "message": "Limit reached for Linked Organizations",
    }
    assert relink.status_code == 200
    assert relink.json()["allowed"] is True
    assert snapshot.json()["usage"]["linkedOrgs"] == 1
    assert snapshot.json()["trackedLinkedOrganizationIds"] == [str(member.id)]


def test_link_request_flow(client: TestClient, db_session: Session, make_org, make_workspace) -> None:
    enterprise = make_org(plan_type=PlanType.ENTERPRISE)
    target = make_org(plan_type=PlanType.PRO)
    workspace = make_workspace(enterprise)
    db_session.commit()

    created = client.post(
        f"/api/v1/enterprise/workspaces/{workspace.id}/link-requests",
        json={"enterpriseId": str(enterprise.id), "requestedBy": "admin-1", "organizationId": str(target.id)},
    )
    request_id = created.json()["id"]
    inbox = client.get(f"/api/v1/orgs/{target.id}/link-requests")
    approved = client.post(
        f"/api/v1/orgs/{target.id}/link-requests/{request_id}/approve",
        json={"decisionBy": "owner-1"},
    )
    repeated = client.post(
        f"/api/v1/orgs/{target.id}/link-requests/{request_id}/approve",
        json={"decisionBy": "owner-1"},
    )
    listing = client.get(
        f"/api/v1/enterprise/workspaces/{workspace.id}/link-requests",
        params={"enterpriseId": str(enterprise.id)},
    )
    entitlements = client.get(f"/api/v1/enterprise/workspaces/{workspace.id}/entitlements")

    assert created.status_code == 201
    assert created.json()["status"] == LinkRequestStatus.PENDING.value
    assert [item["id"] for item in inbox.json()] == [request_id]
    assert approved.status_code == 200
    assert approved.json()["request"]["status"] == LinkRequestStatus.APPROVED.value
    assert approved.json()["linkId"]
    assert repeated.status_code == 409
    assert repeated.json()["detail"]["code"] == "link.request_processed"
    assert [item["status"] for item in listing.json()] == [LinkRequestStatus.APPROVED.value]
    assert entitlements.json()["hasAccess"] is True
    assert entitlements.json()["enterpriseOrgIds"] == [str(enterprise.id)]


def test_link_request_outside_enterprise_scope(client: TestClient, db_session: Session, make_org, make_workspace) -> None:
    enterprise = make_org(plan_type=PlanType.ENTERPRISE)
    target = make_org()
    workspace = make_workspace(make_org())
    db_session.commit()

    response = client.post(
        f"/api/v1/enterprise/workspaces/{workspace.id}/link-requests",
        json={"enterpriseId": str(enterprise.id), "requestedBy": "admin-1", "organizationId": str(target.id)},
    )

    assert response.status_code == 403
    assert response.json()["detail"]["code"] == "link.workspace_scope"


def test_enterprise_created_organisation_over_http(client: TestClient, db_session: Session, make_org, make_workspace) -> None:
    enterprise = make_org(plan_type=PlanType.ENTERPRISE, plan_end_at=NOW + timedelta(days=60))
    workspace = make_workspace(enterprise)
    db_session.commit()

    response = client.post(
        f"/api/v1/enterprise/workspaces/{workspace.id}/organizations",
        json={
            "enterpriseId": str(enterprise.id),
            "createdBy": "admin-1",
            "name": "Subsidiary",
            "email": "team@subsidiary.example",
        },
    )

    assert response.status_code == 201
    payload = response.json()
    assert payload["status"] == "PENDING"
    assert payload["planType"] == "BUSINESS"
    assert payload["linkRequest"]["status"] == LinkRequestStatus.PENDING_APPROVAL.value


def test_visibility_reflects_enterprise_restriction(client: TestClient, db_session: Session, make_org, make_workspace) -> None:
    enterprise = make_org(plan_type=PlanType.ENTERPRISE, is_restricted=True)
    member = make_org(plan_type=PlanType.PRO)
    make_workspace(enterprise, member)
    db_session.commit()

    response = client.get(f"/api/v1/orgs/{member.id}/visibility")

    assert response.status_code == 200
    assert response.json() == {"organizationId": str(member.id), "visible": False, "restricted": True}


def test_service_status_reports_policy(client: TestClient) -> None:
    response = client.get("/api/v1/health/status")

    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "ok"
    assert payload["database"] == {"ok": True}
    assert payload["policy"]["trialDays"] == 14
    assert payload["policy"]["graceDays"]["ENTERPRISE"] == 14
    assert "FREE" not in payload["policy"]["graceDays"]
