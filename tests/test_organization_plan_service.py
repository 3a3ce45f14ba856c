import uuid
from datetime import timedelta

import pytest
from sqlalchemy.orm import Session

from core.plan_constants import (
    DEFAULT_ENTERPRISE_QUOTAS,
    LinkIntentType,
    LinkRequestStatus,
    PlanStatus,
    PlanType,
    SupportTier,
)
from services.entitlement_errors import OrganizationNotFoundError
from services.organization_plan_service import managed_organization_ids, update_organization_plan
from services.plan_lifecycle import as_utc


@pytest.mark.parametrize(
    ("duration_days", "expected_end"),
    [(30, timedelta(days=30)), (0, None)],
)
def test_duration_opens_a_new_term(db_session: Session, make_org, now, duration_days, expected_end) -> None:
    org = make_org(plan_end_at=now - timedelta(days=3))

    result = update_organization_plan(
        db_session,
        org.id,
        plan_type="pro",
        plan_status=PlanStatus.ACTIVE,
        now=now,
        duration_days=duration_days,
    )

    organization = result.organization
    assert organization.plan_type == PlanType.PRO.value
    assert organization.support_tier == SupportTier.CHAT.value
    assert as_utc(organization.plan_start_at) == now
    assert as_utc(organization.plan_end_at) == (now + expected_end if expected_end else None)


def test_without_duration_the_term_is_untouched(db_session: Session, make_org, now) -> None:
    end = now + timedelta(days=12)
    org = make_org(plan_type=PlanType.BASIC, plan_end_at=end)

    result = update_organization_plan(
        db_session, org.id, plan_type=PlanType.BUSINESS, plan_status="expired", now=now
    )

    assert result.organization.plan_status == PlanStatus.EXPIRED.value
    assert as_utc(result.organization.plan_end_at) == end
    assert result.organization.plan_start_at is None


def test_enterprise_keeps_override_and_normalizes_quotas(db_session: Session, make_org, now) -> None:
    org = make_org(plan_type=PlanType.PRO, enterprise_max_api_keys=4)

    result = update_organization_plan(
        db_session,
        org.id,
        plan_type=PlanType.ENTERPRISE,
        plan_status=PlanStatus.ACTIVE,
        now=now,
        priority_override=95,
        enterprise_max_workspaces="3",
        enterprise_max_linked_orgs=0,
    )

    organization = result.organization
    assert organization.priority_override == 95
    assert organization.support_tier == SupportTier.DEDICATED.value
    assert organization.enterprise_max_workspaces == 3
    assert organization.enterprise_max_linked_orgs == DEFAULT_ENTERPRISE_QUOTAS["max_linked_orgs"]
    assert organization.enterprise_max_api_keys == 4
    assert organization.enterprise_max_members == DEFAULT_ENTERPRISE_QUOTAS["max_members"]


def test_leaving_enterprise_clears_override(db_session: Session, make_org, now) -> None:
    org = make_org(plan_type=PlanType.ENTERPRISE, priority_override=80)

    result = update_organization_plan(db_session, org.id, plan_type=PlanType.BUSINESS, plan_status=PlanStatus.ACTIVE, now=now)

    assert result.organization.priority_override is None


def test_free_plan_resets_the_term(db_session: Session, make_org, now) -> None:
    org = make_org(plan_type=PlanType.PRO, plan_end_at=now + timedelta(days=5))

    result = update_organization_plan(
        db_session,
        org.id,
        plan_type=PlanType.FREE,
        plan_status=PlanStatus.EXPIRED,
        now=now,
        duration_days=30,
    )

    organization = result.organization
    assert organization.plan_status == PlanStatus.ACTIVE.value
    assert organization.support_tier == SupportTier.NONE.value
    assert organization.plan_end_at is None
    assert organization.priority_override is None


def test_enterprise_term_syncs_to_created_organisations(db_session: Session, make_org, make_link_request, now) -> None:
    enterprise = make_org(plan_type=PlanType.ENTERPRISE, plan_end_at=now + timedelta(days=10))
    awaiting = make_org(plan_type=PlanType.BUSINESS)
    approved = make_org(plan_type=PlanType.BUSINESS)
    linked_existing = make_org(plan_type=PlanType.PRO, plan_end_at=now + timedelta(days=2))
    denied = make_org(plan_type=PlanType.BUSINESS)
    create_under = LinkIntentType.CREATE_UNDER_ENTERPRISE
    make_link_request(enterprise, awaiting, intent_type=create_under, status=LinkRequestStatus.PENDING_APPROVAL)
    make_link_request(enterprise, approved, intent_type=create_under, status=LinkRequestStatus.APPROVED)
    make_link_request(enterprise, linked_existing, status=LinkRequestStatus.APPROVED)
    make_link_request(enterprise, denied, intent_type=create_under, status=LinkRequestStatus.DENIED)

    assert set(managed_organization_ids(db_session, enterprise.id)) == {awaiting.id, approved.id}

    result = update_organization_plan(
        db_session,
        enterprise.id,
        plan_type=PlanType.ENTERPRISE,
        plan_status=PlanStatus.ACTIVE,
        now=now,
        duration_days=365,
    )

    new_end = now + timedelta(days=365)
    assert result.synced_managed_organizations == 2
    assert as_utc(awaiting.plan_end_at) == new_end
    assert as_utc(approved.plan_end_at) == new_end
    assert as_utc(linked_existing.plan_end_at) == now + timedelta(days=2)
    assert denied.plan_end_at is None


def test_enterprise_change_without_term_does_not_sync(db_session: Session, make_org, make_link_request, now) -> None:
    enterprise = make_org(plan_type=PlanType.ENTERPRISE)
    created = make_org(plan_type=PlanType.BUSINESS)
    make_link_request(
        enterprise,
        created,
        intent_type=LinkIntentType.CREATE_UNDER_ENTERPRISE,
        status=LinkRequestStatus.APPROVED,
    )

    result = update_organization_plan(
        db_session, enterprise.id, plan_type=PlanType.ENTERPRISE, plan_status=PlanStatus.ACTIVE, now=now
    )

    assert result.synced_managed_organizations == 0


def test_unknown_organisation(db_session: Session, now) -> None:
    with pytest.raises(OrganizationNotFoundError):
        update_organization_plan(db_session, uuid.uuid4(), plan_type=PlanType.PRO, plan_status=PlanStatus.ACTIVE, now=now)


def test_unknown_plan_status_is_rejected(db_session: Session, make_org, now) -> None:
    org = make_org(plan_type=PlanType.PRO)

    with pytest.raises(ValueError):
        update_organization_plan(db_session, org.id, plan_type=PlanType.PRO, plan_status="PAST_DUE", now=now)
