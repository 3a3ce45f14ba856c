from datetime import timedelta

import pytest
from sqlalchemy.orm import Session

from core.plan_constants import DEFAULT_ENTERPRISE_QUOTAS, PlanType
from services.enterprise_entitlement import (
    DEFAULT_API_BURST_LIMIT,
    DEFAULT_API_RATE_LIMIT_PER_MINUTE,
    NO_ENTERPRISE_ENTITLEMENTS,
    get_workspace_entitlements,
    resolve_enterprise_plan_entitlements,
)
from services.enterprise_quota import QuotaLimits


@pytest.mark.parametrize("plan_type", [PlanType.FREE, PlanType.PRO, "business", None])
def test_non_enterprise_plans_are_locked_down(plan_type) -> None:
    entitlements = resolve_enterprise_plan_entitlements(plan_type)

    assert entitlements == NO_ENTERPRISE_ENTITLEMENTS
    assert entitlements.api_access is False
    assert entitlements.max_linked_orgs == 1


def test_enterprise_plan_uses_limits() -> None:
    limits = QuotaLimits(max_workspaces=4, max_linked_orgs=12, max_api_keys=0, max_members=30)

    entitlements = resolve_enterprise_plan_entitlements("enterprise", limits)

    assert entitlements.api_access and entitlements.multi_org
    assert entitlements.advanced_analytics and entitlements.audit_export
    assert entitlements.max_workspaces == 4
    assert entitlements.max_linked_orgs == 12
    assert entitlements.max_api_keys == DEFAULT_ENTERPRISE_QUOTAS["max_api_keys"]
    assert entitlements.api_rate_limit_per_minute == DEFAULT_API_RATE_LIMIT_PER_MINUTE
    assert entitlements.api_burst_limit == DEFAULT_API_BURST_LIMIT


def test_enterprise_plan_without_limits_uses_defaults() -> None:
    entitlements = resolve_enterprise_plan_entitlements(PlanType.ENTERPRISE)

    assert entitlements.max_members == DEFAULT_ENTERPRISE_QUOTAS["max_members"]


def test_workspace_without_enterprise(db_session: Session, make_org, make_workspace, now) -> None:
    lapsed = make_org(plan_type=PlanType.ENTERPRISE, plan_end_at=now - timedelta(days=1))
    workspace = make_workspace(make_org(plan_type=PlanType.PRO), lapsed)

    result = get_workspace_entitlements(db_session, workspace.id, now=now)

    assert result.has_access is False
    assert result.entitlements == NO_ENTERPRISE_ENTITLEMENTS
    assert result.enterprise_organization_ids == []


def test_workspace_uses_oldest_active_enterprise(db_session: Session, make_org, make_workspace, now) -> None:
    older = make_org(
        plan_type=PlanType.ENTERPRISE,
        enterprise_max_linked_orgs=7,
        created_at=now - timedelta(days=100),
    )
    newer = make_org(
        plan_type=PlanType.ENTERPRISE,
        enterprise_max_linked_orgs=99,
        created_at=now - timedelta(days=10),
    )
    workspace = make_workspace(newer, older)

    result = get_workspace_entitlements(db_session, workspace.id, now=now)

    assert result.has_access is True
    assert result.enterprise_organization_ids == [older.id, newer.id]
    assert result.entitlements.max_linked_orgs == 7
    assert result.entitlements.api_rate_limit_per_minute == DEFAULT_API_RATE_LIMIT_PER_MINUTE


def test_workspace_rate_limit_override(db_session: Session, make_org, make_workspace, now) -> None:
    enterprise = make_org(plan_type=PlanType.ENTERPRISE)
    workspace = make_workspace(enterprise, custom_api_rate_limit_rpm=450)

    result = get_workspace_entitlements(db_session, workspace.id, now=now)

    assert result.entitlements.api_rate_limit_per_minute == 450
    assert result.entitlements.api_burst_limit == DEFAULT_API_BURST_LIMIT
