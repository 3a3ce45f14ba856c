"""Enterprise feature flags, limits and API rate limits for organisations and workspaces."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from core.plan_constants import PlanType, normalize_plan_type
from models.organization import Organization
from models.workspace import Workspace, WorkspaceOrganization
from services.enterprise_quota import QuotaLimits, get_quota_snapshot, has_active_enterprise_plan, normalize_quota_limits

DEFAULT_API_RATE_LIMIT_PER_MINUTE = 100
DEFAULT_API_BURST_LIMIT = 20


@dataclass(frozen=True, slots=True)
class EnterpriseEntitlements:
    api_access: bool
    multi_org: bool
    advanced_analytics: bool
    audit_export: bool
    max_workspaces: int
    max_api_keys: int
    max_linked_orgs: int
    max_members: int
    api_rate_limit_per_minute: int
    api_burst_limit: int


NO_ENTERPRISE_ENTITLEMENTS = EnterpriseEntitlements(
    api_access=False,
    multi_org=False,
    advanced_analytics=False,
    audit_export=False,
    max_workspaces=0,
    max_api_keys=0,
    max_linked_orgs=1,
    max_members=0,
    api_rate_limit_per_minute=0,
    api_burst_limit=0,
)


@dataclass(slots=True)
class WorkspaceEntitlements:
    has_access: bool
    entitlements: EnterpriseEntitlements
    enterprise_organization_ids: List[uuid.UUID] = field(default_factory=list)


def resolve_enterprise_plan_entitlements(plan_type: Any, limits: Optional[QuotaLimits] = None) -> EnterpriseEntitlements:
    """Full enterprise bundle for ENTERPRISE plans, the locked-down bundle otherwise."""

    if normalize_plan_type(plan_type) != PlanType.ENTERPRISE:
        return NO_ENTERPRISE_ENTITLEMENTS
    quotas = normalize_quota_limits(
        None
        if limits is None
        else {
            "enterprise_max_workspaces": limits.max_workspaces,
            "enterprise_max_linked_orgs": limits.max_linked_orgs,
            "enterprise_max_api_keys": limits.max_api_keys,
            "enterprise_max_members": limits.max_members,
        }
    )
    return EnterpriseEntitlements(
        api_access=True,
        multi_org=True,
        advanced_analytics=True,
        audit_export=True,
        max_workspaces=quotas.max_workspaces,
        max_api_keys=quotas.max_api_keys,
        max_linked_orgs=quotas.max_linked_orgs,
        max_members=quotas.max_members,
        api_rate_limit_per_minute=DEFAULT_API_RATE_LIMIT_PER_MINUTE,
        api_burst_limit=DEFAULT_API_BURST_LIMIT,
    )


def get_workspace_entitlements(session: Session, workspace_id: uuid.UUID, *, now: datetime) -> WorkspaceEntitlements:
    """A workspace is enterprise-enabled when any linked organisation holds an active enterprise plan."""

    organizations = session.execute(
        select(Organization)
        .join(WorkspaceOrganization, WorkspaceOrganization.organization_id == Organization.id)
        .where(WorkspaceOrganization.workspace_id == workspace_id)
        .order_by(Organization.created_at.asc())
    ).scalars().all()
    enterprises = [org for org in organizations if has_active_enterprise_plan(org, now)]
    if not enterprises:
        return WorkspaceEntitlements(has_access=False, entitlements=NO_ENTERPRISE_ENTITLEMENTS)

    primary = enterprises[0]
    snapshot = get_quota_snapshot(session, primary.id)
    entitlements = resolve_enterprise_plan_entitlements(PlanType.ENTERPRISE, snapshot.limits)

    workspace = session.get(Workspace, workspace_id)
    override = workspace.custom_api_rate_limit_rpm if workspace is not None else None
    if override is not None:
        entitlements = replace(entitlements, api_rate_limit_per_minute=int(override))

    return WorkspaceEntitlements(
        has_access=True,
        entitlements=entitlements,
        enterprise_organization_ids=[org.id for org in enterprises],
    )


__all__ = [
    "DEFAULT_API_BURST_LIMIT",
    "DEFAULT_API_RATE_LIMIT_PER_MINUTE",
    "EnterpriseEntitlements",
    "NO_ENTERPRISE_ENTITLEMENTS",
    "WorkspaceEntitlements",
    "get_workspace_entitlements",
    "resolve_enterprise_plan_entitlements",
]
