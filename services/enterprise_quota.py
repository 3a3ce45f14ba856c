"""Enterprise quota snapshot and the advisory check that runs before quota-bound mutations."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, FrozenSet, Mapping, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from core.logging import get_logger
from core.plan_constants import (
    DEFAULT_ENTERPRISE_QUOTAS,
    QUOTA_RESERVING_STATUSES,
    InviteStatus,
    OrgStatus,
    PlanStatus,
    PlanType,
    QuotaResource,
    enum_value,
    normalize_plan_type,
)
from models.organization import Organization
from models.workspace import ApiKey, EnterpriseOrgLinkRequest, WorkspaceInvite, WorkspaceMember, WorkspaceOrganization
from services import entitlement_metrics
from services.entitlement_errors import LimitReachedError, OrganizationNotFoundError
from services.plan_lifecycle import as_utc

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class QuotaLimits:
    max_workspaces: int
    max_linked_orgs: int
    max_api_keys: int
    max_members: int

    def limit_for(self, resource: QuotaResource) -> int:
        return {
            QuotaResource.WORKSPACES: self.max_workspaces,
            QuotaResource.LINKED_ORGS: self.max_linked_orgs,
            QuotaResource.API_KEYS: self.max_api_keys,
            QuotaResource.MEMBERS: self.max_members,
        }[QuotaResource(resource)]


@dataclass(frozen=True, slots=True)
class QuotaUsage:
    workspaces: int = 0
    linked_orgs: int = 0
    api_keys: int = 0
    members: int = 0

    def count_for(self, resource: QuotaResource) -> int:
        return {
            QuotaResource.WORKSPACES: self.workspaces,
            QuotaResource.LINKED_ORGS: self.linked_orgs,
            QuotaResource.API_KEYS: self.api_keys,
            QuotaResource.MEMBERS: self.members,
        }[QuotaResource(resource)]


@dataclass(frozen=True, slots=True)
class QuotaSnapshot:
    """Point-in-time usage against limits for one enterprise. Recomputed on every call."""

    enterprise_id: uuid.UUID
    limits: QuotaLimits
    usage: QuotaUsage
    workspace_ids: Tuple[uuid.UUID, ...] = ()
    tracked_linked_organization_ids: FrozenSet[uuid.UUID] = field(default_factory=frozenset)


def normalize_limit(value: Any, fallback: int) -> int:
    """Accept positive integral values (or integral numeric strings); anything else falls back."""

    if value is None or isinstance(value, bool):
        return fallback
    if isinstance(value, str):
        text = value.strip()
        try:
            value = int(text)
        except ValueError:
            try:
                value = float(text)
            except ValueError:
                return fallback
    if isinstance(value, float):
        if not value.is_integer():
            return fallback
        value = int(value)
    if not isinstance(value, int):
        return fallback
    return value if value >= 1 else fallback


def normalize_quota_limits(source: Any = None) -> QuotaLimits:
    """Build limits from an organisation row, a mapping of override columns, or nothing."""

    def _read(name: str) -> Any:
        if source is None:
            return None
        if isinstance(source, Mapping):
            return source.get(f"enterprise_{name}")
        return getattr(source, f"enterprise_{name}", None)

    return QuotaLimits(
        **{name: normalize_limit(_read(name), default) for name, default in DEFAULT_ENTERPRISE_QUOTAS.items()}
    )


def has_active_enterprise_plan(organization: Any, now: datetime) -> bool:
    if organization is None:
        return False
    if normalize_plan_type(organization.plan_type) != PlanType.ENTERPRISE:
        return False
    if enum_value(organization.plan_status) != PlanStatus.ACTIVE.value:
        return False
    if enum_value(organization.status) != OrgStatus.APPROVED.value:
        return False
    if organization.is_restricted:
        return False
    plan_end_at = as_utc(organization.plan_end_at)
    return plan_end_at is None or plan_end_at >= as_utc(now)


def resolve_enterprise_id_for_workspace(
    session: Session,
    workspace_id: uuid.UUID,
    *,
    now: datetime,
) -> Optional[uuid.UUID]:
    """Quota authority for a workspace: earliest active enterprise, else any enterprise-typed org."""

    rows = session.execute(
        select(Organization)
        .join(WorkspaceOrganization, WorkspaceOrganization.organization_id == Organization.id)
        .where(WorkspaceOrganization.workspace_id == workspace_id)
        .order_by(WorkspaceOrganization.created_at.asc())
    ).scalars().all()
    if not rows:
        return None

    for organization in rows:
        if has_active_enterprise_plan(organization, now):
            return organization.id
    for organization in rows:
        if normalize_plan_type(organization.plan_type) == PlanType.ENTERPRISE:
            return organization.id
    return None


def get_quota_snapshot(session: Session, enterprise_id: uuid.UUID) -> QuotaSnapshot:
    enterprise = session.get(Organization, enterprise_id)
    if enterprise is None:
        raise OrganizationNotFoundError(enterprise_id, "Enterprise organization not found")
    limits = normalize_quota_limits(enterprise)

    workspace_ids = tuple(
        dict.fromkeys(
            session.execute(
                select(WorkspaceOrganization.workspace_id)
                .where(WorkspaceOrganization.organization_id == enterprise_id)
                .order_by(WorkspaceOrganization.created_at.asc())
            ).scalars()
        )
    )
    if not workspace_ids:
        return QuotaSnapshot(enterprise_id=enterprise_id, limits=limits, usage=QuotaUsage())

    scope = list(workspace_ids)
    linked_ids = set(
        session.execute(
            select(WorkspaceOrganization.organization_id).where(WorkspaceOrganization.workspace_id.in_(scope))
        ).scalars()
    )
    # Pending intents hold a slot before approval so concurrent approvals cannot overshoot.
    reserved_ids = set(
        session.execute(
            select(EnterpriseOrgLinkRequest.organization_id).where(
                EnterpriseOrgLinkRequest.enterprise_id == enterprise_id,
                EnterpriseOrgLinkRequest.status.in_([status.value for status in QUOTA_RESERVING_STATUSES]),
            )
        ).scalars()
    )
    tracked = frozenset((linked_ids | reserved_ids) - {enterprise_id, None})

    api_keys = session.execute(
        select(func.count(ApiKey.id)).where(ApiKey.workspace_id.in_(scope), ApiKey.revoked_at.is_(None))
    ).scalar_one()
    members = session.execute(
        select(func.count(WorkspaceMember.id)).where(WorkspaceMember.workspace_id.in_(scope))
    ).scalar_one()
    pending_invites = session.execute(
        select(func.count(WorkspaceInvite.id)).where(
            WorkspaceInvite.workspace_id.in_(scope),
            WorkspaceInvite.status == InviteStatus.PENDING.value,
        )
    ).scalar_one()

    return QuotaSnapshot(
        enterprise_id=enterprise_id,
        limits=limits,
        usage=QuotaUsage(
            workspaces=len(workspace_ids),
            linked_orgs=len(tracked),
            api_keys=int(api_keys or 0),
            members=int(members or 0) + int(pending_invites or 0),
        ),
        workspace_ids=workspace_ids,
        tracked_linked_organization_ids=tracked,
    )


def get_quota_snapshot_for_workspace(
    session: Session,
    workspace_id: uuid.UUID,
    *,
    now: datetime,
) -> Optional[QuotaSnapshot]:
    enterprise_id = resolve_enterprise_id_for_workspace(session, workspace_id, now=now)
    if enterprise_id is None:
        return None
    return get_quota_snapshot(session, enterprise_id)


def assert_quota_available(
    snapshot: QuotaSnapshot,
    resource: QuotaResource,
    *,
    increment: Optional[int] = None,
    linked_organization_id: Optional[uuid.UUID] = None,
) -> None:
    """Raise ``LimitReachedError`` if ``current + increment`` would exceed the limit."""

    resource = QuotaResource(resource)
    limit = snapshot.limits.limit_for(resource)
    current = snapshot.usage.count_for(resource)

    step = 1 if increment is None else max(0, int(increment))
    if (
        resource == QuotaResource.LINKED_ORGS
        and linked_organization_id is not None
        and linked_organization_id in snapshot.tracked_linked_organization_ids
    ):
        # Already counted: re-link and approval of a reserved slot never fail.
        step = 0
    if step <= 0:
        return

    if current + step > limit:
        entitlement_metrics.record_quota_denial(resource.value)
        logger.info(
            "quota.blocked",
            extra={
                "enterprise_id": str(snapshot.enterprise_id),
                "resource": resource.value,
                "limit": limit,
                "current": current,
                "increment": step,
            },
        )
        raise LimitReachedError(resource, limit, current)


def assert_enterprise_quota(
    session: Session,
    enterprise_id: uuid.UUID,
    resource: QuotaResource,
    *,
    increment: Optional[int] = None,
    linked_organization_id: Optional[uuid.UUID] = None,
) -> QuotaSnapshot:
    snapshot = get_quota_snapshot(session, enterprise_id)
    assert_quota_available(snapshot, resource, increment=increment, linked_organization_id=linked_organization_id)
    return snapshot


def assert_workspace_quota(
    session: Session,
    workspace_id: uuid.UUID,
    resource: QuotaResource,
    *,
    now: datetime,
    increment: Optional[int] = None,
    linked_organization_id: Optional[uuid.UUID] = None,
) -> Optional[QuotaSnapshot]:
    """Same check keyed by workspace. Returns None, skipping the check, when no enterprise owns it."""

    snapshot = get_quota_snapshot_for_workspace(session, workspace_id, now=now)
    if snapshot is None:
        logger.debug("No quota authority for workspace %s; skipping %s check.", workspace_id, resource)
        return None
    assert_quota_available(snapshot, resource, increment=increment, linked_organization_id=linked_organization_id)
    return snapshot


def assert_quota(
    session: Session,
    resource: QuotaResource,
    *,
    now: datetime,
    enterprise_id: Optional[uuid.UUID] = None,
    workspace_id: Optional[uuid.UUID] = None,
    increment: Optional[int] = None,
    linked_organization_id: Optional[uuid.UUID] = None,
) -> Optional[QuotaSnapshot]:
    """Check against an explicit enterprise when given, otherwise against the workspace's enterprise."""

    if enterprise_id is not None:
        return assert_enterprise_quota(
            session,
            enterprise_id,
            resource,
            increment=increment,
            linked_organization_id=linked_organization_id,
        )
    if workspace_id is None:
        raise ValueError("enterprise_id or workspace_id is required")
    return assert_workspace_quota(
        session,
        workspace_id,
        resource,
        now=now,
        increment=increment,
        linked_organization_id=linked_organization_id,
    )


__all__ = [
    "QuotaLimits",
    "QuotaSnapshot",
    "QuotaUsage",
    "assert_enterprise_quota",
    "assert_quota",
    "assert_quota_available",
    "assert_workspace_quota",
    "get_quota_snapshot",
    "get_quota_snapshot_for_workspace",
    "has_active_enterprise_plan",
    "normalize_limit",
    "normalize_quota_limits",
    "resolve_enterprise_id_for_workspace",
]
