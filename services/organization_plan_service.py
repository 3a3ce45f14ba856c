"""Admin plan changes and the enterprise-to-managed-organisation term sync."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.logging import get_logger
from core.plan_constants import (
    ENTERPRISE_SYNC_STATUSES,
    PLAN_SUPPORT_TIER,
    LinkIntentType,
    PlanStatus,
    PlanType,
    SupportTier,
    normalize_plan_type,
)
from models.organization import Organization
from models.workspace import EnterpriseOrgLinkRequest
from services.enterprise_quota import normalize_quota_limits
from services.entitlement_errors import OrganizationNotFoundError
from services.plan_lifecycle import as_utc

logger = get_logger(__name__)


@dataclass(slots=True)
class PlanUpdateResult:
    organization: Organization
    synced_managed_organizations: int = 0


def managed_organization_ids(session: Session, enterprise_id: uuid.UUID) -> list[uuid.UUID]:
    """Organisations the enterprise created itself (approved or awaiting approval), excluding itself."""

    rows = session.execute(
        select(EnterpriseOrgLinkRequest.organization_id).where(
            EnterpriseOrgLinkRequest.enterprise_id == enterprise_id,
            EnterpriseOrgLinkRequest.intent_type == LinkIntentType.CREATE_UNDER_ENTERPRISE.value,
            EnterpriseOrgLinkRequest.status.in_([status.value for status in ENTERPRISE_SYNC_STATUSES]),
        )
    ).scalars()
    return [org_id for org_id in dict.fromkeys(rows) if org_id is not None and org_id != enterprise_id]


def sync_managed_organization_expiry(
    session: Session,
    enterprise_id: uuid.UUID,
    plan_end_at: Optional[datetime],
) -> int:
    targets = managed_organization_ids(session, enterprise_id)
    if not targets:
        return 0
    session.execute(
        update(Organization)
        .where(Organization.id.in_(targets))
        .values(plan_end_at=plan_end_at)
        .execution_options(synchronize_session="fetch")
    )
    logger.info(
        "plan.managed_sync",
        extra={"enterprise_id": str(enterprise_id), "organizations": len(targets)},
    )
    return len(targets)


def update_organization_plan(
    session: Session,
    organization_id: uuid.UUID,
    *,
    plan_type: Any,
    plan_status: Any,
    now: datetime,
    duration_days: Optional[int] = None,
    priority_override: Optional[int] = None,
    enterprise_max_workspaces: Any = None,
    enterprise_max_linked_orgs: Any = None,
    enterprise_max_api_keys: Any = None,
    enterprise_max_members: Any = None,
) -> PlanUpdateResult:
    """
    Apply an admin plan change.

    ``duration_days`` > 0 opens a new term ending ``now + duration_days``; 0
    opens an indefinite term; None leaves the term dates alone. Moving an
    ENTERPRISE term end cascades to organisations the enterprise created.
    """

    organization = session.get(Organization, organization_id)
    if organization is None:
        raise OrganizationNotFoundError(organization_id)

    target_plan = normalize_plan_type(plan_type)
    status_value = PlanStatus(str(getattr(plan_status, "value", plan_status)).strip().upper()).value
    started_at = as_utc(now)
    term_touched = False

    organization.plan_type = target_plan.value
    organization.plan_status = status_value
    organization.support_tier = PLAN_SUPPORT_TIER.get(target_plan, SupportTier.NONE).value

    if duration_days is not None:
        term_touched = True
        organization.plan_start_at = started_at
        organization.plan_end_at = started_at + timedelta(days=duration_days) if duration_days > 0 else None

    if target_plan == PlanType.ENTERPRISE:
        organization.priority_override = priority_override
        limits = normalize_quota_limits(
            {
                "enterprise_max_workspaces": enterprise_max_workspaces
                if enterprise_max_workspaces is not None
                else organization.enterprise_max_workspaces,
                "enterprise_max_linked_orgs": enterprise_max_linked_orgs
                if enterprise_max_linked_orgs is not None
                else organization.enterprise_max_linked_orgs,
                "enterprise_max_api_keys": enterprise_max_api_keys
                if enterprise_max_api_keys is not None
                else organization.enterprise_max_api_keys,
                "enterprise_max_members": enterprise_max_members
                if enterprise_max_members is not None
                else organization.enterprise_max_members,
            }
        )
        organization.enterprise_max_workspaces = limits.max_workspaces
        organization.enterprise_max_linked_orgs = limits.max_linked_orgs
        organization.enterprise_max_api_keys = limits.max_api_keys
        organization.enterprise_max_members = limits.max_members
    else:
        organization.priority_override = None

    if target_plan == PlanType.FREE:
        organization.plan_status = PlanStatus.ACTIVE.value
        organization.support_tier = SupportTier.NONE.value
        organization.priority_override = None
        organization.plan_end_at = None

    synced = 0
    try:
        session.flush()
        if target_plan == PlanType.ENTERPRISE and term_touched:
            synced = sync_managed_organization_expiry(session, organization.id, organization.plan_end_at)
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Failed to update plan for organisation %s", organization_id)
        raise

    logger.info(
        "plan.updated",
        extra={
            "organization_id": str(organization.id),
            "plan_type": target_plan.value,
            "plan_status": organization.plan_status,
            "managed_synced": synced,
        },
    )
    return PlanUpdateResult(organization=organization, synced_managed_organizations=synced)


__all__ = [
    "PlanUpdateResult",
    "managed_organization_ids",
    "sync_managed_organization_expiry",
    "update_organization_plan",
]
