"""Entitlement resolution: derive an organisation's feature bundle from plan, trial and restriction state."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.logging import get_logger
from core.plan_constants import (
    PLAN_SUPPORT_TIER,
    PRIORITY_SCORE,
    PRO_PRIORITY_BOOST_DAYS,
    AnalyticsLevel,
    OrgPriority,
    OrgStatus,
    PlanStatus,
    PlanType,
    SupportTier,
    TrialStatus,
    enum_value,
    normalize_plan_type,
)
from models.organization import Organization
from services import entitlement_metrics
from services.entitlement_errors import OrganizationNotFoundError
from services.organization_visibility import is_effectively_restricted
from services.plan_lifecycle import PlanLifecycleState, as_utc, compute_lifecycle, is_enterprise_managed_synced
from services.trial_service import TrialNotifier, lookup_active_trial

logger = get_logger(__name__)

_ANALYTICS_BY_PLAN = {
    PlanType.BASIC: AnalyticsLevel.BASIC,
    PlanType.PRO: AnalyticsLevel.ADVANCED,
    PlanType.BUSINESS: AnalyticsLevel.BUSINESS,
    PlanType.ENTERPRISE: AnalyticsLevel.BUSINESS,
}


@dataclass(frozen=True, slots=True)
class OrganizationState:
    """Immutable snapshot of the organisation columns the resolver reads."""

    id: Optional[uuid.UUID]
    status: str
    plan_type: PlanType
    plan_status: str
    plan_start_at: Optional[datetime]
    plan_end_at: Optional[datetime]
    is_restricted: bool
    priority: Optional[str]
    priority_override: Optional[int]
    priority_expires_at: Optional[datetime]

    @classmethod
    def from_model(cls, org: Any) -> "OrganizationState":
        return cls(
            id=getattr(org, "id", None),
            status=enum_value(getattr(org, "status", None)),
            plan_type=normalize_plan_type(getattr(org, "plan_type", None)),
            plan_status=enum_value(getattr(org, "plan_status", None)) or PlanStatus.ACTIVE.value,
            plan_start_at=as_utc(getattr(org, "plan_start_at", None)),
            plan_end_at=as_utc(getattr(org, "plan_end_at", None)),
            is_restricted=bool(getattr(org, "is_restricted", False)),
            priority=getattr(org, "priority", None),
            priority_override=getattr(org, "priority_override", None),
            priority_expires_at=as_utc(getattr(org, "priority_expires_at", None)),
        )

    def plan_fields(self) -> tuple:
        return (self.plan_type, self.plan_status, self.plan_end_at)


@dataclass(frozen=True, slots=True)
class EntitlementBundle:
    can_show_badge: bool
    can_access_org_page: bool
    analytics_level: AnalyticsLevel
    can_export_reports: bool
    support_tier: SupportTier
    priority_level: OrgPriority
    is_expired: bool
    is_in_grace: bool
    grace_ends_at: Optional[datetime]
    grace_days: int
    is_trial: bool
    trial_ends_at: Optional[datetime]


@dataclass(frozen=True, slots=True)
class EntitlementResolution:
    entitlements: EntitlementBundle
    organization: OrganizationState
    lifecycle: PlanLifecycleState
    was_updated: bool
    effect_error: Optional[Exception] = None


def score_to_priority(score: int) -> OrgPriority:
    if score >= 3:
        return OrgPriority.HIGH
    if score >= 2:
        return OrgPriority.MEDIUM
    if score >= 1:
        return OrgPriority.NORMAL
    return OrgPriority.LOW


def map_priority_override(override: Optional[int]) -> OrgPriority:
    """Enterprise priority override; unset means HIGH."""

    if override is None:
        return OrgPriority.HIGH
    return score_to_priority(int(override))


def manual_priority_score(org: OrganizationState, now: datetime) -> int:
    if org.priority_expires_at is not None and org.priority_expires_at <= as_utc(now):
        return PRIORITY_SCORE[OrgPriority.NORMAL]
    try:
        return PRIORITY_SCORE[OrgPriority((enum_value(org.priority) or OrgPriority.NORMAL.value).upper())]
    except ValueError:
        return PRIORITY_SCORE[OrgPriority.NORMAL]


def is_active_paid(org: OrganizationState, lifecycle: PlanLifecycleState) -> bool:
    return (
        org.plan_type != PlanType.FREE
        and org.plan_status == PlanStatus.ACTIVE.value
        and not lifecycle.is_expired
    )


def is_trial_active(trial: Any, now: datetime) -> bool:
    if trial is None:
        return False
    if enum_value(getattr(trial, "status", None)) != TrialStatus.ACTIVE.value:
        return False
    ends_at = as_utc(getattr(trial, "ends_at", None))
    return ends_at is not None and ends_at > as_utc(now)


def effective_plan(org: OrganizationState, trial: Any, lifecycle: PlanLifecycleState, now: datetime) -> PlanType:
    if is_active_paid(org, lifecycle):
        return org.plan_type
    if is_trial_active(trial, now):
        return PlanType.PRO
    return PlanType.FREE


def _plan_priority(org: OrganizationState, now: datetime, *, approved: bool, active_paid: bool, trial_active: bool) -> OrgPriority:
    if not approved or org.is_restricted:
        return OrgPriority.LOW
    if trial_active:
        return OrgPriority.NORMAL
    if not active_paid:
        return OrgPriority.LOW
    if org.plan_type == PlanType.ENTERPRISE:
        return map_priority_override(org.priority_override)
    if org.plan_type == PlanType.BUSINESS:
        return OrgPriority.HIGH
    if org.plan_type == PlanType.PRO:
        if org.plan_start_at is None:
            return OrgPriority.NORMAL
        boost_until = org.plan_start_at + timedelta(days=PRO_PRIORITY_BOOST_DAYS)
        return OrgPriority.HIGH if as_utc(now) <= boost_until else OrgPriority.NORMAL
    if org.plan_type == PlanType.BASIC:
        return OrgPriority.NORMAL
    return OrgPriority.LOW


def resolve_entitlements(
    org: Any,
    trial: Any,
    lifecycle: PlanLifecycleState,
    now: datetime,
) -> EntitlementBundle:
    """
    Pure derivation of the entitlement bundle.

    ``org`` may be an ``Organization`` row, an ``OrganizationState`` or any
    object exposing the same attributes. ``is_restricted`` is read as given,
    so callers pass the effective restriction view.
    """

    state = org if isinstance(org, OrganizationState) else OrganizationState.from_model(org)
    approved = state.status == OrgStatus.APPROVED.value
    active_paid = is_active_paid(state, lifecycle)
    trial_active = is_trial_active(trial, now)
    plan = effective_plan(state, trial, lifecycle, now)
    open_to_public = approved and not state.is_restricted

    can_access_org_page = open_to_public and plan != PlanType.FREE
    # Trials never grant the badge; it needs a real paid term.
    can_show_badge = open_to_public and active_paid and state.plan_type != PlanType.FREE

    analytics_level = AnalyticsLevel.NONE
    if open_to_public and plan != PlanType.FREE:
        analytics_level = _ANALYTICS_BY_PLAN.get(plan, AnalyticsLevel.NONE)

    can_export_reports = analytics_level in (AnalyticsLevel.ADVANCED, AnalyticsLevel.BUSINESS)
    if trial_active:
        can_export_reports = False

    support_tier = PLAN_SUPPORT_TIER[state.plan_type] if active_paid else SupportTier.NONE

    priority_level = _plan_priority(
        state,
        now,
        approved=approved,
        active_paid=active_paid,
        trial_active=trial_active,
    )
    if not open_to_public:
        priority_level = OrgPriority.LOW
    elif not (state.plan_type == PlanType.ENTERPRISE and active_paid):
        # Manual boosts only ever raise the plan-derived level.
        priority_level = score_to_priority(max(PRIORITY_SCORE[priority_level], manual_priority_score(state, now)))

    is_expired = state.plan_status == PlanStatus.EXPIRED.value or lifecycle.is_expired

    return EntitlementBundle(
        can_show_badge=can_show_badge,
        can_access_org_page=can_access_org_page,
        analytics_level=analytics_level,
        can_export_reports=can_export_reports,
        support_tier=support_tier,
        priority_level=priority_level,
        is_expired=is_expired,
        is_in_grace=lifecycle.is_in_grace if active_paid else False,
        grace_ends_at=lifecycle.grace_ends_at if active_paid else None,
        grace_days=lifecycle.grace_days if active_paid else 0,
        is_trial=trial_active,
        trial_ends_at=as_utc(trial.ends_at) if trial_active else None,
    )


def lifecycle_for(state: OrganizationState, now: datetime, *, grace_suppressed: bool) -> PlanLifecycleState:
    return compute_lifecycle(state.plan_type, state.plan_end_at, now, grace_suppressed)


def apply_plan_expiry(session: Session, organization: Organization, lifecycle: PlanLifecycleState) -> bool:
    """Persist the FREE downgrade once a paid term is past its grace window. Returns True when written."""

    if normalize_plan_type(organization.plan_type) == PlanType.FREE or not lifecycle.is_expired:
        return False

    previous_plan = organization.plan_type
    organization.plan_type = PlanType.FREE.value
    organization.plan_status = PlanStatus.EXPIRED.value
    organization.support_tier = SupportTier.NONE.value
    organization.priority_override = None
    try:
        session.flush()
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Failed to downgrade expired organisation %s", organization.id)
        raise

    entitlement_metrics.record_downgrade("plan_expired")
    logger.info(
        "plan.downgraded",
        extra={
            "organization_id": str(organization.id),
            "previous_plan": previous_plan,
            "plan_end_at": lifecycle.paid_term_end_at.isoformat() if lifecycle.paid_term_end_at else None,
        },
    )
    return True


def _resolution_outcome(bundle: EntitlementBundle, state: OrganizationState) -> str:
    if state.is_restricted:
        return "restricted"
    if bundle.is_trial:
        return "trial"
    if bundle.support_tier != SupportTier.NONE:
        return "grace" if bundle.is_in_grace else "paid"
    return "expired" if bundle.is_expired else "free"


def resolve_entitlements_by_id(
    session: Session,
    organization_id: uuid.UUID,
    *,
    now: datetime,
    notifier: Optional[TrialNotifier] = None,
) -> EntitlementResolution:
    """
    Load, downgrade if fully expired, apply the restriction cascade and resolve.

    ``was_updated`` tells callers to drop any cached view of the organisation.
    """

    organization = session.get(Organization, organization_id)
    if organization is None:
        raise OrganizationNotFoundError(organization_id)

    grace_suppressed = is_enterprise_managed_synced(session, organization.id)
    lifecycle = compute_lifecycle(organization.plan_type, organization.plan_end_at, now, grace_suppressed)
    downgraded = apply_plan_expiry(session, organization, lifecycle)

    state = OrganizationState.from_model(organization)
    if downgraded:
        lifecycle = lifecycle_for(state, now, grace_suppressed=grace_suppressed)

    view = state
    if not state.is_restricted and is_effectively_restricted(session, organization.id):
        view = replace(state, is_restricted=True)

    trial_lookup = lookup_active_trial(session, organization.id, now=now, notifier=notifier)

    # Trial expiry may have rewritten the row; derive from what is stored now.
    refreshed = OrganizationState.from_model(organization)
    if refreshed.plan_fields() != view.plan_fields():
        view = replace(refreshed, is_restricted=view.is_restricted)
        lifecycle = lifecycle_for(view, now, grace_suppressed=grace_suppressed)
        downgraded = True

    bundle = resolve_entitlements(view, trial_lookup.trial, lifecycle, now)
    entitlement_metrics.record_resolution(
        effective_plan(view, trial_lookup.trial, lifecycle, now).value,
        _resolution_outcome(bundle, view),
    )
    return EntitlementResolution(
        entitlements=bundle,
        organization=view,
        lifecycle=lifecycle,
        was_updated=downgraded or view.is_restricted != state.is_restricted,
        effect_error=trial_lookup.effect_error,
    )


__all__ = [
    "EntitlementBundle",
    "EntitlementResolution",
    "OrganizationState",
    "apply_plan_expiry",
    "effective_plan",
    "is_active_paid",
    "is_trial_active",
    "manual_priority_score",
    "map_priority_override",
    "resolve_entitlements",
    "resolve_entitlements_by_id",
    "score_to_priority",
]
