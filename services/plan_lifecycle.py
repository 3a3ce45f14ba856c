"""Paid-term lifecycle arithmetic: active term, grace window or hard expiry."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from core.plan_constants import (
    ENTERPRISE_SYNC_STATUSES,
    PLAN_GRACE_DAYS,
    LinkIntentType,
    normalize_plan_type,
)
from models.workspace import EnterpriseOrgLinkRequest


@dataclass(frozen=True, slots=True)
class PlanLifecycleState:
    """Derived view of a paid term at one instant. Never persisted."""

    paid_term_end_at: Optional[datetime]
    grace_days: int
    grace_ends_at: Optional[datetime]
    is_in_grace: bool
    is_expired: bool


OPEN_ENDED = PlanLifecycleState(
    paid_term_end_at=None,
    grace_days=0,
    grace_ends_at=None,
    is_in_grace=False,
    is_expired=False,
)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Return ``value`` as an aware UTC datetime; naive values are taken to be UTC already."""

    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def get_plan_grace_days(plan_type: Any) -> int:
    return PLAN_GRACE_DAYS.get(normalize_plan_type(plan_type), 0)


def compute_lifecycle(
    plan_type: Any,
    paid_term_end_at: Optional[datetime],
    now: datetime,
    grace_suppressed: bool = False,
) -> PlanLifecycleState:
    """
    Classify a paid term relative to ``now``.

    ``grace_suppressed`` zeroes the grace window for organisations whose term is
    owned by a parent enterprise; they expire the moment the term ends.
    """

    end_at = as_utc(paid_term_end_at)
    if end_at is None:
        return OPEN_ENDED

    current = as_utc(now)
    grace_days = 0 if grace_suppressed else get_plan_grace_days(plan_type)

    if current <= end_at:
        return PlanLifecycleState(
            paid_term_end_at=end_at,
            grace_days=grace_days,
            grace_ends_at=end_at + timedelta(days=grace_days) if grace_days > 0 else None,
            is_in_grace=False,
            is_expired=False,
        )

    if grace_days <= 0:
        return PlanLifecycleState(
            paid_term_end_at=end_at,
            grace_days=0,
            grace_ends_at=None,
            is_in_grace=False,
            is_expired=True,
        )

    grace_ends_at = end_at + timedelta(days=grace_days)
    in_grace = current <= grace_ends_at
    return PlanLifecycleState(
        paid_term_end_at=end_at,
        grace_days=grace_days,
        grace_ends_at=grace_ends_at,
        is_in_grace=in_grace,
        is_expired=not in_grace,
    )


def is_enterprise_managed_synced(session: Session, organization_id: Optional[uuid.UUID]) -> bool:
    """True when an enterprise created this organisation and therefore owns its billing term."""

    if organization_id is None:
        return False
    stmt = (
        select(EnterpriseOrgLinkRequest.id)
        .where(
            EnterpriseOrgLinkRequest.organization_id == organization_id,
            EnterpriseOrgLinkRequest.intent_type == LinkIntentType.CREATE_UNDER_ENTERPRISE.value,
            EnterpriseOrgLinkRequest.status.in_([status.value for status in ENTERPRISE_SYNC_STATUSES]),
        )
        .limit(1)
    )
    return session.execute(stmt).scalar_one_or_none() is not None


__all__ = [
    "OPEN_ENDED",
    "PlanLifecycleState",
    "as_utc",
    "compute_lifecycle",
    "get_plan_grace_days",
    "is_enterprise_managed_synced",
]
