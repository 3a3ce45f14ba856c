"""Trial sessions: first-trial-only creation, lazy expiry on read and a one-time ending reminder."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.logging import get_logger
from core.plan_constants import (
    BLOCKING_SUBSCRIPTION_STATUSES,
    TRIAL_PLAN_TYPE,
    TRIAL_PROGRAM_DAYS,
    TRIAL_REMINDER_WINDOW_HOURS,
    BillingGateway,
    PlanStatus,
    PlanType,
    SupportTier,
    TrialStatus,
    normalize_plan_type,
)
from models.billing import BillingAccount, Subscription, TrialSession
from models.organization import Organization
from services import entitlement_metrics
from services.entitlement_errors import (
    TRIAL_ACTIVE_SUBSCRIPTION,
    TRIAL_ALREADY_USED,
    TRIAL_DURATION_INVALID,
    TRIAL_EXTENSION_INVALID,
    TRIAL_NOT_FOUND,
    TRIAL_PLAN_INVALID,
    OrganizationNotFoundError,
    TrialError,
)
from services.plan_lifecycle import as_utc

logger = get_logger(__name__)

TrialNotifier = Callable[[TrialSession, datetime], None]

REMINDER_METADATA_KEY = "reminderSentAt"


@dataclass(slots=True)
class TrialLookup:
    """Result of an active-trial read plus the error of any best-effort write it attempted."""

    trial: Optional[TrialSession]
    effect_error: Optional[Exception] = None


@dataclass(slots=True)
class TrialStatusView:
    active: bool
    trial: Optional[TrialSession]


def log_trial_reminder(trial: TrialSession, now: datetime) -> None:
    """Default reminder channel; real delivery is plugged in by the caller."""

    logger.info(
        "trial.reminder",
        extra={
            "trial_id": str(trial.id),
            "plan_type": trial.plan_type,
            "ends_at": as_utc(trial.ends_at).isoformat(),
        },
    )


def ensure_billing_account(session: Session, organization_id: uuid.UUID) -> BillingAccount:
    account = session.execute(
        select(BillingAccount).where(BillingAccount.organization_id == organization_id)
    ).scalar_one_or_none()
    if account is not None:
        return account
    account = BillingAccount(organization_id=organization_id, gateway=BillingGateway.NONE.value)
    session.add(account)
    session.flush()
    return account


def _latest_active_trial(session: Session, organization_id: uuid.UUID) -> Optional[TrialSession]:
    stmt = (
        select(TrialSession)
        .join(BillingAccount, BillingAccount.id == TrialSession.billing_account_id)
        .where(
            BillingAccount.organization_id == organization_id,
            TrialSession.status == TrialStatus.ACTIVE.value,
        )
        .order_by(TrialSession.ends_at.desc())
        .limit(1)
    )
    return session.execute(stmt).scalars().first()


def _downgrade_after_trial(session: Session, organization_id: uuid.UUID) -> None:
    organization = session.get(Organization, organization_id)
    if organization is None:
        return
    organization.plan_type = PlanType.FREE.value
    organization.plan_status = PlanStatus.EXPIRED.value
    organization.support_tier = SupportTier.NONE.value
    organization.plan_end_at = None
    session.flush()


def _maybe_send_reminder(
    session: Session,
    trial: TrialSession,
    now: datetime,
    notifier: TrialNotifier,
) -> Optional[Exception]:
    if as_utc(trial.ends_at) - as_utc(now) > timedelta(hours=TRIAL_REMINDER_WINDOW_HOURS):
        return None
    metadata = dict(trial.metadata_json or {})
    if metadata.get(REMINDER_METADATA_KEY):
        return None

    # A crash between send and flag means a duplicate send later, which is acceptable.
    try:
        notifier(trial, now)
    except Exception as exc:
        logger.warning("Trial reminder delivery failed for %s: %s", trial.id, exc)
        return exc
    entitlement_metrics.record_trial_event("reminder")

    try:
        with session.begin_nested():
            trial.metadata_json = {**metadata, REMINDER_METADATA_KEY: as_utc(now).isoformat()}
            session.flush()
    except SQLAlchemyError as exc:
        logger.warning("Failed to record trial reminder for %s: %s", trial.id, exc)
        return exc
    return None


def lookup_active_trial(
    session: Session,
    organization_id: uuid.UUID,
    *,
    now: datetime,
    notifier: Optional[TrialNotifier] = None,
) -> TrialLookup:
    """
    Return the organisation's live trial, expiring it lazily when its end has passed.

    An expired trial is flagged EXPIRED and the organisation is pushed back to
    FREE. The organisation write and the reminder flag are best-effort: their
    failures are logged and surfaced as ``effect_error`` instead of raised.
    """

    trial = _latest_active_trial(session, organization_id)
    if trial is None:
        return TrialLookup(trial=None)

    if as_utc(trial.ends_at) <= as_utc(now):
        trial.status = TrialStatus.EXPIRED.value
        session.flush()
        entitlement_metrics.record_trial_event("expired")
        logger.info(
            "trial.expired",
            extra={"trial_id": str(trial.id), "organization_id": str(organization_id)},
        )
        try:
            with session.begin_nested():
                _downgrade_after_trial(session, organization_id)
        except SQLAlchemyError as exc:
            logger.warning("Failed to downgrade organisation %s after trial expiry: %s", organization_id, exc)
            return TrialLookup(trial=None, effect_error=exc)
        entitlement_metrics.record_downgrade("trial_expired")
        return TrialLookup(trial=None)

    effect_error = _maybe_send_reminder(session, trial, now, notifier or log_trial_reminder)
    return TrialLookup(trial=trial, effect_error=effect_error)


def get_active_trial(
    session: Session,
    organization_id: uuid.UUID,
    *,
    now: datetime,
    notifier: Optional[TrialNotifier] = None,
) -> Optional[TrialSession]:
    return lookup_active_trial(session, organization_id, now=now, notifier=notifier).trial


def start_trial(
    session: Session,
    organization_id: uuid.UUID,
    *,
    duration_days: int,
    now: datetime,
    plan_type: Any = TRIAL_PLAN_TYPE,
) -> TrialSession:
    """Create the organisation's one and only trial. The stored plan is left untouched."""

    if normalize_plan_type(plan_type) != TRIAL_PLAN_TYPE:
        raise TrialError(TRIAL_PLAN_INVALID, f"Only {TRIAL_PLAN_TYPE.value} trials are supported")
    if isinstance(duration_days, bool) or duration_days != TRIAL_PROGRAM_DAYS:
        raise TrialError(TRIAL_DURATION_INVALID, f"Trial duration must be {TRIAL_PROGRAM_DAYS} days")

    if session.get(Organization, organization_id) is None:
        raise OrganizationNotFoundError(organization_id)

    account = ensure_billing_account(session, organization_id)

    existing = session.execute(
        select(TrialSession.id).where(TrialSession.billing_account_id == account.id).limit(1)
    ).scalar_one_or_none()
    if existing is not None:
        raise TrialError(TRIAL_ALREADY_USED, "Trial already used for this organization")

    blocking = session.execute(
        select(Subscription.id)
        .where(
            Subscription.billing_account_id == account.id,
            Subscription.status.in_([status.value for status in BLOCKING_SUBSCRIPTION_STATUSES]),
        )
        .limit(1)
    ).scalar_one_or_none()
    if blocking is not None:
        raise TrialError(TRIAL_ACTIVE_SUBSCRIPTION, "Active subscription found. Trial not available.")

    started_at = as_utc(now)
    trial = TrialSession(
        billing_account_id=account.id,
        plan_type=TRIAL_PLAN_TYPE.value,
        status=TrialStatus.ACTIVE.value,
        started_at=started_at,
        ends_at=started_at + timedelta(days=duration_days),
        duration_days=duration_days,
        metadata_json={},
    )
    session.add(trial)
    session.flush()
    entitlement_metrics.record_trial_event("started")
    logger.info(
        "trial.started",
        extra={"trial_id": str(trial.id), "organization_id": str(organization_id)},
    )
    return trial


def get_trial_status(session: Session, organization_id: uuid.UUID, *, now: datetime) -> TrialStatusView:
    active = get_active_trial(session, organization_id, now=now)
    if active is not None:
        return TrialStatusView(active=True, trial=active)

    latest = session.execute(
        select(TrialSession)
        .join(BillingAccount, BillingAccount.id == TrialSession.billing_account_id)
        .where(BillingAccount.organization_id == organization_id)
        .order_by(TrialSession.created_at.desc())
        .limit(1)
    ).scalars().first()
    return TrialStatusView(active=False, trial=latest)


def extend_trial(
    session: Session,
    organization_id: uuid.UUID,
    *,
    extra_days: int,
    now: datetime,
) -> TrialSession:
    if isinstance(extra_days, bool) or extra_days <= 0:
        raise TrialError(TRIAL_EXTENSION_INVALID, "Extra days must be greater than zero")

    ensure_billing_account(session, organization_id)
    trial = _latest_active_trial(session, organization_id)
    if trial is None:
        raise TrialError(TRIAL_NOT_FOUND, "No active trial found")

    trial.ends_at = as_utc(trial.ends_at) + timedelta(days=extra_days)
    trial.metadata_json = {
        **(trial.metadata_json or {}),
        "extendedByDays": extra_days,
        "extendedAt": as_utc(now).isoformat(),
    }
    session.flush()
    entitlement_metrics.record_trial_event("extended")
    return trial


__all__ = [
    "REMINDER_METADATA_KEY",
    "TrialLookup",
    "TrialNotifier",
    "TrialStatusView",
    "ensure_billing_account",
    "extend_trial",
    "get_active_trial",
    "get_trial_status",
    "log_trial_reminder",
    "lookup_active_trial",
    "start_trial",
]
