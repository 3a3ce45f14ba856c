"""Billing account, subscription and trial session tables."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func

from core.plan_constants import BillingGateway, PlanType, SubscriptionStatus, TrialStatus
from database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BillingAccount(Base):
    """One billing account per organisation; trials hang off it."""

    __tablename__ = "billing_accounts"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id = Column(
        UUID(as_uuid=True),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    gateway = Column(String(16), nullable=False, default=BillingGateway.NONE.value)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    billing_account_id = Column(
        UUID(as_uuid=True),
        ForeignKey("billing_accounts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    plan_type = Column(String(16), nullable=False, default=PlanType.BASIC.value)
    status = Column(String(16), nullable=False, default=SubscriptionStatus.ACTIVE.value, index=True)
    current_period_end = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class TrialSession(Base):
    """A single trial attempt. First-trial-only is enforced by the trial service, not the schema."""

    __tablename__ = "trial_sessions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    billing_account_id = Column(
        UUID(as_uuid=True),
        ForeignKey("billing_accounts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    plan_type = Column(String(16), nullable=False, default=PlanType.PRO.value)
    status = Column(String(16), nullable=False, default=TrialStatus.ACTIVE.value, index=True)
    started_at = Column(DateTime(timezone=True), nullable=False)
    ends_at = Column(DateTime(timezone=True), nullable=False)
    duration_days = Column(Integer, nullable=False)
    metadata_json = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


__all__ = ["BillingAccount", "Subscription", "TrialSession"]
