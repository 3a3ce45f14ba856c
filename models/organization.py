"""Tenant organisation record read and written by the entitlement engine."""

from __future__ import annotations

import uuid

from sqlalchemy import Boolean, Column, DateTime, Integer, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func

from core.plan_constants import OrgPriority, OrgStatus, PlanStatus, PlanType, SupportTier
from database import Base


class Organization(Base):
    """Directory tenant with its plan term, restriction flag and enterprise quota overrides."""

    __tablename__ = "organizations"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(200), nullable=False)
    slug = Column(String(160), unique=True, nullable=True)
    email = Column(String(255), nullable=True)
    website = Column(String(512), nullable=True)
    status = Column(String(16), nullable=False, default=OrgStatus.PENDING.value, index=True)
    is_restricted = Column(Boolean, nullable=False, default=False, index=True)

    plan_type = Column(String(16), nullable=False, default=PlanType.FREE.value, index=True)
    plan_status = Column(String(16), nullable=False, default=PlanStatus.ACTIVE.value)
    plan_start_at = Column(DateTime(timezone=True), nullable=True)
    plan_end_at = Column(DateTime(timezone=True), nullable=True)
    support_tier = Column(String(16), nullable=False, default=SupportTier.NONE.value)

    priority = Column(String(16), nullable=False, default=OrgPriority.NORMAL.value)
    priority_override = Column(Integer, nullable=True)
    priority_expires_at = Column(DateTime(timezone=True), nullable=True)

    # Enterprise quota overrides; null means "use the default".
    enterprise_max_workspaces = Column(Integer, nullable=True)
    enterprise_max_linked_orgs = Column(Integer, nullable=True)
    enterprise_max_api_keys = Column(Integer, nullable=True)
    enterprise_max_members = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    def __repr__(self) -> str:  # pragma: no cover - debugging helper
        return f"<Organization id={self.id} plan={self.plan_type!r} status={self.status!r}>"


__all__ = ["Organization"]
