"""Pydantic schemas for organisation entitlement, visibility and trial routes."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field

from core.plan_constants import TRIAL_PLAN_TYPE, TRIAL_PROGRAM_DAYS

AnalyticsLevelLiteral = Literal["NONE", "BASIC", "ADVANCED", "BUSINESS"]
SupportTierLiteral = Literal["NONE", "EMAIL", "CHAT", "INSTANT", "DEDICATED"]
PriorityLiteral = Literal["LOW", "NORMAL", "MEDIUM", "HIGH"]


class EntitlementBundleSchema(BaseModel):
    canShowBadge: bool = Field(..., description="Verified badge; requires a real paid term.")
    canAccessOrgPage: bool = Field(..., description="Whether the organisation page is published.")
    analyticsLevel: AnalyticsLevelLiteral
    canExportReports: bool = Field(..., description="Report export; never granted during a trial.")
    supportTier: SupportTierLiteral
    priorityLevel: PriorityLiteral
    isExpired: bool
    isInGrace: bool
    graceEndsAt: Optional[datetime] = Field(default=None, description="End of the grace window for paid plans.")
    graceDays: int = 0
    isTrial: bool
    trialEndsAt: Optional[datetime] = None


class EntitlementResponse(BaseModel):
    organizationId: uuid.UUID
    planType: str
    planStatus: str
    isRestricted: bool = Field(..., description="Effective restriction, including enterprise cascade.")
    entitlements: EntitlementBundleSchema
    wasUpdated: bool = Field(..., description="True when the stored organisation changed during resolution.")


class VisibilityResponse(BaseModel):
    organizationId: uuid.UUID
    visible: bool = Field(..., description="Whether the organisation may appear in public listings.")
    restricted: bool = Field(..., description="Effective restriction, including enterprise cascade.")


class TrialSessionSchema(BaseModel):
    id: uuid.UUID
    planType: str
    status: str
    startedAt: datetime
    endsAt: datetime
    durationDays: int
    metadata: Dict[str, Any] = Field(default_factory=dict)


class TrialStatusResponse(BaseModel):
    active: bool
    trial: Optional[TrialSessionSchema] = None


class TrialStartRequest(BaseModel):
    durationDays: int = Field(default=TRIAL_PROGRAM_DAYS, description="Trial length; must match the program length.")
    planType: str = Field(default=TRIAL_PLAN_TYPE.value, description="Trial plan; only PRO is offered.")


class TrialExtendRequest(BaseModel):
    extraDays: int = Field(..., description="Days to add to the active trial.")


__all__ = [
    "EntitlementBundleSchema",
    "EntitlementResponse",
    "TrialExtendRequest",
    "TrialSessionSchema",
    "TrialStartRequest",
    "TrialStatusResponse",
    "VisibilityResponse",
]
