"""Pydantic schemas for enterprise quota, workspace entitlement and link-request routes."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

QuotaResourceLiteral = Literal["WORKSPACES", "LINKED_ORGS", "API_KEYS", "MEMBERS"]


class QuotaLimitsSchema(BaseModel):
    maxWorkspaces: int
    maxLinkedOrgs: int
    maxApiKeys: int
    maxMembers: int


class QuotaUsageSchema(BaseModel):
    workspaces: int = 0
    linkedOrgs: int = Field(default=0, description="Linked organisations plus pending link intents.")
    apiKeys: int = 0
    members: int = Field(default=0, description="Members plus pending invites.")


class QuotaSnapshotResponse(BaseModel):
    enterpriseId: uuid.UUID
    limits: QuotaLimitsSchema
    usage: QuotaUsageSchema
    workspaceIds: List[uuid.UUID] = Field(default_factory=list)
    trackedLinkedOrganizationIds: List[uuid.UUID] = Field(default_factory=list)


class QuotaCheckRequest(BaseModel):
    resource: QuotaResourceLiteral
    increment: Optional[int] = Field(default=None, description="Defaults to 1.")
    linkedOrganizationId: Optional[uuid.UUID] = Field(
        default=None,
        description="For LINKED_ORGS: an organisation already counted does not consume another slot.",
    )


class QuotaCheckResponse(BaseModel):
    allowed: bool = True
    snapshot: QuotaSnapshotResponse


class EnterpriseEntitlementsSchema(BaseModel):
    apiAccess: bool
    multiOrg: bool
    advancedAnalytics: bool
    auditExport: bool
    maxWorkspaces: int
    maxApiKeys: int
    maxLinkedOrgs: int
    maxMembers: int
    apiRateLimitPerMinute: int
    apiBurstLimit: int


class WorkspaceEntitlementsResponse(BaseModel):
    workspaceId: uuid.UUID
    hasAccess: bool
    entitlements: EnterpriseEntitlementsSchema
    enterpriseOrgIds: List[uuid.UUID] = Field(default_factory=list)


class LinkRequestCreate(BaseModel):
    enterpriseId: uuid.UUID
    requestedBy: str = Field(..., min_length=1)
    organizationId: Optional[uuid.UUID] = Field(default=None, description="Target by id.")
    identifier: Optional[str] = Field(default=None, description="Target by email, slug or website domain.")
    message: Optional[str] = None


class LinkDecisionRequest(BaseModel):
    decisionBy: str = Field(..., min_length=1)


class LinkRequestSchema(BaseModel):
    id: uuid.UUID
    enterpriseId: uuid.UUID
    workspaceId: Optional[uuid.UUID] = None
    organizationId: uuid.UUID
    intentType: str
    status: str
    requestedBy: Optional[str] = None
    requestIdentifier: Optional[str] = None
    message: Optional[str] = None
    decisionBy: Optional[str] = None
    decidedAt: Optional[datetime] = None
    canceledAt: Optional[datetime] = None


class LinkApprovalResponse(BaseModel):
    request: LinkRequestSchema
    linkId: uuid.UUID


class EnterpriseOrganizationCreate(BaseModel):
    enterpriseId: uuid.UUID
    createdBy: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    website: Optional[str] = None
    slug: Optional[str] = None


class EnterpriseOrganizationResponse(BaseModel):
    organizationId: uuid.UUID
    status: str = Field(..., description="Stays PENDING until a platform admin approves it.")
    planType: str
    planEndAt: Optional[datetime] = Field(default=None, description="Inherited from the enterprise term.")
    linkRequest: LinkRequestSchema


__all__ = [
    "EnterpriseEntitlementsSchema",
    "EnterpriseOrganizationCreate",
    "EnterpriseOrganizationResponse",
    "LinkApprovalResponse",
    "LinkDecisionRequest",
    "LinkRequestCreate",
    "LinkRequestSchema",
    "QuotaCheckRequest",
    "QuotaCheckResponse",
    "QuotaLimitsSchema",
    "QuotaSnapshotResponse",
    "QuotaUsageSchema",
    "WorkspaceEntitlementsResponse",
]
