"""Shared helpers for serialising entitlement, trial, quota and link-request results."""

from __future__ import annotations

import uuid
from typing import Optional, cast

from core.plan_constants import enum_value
from models.billing import TrialSession
from models.workspace import EnterpriseOrgLinkRequest
from schemas.api.enterprise import (
    EnterpriseEntitlementsSchema,
    EnterpriseOrganizationResponse,
    LinkRequestSchema,
    QuotaLimitsSchema,
    QuotaSnapshotResponse,
    QuotaUsageSchema,
    WorkspaceEntitlementsResponse,
)
from schemas.api.entitlements import (
    AnalyticsLevelLiteral,
    EntitlementBundleSchema,
    EntitlementResponse,
    PriorityLiteral,
    SupportTierLiteral,
    TrialSessionSchema,
    TrialStatusResponse,
)
from services.enterprise_entitlement import EnterpriseEntitlements, WorkspaceEntitlements
from services.enterprise_linking import EnterpriseCreatedOrganization
from services.enterprise_quota import QuotaSnapshot
from services.entitlement_service import EntitlementBundle, EntitlementResolution
from services.plan_lifecycle import as_utc
from services.trial_service import TrialStatusView


def serialize_entitlement_bundle(bundle: EntitlementBundle) -> EntitlementBundleSchema:
    return EntitlementBundleSchema(
        canShowBadge=bundle.can_show_badge,
        canAccessOrgPage=bundle.can_access_org_page,
        analyticsLevel=cast(AnalyticsLevelLiteral, bundle.analytics_level.value),
        canExportReports=bundle.can_export_reports,
        supportTier=cast(SupportTierLiteral, bundle.support_tier.value),
        priorityLevel=cast(PriorityLiteral, bundle.priority_level.value),
        isExpired=bundle.is_expired,
        isInGrace=bundle.is_in_grace,
        graceEndsAt=bundle.grace_ends_at,
        graceDays=bundle.grace_days,
        isTrial=bundle.is_trial,
        trialEndsAt=bundle.trial_ends_at,
    )


def serialize_entitlement_resolution(
    organization_id: uuid.UUID,
    resolution: EntitlementResolution,
) -> EntitlementResponse:
    """Convert an ``EntitlementResolution`` into the API response schema."""

    organization = resolution.organization
    return EntitlementResponse(
        organizationId=organization.id or organization_id,
        planType=organization.plan_type.value,
        planStatus=organization.plan_status,
        isRestricted=organization.is_restricted,
        entitlements=serialize_entitlement_bundle(resolution.entitlements),
        wasUpdated=resolution.was_updated,
    )


def serialize_trial_session(trial: Optional[TrialSession]) -> Optional[TrialSessionSchema]:
    if trial is None:
        return None
    return TrialSessionSchema(
        id=trial.id,
        planType=enum_value(trial.plan_type),
        status=enum_value(trial.status),
        startedAt=as_utc(trial.started_at),
        endsAt=as_utc(trial.ends_at),
        durationDays=trial.duration_days,
        metadata=dict(trial.metadata_json or {}),
    )


def serialize_trial_status(view: TrialStatusView) -> TrialStatusResponse:
    return TrialStatusResponse(active=view.active, trial=serialize_trial_session(view.trial))


def serialize_quota_snapshot(snapshot: QuotaSnapshot) -> QuotaSnapshotResponse:
    limits = snapshot.limits
    usage = snapshot.usage
    return QuotaSnapshotResponse(
        enterpriseId=snapshot.enterprise_id,
        limits=QuotaLimitsSchema(
            maxWorkspaces=limits.max_workspaces,
            maxLinkedOrgs=limits.max_linked_orgs,
            maxApiKeys=limits.max_api_keys,
            maxMembers=limits.max_members,
        ),
        usage=QuotaUsageSchema(
            workspaces=usage.workspaces,
            linkedOrgs=usage.linked_orgs,
            apiKeys=usage.api_keys,
            members=usage.members,
        ),
        workspaceIds=list(snapshot.workspace_ids),
        trackedLinkedOrganizationIds=sorted(snapshot.tracked_linked_organization_ids, key=str),
    )


def _serialize_enterprise_entitlements(entitlements: EnterpriseEntitlements) -> EnterpriseEntitlementsSchema:
    return EnterpriseEntitlementsSchema(
        apiAccess=entitlements.api_access,
        multiOrg=entitlements.multi_org,
        advancedAnalytics=entitlements.advanced_analytics,
        auditExport=entitlements.audit_export,
        maxWorkspaces=entitlements.max_workspaces,
        maxApiKeys=entitlements.max_api_keys,
        maxLinkedOrgs=entitlements.max_linked_orgs,
        maxMembers=entitlements.max_members,
        apiRateLimitPerMinute=entitlements.api_rate_limit_per_minute,
        apiBurstLimit=entitlements.api_burst_limit,
    )


def serialize_workspace_entitlements(
    workspace_id: uuid.UUID,
    result: WorkspaceEntitlements,
) -> WorkspaceEntitlementsResponse:
    return WorkspaceEntitlementsResponse(
        workspaceId=workspace_id,
        hasAccess=result.has_access,
        entitlements=_serialize_enterprise_entitlements(result.entitlements),
        enterpriseOrgIds=list(result.enterprise_organization_ids),
    )


def serialize_link_request(request: EnterpriseOrgLinkRequest) -> LinkRequestSchema:
    return LinkRequestSchema(
        id=request.id,
        enterpriseId=request.enterprise_id,
        workspaceId=request.workspace_id,
        organizationId=request.organization_id,
        intentType=enum_value(request.intent_type),
        status=enum_value(request.status),
        requestedBy=request.requested_by,
        requestIdentifier=request.request_identifier,
        message=request.message,
        decisionBy=request.decision_by,
        decidedAt=as_utc(request.decided_at),
        canceledAt=as_utc(request.canceled_at),
    )


def serialize_enterprise_created_organization(result: EnterpriseCreatedOrganization) -> EnterpriseOrganizationResponse:
    organization = result.organization
    return EnterpriseOrganizationResponse(
        organizationId=organization.id,
        status=enum_value(organization.status),
        planType=enum_value(organization.plan_type),
        planEndAt=as_utc(organization.plan_end_at),
        linkRequest=serialize_link_request(result.link_request),
    )


__all__ = [
    "serialize_enterprise_created_organization",
    "serialize_entitlement_bundle",
    "serialize_entitlement_resolution",
    "serialize_link_request",
    "serialize_quota_snapshot",
    "serialize_trial_session",
    "serialize_trial_status",
    "serialize_workspace_entitlements",
]
