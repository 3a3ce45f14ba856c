"""Enterprise link-request workflow: request, approve, deny, cancel and enterprise-created organisations.

Every mutation that adds a managed organisation checks the LINKED_ORGS quota
in the same session transaction as the write. The check is advisory; the
unique ``(workspace_id, organization_id)`` constraint settles true races.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional
from urllib.parse import urlparse

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.logging import get_logger
from core.plan_constants import (
    LinkIntentType,
    LinkRequestStatus,
    OrgPriority,
    OrgStatus,
    PlanStatus,
    PlanType,
    QuotaResource,
    SupportTier,
    WorkspaceStatus,
)
from models.organization import Organization
from models.workspace import EnterpriseOrgLinkRequest, Workspace, WorkspaceOrganization
from services.enterprise_quota import assert_enterprise_quota
from services.entitlement_errors import (
    LINK_ALREADY_LINKED,
    LINK_REQUEST_NO_WORKSPACE,
    LINK_REQUEST_NOT_FOUND,
    LINK_REQUEST_PROCESSED,
    LINK_TARGET_INVALID,
    LINK_WORKSPACE_SCOPE,
    LINK_WORKSPACE_UNAVAILABLE,
    LinkRequestError,
    OrganizationNotFoundError,
)
from services.plan_lifecycle import as_utc

logger = get_logger(__name__)

ENTERPRISE_CREATED_MESSAGE = "Created by enterprise workspace. Pending super admin approval."


@dataclass(slots=True)
class LinkApproval:
    request: EnterpriseOrgLinkRequest
    link: WorkspaceOrganization


@dataclass(slots=True)
class EnterpriseCreatedOrganization:
    organization: Organization
    link_request: EnterpriseOrgLinkRequest


def _find_link(session: Session, workspace_id: uuid.UUID, organization_id: uuid.UUID) -> Optional[WorkspaceOrganization]:
    return session.execute(
        select(WorkspaceOrganization).where(
            WorkspaceOrganization.workspace_id == workspace_id,
            WorkspaceOrganization.organization_id == organization_id,
        )
    ).scalar_one_or_none()


def ensure_workspace_scoped_to_enterprise(session: Session, workspace_id: uuid.UUID, enterprise_id: uuid.UUID) -> None:
    if _find_link(session, workspace_id, enterprise_id) is None:
        raise LinkRequestError(LINK_WORKSPACE_SCOPE, "Workspace is not scoped to your enterprise organization")


def _eligible(stmt):
    return stmt.where(
        Organization.status == OrgStatus.APPROVED.value,
        Organization.is_restricted.is_(False),
    )


def _parse_domain(value: str) -> Optional[str]:
    raw = (value or "").strip().lower()
    if not raw:
        return None
    parsed = urlparse(raw if "://" in raw else f"https://{raw}")
    host = (parsed.hostname or "").removeprefix("www.")
    return host or None


def resolve_organization_by_identifier(session: Session, identifier: str) -> Organization:
    """Match an eligible organisation by email, slug or website domain."""

    normalized = (identifier or "").strip().lower()
    if not normalized:
        raise LinkRequestError(LINK_TARGET_INVALID, "Organization identifier is required")

    candidates: dict[uuid.UUID, Organization] = {}
    if "@" in normalized:
        for org in session.execute(_eligible(select(Organization)).where(Organization.email == normalized)).scalars():
            candidates.setdefault(org.id, org)

    slug = normalized.strip("/")
    if slug and "@" not in slug and "." not in slug:
        for org in session.execute(_eligible(select(Organization)).where(Organization.slug == slug)).scalars():
            candidates.setdefault(org.id, org)

    domain = _parse_domain(normalized) if "@" not in normalized else None
    if domain and "." in domain:
        rows = session.execute(
            _eligible(select(Organization)).where(Organization.website.ilike(f"%{domain}%")).limit(20)
        ).scalars()
        for org in rows:
            if _parse_domain(org.website or "") == domain:
                candidates.setdefault(org.id, org)

    matches = list(candidates.values())
    if not matches:
        raise LinkRequestError(LINK_TARGET_INVALID, "No eligible organization found for this identifier")
    if len(matches) == 1:
        return matches[0]
    for org in matches:
        if org.slug and org.slug.lower() == slug:
            return org
    for org in matches:
        if (org.email or "").lower() == normalized:
            return org
    raise LinkRequestError(LINK_TARGET_INVALID, "Multiple organizations matched. Use exact organization email or slug.")


def _resolve_eligible_by_id(session: Session, organization_id: uuid.UUID) -> Organization:
    org = session.execute(_eligible(select(Organization)).where(Organization.id == organization_id)).scalar_one_or_none()
    if org is None:
        raise LinkRequestError(LINK_TARGET_INVALID, "No eligible organization found for this identifier")
    return org


def create_link_request(
    session: Session,
    *,
    workspace_id: uuid.UUID,
    enterprise_id: uuid.UUID,
    requested_by: str,
    organization_id: Optional[uuid.UUID] = None,
    identifier: Optional[str] = None,
    message: Optional[str] = None,
) -> EnterpriseOrgLinkRequest:
    """Ask an existing organisation to join an enterprise workspace."""

    ensure_workspace_scoped_to_enterprise(session, workspace_id, enterprise_id)

    if organization_id is not None:
        organization = _resolve_eligible_by_id(session, organization_id)
        request_identifier = str(organization_id)
    else:
        organization = resolve_organization_by_identifier(session, identifier or "")
        request_identifier = (identifier or "").strip()

    if organization.id == enterprise_id:
        raise LinkRequestError(LINK_TARGET_INVALID, "Enterprise organization is already linked")
    if _find_link(session, workspace_id, organization.id) is not None:
        raise LinkRequestError(LINK_ALREADY_LINKED, "Organization is already linked to this workspace")

    pending = session.execute(
        select(EnterpriseOrgLinkRequest)
        .where(
            EnterpriseOrgLinkRequest.workspace_id == workspace_id,
            EnterpriseOrgLinkRequest.enterprise_id == enterprise_id,
            EnterpriseOrgLinkRequest.organization_id == organization.id,
            EnterpriseOrgLinkRequest.status == LinkRequestStatus.PENDING.value,
        )
        .order_by(EnterpriseOrgLinkRequest.created_at.desc())
        .limit(1)
    ).scalar_one_or_none()
    if pending is not None:
        return pending

    assert_enterprise_quota(
        session,
        enterprise_id,
        QuotaResource.LINKED_ORGS,
        linked_organization_id=organization.id,
    )

    request = EnterpriseOrgLinkRequest(
        enterprise_id=enterprise_id,
        workspace_id=workspace_id,
        organization_id=organization.id,
        requested_by=requested_by,
        request_identifier=request_identifier,
        message=(message or "").strip() or None,
        intent_type=LinkIntentType.LINK_EXISTING.value,
        status=LinkRequestStatus.PENDING.value,
    )
    session.add(request)
    session.flush()
    logger.info(
        "link.requested",
        extra={
            "request_id": str(request.id),
            "enterprise_id": str(enterprise_id),
            "organization_id": str(organization.id),
        },
    )
    return request


def _insert_link_or_reuse(
    session: Session,
    workspace_id: uuid.UUID,
    organization_id: uuid.UUID,
    linked_by: Optional[str],
) -> WorkspaceOrganization:
    try:
        with session.begin_nested():
            link = WorkspaceOrganization(
                workspace_id=workspace_id,
                organization_id=organization_id,
                linked_by=linked_by,
            )
            session.add(link)
            session.flush()
        return link
    except IntegrityError:
        # A concurrent approval won the race; its link is the one that counts.
        logger.info(
            "link.race_resolved",
            extra={"workspace_id": str(workspace_id), "organization_id": str(organization_id)},
        )
        existing = session.execute(
            select(WorkspaceOrganization).where(
                WorkspaceOrganization.workspace_id == workspace_id,
                WorkspaceOrganization.organization_id == organization_id,
            )
        ).scalar_one()
        return existing


def approve_link_request(
    session: Session,
    *,
    request_id: uuid.UUID,
    organization_id: uuid.UUID,
    decision_by: str,
    now: datetime,
) -> LinkApproval:
    """Accept a pending request on behalf of the target organisation and create the workspace link."""

    request = session.execute(
        select(EnterpriseOrgLinkRequest).where(
            EnterpriseOrgLinkRequest.id == request_id,
            EnterpriseOrgLinkRequest.organization_id == organization_id,
        )
    ).scalar_one_or_none()
    if request is None:
        raise LinkRequestError(LINK_REQUEST_NOT_FOUND, "Pending link request not found", request_id)
    if request.status != LinkRequestStatus.PENDING.value:
        raise LinkRequestError(LINK_REQUEST_PROCESSED, "Link request already processed", request_id)
    if request.workspace_id is None:
        raise LinkRequestError(LINK_REQUEST_NO_WORKSPACE, "Request does not target a workspace", request_id)

    assert_enterprise_quota(
        session,
        request.enterprise_id,
        QuotaResource.LINKED_ORGS,
        linked_organization_id=request.organization_id,
    )

    workspace = session.get(Workspace, request.workspace_id)
    if workspace is None or workspace.status != WorkspaceStatus.ACTIVE.value:
        raise LinkRequestError(LINK_WORKSPACE_UNAVAILABLE, "Workspace is unavailable", request_id)

    link = _find_link(session, request.workspace_id, request.organization_id)
    if link is None:
        link = _insert_link_or_reuse(
            session,
            request.workspace_id,
            request.organization_id,
            request.requested_by or decision_by,
        )

    request.status = LinkRequestStatus.APPROVED.value
    request.decided_at = as_utc(now)
    request.decision_by = decision_by
    request.updated_at = as_utc(now)
    session.flush()
    logger.info(
        "link.approved",
        extra={"request_id": str(request.id), "workspace_id": str(request.workspace_id)},
    )
    return LinkApproval(request=request, link=link)


def deny_link_request(
    session: Session,
    *,
    request_id: uuid.UUID,
    organization_id: uuid.UUID,
    decision_by: str,
    now: datetime,
) -> EnterpriseOrgLinkRequest:
    request = session.execute(
        select(EnterpriseOrgLinkRequest).where(
            EnterpriseOrgLinkRequest.id == request_id,
            EnterpriseOrgLinkRequest.organization_id == organization_id,
            EnterpriseOrgLinkRequest.status == LinkRequestStatus.PENDING.value,
        )
    ).scalar_one_or_none()
    if request is None:
        raise LinkRequestError(LINK_REQUEST_NOT_FOUND, "Pending link request not found", request_id)

    request.status = LinkRequestStatus.DENIED.value
    request.decided_at = as_utc(now)
    request.decision_by = decision_by
    request.updated_at = as_utc(now)
    session.flush()
    return request


def cancel_link_request(
    session: Session,
    *,
    request_id: uuid.UUID,
    enterprise_id: uuid.UUID,
    now: datetime,
) -> EnterpriseOrgLinkRequest:
    request = session.execute(
        select(EnterpriseOrgLinkRequest).where(
            EnterpriseOrgLinkRequest.id == request_id,
            EnterpriseOrgLinkRequest.enterprise_id == enterprise_id,
            EnterpriseOrgLinkRequest.status.in_(
                [LinkRequestStatus.PENDING.value, LinkRequestStatus.PENDING_APPROVAL.value]
            ),
        )
    ).scalar_one_or_none()
    if request is None:
        raise LinkRequestError(LINK_REQUEST_NOT_FOUND, "Pending link request not found", request_id)

    request.status = LinkRequestStatus.CANCELED.value
    request.canceled_at = as_utc(now)
    request.updated_at = as_utc(now)
    session.flush()
    return request


def list_workspace_link_requests(
    session: Session,
    *,
    workspace_id: uuid.UUID,
    enterprise_id: uuid.UUID,
) -> List[EnterpriseOrgLinkRequest]:
    return list(
        session.execute(
            select(EnterpriseOrgLinkRequest)
            .where(
                EnterpriseOrgLinkRequest.workspace_id == workspace_id,
                EnterpriseOrgLinkRequest.enterprise_id == enterprise_id,
            )
            .order_by(EnterpriseOrgLinkRequest.created_at.desc())
        ).scalars()
    )


def list_pending_requests_for_organization(session: Session, organization_id: uuid.UUID) -> List[EnterpriseOrgLinkRequest]:
    return list(
        session.execute(
            select(EnterpriseOrgLinkRequest)
            .where(
                EnterpriseOrgLinkRequest.organization_id == organization_id,
                EnterpriseOrgLinkRequest.status == LinkRequestStatus.PENDING.value,
            )
            .order_by(EnterpriseOrgLinkRequest.created_at.desc())
        ).scalars()
    )


def register_enterprise_created_organization(
    session: Session,
    *,
    workspace_id: uuid.UUID,
    enterprise_id: uuid.UUID,
    created_by: str,
    name: str,
    email: str,
    now: datetime,
    website: Optional[str] = None,
    slug: Optional[str] = None,
) -> EnterpriseCreatedOrganization:
    """
    Create an organisation under an enterprise. It inherits the enterprise's
    term end and stays PENDING_APPROVAL until a platform admin signs off.
    """

    ensure_workspace_scoped_to_enterprise(session, workspace_id, enterprise_id)
    enterprise = session.get(Organization, enterprise_id)
    if enterprise is None:
        raise OrganizationNotFoundError(enterprise_id, "Enterprise organization not found")

    assert_enterprise_quota(session, enterprise_id, QuotaResource.LINKED_ORGS)

    normalized_email = email.strip().lower()
    organization = Organization(
        name=name.strip(),
        email=normalized_email,
        website=(website or "").strip() or None,
        slug=(slug or "").strip().lower() or None,
        status=OrgStatus.PENDING.value,
        plan_type=PlanType.BUSINESS.value,
        plan_status=PlanStatus.ACTIVE.value,
        plan_start_at=as_utc(now),
        plan_end_at=as_utc(enterprise.plan_end_at),
        support_tier=SupportTier.INSTANT.value,
        priority=OrgPriority.HIGH.value,
    )
    session.add(organization)
    session.flush()

    request = EnterpriseOrgLinkRequest(
        enterprise_id=enterprise_id,
        workspace_id=workspace_id,
        organization_id=organization.id,
        requested_by=created_by,
        request_identifier=normalized_email,
        message=ENTERPRISE_CREATED_MESSAGE,
        intent_type=LinkIntentType.CREATE_UNDER_ENTERPRISE.value,
        status=LinkRequestStatus.PENDING_APPROVAL.value,
    )
    session.add(request)
    session.flush()
    logger.info(
        "link.enterprise_created",
        extra={"enterprise_id": str(enterprise_id), "organization_id": str(organization.id)},
    )
    return EnterpriseCreatedOrganization(organization=organization, link_request=request)


__all__ = [
    "ENTERPRISE_CREATED_MESSAGE",
    "EnterpriseCreatedOrganization",
    "LinkApproval",
    "approve_link_request",
    "cancel_link_request",
    "create_link_request",
    "deny_link_request",
    "ensure_workspace_scoped_to_enterprise",
    "list_pending_requests_for_organization",
    "list_workspace_link_requests",
    "register_enterprise_created_organization",
    "resolve_organization_by_identifier",
]
