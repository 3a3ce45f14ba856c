"""Enterprise quota, workspace entitlement and link-request routes."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import List

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from database import get_db
from schemas.api.enterprise import (
    EnterpriseOrganizationCreate,
    EnterpriseOrganizationResponse,
    LinkApprovalResponse,
    LinkDecisionRequest,
    LinkRequestCreate,
    LinkRequestSchema,
    QuotaCheckRequest,
    QuotaCheckResponse,
    QuotaSnapshotResponse,
    WorkspaceEntitlementsResponse,
)
from services import enterprise_linking
from services.enterprise_entitlement import get_workspace_entitlements
from services.enterprise_quota import assert_quota_available, get_quota_snapshot
from services.entitlement_errors import LinkRequestError, OrganizationNotFoundError
from services.entitlement_serializers import (
    serialize_enterprise_created_organization,
    serialize_link_request,
    serialize_quota_snapshot,
    serialize_workspace_entitlements,
)
from web.deps import get_request_time, link_http_error, organization_not_found

router = APIRouter(tags=["Enterprise"])


@router.get(
    "/enterprise/{enterprise_id}/quota",
    response_model=QuotaSnapshotResponse,
    summary="엔터프라이즈 쿼터 사용량을 반환합니다.",
)
def read_quota(enterprise_id: uuid.UUID, db: Session = Depends(get_db)) -> QuotaSnapshotResponse:
    try:
        snapshot = get_quota_snapshot(db, enterprise_id)
    except OrganizationNotFoundError as exc:
        raise organization_not_found(exc) from exc
    return serialize_quota_snapshot(snapshot)


@router.post(
    "/enterprise/{enterprise_id}/quota/check",
    response_model=QuotaCheckResponse,
    summary="요청한 증가분이 쿼터 안에 있는지 확인합니다.",
)
def check_quota(
    enterprise_id: uuid.UUID,
    payload: QuotaCheckRequest,
    db: Session = Depends(get_db),
) -> QuotaCheckResponse:
    try:
        snapshot = get_quota_snapshot(db, enterprise_id)
    except OrganizationNotFoundError as exc:
        raise organization_not_found(exc) from exc
    # LimitReachedError is rendered as 409 by the application-level handler.
    assert_quota_available(
        snapshot,
        payload.resource,
        increment=payload.increment,
        linked_organization_id=payload.linkedOrganizationId,
    )
    return QuotaCheckResponse(allowed=True, snapshot=serialize_quota_snapshot(snapshot))


@router.get(
    "/enterprise/workspaces/{workspace_id}/entitlements",
    response_model=WorkspaceEntitlementsResponse,
    summary="워크스페이스의 엔터프라이즈 권한을 반환합니다.",
)
def read_workspace_entitlements(
    workspace_id: uuid.UUID,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_request_time),
) -> WorkspaceEntitlementsResponse:
    result = get_workspace_entitlements(db, workspace_id, now=now)
    return serialize_workspace_entitlements(workspace_id, result)


@router.get(
    "/enterprise/workspaces/{workspace_id}/link-requests",
    response_model=List[LinkRequestSchema],
    summary="워크스페이스의 연결 요청 목록을 반환합니다.",
)
def list_link_requests(
    workspace_id: uuid.UUID,
    enterprise_id: uuid.UUID = Query(..., alias="enterpriseId"),
    db: Session = Depends(get_db),
) -> List[LinkRequestSchema]:
    try:
        enterprise_linking.ensure_workspace_scoped_to_enterprise(db, workspace_id, enterprise_id)
    except LinkRequestError as exc:
        raise link_http_error(exc) from exc
    requests = enterprise_linking.list_workspace_link_requests(
        db,
        workspace_id=workspace_id,
        enterprise_id=enterprise_id,
    )
    return [serialize_link_request(request) for request in requests]


@router.post(
    "/enterprise/workspaces/{workspace_id}/link-requests",
    response_model=LinkRequestSchema,
    status_code=status.HTTP_201_CREATED,
    summary="기존 조직에 워크스페이스 연결을 요청합니다.",
)
def create_link_request(
    workspace_id: uuid.UUID,
    payload: LinkRequestCreate,
    db: Session = Depends(get_db),
) -> LinkRequestSchema:
    try:
        request = enterprise_linking.create_link_request(
            db,
            workspace_id=workspace_id,
            enterprise_id=payload.enterpriseId,
            requested_by=payload.requestedBy,
            organization_id=payload.organizationId,
            identifier=payload.identifier,
            message=payload.message,
        )
        db.commit()
    except OrganizationNotFoundError as exc:
        db.rollback()
        raise organization_not_found(exc) from exc
    except LinkRequestError as exc:
        db.rollback()
        raise link_http_error(exc) from exc
    return serialize_link_request(request)


@router.post(
    "/enterprise/workspaces/{workspace_id}/organizations",
    response_model=EnterpriseOrganizationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="엔터프라이즈 소속 조직을 생성하고 승인 대기로 등록합니다.",
)
def create_enterprise_organization(
    workspace_id: uuid.UUID,
    payload: EnterpriseOrganizationCreate,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_request_time),
) -> EnterpriseOrganizationResponse:
    try:
        result = enterprise_linking.register_enterprise_created_organization(
            db,
            workspace_id=workspace_id,
            enterprise_id=payload.enterpriseId,
            created_by=payload.createdBy,
            name=payload.name,
            email=payload.email,
            website=payload.website,
            slug=payload.slug,
            now=now,
        )
        db.commit()
    except OrganizationNotFoundError as exc:
        db.rollback()
        raise organization_not_found(exc) from exc
    except LinkRequestError as exc:
        db.rollback()
        raise link_http_error(exc) from exc
    return serialize_enterprise_created_organization(result)


@router.get(
    "/orgs/{org_id}/link-requests",
    response_model=List[LinkRequestSchema],
    summary="조직에 도착한 대기 중인 연결 요청을 반환합니다.",
)
def list_pending_link_requests(org_id: uuid.UUID, db: Session = Depends(get_db)) -> List[LinkRequestSchema]:
    requests = enterprise_linking.list_pending_requests_for_organization(db, org_id)
    return [serialize_link_request(request) for request in requests]


@router.post(
    "/orgs/{org_id}/link-requests/{request_id}/approve",
    response_model=LinkApprovalResponse,
    summary="연결 요청을 승인하고 워크스페이스에 조직을 연결합니다.",
)
def approve_link_request(
    org_id: uuid.UUID,
    request_id: uuid.UUID,
    payload: LinkDecisionRequest,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_request_time),
) -> LinkApprovalResponse:
    try:
        approval = enterprise_linking.approve_link_request(
            db,
            request_id=request_id,
            organization_id=org_id,
            decision_by=payload.decisionBy,
            now=now,
        )
        db.commit()
    except OrganizationNotFoundError as exc:
        db.rollback()
        raise organization_not_found(exc) from exc
    except LinkRequestError as exc:
        db.rollback()
        raise link_http_error(exc) from exc
    return LinkApprovalResponse(request=serialize_link_request(approval.request), linkId=approval.link.id)


@router.post(
    "/orgs/{org_id}/link-requests/{request_id}/deny",
    response_model=LinkRequestSchema,
    summary="연결 요청을 거절합니다.",
)
def deny_link_request(
    org_id: uuid.UUID,
    request_id: uuid.UUID,
    payload: LinkDecisionRequest,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_request_time),
) -> LinkRequestSchema:
    try:
        request = enterprise_linking.deny_link_request(
            db,
            request_id=request_id,
            organization_id=org_id,
            decision_by=payload.decisionBy,
            now=now,
        )
        db.commit()
    except LinkRequestError as exc:
        db.rollback()
        raise link_http_error(exc) from exc
    return serialize_link_request(request)


@router.post(
    "/enterprise/{enterprise_id}/link-requests/{request_id}/cancel",
    response_model=LinkRequestSchema,
    summary="엔터프라이즈가 보낸 연결 요청을 취소합니다.",
)
def cancel_link_request(
    enterprise_id: uuid.UUID,
    request_id: uuid.UUID,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_request_time),
) -> LinkRequestSchema:
    try:
        request = enterprise_linking.cancel_link_request(
            db,
            request_id=request_id,
            enterprise_id=enterprise_id,
            now=now,
        )
        db.commit()
    except LinkRequestError as exc:
        db.rollback()
        raise link_http_error(exc) from exc
    return serialize_link_request(request)


__all__ = ["router"]
