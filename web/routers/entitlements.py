"""Organisation entitlement, visibility and trial routes."""

from __future__ import annotations

import uuid
from datetime import datetime

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from database import get_db
from models.organization import Organization
from schemas.api.entitlements import (
    EntitlementResponse,
    TrialExtendRequest,
    TrialSessionSchema,
    TrialStartRequest,
    TrialStatusResponse,
    VisibilityResponse,
)
from services import trial_service
from services.entitlement_errors import OrganizationNotFoundError, TrialError
from services.entitlement_serializers import (
    serialize_entitlement_resolution,
    serialize_trial_session,
    serialize_trial_status,
)
from services.entitlement_service import resolve_entitlements_by_id
from services.organization_visibility import is_effectively_restricted, is_publicly_visible
from web.deps import get_request_time, organization_not_found, trial_http_error

router = APIRouter(prefix="/orgs", tags=["Entitlements"])


@router.get(
    "/{org_id}/entitlements",
    response_model=EntitlementResponse,
    summary="조직의 현재 권한 번들을 계산합니다.",
)
def read_entitlements(
    org_id: uuid.UUID,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_request_time),
) -> EntitlementResponse:
    try:
        resolution = resolve_entitlements_by_id(db, org_id, now=now)
    except OrganizationNotFoundError as exc:
        raise organization_not_found(exc) from exc
    # Resolution may downgrade an expired plan or expire a trial.
    db.commit()
    return serialize_entitlement_resolution(org_id, resolution)


@router.get(
    "/{org_id}/visibility",
    response_model=VisibilityResponse,
    summary="조직의 공개 노출 여부를 반환합니다.",
)
def read_visibility(org_id: uuid.UUID, db: Session = Depends(get_db)) -> VisibilityResponse:
    if db.get(Organization, org_id) is None:
        raise organization_not_found(OrganizationNotFoundError(org_id))
    return VisibilityResponse(
        organizationId=org_id,
        visible=is_publicly_visible(db, org_id),
        restricted=is_effectively_restricted(db, org_id),
    )


@router.get(
    "/{org_id}/trial",
    response_model=TrialStatusResponse,
    summary="조직의 체험 상태를 반환합니다.",
)
def read_trial_status(
    org_id: uuid.UUID,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_request_time),
) -> TrialStatusResponse:
    view = trial_service.get_trial_status(db, org_id, now=now)
    db.commit()
    return serialize_trial_status(view)


@router.post(
    "/{org_id}/trial",
    response_model=TrialSessionSchema,
    status_code=status.HTTP_201_CREATED,
    summary="조직의 첫 체험을 시작합니다.",
)
def start_trial(
    org_id: uuid.UUID,
    payload: TrialStartRequest,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_request_time),
) -> TrialSessionSchema:
    try:
        trial = trial_service.start_trial(
            db,
            org_id,
            duration_days=payload.durationDays,
            plan_type=payload.planType,
            now=now,
        )
        db.commit()
    except OrganizationNotFoundError as exc:
        db.rollback()
        raise organization_not_found(exc) from exc
    except TrialError as exc:
        db.rollback()
        raise trial_http_error(exc) from exc
    return serialize_trial_session(trial)


@router.post(
    "/{org_id}/trial/extend",
    response_model=TrialSessionSchema,
    summary="진행 중인 체험 기간을 연장합니다.",
)
def extend_trial(
    org_id: uuid.UUID,
    payload: TrialExtendRequest,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_request_time),
) -> TrialSessionSchema:
    if db.get(Organization, org_id) is None:
        raise organization_not_found(OrganizationNotFoundError(org_id))
    try:
        trial = trial_service.extend_trial(db, org_id, extra_days=payload.extraDays, now=now)
        db.commit()
    except TrialError as exc:
        db.rollback()
        raise trial_http_error(exc) from exc
    return serialize_trial_session(trial)


__all__ = ["router"]
