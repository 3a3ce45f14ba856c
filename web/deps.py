"""Shared FastAPI dependencies."""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import HTTPException, status

from services.entitlement_errors import (
    LINK_ALREADY_LINKED,
    LINK_REQUEST_NOT_FOUND,
    LINK_REQUEST_PROCESSED,
    LINK_WORKSPACE_SCOPE,
    LINK_WORKSPACE_UNAVAILABLE,
    TRIAL_ACTIVE_SUBSCRIPTION,
    TRIAL_ALREADY_USED,
    TRIAL_NOT_FOUND,
    LinkRequestError,
    OrganizationNotFoundError,
    TrialError,
)

_TRIAL_STATUS = {
    TRIAL_ALREADY_USED: status.HTTP_409_CONFLICT,
    TRIAL_ACTIVE_SUBSCRIPTION: status.HTTP_409_CONFLICT,
    TRIAL_NOT_FOUND: status.HTTP_404_NOT_FOUND,
}

_LINK_STATUS = {
    LINK_WORKSPACE_SCOPE: status.HTTP_403_FORBIDDEN,
    LINK_REQUEST_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    LINK_REQUEST_PROCESSED: status.HTTP_409_CONFLICT,
    LINK_ALREADY_LINKED: status.HTTP_409_CONFLICT,
    LINK_WORKSPACE_UNAVAILABLE: status.HTTP_409_CONFLICT,
}


def get_request_time() -> datetime:
    """Single clock reading per request; every service call in the handler uses it."""
    return datetime.now(timezone.utc)


def organization_not_found(exc: OrganizationNotFoundError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.to_detail())


def trial_http_error(exc: TrialError) -> HTTPException:
    return HTTPException(
        status_code=_TRIAL_STATUS.get(exc.code, status.HTTP_400_BAD_REQUEST),
        detail=exc.to_detail(),
    )


def link_http_error(exc: LinkRequestError) -> HTTPException:
    return HTTPException(
        status_code=_LINK_STATUS.get(exc.code, status.HTTP_400_BAD_REQUEST),
        detail=exc.to_detail(),
    )


__all__ = [
    "get_request_time",
    "link_http_error",
    "organization_not_found",
    "trial_http_error",
]
