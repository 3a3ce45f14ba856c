"""Typed errors raised by the entitlement, trial, quota and linking services."""

from __future__ import annotations

import uuid
from typing import Any, Dict, Optional

from core.plan_constants import QUOTA_RESOURCE_LABELS, QuotaResource


class OrganizationNotFoundError(LookupError):
    """Raised when an organisation id does not resolve to a row."""

    def __init__(self, organization_id: Any, message: str = "Organization not found") -> None:
        super().__init__(message)
        self.organization_id = organization_id
        self.message = message

    def to_detail(self) -> Dict[str, Any]:
        return {
            "code": "organization.not_found",
            "message": self.message,
            "organizationId": str(self.organization_id),
        }


class TrialError(ValueError):
    """Trial validation failure; ``code`` is one of the TRIAL_* constants below."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message

    def to_detail(self) -> Dict[str, str]:
        return {"code": self.code, "message": self.message}


TRIAL_PLAN_INVALID = "TRIAL_PLAN_INVALID"
TRIAL_DURATION_INVALID = "TRIAL_DURATION_INVALID"
TRIAL_ALREADY_USED = "TRIAL_ALREADY_USED"
TRIAL_ACTIVE_SUBSCRIPTION = "TRIAL_ACTIVE_SUBSCRIPTION"
TRIAL_NOT_FOUND = "TRIAL_NOT_FOUND"
TRIAL_EXTENSION_INVALID = "TRIAL_EXTENSION_INVALID"


class LimitReachedError(RuntimeError):
    """Expected policy denial: the requested increment would exceed an enterprise quota."""

    def __init__(self, resource: Any, limit: int, current: int, message: str = "") -> None:
        self.resource = QuotaResource(resource)
        self.limit = limit
        self.current = current
        self.message = message or f"Limit reached for {QUOTA_RESOURCE_LABELS[self.resource]}"
        super().__init__(self.message)

    def to_response(self) -> Dict[str, Any]:
        return {
            "error": "LIMIT_REACHED",
            "resource": self.resource.value,
            "limit": self.limit,
            "current": self.current,
            "message": self.message,
        }

    def to_detail(self) -> Dict[str, Any]:
        return self.to_response()


class LinkRequestError(RuntimeError):
    """Enterprise link-request workflow violation."""

    def __init__(self, code: str, message: str, request_id: Optional[uuid.UUID] = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.request_id = request_id

    def to_detail(self) -> Dict[str, Optional[str]]:
        detail: Dict[str, Optional[str]] = {"code": self.code, "message": self.message}
        if self.request_id:
            detail["requestId"] = str(self.request_id)
        return detail


LINK_WORKSPACE_SCOPE = "link.workspace_scope"
LINK_WORKSPACE_UNAVAILABLE = "link.workspace_unavailable"
LINK_TARGET_INVALID = "link.target_invalid"
LINK_ALREADY_LINKED = "link.already_linked"
LINK_REQUEST_NOT_FOUND = "link.request_not_found"
LINK_REQUEST_PROCESSED = "link.request_processed"
LINK_REQUEST_NO_WORKSPACE = "link.request_no_workspace"


__all__ = [
    "LINK_ALREADY_LINKED",
    "LINK_REQUEST_NOT_FOUND",
    "LINK_REQUEST_NO_WORKSPACE",
    "LINK_REQUEST_PROCESSED",
    "LINK_TARGET_INVALID",
    "LINK_WORKSPACE_SCOPE",
    "LINK_WORKSPACE_UNAVAILABLE",
    "LimitReachedError",
    "LinkRequestError",
    "OrganizationNotFoundError",
    "TRIAL_ACTIVE_SUBSCRIPTION",
    "TRIAL_ALREADY_USED",
    "TRIAL_DURATION_INVALID",
    "TRIAL_EXTENSION_INVALID",
    "TRIAL_NOT_FOUND",
    "TRIAL_PLAN_INVALID",
    "TrialError",
]
