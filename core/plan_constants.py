"""Plan, trial and enterprise enumerations plus the tunable lookup tables."""

from __future__ import annotations

from enum import Enum
from typing import Dict, Mapping, Sequence

from core.env import env_int


class PlanType(str, Enum):
    FREE = "FREE"
    BASIC = "BASIC"
    PRO = "PRO"
    BUSINESS = "BUSINESS"
    ENTERPRISE = "ENTERPRISE"

    def __str__(self) -> str:  # pragma: no cover - convenience
        return self.value


class PlanStatus(str, Enum):
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"


class OrgStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    SUSPENDED = "SUSPENDED"


class OrgPriority(str, Enum):
    LOW = "LOW"
    NORMAL = "NORMAL"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class SupportTier(str, Enum):
    NONE = "NONE"
    EMAIL = "EMAIL"
    CHAT = "CHAT"
    INSTANT = "INSTANT"
    DEDICATED = "DEDICATED"


class AnalyticsLevel(str, Enum):
    NONE = "NONE"
    BASIC = "BASIC"
    ADVANCED = "ADVANCED"
    BUSINESS = "BUSINESS"


class TrialStatus(str, Enum):
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"


class SubscriptionStatus(str, Enum):
    ACTIVE = "ACTIVE"
    TRIALING = "TRIALING"
    PAST_DUE = "PAST_DUE"
    CANCELED = "CANCELED"
    EXPIRED = "EXPIRED"


class BillingGateway(str, Enum):
    NONE = "NONE"
    STRIPE = "STRIPE"
    SSLCOMMERZ = "SSLCOMMERZ"


class WorkspaceStatus(str, Enum):
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"
    ARCHIVED = "ARCHIVED"
    DELETED = "DELETED"


class InviteStatus(str, Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REVOKED = "REVOKED"


class LinkRequestStatus(str, Enum):
    PENDING = "PENDING"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    DENIED = "DENIED"
    CANCELED = "CANCELED"


class LinkIntentType(str, Enum):
    LINK_EXISTING = "LINK_EXISTING"
    CREATE_UNDER_ENTERPRISE = "CREATE_UNDER_ENTERPRISE"


class QuotaResource(str, Enum):
    WORKSPACES = "WORKSPACES"
    LINKED_ORGS = "LINKED_ORGS"
    API_KEYS = "API_KEYS"
    MEMBERS = "MEMBERS"


_PAID_GRACE_DAYS = env_int("PLAN_GRACE_DAYS_PAID", 7, minimum=0)
_ENTERPRISE_GRACE_DAYS = env_int("PLAN_GRACE_DAYS_ENTERPRISE", 14, minimum=0)

PLAN_GRACE_DAYS: Mapping[PlanType, int] = {
    PlanType.BASIC: _PAID_GRACE_DAYS,
    PlanType.PRO: _PAID_GRACE_DAYS,
    PlanType.BUSINESS: _PAID_GRACE_DAYS,
    PlanType.ENTERPRISE: _ENTERPRISE_GRACE_DAYS,
}

PLAN_SUPPORT_TIER: Mapping[PlanType, SupportTier] = {
    PlanType.FREE: SupportTier.NONE,
    PlanType.BASIC: SupportTier.EMAIL,
    PlanType.PRO: SupportTier.CHAT,
    PlanType.BUSINESS: SupportTier.INSTANT,
    PlanType.ENTERPRISE: SupportTier.DEDICATED,
}

PRIORITY_SCORE: Mapping[OrgPriority, int] = {
    OrgPriority.HIGH: 3,
    OrgPriority.MEDIUM: 2,
    OrgPriority.NORMAL: 1,
    OrgPriority.LOW: 0,
}

PRO_PRIORITY_BOOST_DAYS = env_int("PRO_PRIORITY_BOOST_DAYS", 30, minimum=0)

TRIAL_PLAN_TYPE = PlanType.PRO
TRIAL_PROGRAM_DAYS = env_int("TRIAL_PROGRAM_DAYS", 14, minimum=1)
TRIAL_REMINDER_WINDOW_HOURS = env_int("TRIAL_REMINDER_WINDOW_HOURS", 48, minimum=0)

BLOCKING_SUBSCRIPTION_STATUSES: Sequence[SubscriptionStatus] = (
    SubscriptionStatus.ACTIVE,
    SubscriptionStatus.TRIALING,
    SubscriptionStatus.PAST_DUE,
)

ENTERPRISE_SYNC_STATUSES: Sequence[LinkRequestStatus] = (
    LinkRequestStatus.PENDING_APPROVAL,
    LinkRequestStatus.APPROVED,
)

QUOTA_RESERVING_STATUSES: Sequence[LinkRequestStatus] = (
    LinkRequestStatus.PENDING,
    LinkRequestStatus.PENDING_APPROVAL,
)

DEFAULT_ENTERPRISE_QUOTAS: Dict[str, int] = {
    "max_workspaces": env_int("ENTERPRISE_DEFAULT_MAX_WORKSPACES", 10, minimum=1),
    "max_linked_orgs": env_int("ENTERPRISE_DEFAULT_MAX_LINKED_ORGS", 50, minimum=1),
    "max_api_keys": env_int("ENTERPRISE_DEFAULT_MAX_API_KEYS", 10, minimum=1),
    "max_members": env_int("ENTERPRISE_DEFAULT_MAX_MEMBERS", 100, minimum=1),
}

QUOTA_RESOURCE_LABELS: Mapping[QuotaResource, str] = {
    QuotaResource.WORKSPACES: "Workspaces",
    QuotaResource.LINKED_ORGS: "Linked Organizations",
    QuotaResource.API_KEYS: "API Keys",
    QuotaResource.MEMBERS: "Members",
}


def enum_value(value: object) -> str:
    """Stored string for an enum member or raw column value."""
    if isinstance(value, Enum):
        return str(value.value)
    return "" if value is None else str(value)


def normalize_plan_type(value: object) -> PlanType:
    """Coerce stored/raw plan values, defaulting unknown input to FREE."""
    if isinstance(value, PlanType):
        return value
    if not value:
        return PlanType.FREE
    candidate = str(value).strip().upper()
    try:
        return PlanType(candidate)
    except ValueError:
        return PlanType.FREE


__all__ = [
    "AnalyticsLevel",
    "BLOCKING_SUBSCRIPTION_STATUSES",
    "BillingGateway",
    "DEFAULT_ENTERPRISE_QUOTAS",
    "ENTERPRISE_SYNC_STATUSES",
    "InviteStatus",
    "LinkIntentType",
    "LinkRequestStatus",
    "OrgPriority",
    "OrgStatus",
    "PLAN_GRACE_DAYS",
    "PLAN_SUPPORT_TIER",
    "PRIORITY_SCORE",
    "PRO_PRIORITY_BOOST_DAYS",
    "PlanStatus",
    "PlanType",
    "QUOTA_RESERVING_STATUSES",
    "QUOTA_RESOURCE_LABELS",
    "QuotaResource",
    "SubscriptionStatus",
    "SupportTier",
    "TRIAL_PLAN_TYPE",
    "TRIAL_PROGRAM_DAYS",
    "TRIAL_REMINDER_WINDOW_HOURS",
    "TrialStatus",
    "WorkspaceStatus",
    "enum_value",
    "normalize_plan_type",
]
