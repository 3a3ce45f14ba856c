"""Readiness reporting: database reachability, metrics export and the active plan policy."""

from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

from fastapi import APIRouter
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from core.logging import get_logger
from core.plan_constants import DEFAULT_ENTERPRISE_QUOTAS, PLAN_GRACE_DAYS, TRIAL_PROGRAM_DAYS
from database import engine
from services.entitlement_metrics import metrics_enabled

router = APIRouter(prefix="/health", tags=["Health"])

logger = get_logger(__name__)


def ping_database() -> Tuple[bool, Optional[str]]:
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.warning("Database ping failed: %s", exc)
        return False, str(exc)
    return True, None


def _policy_summary() -> Dict[str, Any]:
    return {
        "trialDays": TRIAL_PROGRAM_DAYS,
        "graceDays": {plan.value: days for plan, days in PLAN_GRACE_DAYS.items()},
        "enterpriseQuotaDefaults": dict(DEFAULT_ENTERPRISE_QUOTAS),
    }


@router.get(
    "/status",
    summary="서비스 상태와 적용 중인 플랜 정책을 반환합니다.",
)
def read_service_status() -> Dict[str, Any]:
    db_ok, db_error = ping_database()
    database: Dict[str, Any] = {"ok": db_ok}
    if db_error:
        database["error"] = db_error
    return {
        "status": "ok" if db_ok else "degraded",
        "database": database,
        "metrics": {"enabled": metrics_enabled()},
        "policy": _policy_summary(),
    }


__all__ = ["ping_database", "router"]
