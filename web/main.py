"""FastAPI application exposing entitlement, trial, quota and enterprise-link routes."""

from __future__ import annotations

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse, Response

from core.logging import setup_logging
from services.entitlement_errors import LimitReachedError
from web import routers

try:  # pragma: no cover - optional dependency
    from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
except ImportError:  # pragma: no cover
    CONTENT_TYPE_LATEST = "text/plain; version=0.0.4; charset=utf-8"
    generate_latest = None

setup_logging()

app = FastAPI(
    title="Directory Entitlements API",
    description="조직 플랜, 체험, 엔터프라이즈 쿼터와 연결 요청을 관리하는 API입니다.",
    version="1.0.0",
)


@app.exception_handler(LimitReachedError)
async def handle_limit_reached(request: Request, exc: LimitReachedError) -> JSONResponse:
    """Quota denials are expected policy outcomes, rendered as 409 with the structured body."""
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content=exc.to_response())


@app.get("/", summary="Health Check", tags=["Default"])
def health_check():
    """API 상태를 확인하는 헬스 체크 엔드포인트입니다."""
    return {"status": "ok", "message": "Directory Entitlements API is running."}


@app.get("/healthz", include_in_schema=False)
def cloud_run_health_check():
    """Lightweight Cloud Run friendly health probe."""
    db_ok, db_error = routers.health.ping_database()
    payload = {"status": "ok" if db_ok else "unhealthy", "database": {"ok": db_ok}}
    if db_error:
        payload["database"]["error"] = db_error
    status_code = status.HTTP_200_OK if db_ok else status.HTTP_503_SERVICE_UNAVAILABLE
    return JSONResponse(status_code=status_code, content=payload)


@app.get("/metrics", include_in_schema=False)
def prometheus_metrics():
    """Expose Prometheus metrics for Cloud Monitoring."""
    if generate_latest is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"code": "metrics.unavailable", "message": "prometheus_client is not installed"},
        )
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


routers.include_routers(app)
