"""Router registry for the entitlement API."""

from __future__ import annotations

from fastapi import FastAPI

from . import enterprise, entitlements, health

API_PREFIX = "/api/v1"

ROUTERS = (
    entitlements.router,
    enterprise.router,
    health.router,
)


def include_routers(app: FastAPI, *, prefix: str = API_PREFIX) -> None:
    for router in ROUTERS:
        app.include_router(router, prefix=prefix)


__all__ = ["API_PREFIX", "ROUTERS", "enterprise", "entitlements", "health", "include_routers"]
