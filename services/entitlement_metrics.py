"""Prometheus counters for entitlement resolution, plan downgrades, trials and quota denials."""

from __future__ import annotations

from typing import Optional, Sequence

from core.logging import get_logger

logger = get_logger(__name__)

try:  # pragma: no cover - optional dependency
    from prometheus_client import REGISTRY, Counter  # type: ignore
except ImportError:  # pragma: no cover - optional dependency
    Counter = None  # type: ignore
    REGISTRY = None  # type: ignore

METRIC_NAMESPACE = "directory"


def _counter(name: str, documentation: str, labelnames: Sequence[str]) -> Optional[object]:
    """Register ``directory_<name>``; reloading the module reuses the registered collector."""

    if Counter is None:
        return None
    try:
        return Counter(name, documentation, tuple(labelnames), namespace=METRIC_NAMESPACE)
    except ValueError:
        registered = getattr(REGISTRY, "_names_to_collectors", {}) or {}
        full_name = f"{METRIC_NAMESPACE}_{name}"
        collector = registered.get(full_name) or registered.get(f"{full_name}_total")
        if collector is None:
            logger.debug("Counter %s already registered but not found in registry.", full_name)
        return collector


_RESOLUTIONS = _counter(
    "entitlement_resolutions",
    "Entitlement bundles resolved, by effective plan and outcome.",
    ("plan", "outcome"),
)
_DOWNGRADES = _counter(
    "plan_auto_downgrades",
    "Organisations forced back to FREE after their paid term or trial lapsed.",
    ("reason",),
)
_TRIAL_EVENTS = _counter(
    "trial_events",
    "Trial lifecycle events (started, extended, expired, reminder).",
    ("event",),
)
_QUOTA_DENIALS = _counter(
    "enterprise_quota_denials",
    "Enterprise quota assertions that raised LimitReachedError.",
    ("resource",),
)


def metrics_enabled() -> bool:
    return Counter is not None


def _inc(counter, **labels: str) -> None:
    if counter is None:
        return
    try:
        counter.labels(**labels).inc()
    except ValueError:  # pragma: no cover - label mismatch
        logger.debug("Failed to increment %s with labels %s", counter, labels)


def record_resolution(plan: str, outcome: str) -> None:
    _inc(_RESOLUTIONS, plan=plan or "unknown", outcome=outcome or "unknown")


def record_downgrade(reason: str) -> None:
    _inc(_DOWNGRADES, reason=reason or "unknown")


def record_trial_event(event: str) -> None:
    _inc(_TRIAL_EVENTS, event=event or "unknown")


def record_quota_denial(resource: str) -> None:
    _inc(_QUOTA_DENIALS, resource=resource or "unknown")


__all__ = [
    "METRIC_NAMESPACE",
    "metrics_enabled",
    "record_downgrade",
    "record_quota_denial",
    "record_resolution",
    "record_trial_event",
]
