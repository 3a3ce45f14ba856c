"""Process-wide logging bootstrap shared by services, routers and tests."""

from __future__ import annotations

import logging
import os
from typing import Optional

try:  # pragma: no cover - optional dependency
    from google.cloud import logging as gcp_logging
except Exception:  # pragma: no cover - GCP logging optional
    gcp_logging = None

_DEFAULT_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"
_TRUTHY = {"1", "true", "yes", "on"}

_state = {"configured": False, "cloud": False}


def _level_from_env(fallback: int) -> int:
    raw = (os.getenv("LOG_LEVEL") or "").strip().upper()
    if not raw:
        return fallback
    resolved = logging.getLevelName(raw)
    return resolved if isinstance(resolved, int) else fallback


def _attach_cloud_handler(level: int) -> None:
    if _state["cloud"] or gcp_logging is None:
        return
    if os.getenv("ENABLE_GOOGLE_CLOUD_LOGGING", "false").strip().lower() not in _TRUTHY:
        return
    try:
        gcp_logging.Client().setup_logging(log_level=level)
        _state["cloud"] = True
    except Exception as exc:  # pragma: no cover - handler best-effort
        logging.getLogger(__name__).warning("Cloud logging handler unavailable: %s", exc)


def setup_logging(level: Optional[int] = None, *, fmt: Optional[str] = None) -> int:
    """Configure the root logger once and return the effective level."""
    effective = _level_from_env(level if level is not None else logging.INFO)
    if not _state["configured"]:
        logging.basicConfig(level=effective, format=fmt or _DEFAULT_FORMAT)
        _state["configured"] = True
    _attach_cloud_handler(effective)
    return effective


def get_logger(name: str, *, level: Optional[int] = None) -> logging.Logger:
    """Return a module logger after making sure the root logger is configured."""
    effective = setup_logging(level)
    logger = logging.getLogger(name)
    logger.setLevel(effective)
    return logger


__all__ = ["get_logger", "setup_logging"]
