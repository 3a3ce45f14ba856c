"""Environment lookups for plan, trial, quota and database settings.

Invalid values never abort start-up: the lookup logs a warning and the
documented default applies.
"""

from __future__ import annotations

import os
from typing import Optional

from dotenv import load_dotenv

from core.logging import get_logger

load_dotenv()

logger = get_logger(__name__)

_BOOL_WORDS = {
    "1": True,
    "true": True,
    "yes": True,
    "on": True,
    "0": False,
    "false": False,
    "no": False,
    "off": False,
}


def _raw(key: str) -> Optional[str]:
    value = os.getenv(key)
    if value is None:
        return None
    value = value.strip()
    return value or None


def env_str(key: str, default: Optional[str] = None) -> Optional[str]:
    raw = _raw(key)
    return default if raw is None else raw


def env_int(key: str, default: int, *, minimum: Optional[int] = None) -> int:
    """Integer setting; unparsable or below-``minimum`` values fall back to ``default``."""
    raw = _raw(key)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r: not an integer, using %d.", key, raw, default)
        return default
    if minimum is not None and value < minimum:
        logger.warning("Ignoring %s=%d: must be >= %d, using %d.", key, value, minimum, default)
        return default
    return value


def env_bool(key: str, default: bool) -> bool:
    raw = _raw(key)
    if raw is None:
        return default
    parsed = _BOOL_WORDS.get(raw.lower())
    if parsed is None:
        logger.warning("Ignoring %s=%r: not a boolean, using %s.", key, raw, default)
        return default
    return parsed


__all__ = ["env_bool", "env_int", "env_str"]
