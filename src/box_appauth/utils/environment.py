"""Utility functions related to environment-variable configuration."""

import logging
import math
import os
from typing import Final, Tuple

logger = logging.getLogger("box-appauth.utils.environment")

_TRUTHY: Final[Tuple[str, ...]] = ("true", "1", "yes", "y", "on")

DEFAULT_PREFIX: Final[str] = "BOX_APPAUTH_"


def _truthy(value: str | None) -> bool:
    return (value or "").strip().lower() in _TRUTHY


def env_get(prefix: str, key: str) -> str | None:
    """
    Return ``${PREFIX}${KEY}`` with surrounding whitespace removed.

    Empty values are treated as unset so that placeholders in ``.env`` files
    fall back to the library defaults.
    """
    raw = os.getenv(f"{prefix}{key}")
    if raw is None:
        return None
    raw = raw.strip()
    return raw or None


def env_flag(prefix: str, key: str) -> bool:
    return _truthy(env_get(prefix, key))


def env_float(prefix: str, key: str) -> float | None:
    """
    Parse ``${PREFIX}${KEY}`` as a float.

    Unparseable values are logged and ignored (``None``) so that option
    normalisation can apply its default instead of aborting start-up.
    """
    raw = env_get(prefix, key)
    if raw is None:
        return None
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring non-numeric %s%s=%r", prefix, key, raw)
        return None


def env_int(prefix: str, key: str) -> int | None:
    value = env_float(prefix, key)
    if value is None:
        return None
    if not math.isfinite(value):
        logger.warning("Ignoring non-finite %s%s=%r", prefix, key, value)
        return None
    return int(value)
