"""Configuration surface of the token lifecycle manager.

Every value is validated when a :class:`ManagerOptions` instance is created.
Out-of-range values are *corrected* (and a warning is logged) rather than
rejected, so a bad setting never leaves an application without a token:

=============================  ==========  ==============================
option                         default     correction
=============================  ==========  ==============================
``refresh_threshold_minutes``  50          outside [5, 50] -> 50
``randomization_factor``       0           outside [0, 1] -> 0
``initial_delay_ms``           20          <= 0 -> 20
``max_delay_ms``               500         < initial delay -> initial
``max_attempts``               10          < 1 -> 10
``timeout_seconds``            20          <= 0 -> 20
``check_interval_seconds``     60          <= 0 -> 60
``assertion_ttl_seconds``      58          clamped to [1, 60]
=============================  ==========  ==============================

Environment variables
---------------------
:meth:`ManagerOptions.from_env` reads ``BOX_APPAUTH_<OPTION>`` (upper-case
option name), e.g. ``BOX_APPAUTH_REFRESH_THRESHOLD_MINUTES=30``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from typing import Any, Final

from box_appauth.token.models import BackoffPolicy
from box_appauth.utils.environment import (
    DEFAULT_PREFIX,
    env_flag,
    env_float,
    env_get,
    env_int,
)

_LOG = logging.getLogger("box-appauth.token.config")

TOKEN_URL: Final[str] = "https://api.box.com/oauth2/token"
REVOKE_URL: Final[str] = "https://api.box.com/oauth2/revoke"

MIN_THRESHOLD_MINUTES: Final[float] = 5
MAX_THRESHOLD_MINUTES: Final[float] = 50
MAX_ASSERTION_TTL_SECONDS: Final[int] = 60

_FLOAT_OPTIONS: Final[tuple[str, ...]] = (
    "refresh_threshold_minutes",
    "randomization_factor",
    "timeout_seconds",
    "check_interval_seconds",
)
_INT_OPTIONS: Final[tuple[str, ...]] = (
    "initial_delay_ms",
    "max_delay_ms",
    "max_attempts",
    "assertion_ttl_seconds",
    "clock_skew_seconds",
    "not_before_offset_seconds",
)


@dataclass(frozen=True, slots=True)
class ManagerOptions:
    """Validated tuning knobs for :class:`~box_appauth.token.manager.TokenLifecycleManager`."""

    refresh_threshold_minutes: float = MAX_THRESHOLD_MINUTES
    check_interval_seconds: float = 60.0
    initial_delay_ms: int = 20
    max_delay_ms: int = 500
    randomization_factor: float = 0.0
    max_attempts: int = 10
    timeout_seconds: float = 20.0
    assertion_ttl_seconds: int = 58
    clock_skew_seconds: int = 5
    not_before_offset_seconds: int = -10
    token_url: str = TOKEN_URL
    revoke_url: str = REVOKE_URL
    debug: bool = False

    def __post_init__(self) -> None:
        self._correct(
            "refresh_threshold_minutes",
            MIN_THRESHOLD_MINUTES <= self.refresh_threshold_minutes <= MAX_THRESHOLD_MINUTES,
            MAX_THRESHOLD_MINUTES,
        )
        self._correct(
            "randomization_factor", 0 <= self.randomization_factor <= 1, 0.0
        )
        self._correct("initial_delay_ms", self.initial_delay_ms > 0, 20)
        self._correct(
            "max_delay_ms", self.max_delay_ms >= self.initial_delay_ms, self.initial_delay_ms
        )
        self._correct("max_attempts", self.max_attempts >= 1, 10)
        self._correct("timeout_seconds", self.timeout_seconds > 0, 20.0)
        self._correct("check_interval_seconds", self.check_interval_seconds > 0, 60.0)
        self._correct(
            "assertion_ttl_seconds",
            1 <= self.assertion_ttl_seconds <= MAX_ASSERTION_TTL_SECONDS,
            min(max(self.assertion_ttl_seconds, 1), MAX_ASSERTION_TTL_SECONDS),
        )
        self._correct("clock_skew_seconds", self.clock_skew_seconds >= 0, 5)

    def _correct(self, name: str, valid: bool, replacement: Any) -> None:
        if valid:
            return
        _LOG.warning(
            "Option %s=%r is out of range; using %r instead",
            name,
            getattr(self, name),
            replacement,
        )
        object.__setattr__(self, name, replacement)

    # ------------------------------------------------------------------ #
    # Derived values                                                     #
    # ------------------------------------------------------------------ #
    @property
    def refresh_threshold_ms(self) -> int:
        return int(self.refresh_threshold_minutes * 60_000)

    @property
    def backoff_policy(self) -> BackoffPolicy:
        return BackoffPolicy(
            initial_delay_ms=self.initial_delay_ms,
            max_delay_ms=self.max_delay_ms,
            randomization_factor=self.randomization_factor,
            max_attempts=self.max_attempts,
        )

    # ------------------------------------------------------------------ #
    # Construction helpers                                               #
    # ------------------------------------------------------------------ #
    @classmethod
    def from_env(cls, prefix: str = DEFAULT_PREFIX, **overrides: Any) -> "ManagerOptions":
        """Build options from ``${prefix}*`` environment variables.

        Explicit keyword *overrides* win over the environment.
        """
        values: dict[str, Any] = {}
        for name in _FLOAT_OPTIONS:
            value = env_float(prefix, name.upper())
            if value is not None:
                values[name] = value
        for name in _INT_OPTIONS:
            value = env_int(prefix, name.upper())
            if value is not None:
                values[name] = value
        for name in ("token_url", "revoke_url"):
            value = env_get(prefix, name.upper())
            if value:
                values[name] = value
        if env_get(prefix, "DEBUG") is not None:
            values["debug"] = env_flag(prefix, "DEBUG")

        known = {f.name for f in fields(cls)}
        unknown = set(overrides) - known
        if unknown:
            raise TypeError(f"Unknown manager option(s): {', '.join(sorted(unknown))}")
        values.update(overrides)
        return cls(**values)
