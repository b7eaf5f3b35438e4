"""Fibonacci backoff around token exchanges.

The delay after failed attempt *n* is ``fib(n) * initial_delay_ms`` (so with
an initial delay of 20ms: 20, 20, 40, 60, 100, ...), jittered by
``± randomization_factor`` and capped at ``max_delay_ms``.

Only :class:`~box_appauth.token.errors.TransientExchangeError` is retried.
Configuration and signing errors propagate immediately because retrying
cannot fix a bad key.
"""

from __future__ import annotations

import logging
import random
import time
from typing import Callable, Protocol, TypeVar

from box_appauth.token.errors import TokenAcquisitionError, TransientExchangeError
from box_appauth.token.models import BackoffPolicy

_LOG = logging.getLogger("box-appauth.token.backoff")

T = TypeVar("T")


class AttemptObserver(Protocol):
    """Advisory progress callback: ``(attempt, delay_ms_before_attempt)``."""

    def __call__(self, attempt: int, delay_ms: float) -> None: ...


class FibonacciBackoff:
    """Run an operation until it succeeds or the attempt budget is spent."""

    def __init__(
        self,
        policy: BackoffPolicy,
        *,
        sleep: Callable[[float], None] = time.sleep,
        random_fn: Callable[[], float] = random.random,
        on_attempt: AttemptObserver | None = None,
    ) -> None:
        self.policy = policy
        self._sleep = sleep
        self._random_fn = random_fn
        self._on_attempt = on_attempt

    def _notify(self, attempt: int, delay_ms: float) -> None:
        _LOG.debug(
            "Token exchange attempt %s/%s (after %.0fms)",
            attempt,
            self.policy.max_attempts,
            delay_ms,
        )
        if self._on_attempt is None:
            return
        try:
            self._on_attempt(attempt, delay_ms)
        except Exception:  # noqa: BLE001 - observers must not change control flow
            _LOG.warning("Backoff progress observer failed", exc_info=True)

    def run(self, operation: Callable[[], T]) -> T:
        """Invoke *operation* with retries.

        Raises
        ------
        TokenAcquisitionError
            After ``max_attempts`` transient failures.
        """
        delays = self.policy.delays(random_fn=self._random_fn)
        delay_ms = 0.0
        last_error: TransientExchangeError | None = None
        for attempt in range(1, self.policy.max_attempts + 1):
            self._notify(attempt, delay_ms)
            try:
                result = operation()
            except TransientExchangeError as exc:
                last_error = exc
                if attempt == self.policy.max_attempts:
                    break
                delay_ms = next(delays)
                _LOG.warning(
                    "Token exchange attempt %s failed (%s); retrying in %.0fms",
                    attempt,
                    exc,
                    delay_ms,
                )
                self._sleep(delay_ms / 1000)
                continue
            if attempt > 1:
                _LOG.info("Token exchange succeeded on attempt %s", attempt)
            return result

        _LOG.error(
            "All %s token exchange attempts exhausted", self.policy.max_attempts
        )
        raise TokenAcquisitionError(
            attempts=self.policy.max_attempts, last_error=last_error
        ) from last_error
