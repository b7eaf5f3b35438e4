"""Proactive refresh scheduling.

The scheduler is a two-state machine:

``IDLE`` -> ``REFRESHING``
    when a check finds the token due for refresh *and* wins the guard.
``REFRESHING`` -> ``IDLE``
    unconditionally, once the refresh returns or raises.

Two sources feed the same guarded path:

1. a recurring :class:`threading.Timer` (``check_interval_seconds``), and
2. :meth:`RefreshScheduler.trigger`, called after every completed API call.

The guard is a single :class:`threading.Lock` taken with
``acquire(blocking=False)``, which makes check-and-set atomic across both
sources.  Checks that lose the race are no-ops; they are never queued.

Refresh errors stop here: they are logged and the current token stays in
place until the next check.
"""

from __future__ import annotations

import enum
import logging
import threading
from contextlib import contextmanager
from typing import Callable, Iterator

_LOG = logging.getLogger("box-appauth.token.scheduler")


class RefreshState(str, enum.Enum):
    IDLE = "idle"
    REFRESHING = "refreshing"


class RefreshScheduler:
    """Run *refresh* whenever *is_due* says so, never twice at once."""

    def __init__(
        self,
        refresh: Callable[[], None],
        *,
        is_due: Callable[[], bool],
        interval_seconds: float = 60.0,
        name: str = "box-appauth-refresh",
    ) -> None:
        self._refresh = refresh
        self._is_due = is_due
        self.interval_seconds = interval_seconds
        self.name = name
        self._guard = threading.Lock()
        self._timer_lock = threading.Lock()
        self._timer: threading.Timer | None = None
        self._running = False
        self._worker: threading.Thread | None = None

    # ------------------------------------------------------------------ #
    # State                                                              #
    # ------------------------------------------------------------------ #
    @property
    def state(self) -> RefreshState:
        return RefreshState.REFRESHING if self._guard.locked() else RefreshState.IDLE

    @property
    def running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------ #
    # Guarded refresh                                                    #
    # ------------------------------------------------------------------ #
    def _begin(self, source: str) -> bool:
        if not self._is_due():
            return False
        if not self._guard.acquire(blocking=False):
            _LOG.debug("Refresh already in flight; %s check is a no-op", source)
            return False
        # another trigger may have refreshed between the check and the acquire
        if not self._is_due():
            self._guard.release()
            _LOG.debug("Token refreshed meanwhile; %s check is a no-op", source)
            return False
        return True

    def _run_guarded(self, source: str) -> None:
        """Run the refresh; the caller must already hold the guard."""
        try:
            _LOG.debug("Refreshing token (source=%s)", source)
            self._refresh()
        except Exception:  # noqa: BLE001 - scheduled refresh errors never propagate
            _LOG.warning("Scheduled token refresh (source=%s) failed", source, exc_info=True)
        finally:
            self._guard.release()

    def check(self, *, source: str = "manual") -> bool:
        """Run one due-check and, if needed, the refresh in the calling thread.

        Returns *True* if this call performed a refresh.
        """
        if not self._begin(source):
            return False
        self._run_guarded(source)
        return True

    def trigger(self) -> bool:
        """Opportunistic post-call check.

        The refresh (if due) runs on a daemon worker thread so the API call
        that triggered it returns immediately.  Returns *True* if a refresh
        was started.
        """
        if not self._begin("post-call"):
            return False
        worker = threading.Thread(
            target=self._run_guarded,
            args=("post-call",),
            name=f"{self.name}-worker",
            daemon=True,
        )
        self._worker = worker
        try:
            worker.start()
        except RuntimeError:
            self._guard.release()
            raise
        return True

    @contextmanager
    def exclusive(self, timeout: float | None = None) -> Iterator[None]:
        """Hold the guard (blocking) for work that must not overlap a refresh."""
        acquired = self._guard.acquire(timeout=-1 if timeout is None else timeout)
        if not acquired:
            raise TimeoutError("Timed out waiting for an in-flight token refresh")
        try:
            yield
        finally:
            self._guard.release()

    def join(self, timeout: float | None = None) -> None:
        """Wait for the last post-call worker (if any) to finish."""
        worker = self._worker
        if worker is not None:
            worker.join(timeout)

    # ------------------------------------------------------------------ #
    # Timer                                                              #
    # ------------------------------------------------------------------ #
    def _schedule(self) -> None:
        timer = threading.Timer(self.interval_seconds, self._tick)
        timer.name = f"{self.name}-timer"
        timer.daemon = True
        self._timer = timer
        timer.start()

    def _tick(self) -> None:
        try:
            self.check(source="timer")
        finally:
            with self._timer_lock:
                if self._running:
                    self._schedule()

    def start(self) -> None:
        """Start the recurring timer (idempotent)."""
        with self._timer_lock:
            if self._running:
                return
            self._running = True
            self._schedule()
        _LOG.debug("Refresh scheduler started (interval=%ss)", self.interval_seconds)

    def stop(self) -> None:
        """Cancel the recurring timer. An in-flight refresh is not interrupted."""
        with self._timer_lock:
            self._running = False
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
        _LOG.debug("Refresh scheduler stopped")
