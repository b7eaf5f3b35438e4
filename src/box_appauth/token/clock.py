"""Injectable wall clock for the token lifecycle.

Anything that compares against ``iat``/``exp`` or a token's expiry reads time
through a :class:`Clock` so tests can pin it.  JWT claims use whole seconds
and token records use milliseconds; the helpers below do the conversions in
one place.

>>> from box_appauth.token.clock import now_seconds, now_ms
>>> now_ms(lambda: 12.5)
12500
>>> now_seconds(lambda: 12.5)
12
"""

from __future__ import annotations

import time
from typing import Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    """Zero-argument callable returning seconds since the UNIX epoch."""

    def __call__(self) -> float: ...


def default_clock() -> float:
    return time.time()


def now_seconds(clock: Clock = default_clock) -> int:
    """Whole seconds, as carried in JWT time claims."""
    return int(clock())


def now_ms(clock: Clock = default_clock) -> int:
    """Whole milliseconds, as carried in token records."""
    return int(clock() * 1000)


def ms_until(deadline_ms: int, clock: Clock = default_clock) -> int:
    """Milliseconds left before *deadline_ms*; negative once it has passed."""
    return deadline_ms - now_ms(clock)
