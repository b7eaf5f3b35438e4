"""Token lifecycle core package.

This namespace hosts the **HTTP-light** building blocks that mint, hold,
refresh and revoke bearer tokens obtained through the OAuth 2.0 JWT-bearer
grant.

Sub-modules
-----------
clock
    Test-friendly time abstraction.
models
    Immutable dataclasses: credentials, assertion claims, token records,
    backoff policy.
config
    Validated manager options (with environment loading).
assertion
    Signed assertion construction and local verification.
exchange
    Token / revoke endpoint calls.
backoff
    Fibonacci retry controller.
state
    Per-manager token holder.
scheduler
    Idle/Refreshing refresh state machine with a recurring timer.
manager
    ``TokenLifecycleManager`` facade.
errors
    Exception types used by the token lifecycle logic.
log_utils
    Structured logging helpers (thin wrapper around :pymod:`logging`).

All public objects are re-exported here for convenience.
"""

from __future__ import annotations

from .clock import Clock, default_clock  # noqa: F401
from .models import (  # noqa: F401
    Assertion,
    AssertionClaims,
    BackoffPolicy,
    Credentials,
    TokenRecord,
)
from .config import ManagerOptions  # noqa: F401
from .errors import (  # noqa: F401
    ApiCallError,
    ConfigurationError,
    RevocationError,
    RevokedError,
    SigningError,
    TokenAcquisitionError,
    TokenLifecycleError,
    TransientExchangeError,
)
from .assertion import AssertionBuilder, verify_assertion  # noqa: F401
from .exchange import TokenExchanger  # noqa: F401
from .backoff import FibonacciBackoff  # noqa: F401
from .state import TokenState  # noqa: F401
from .scheduler import RefreshScheduler, RefreshState  # noqa: F401
from .manager import TokenLifecycleManager  # noqa: F401
from .log_utils import get_token_logger, mask_sensitive  # noqa: F401

__all__ = [
    # clock
    "Clock",
    "default_clock",
    # models
    "Assertion",
    "AssertionClaims",
    "BackoffPolicy",
    "Credentials",
    "TokenRecord",
    # config
    "ManagerOptions",
    # errors
    "ApiCallError",
    "ConfigurationError",
    "RevocationError",
    "RevokedError",
    "SigningError",
    "TokenAcquisitionError",
    "TokenLifecycleError",
    "TransientExchangeError",
    # components
    "AssertionBuilder",
    "verify_assertion",
    "TokenExchanger",
    "FibonacciBackoff",
    "TokenState",
    "RefreshScheduler",
    "RefreshState",
    "TokenLifecycleManager",
    # logging helpers
    "get_token_logger",
    "mask_sensitive",
]
