"""TokenLifecycleManager – the facade consumed by every request-issuing caller.

Composition
-----------
``AssertionBuilder`` -> ``TokenExchanger`` wrapped in ``FibonacciBackoff``,
writing into a per-instance ``TokenState`` and driven by a
``RefreshScheduler``.  Nothing is shared between manager instances, so one
process can hold managers for several tenants.

Lifecycle
---------
1. Construction blocks on :meth:`TokenLifecycleManager.ensure_fresh`; if the
   first exchange exhausts its backoff budget, construction fails.
2. The scheduler refreshes in place whenever fewer than
   ``refresh_threshold_minutes`` of validity remain.  A failed scheduled
   refresh leaves the previous token in place.
3. :meth:`TokenLifecycleManager.revoke` is irreversible: the token is revoked
   at the server and every later ``get`` / refresh raises ``RevokedError``.

Key mismatch policy
-------------------
A ``ConfigurationError`` or ``SigningError`` raised by a *scheduled* refresh
disables the manager (later calls raise ``ConfigurationError``): a mismatched
key pair never fixes itself.
"""

from __future__ import annotations

import logging
import random
import threading
import time
from typing import Callable

import requests

from box_appauth.token.assertion import AssertionBuilder, verify_assertion
from box_appauth.token.backoff import AttemptObserver, FibonacciBackoff
from box_appauth.token.clock import Clock, default_clock
from box_appauth.token.config import ManagerOptions
from box_appauth.token.errors import (
    ConfigurationError,
    RevocationError,
    RevokedError,
    SigningError,
    TokenAcquisitionError,
)
from box_appauth.token.exchange import TokenExchanger
from box_appauth.token.log_utils import get_token_logger, mask_sensitive
from box_appauth.token.models import Assertion, Credentials, TokenRecord
from box_appauth.token.scheduler import RefreshScheduler, RefreshState
from box_appauth.token.state import TokenState
from box_appauth.validators import to_number_or_throw

AS_USER_HEADER = "As-User"


class TokenLifecycleManager:
    """Mint, hold, refresh and revoke the bearer token for one credential set."""

    def __init__(
        self,
        credentials: Credentials,
        options: ManagerOptions | None = None,
        *,
        session: requests.Session | None = None,
        clock: Clock = default_clock,
        sleep: Callable[[float], None] = time.sleep,
        nonce_factory: Callable[[], str] | None = None,
        random_fn: Callable[[], float] = random.random,
        on_attempt: AttemptObserver | None = None,
        autostart: bool = True,
    ) -> None:
        if not isinstance(credentials, Credentials):
            raise ConfigurationError("TokenLifecycleManager requires a Credentials instance")
        self.credentials = credentials
        self.options = options or ManagerOptions()
        self._clock = clock
        self._log = get_token_logger(
            base_logger_name="box-appauth.token.manager",
            issuer=credentials.issuer,
            subject_type=credentials.subject_type,
            client_id=credentials.client_id,
        )
        if self.options.debug:
            logging.getLogger("box-appauth").setLevel(logging.DEBUG)

        builder_kwargs = {} if nonce_factory is None else {"nonce_factory": nonce_factory}
        self._builder = AssertionBuilder(
            credentials,
            token_url=self.options.token_url,
            clock=clock,
            ttl_seconds=self.options.assertion_ttl_seconds,
            clock_skew_seconds=self.options.clock_skew_seconds,
            not_before_offset_seconds=self.options.not_before_offset_seconds,
            **builder_kwargs,
        )
        self._exchanger = TokenExchanger(
            credentials,
            verifier=self._verify,
            token_url=self.options.token_url,
            revoke_url=self.options.revoke_url,
            session=session,
            timeout=self.options.timeout_seconds,
            clock=clock,
        )
        self._backoff = FibonacciBackoff(
            self.options.backoff_policy,
            sleep=sleep,
            random_fn=random_fn,
            on_attempt=on_attempt,
        )
        self._state = TokenState()
        self._scheduler = RefreshScheduler(
            self._scheduled_refresh,
            is_due=self._is_due,
            interval_seconds=self.options.check_interval_seconds,
        )

        self._status_lock = threading.Lock()
        self._revoked = threading.Event()
        self._disabled_by: BaseException | None = None
        self._impersonate: str | None = None

        self.ensure_fresh()
        if autostart:
            self._scheduler.start()

    # ------------------------------------------------------------------ #
    # Public API                                                         #
    # ------------------------------------------------------------------ #
    @property
    def state(self) -> RefreshState:
        """Current scheduler state (``IDLE`` or ``REFRESHING``)."""
        return self._scheduler.state

    @property
    def revoked(self) -> bool:
        return self._revoked.is_set()

    @property
    def impersonation(self) -> str | None:
        """User id applied to outbound requests via ``As-User``, if any."""
        return self._impersonate

    def get(self) -> str:
        """Return the current access token without touching the network."""
        return self._current_record().access_token

    def token_record(self) -> TokenRecord:
        """Return a snapshot of the current token record."""
        return self._current_record()

    def ensure_fresh(self) -> str:
        """Block until a token with enough remaining validity is held.

        Waits for an in-flight scheduled refresh instead of overlapping it.

        Raises
        ------
        TokenAcquisitionError
            If the exchange exhausts its backoff budget.
        ConfigurationError, SigningError
            On key problems (the manager is disabled).
        RevokedError
            After :meth:`revoke`.
        """
        self._raise_if_unusable()
        with self._scheduler.exclusive():
            self._raise_if_unusable()
            record = self._state.read()
            if record is None or self._expiring(record):
                record = self._refresh_locked()
        return record.access_token

    def refresh_if_expiring(self) -> bool:
        """Refresh now if the token is inside the refresh threshold.

        Returns *True* if this call ran a refresh; *False* when the token is
        still fresh or another refresh is already in flight.
        """
        self._raise_if_unusable()
        return self._scheduler.check(source="manual")

    def notify_call_completed(self) -> bool:
        """Opportunistic freshness check after an outbound API call."""
        if self._revoked.is_set() or self._disabled_by is not None:
            return False
        return self._scheduler.trigger()

    def revoke(self) -> None:
        """Revoke the token at the server and permanently disable this manager.

        Raises
        ------
        RevokedError
            If the manager was already revoked.
        RevocationError
            If the revoke call failed; the manager stays disabled regardless.
        """
        with self._status_lock:
            if self._revoked.is_set():
                raise RevokedError()
            self._revoked.set()
        self._scheduler.stop()
        record = self._state.clear()
        if record is None:
            self._log.info("Manager revoked before any token was held")
            return
        self._exchanger.revoke(record.access_token)
        self._log.info("Manager revoked; token=%s", mask_sensitive(record.access_token, 6))

    def impersonate(self, user_id: str | int | None) -> None:
        """Set (or clear, with a falsy *user_id*) the impersonation context."""
        if not user_id:
            self._impersonate = None
            self._log.debug("Impersonation cleared")
            return
        number = to_number_or_throw(user_id, "impersonate#user_id")
        self._impersonate = str(int(number)) if float(number).is_integer() else str(number)
        self._log.debug("Impersonating user id=%s", self._impersonate)

    def auth_headers(self) -> dict[str, str]:
        """Return the headers every outbound resource request must carry."""
        headers = {"Authorization": f"Bearer {self.get()}"}
        if self._impersonate:
            headers[AS_USER_HEADER] = self._impersonate
        return headers

    def close(self) -> None:
        """Stop the refresh timer. The held token stays readable."""
        self._scheduler.stop()

    def __enter__(self) -> "TokenLifecycleManager":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------ #
    # Internal helpers                                                   #
    # ------------------------------------------------------------------ #
    def _raise_if_unusable(self) -> None:
        if self._revoked.is_set():
            raise RevokedError()
        if self._disabled_by is not None:
            raise ConfigurationError(
                f"Token manager disabled after a fatal refresh error: {self._disabled_by}"
            )

    def _current_record(self) -> TokenRecord:
        self._raise_if_unusable()
        record = self._state.read()
        if record is None:
            raise TokenAcquisitionError("No access token has been acquired yet.", attempts=0)
        return record

    def _expiring(self, record: TokenRecord) -> bool:
        return record.expires_within(self.options.refresh_threshold_ms, clock=self._clock)

    def _is_due(self) -> bool:
        if self._revoked.is_set() or self._disabled_by is not None:
            return False
        record = self._state.read()
        return record is None or self._expiring(record)

    def _verify(self, assertion: Assertion) -> None:
        verify_assertion(assertion, self.credentials)

    def _acquire(self) -> TokenRecord:
        # a fresh assertion (new jti / iat) for every attempt
        return self._backoff.run(lambda: self._exchanger.exchange(self._builder.build()))

    def _refresh_locked(self) -> TokenRecord:
        """Exchange and store a new token; the caller holds the scheduler guard."""
        try:
            record = self._acquire()
        except (ConfigurationError, SigningError) as exc:
            self._disable(exc)
            raise
        with self._status_lock:
            revoked = self._revoked.is_set()
            if not revoked:
                self._state.write(record)
        if revoked:
            self._log.info("Discarding token obtained after revocation")
            try:
                self._exchanger.revoke(record.access_token)
            except RevocationError:
                self._log.warning(
                    "Could not revoke token %s obtained after revocation",
                    mask_sensitive(record.access_token, 6),
                    exc_info=True,
                )
            raise RevokedError()
        self._log.info(
            "Token refreshed; token=%s expires in %ss",
            mask_sensitive(record.access_token, 6),
            record.ttl_ms // 1000,
        )
        return record

    def _scheduled_refresh(self) -> None:
        if self._revoked.is_set() or self._disabled_by is not None:
            return
        self._refresh_locked()

    def _disable(self, exc: BaseException) -> None:
        with self._status_lock:
            if self._disabled_by is None:
                self._disabled_by = exc
        self._scheduler.stop()
        self._log.error("Token manager disabled: %s", exc)
