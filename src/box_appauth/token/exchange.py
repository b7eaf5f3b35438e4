"""Token exchange against the OAuth 2.0 authorization endpoints.

One :meth:`TokenExchanger.exchange` call is exactly one network round trip
using the JWT-bearer grant.  Classification of failures:

* **fatal** – the locally-built assertion does not verify with the public key
  (:class:`~box_appauth.token.errors.ConfigurationError`); raised *before*
  anything is sent.
* **transient** – network error, non-2xx status, unparseable body, or a body
  without ``access_token`` (some servers report errors inside a 200).  These
  raise :class:`~box_appauth.token.errors.TransientExchangeError` so that the
  backoff controller can retry.

SECURITY NOTE
-------------
Client secrets, assertions and access tokens are never logged in full.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Final

import requests

from box_appauth.token.clock import Clock, default_clock, now_ms
from box_appauth.token.config import REVOKE_URL, TOKEN_URL
from box_appauth.token.errors import RevocationError, TransientExchangeError
from box_appauth.token.log_utils import mask_sensitive
from box_appauth.token.models import Assertion, Credentials, TokenRecord

_LOG = logging.getLogger("box-appauth.token.exchange")

JWT_BEARER_GRANT: Final[str] = "urn:ietf:params:oauth:grant-type:jwt-bearer"
DEFAULT_EXPIRES_IN: Final[int] = 3600


def _error_hint(data: Any) -> str:
    if isinstance(data, dict):
        error = data.get("error") or data.get("code") or "unknown"
        description = data.get("error_description") or data.get("message")
        return f"{error}: {description}" if description else str(error)
    return type(data).__name__


class TokenExchanger:
    """Trade signed assertions for access tokens, and revoke them."""

    def __init__(
        self,
        credentials: Credentials,
        *,
        verifier: Callable[[Assertion], None],
        token_url: str = TOKEN_URL,
        revoke_url: str = REVOKE_URL,
        session: requests.Session | None = None,
        timeout: float = 20.0,
        clock: Clock = default_clock,
    ) -> None:
        self._credentials = credentials
        self._verifier = verifier
        self.token_url = token_url
        self.revoke_url = revoke_url
        # module-level functions share the requests.Session signature we use
        self._http: Any = session if session is not None else requests
        self._timeout = timeout
        self._clock = clock

    def exchange(self, assertion: Assertion) -> TokenRecord:
        """Exchange *assertion* for a new :class:`TokenRecord`.

        Raises
        ------
        ConfigurationError
            If the assertion fails local verification (not retried).
        TransientExchangeError
            For any failure that a later attempt may not repeat.
        """
        self._verifier(assertion)

        payload: dict[str, str] = {
            "grant_type": JWT_BEARER_GRANT,
            "client_id": self._credentials.client_id,
            "client_secret": self._credentials.client_secret,  # noqa: S105
            "assertion": assertion.token,
        }
        try:
            resp = self._http.post(self.token_url, data=payload, timeout=self._timeout)
        except requests.RequestException as exc:
            raise TransientExchangeError(f"Token request failed: {exc}") from exc

        if not resp.ok:
            raise TransientExchangeError(
                f"Token endpoint returned {resp.status_code}: {resp.text[:200]}",
                status_code=resp.status_code,
            )

        try:
            data = resp.json()
        except ValueError as exc:
            raise TransientExchangeError(
                "Unable to parse token response", status_code=resp.status_code
            ) from exc

        access_token = data.get("access_token") if isinstance(data, dict) else None
        if not isinstance(access_token, str) or not access_token:
            raise TransientExchangeError(
                f"Token response missing access_token ({_error_hint(data)})",
                status_code=resp.status_code,
            )

        raw_expires_in = data.get("expires_in", DEFAULT_EXPIRES_IN)
        try:
            expires_in = int(raw_expires_in)
        except (TypeError, ValueError) as exc:
            raise TransientExchangeError(
                f"Token response has invalid expires_in={raw_expires_in!r}",
                status_code=resp.status_code,
            ) from exc

        issued_at_ms = now_ms(self._clock)
        record = TokenRecord(
            access_token=access_token,
            issued_at_ms=issued_at_ms,
            expires_at_ms=issued_at_ms + expires_in * 1000,
            token_type=str(data.get("token_type") or "bearer"),
        )
        _LOG.info(
            "Exchanged assertion jti=%s**** for token=%s (expires in %ss)",
            assertion.claims.jti[:6],
            mask_sensitive(access_token, 6),
            expires_in,
        )
        return record

    def revoke(self, access_token: str) -> None:
        """Invalidate *access_token* at the authorization server.

        Raises
        ------
        RevocationError
            On network failure or a non-2xx response.
        """
        payload: dict[str, str] = {
            "client_id": self._credentials.client_id,
            "client_secret": self._credentials.client_secret,  # noqa: S105
            "token": access_token,
        }
        try:
            resp = self._http.post(self.revoke_url, data=payload, timeout=self._timeout)
        except requests.RequestException as exc:
            _LOG.warning("Unable to revoke token=%s", mask_sensitive(access_token, 6))
            raise RevocationError(f"Revoke request failed: {exc}") from exc

        if not resp.ok:
            _LOG.warning(
                "Revoke endpoint returned %s for token=%s",
                resp.status_code,
                mask_sensitive(access_token, 6),
            )
            raise RevocationError(
                f"Revoke endpoint returned {resp.status_code}: {resp.text[:200]}"
            )
        _LOG.info("Token=%s has been revoked", mask_sensitive(access_token, 6))
