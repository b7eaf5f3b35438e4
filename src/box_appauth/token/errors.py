"""Exception types raised by the token lifecycle core.

Only lightweight, **data-carrying** exceptions live here so that callers can
transform them into user-friendly messages.  ``to_payload`` never includes
secrets (tokens, client secrets, key material).
"""

from __future__ import annotations

from typing import Any


class TokenLifecycleError(RuntimeError):
    """Base class for every error raised by :mod:`box_appauth`."""

    code: str = "token_lifecycle_error"

    def to_payload(self) -> dict[str, Any]:
        """Return a JSON-serialisable payload **without secrets**."""
        return {"error": self.code, "message": str(self)}


class ConfigurationError(TokenLifecycleError):
    """Malformed keys, missing credential fields or an unusable key pair.

    Fatal at construction and never retried.
    """

    code = "configuration_error"


class SigningError(TokenLifecycleError):
    """The assertion could not be signed with the configured private key."""

    code = "signing_error"


class TransientExchangeError(TokenLifecycleError):
    """A token exchange attempt failed in a way that may succeed on retry."""

    code = "transient_exchange_error"

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code: int | None = status_code

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["status_code"] = self.status_code
        return payload


class TokenAcquisitionError(TokenLifecycleError):
    """The backoff budget was exhausted without obtaining a token."""

    code = "token_acquisition_error"

    def __init__(
        self,
        message: str | None = None,
        *,
        attempts: int,
        last_error: BaseException | None = None,
    ) -> None:
        super().__init__(
            message or f"Unable to acquire an access token after {attempts} attempt(s)."
        )
        self.attempts: int = attempts
        self.last_error: BaseException | None = last_error

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["attempts"] = self.attempts
        return payload


class RevokedError(TokenLifecycleError):
    """Raised for any operation attempted after explicit revocation."""

    code = "revoked"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or "Access token has been revoked; this manager is disabled.")


class RevocationError(TokenLifecycleError):
    """The revoke endpoint could not be reached or rejected the request."""

    code = "revocation_error"


class ApiCallError(RuntimeError):
    """An outbound resource request returned an error response."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int = 0,
        headers: dict[str, str] | None = None,
        body: Any = None,
    ) -> None:
        super().__init__(message)
        self.status_code: int = status_code
        self.headers: dict[str, str] = dict(headers or {})
        self.body: Any = body

    def to_payload(self) -> dict[str, Any]:
        """Return a JSON-serialisable payload **without secrets**."""
        return {
            "error": "api_call_error",
            "status_code": self.status_code,
            "headers": self.headers,
            "message": str(self),
        }
