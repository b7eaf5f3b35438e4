"""JWT-bearer assertion builder.

Each call to :meth:`AssertionBuilder.build` produces a *fresh* assertion:

1. ``jti`` – new nonce from the injected factory (the authorization server
   rejects a reused ``jti`` as a replay)
2. ``iat`` – current time minus a small clock-skew buffer
3. ``exp`` / ``nbf`` – derived from ``iat``; the lifetime never exceeds 60s

Assertions are signed with PyJWT using one of the RSA-SHA algorithms the
authorization server accepts.  An unsupported algorithm is *not* an error:
the builder logs a warning and signs with ``RS256``.

This module performs no I/O.  Assertions and key material are never logged.
"""

from __future__ import annotations

import logging
import uuid
from typing import Callable

import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from box_appauth.token.clock import Clock, default_clock, now_seconds
from box_appauth.token.config import MAX_ASSERTION_TTL_SECONDS, TOKEN_URL
from box_appauth.token.errors import ConfigurationError, SigningError
from box_appauth.token.models import (
    DEFAULT_ALGORITHM,
    SUPPORTED_ALGORITHMS,
    Assertion,
    AssertionClaims,
    Credentials,
)

_LOG = logging.getLogger("box-appauth.token.assertion")


def _default_nonce() -> str:
    return uuid.uuid4().hex


def resolve_algorithm(requested: str | None) -> str:
    """Return *requested* upper-cased if supported, otherwise ``RS256``."""
    algorithm = requested.upper() if isinstance(requested, str) else DEFAULT_ALGORITHM
    if algorithm not in SUPPORTED_ALGORITHMS:
        _LOG.warning(
            "Signing algorithm must be one of %s. Received: %s. Will use %s",
            ", ".join(SUPPORTED_ALGORITHMS),
            requested,
            DEFAULT_ALGORITHM,
        )
        return DEFAULT_ALGORITHM
    return algorithm


class AssertionBuilder:
    """Build signed, time-bounded assertions for one set of credentials."""

    def __init__(
        self,
        credentials: Credentials,
        *,
        token_url: str = TOKEN_URL,
        clock: Clock = default_clock,
        nonce_factory: Callable[[], str] = _default_nonce,
        ttl_seconds: int = 58,
        clock_skew_seconds: int = 5,
        not_before_offset_seconds: int = -10,
    ) -> None:
        self._credentials = credentials
        self._token_url = token_url
        self._clock = clock
        self._nonce_factory = nonce_factory
        self._ttl_seconds = min(ttl_seconds, MAX_ASSERTION_TTL_SECONDS)
        self._clock_skew_seconds = clock_skew_seconds
        self._not_before_offset = not_before_offset_seconds
        self.algorithm: str = resolve_algorithm(credentials.signing_algorithm)
        self._key: rsa.RSAPrivateKey | None = None

    @property
    def audience(self) -> str:
        return self._token_url

    def _signing_key(self) -> rsa.RSAPrivateKey:
        """Load the PEM private key once and check that it can sign."""
        if self._key is not None:
            return self._key
        creds = self._credentials
        password = creds.private_key_passphrase.encode("utf-8") if creds.private_key_passphrase else None
        try:
            key = serialization.load_pem_private_key(
                creds.private_key.encode("utf-8"), password=password
            )
        except (ValueError, TypeError) as exc:
            raise SigningError(f"Unable to load the private key: {exc}") from exc
        if not isinstance(key, rsa.RSAPrivateKey):
            raise SigningError(
                f"#private_key must be an RSA private key, got {type(key).__name__}"
            )
        self._key = key
        return key

    def claims(self) -> AssertionClaims:
        """Return a new claim set with a fresh nonce and issue time."""
        creds = self._credentials
        return AssertionClaims(
            subject_type=creds.subject_type,
            jti=self._nonce_factory(),
            issued_at=now_seconds(self._clock) - self._clock_skew_seconds,
            algorithm=self.algorithm,
            issuer=creds.issuer,
            subject=creds.subject,
            audience=self._token_url,
            expires_in=self._ttl_seconds,
            not_before_offset=self._not_before_offset,
            key_id=creds.public_key_id,
        )

    def build(self) -> Assertion:
        """Sign a fresh claim set.

        Raises
        ------
        SigningError
            If the private key is malformed or unusable with the algorithm.
        """
        claims = self.claims()
        try:
            token = jwt.encode(
                claims.to_payload(),
                self._signing_key(),
                algorithm=self.algorithm,
                headers=claims.headers(),
            )
        except SigningError:
            raise
        except (jwt.PyJWTError, ValueError, TypeError, NotImplementedError) as exc:
            raise SigningError(f"Unable to sign assertion with {self.algorithm}: {exc}") from exc
        _LOG.debug("Built assertion jti=%s**** alg=%s", claims.jti[:6], self.algorithm)
        return Assertion(token=token, claims=claims)


def verify_assertion(assertion: Assertion, credentials: Credentials) -> None:
    """Check *assertion* against the public key before it leaves the process.

    Time claims are not re-checked here; only the signature, issuer and
    audience.  A failure means the key pair is mismatched or malformed, which
    retrying cannot fix.

    Raises
    ------
    ConfigurationError
        If the assertion does not verify with ``credentials.public_key``.
    """
    claims = assertion.claims
    try:
        jwt.decode(
            assertion.token,
            credentials.public_key,
            algorithms=[claims.algorithm],
            audience=claims.audience,
            issuer=claims.issuer,
            options={"verify_exp": False, "verify_nbf": False, "verify_iat": False},
        )
    except (jwt.PyJWTError, ValueError, TypeError) as exc:
        raise ConfigurationError(
            "Cannot create a verified JWT with the configured credentials. "
            f"Check #public_key against #private_key ({exc})"
        ) from exc
