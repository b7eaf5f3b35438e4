"""Typed, immutable records used by the token lifecycle core."""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Any, Callable, Final, Iterator, Mapping

from box_appauth.token.clock import Clock, default_clock, ms_until
from box_appauth.token.errors import ConfigurationError

SUPPORTED_ALGORITHMS: Final[tuple[str, ...]] = ("RS256", "RS384", "RS512")
DEFAULT_ALGORITHM: Final[str] = "RS256"
SUBJECT_TYPES: Final[tuple[str, ...]] = ("enterprise", "user")

# camelCase keys accepted by Credentials.from_mapping
_MAPPING_ALIASES: Final[dict[str, str]] = {
    "subjectType": "subject_type",
    "clientId": "client_id",
    "clientSecret": "client_secret",
    "publicKey": "public_key",
    "privateKey": "private_key",
    "publicKeyId": "public_key_id",
    "algorithm": "signing_algorithm",
    "privateKeyPassphrase": "private_key_passphrase",
    "passphrase": "private_key_passphrase",
}

_REQUIRED_FIELDS: Final[tuple[str, ...]] = (
    "issuer",
    "subject",
    "client_id",
    "client_secret",
    "public_key",
    "private_key",
    "public_key_id",
)


@dataclass(frozen=True, slots=True)
class Credentials:
    """Application identity and key material used to mint assertions.

    The signing algorithm is *not* validated here; the assertion builder
    falls back to ``RS256`` for unsupported values.
    """

    issuer: str
    subject: str
    subject_type: str
    client_id: str
    client_secret: str = field(repr=False)
    public_key: str = field(repr=False)
    private_key: str = field(repr=False)
    public_key_id: str
    signing_algorithm: str = DEFAULT_ALGORITHM
    private_key_passphrase: str | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        for name in _REQUIRED_FIELDS:
            if not getattr(self, name):
                raise ConfigurationError(f"Credentials did not receive #{name}")
        if self.subject_type not in SUBJECT_TYPES:
            raise ConfigurationError(
                f"Credentials #subject_type must be one of {', '.join(SUBJECT_TYPES)}. "
                f"Received: {self.subject_type!r}"
            )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Credentials":
        """Build credentials from a mapping with camelCase or snake_case keys."""
        if not isinstance(data, Mapping):
            raise ConfigurationError("Credentials.from_mapping received a non-mapping argument")
        kwargs: dict[str, Any] = {}
        for key, value in data.items():
            name = _MAPPING_ALIASES.get(key, key)
            if name in cls.__dataclass_fields__:
                kwargs[name] = value
        missing = [n for n in (*_REQUIRED_FIELDS, "subject_type") if n not in kwargs]
        if missing:
            raise ConfigurationError(f"Credentials did not receive #{missing[0]}")
        if kwargs.get("signing_algorithm") is None:
            kwargs.pop("signing_algorithm", None)
        return cls(**kwargs)


@dataclass(frozen=True, slots=True)
class AssertionClaims:
    """Claim set signed into a single JWT-bearer assertion."""

    subject_type: str
    jti: str
    issued_at: int
    algorithm: str
    issuer: str
    subject: str
    audience: str
    expires_in: int
    not_before_offset: int
    key_id: str

    @property
    def expires_at(self) -> int:
        return self.issued_at + self.expires_in

    @property
    def not_before(self) -> int:
        return self.issued_at + self.not_before_offset

    def to_payload(self) -> dict[str, Any]:
        """Return the registered and private claims as signed into the JWT."""
        return {
            "box_sub_type": self.subject_type,
            "jti": self.jti,
            "iat": self.issued_at,
            "iss": self.issuer,
            "sub": self.subject,
            "aud": self.audience,
            "exp": self.expires_at,
            "nbf": self.not_before,
        }

    def headers(self) -> dict[str, str]:
        return {"typ": "JWT", "alg": self.algorithm, "kid": self.key_id}


@dataclass(frozen=True, slots=True)
class Assertion:
    """A signed assertion together with the claims used to build it."""

    token: str = field(repr=False)
    claims: AssertionClaims


@dataclass(frozen=True, slots=True)
class TokenRecord:
    """Snapshot of an access token and its validity window (milliseconds)."""

    access_token: str = field(repr=False)
    issued_at_ms: int
    expires_at_ms: int
    token_type: str = "bearer"

    @property
    def ttl_ms(self) -> int:
        """Milliseconds between *issued_at_ms* and *expires_at_ms*."""
        return self.expires_at_ms - self.issued_at_ms

    def remaining_ms(self, *, clock: Clock = default_clock) -> int:
        return ms_until(self.expires_at_ms, clock)

    def expires_within(self, window_ms: int, *, clock: Clock = default_clock) -> bool:
        """Return *True* if fewer than *window_ms* milliseconds of validity remain."""
        return self.remaining_ms(clock=clock) < window_ms


@dataclass(frozen=True, slots=True)
class BackoffPolicy:
    """Fibonacci retry schedule for token exchanges."""

    initial_delay_ms: int = 20
    max_delay_ms: int = 500
    randomization_factor: float = 0.0
    max_attempts: int = 10

    def delay_ms(self, attempt: int, rand: float = 0.5) -> float:
        """Return the delay that follows failed *attempt* (1-based).

        ``rand`` is a uniform sample in ``[0, 1)``; ``0.5`` means no jitter.
        """
        if attempt < 1:
            raise ValueError("attempt must be >= 1")
        prev, cur = 0, 1
        for _ in range(attempt - 1):
            prev, cur = cur, prev + cur
        delay = min(float(cur * self.initial_delay_ms), float(self.max_delay_ms))
        if self.randomization_factor:
            delay *= 1 + self.randomization_factor * (2 * rand - 1)
        return max(0.0, min(delay, float(self.max_delay_ms)))

    def delays(self, *, random_fn: Callable[[], float] = random.random) -> Iterator[float]:
        """Yield the delay after each failed attempt, ``max_attempts - 1`` in total."""
        for attempt in range(1, self.max_attempts):
            yield self.delay_ms(attempt, random_fn() if self.randomization_factor else 0.5)
