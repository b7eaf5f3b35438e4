"""Logging helpers for the token lifecycle.

Records emitted through :func:`get_token_logger` carry a short context prefix
naming *which* credential set they belong to, so one process can run
managers for several tenants and still tell their logs apart:

>>> log = get_token_logger(
...     base_logger_name="box-appauth.token.manager",
...     issuer="abc123",
...     subject_type="enterprise",
... )
>>> log.info("Token refreshed")  # doctest: +SKIP
INFO box-appauth.token.manager [issuer=abc123 subject_type=enterprise] Token refreshed

Only whitelisted, non-secret fields ever reach the prefix; client secrets,
keys and tokens are never accepted.  The same fields are also attached to the
record (``record.issuer`` …) for formatters that want them separately.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, MutableMapping

CONTEXT_KEYS = ("issuer", "subject_type", "client_id", "correlation_id")


def mask_sensitive(value: str | None, keep: int = 4) -> str:
    """Return *value* with everything but the first *keep* characters masked."""
    if not value:
        return "<empty>"
    if len(value) <= keep:
        return "*" * len(value)
    return f"{value[:keep]}****"


class _TokenLoggerAdapter(logging.LoggerAdapter):
    """Prefix messages with the credential-set context."""

    def __init__(self, logger: logging.Logger, context: Mapping[str, Any]) -> None:
        clean: dict[str, Any] = {}
        for key in CONTEXT_KEYS:
            value = context.get(key)
            if value is None:
                continue
            # client ids are not secret but keep records short
            clean[key] = str(value)[:6] if key == "client_id" else value
        super().__init__(logger, clean)
        self.prefix = (
            "[" + " ".join(f"{k}={v}" for k, v in clean.items()) + "] " if clean else ""
        )

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]):
        extra = kwargs.get("extra") or {}
        kwargs["extra"] = {**self.extra, **extra}
        return f"{self.prefix}{msg}", kwargs


def get_token_logger(
    *,
    base_logger_name: str = "box-appauth.token",
    issuer: str | None = None,
    subject_type: str | None = None,
    client_id: str | None = None,
    correlation_id: str | None = None,
) -> logging.LoggerAdapter:
    """Return a logger whose messages name the credential set they concern."""
    return _TokenLoggerAdapter(
        logging.getLogger(base_logger_name),
        {
            "issuer": issuer,
            "subject_type": subject_type,
            "client_id": client_id,
            "correlation_id": correlation_id,
        },
    )
