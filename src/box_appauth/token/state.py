"""In-memory holder for the current access token.

Readers always observe a complete :class:`~box_appauth.token.models.TokenRecord`
(the previous one or the new one), never a mix of an old token with a new
expiry: records are immutable and replaced as a whole under a lock.

Logging
-------
Only masked token prefixes are ever logged.
"""

from __future__ import annotations

import logging
import threading

from box_appauth.token.log_utils import mask_sensitive
from box_appauth.token.models import TokenRecord

_LOG = logging.getLogger("box-appauth.token.state")


class TokenState:
    """Owns the single *current* token record of one manager."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._record: TokenRecord | None = None

    def read(self) -> TokenRecord | None:
        """Return a snapshot of the current record (``None`` before the first write)."""
        with self._lock:
            return self._record

    def write(self, record: TokenRecord) -> None:
        """Atomically replace the current record."""
        with self._lock:
            self._record = record
        _LOG.debug(
            "Stored token=%s expires_at_ms=%s",
            mask_sensitive(record.access_token, 6),
            record.expires_at_ms,
        )

    def clear(self) -> TokenRecord | None:
        """Drop the current record and return it."""
        with self._lock:
            record, self._record = self._record, None
        return record
