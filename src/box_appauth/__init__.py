"""box-appauth: server-to-server (JWT-bearer) authentication for the Box API.

Typical use::

    from box_appauth import connect

    client = connect(credentials_mapping)
    folder = client.get("folders/0", fields=["name", "item_collection"])
    client.as_user(12345).get("users/me")
    client.revoke()

``connect`` blocks until the first access token has been obtained.
"""

from __future__ import annotations

from typing import Any, Mapping

import requests

from box_appauth.client import BoxClient
from box_appauth.token import (  # noqa: F401
    ConfigurationError,
    Credentials,
    ManagerOptions,
    RevokedError,
    TokenAcquisitionError,
    TokenLifecycleManager,
)
from box_appauth.validators import to_valid_name_or_throw

__version__ = "0.1.0"


def connect(
    credentials: Credentials | Mapping[str, Any],
    options: ManagerOptions | None = None,
    *,
    session: requests.Session | None = None,
    **manager_kwargs: Any,
) -> BoxClient:
    """Authenticate and return a :class:`BoxClient`.

    *credentials* may be a :class:`Credentials` instance or a mapping using
    either camelCase (``clientId``, ``publicKeyId``…) or snake_case keys.
    Extra keyword arguments are passed to :class:`TokenLifecycleManager`.
    """
    if not isinstance(credentials, Credentials):
        credentials = Credentials.from_mapping(credentials)
    session = session or requests.Session()
    manager = TokenLifecycleManager(
        credentials,
        options or ManagerOptions.from_env(),
        session=session,
        **manager_kwargs,
    )
    return BoxClient(manager, session=session)


def format_name(name: Any) -> str:
    """Validate a file/folder name without authenticating."""
    return to_valid_name_or_throw(name)


__all__ = [
    "BoxClient",
    "ConfigurationError",
    "Credentials",
    "ManagerOptions",
    "RevokedError",
    "TokenAcquisitionError",
    "TokenLifecycleManager",
    "connect",
    "format_name",
]
