"""BoxClient – request preparation and completion for REST resource calls.

Every outbound call:

1. gets ``Authorization: Bearer <token>`` from the lifecycle manager (always
   overriding a caller-supplied value) and, unless the call sets its own,
   the ``As-User`` impersonation header;
2. is completed into a parsed body or an :class:`ApiCallError`;
3. triggers the manager's opportunistic freshness check.

The client never reads or writes token state directly.
"""

from __future__ import annotations

import logging
from typing import Any, Final, Iterable, Mapping

import requests

from box_appauth.token.errors import ApiCallError
from box_appauth.token.manager import AS_USER_HEADER, TokenLifecycleManager
from box_appauth.validators import to_field_string_or_throw

_LOG = logging.getLogger("box-appauth.client")

API_BASE_URL: Final[str] = "https://api.box.com/2.0"


def _error_message(body: Any) -> str:
    if isinstance(body, dict):
        return str(body.get("message") or body.get("code") or "Call Error")
    return "Call Error"


class BoxClient:
    """Thin REST consumer bound to one :class:`TokenLifecycleManager`."""

    def __init__(
        self,
        manager: TokenLifecycleManager,
        *,
        session: requests.Session | None = None,
        base_url: str = API_BASE_URL,
        timeout: float | None = None,
    ) -> None:
        self.manager = manager
        self._session = session or requests.Session()
        self.base_url = base_url.rstrip("/")
        self._timeout = timeout if timeout is not None else manager.options.timeout_seconds

    # ------------------------------------------------------------------ #
    # Manager aliases                                                    #
    # ------------------------------------------------------------------ #
    def as_user(self, user_id: str | int | None) -> "BoxClient":
        """Impersonate *user_id* on all later calls (falsy value cancels)."""
        self.manager.impersonate(user_id)
        return self

    def revoke(self) -> None:
        """Revoke the token. This client cannot be used afterwards."""
        self.manager.revoke()

    # ------------------------------------------------------------------ #
    # Request plumbing                                                   #
    # ------------------------------------------------------------------ #
    def prepare(self, headers: Mapping[str, str] | None = None) -> dict[str, str]:
        """Return *headers* augmented with auth (and impersonation) headers."""
        prepared = dict(headers or {})
        auth = self.manager.auth_headers()
        prepared["Authorization"] = auth["Authorization"]
        if AS_USER_HEADER in auth and not prepared.get(AS_USER_HEADER):
            prepared[AS_USER_HEADER] = auth[AS_USER_HEADER]
        return prepared

    def _url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    def request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        json: Any = None,
        data: Any = None,
        files: Any = None,
        headers: Mapping[str, str] | None = None,
        fields: Iterable[str] | None = None,
    ) -> Any:
        """Issue one authenticated call and return the completed body.

        Raises
        ------
        ApiCallError
            On transport failure or an error response.
        RevokedError
            If the manager has been revoked.
        """
        query = dict(params or {})
        if fields is not None:
            query["fields"] = to_field_string_or_throw(fields)
        url = self._url(path)
        try:
            resp = self._session.request(
                method.upper(),
                url,
                params=query or None,
                json=json,
                data=data,
                files=files,
                headers=self.prepare(headers),
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise ApiCallError(f"{method.upper()} {url} failed: {exc}") from exc

        self.manager.notify_call_completed()
        return self.complete(resp)

    @staticmethod
    def complete(resp: requests.Response) -> Any:
        """Turn *resp* into a body, or raise :class:`ApiCallError`.

        Bodies that are not JSON (file downloads) are returned as bytes.
        """
        status = int(resp.status_code)
        headers = dict(resp.headers or {})
        if not resp.content:
            if status >= 400:
                raise ApiCallError("Call Error", status_code=status, headers=headers)
            return None

        try:
            body: Any = resp.json()
        except ValueError:
            body = resp.content
        if (isinstance(body, dict) and body.get("type") == "error") or status >= 400:
            _LOG.debug("API call returned error status=%s", status)
            raise ApiCallError(
                _error_message(body), status_code=status, headers=headers, body=body
            )
        return body

    def get(self, path: str, **kwargs: Any) -> Any:
        return self.request("GET", path, **kwargs)

    def post(self, path: str, **kwargs: Any) -> Any:
        return self.request("POST", path, **kwargs)

    def put(self, path: str, **kwargs: Any) -> Any:
        return self.request("PUT", path, **kwargs)

    def delete(self, path: str, **kwargs: Any) -> Any:
        return self.request("DELETE", path, **kwargs)
