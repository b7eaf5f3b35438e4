"""Unit tests for BoxClient request preparation and completion."""

from __future__ import annotations

import pytest
import requests

from box_appauth.client import BoxClient
from box_appauth.token.errors import ApiCallError, RevokedError


@pytest.fixture()
def client(manager_factory, fake_http) -> BoxClient:
    return BoxClient(manager_factory(), session=fake_http)


def test_prepare_overrides_authorization(client: BoxClient) -> None:
    headers = client.prepare({"Authorization": "Bearer forged", "X-Extra": "1"})
    assert headers == {"Authorization": "Bearer token-1", "X-Extra": "1"}


def test_prepare_adds_impersonation_unless_call_sets_it(client: BoxClient) -> None:
    client.as_user(42)
    assert client.prepare()["As-User"] == "42"
    assert client.prepare({"As-User": "7"})["As-User"] == "7"
    client.as_user(None)
    assert "As-User" not in client.prepare()


def test_request_builds_url_params_and_fields(client: BoxClient, fake_http, response_factory) -> None:
    fake_http.queue_api(response_factory(200, {"id": "0", "type": "folder"}))
    body = client.get("/folders/0", params={"limit": 5}, fields=["name", "size"])

    assert body == {"id": "0", "type": "folder"}
    call = fake_http.api_calls[0]
    assert call.method == "GET"
    assert call.url == "https://api.box.com/2.0/folders/0"
    assert call.params == {"limit": 5, "fields": "name,size"}
    assert call.headers["Authorization"] == "Bearer token-1"
    assert call.timeout == 20.0


def test_absolute_urls_are_kept(client: BoxClient, fake_http) -> None:
    client.post("https://upload.box.com/api/2.0/files/content", data={"a": "b"})
    assert fake_http.api_calls[0].url == "https://upload.box.com/api/2.0/files/content"
    assert fake_http.api_calls[0].method == "POST"


def test_every_call_runs_post_call_check(client: BoxClient, monkeypatch) -> None:
    calls = [0]

    def _count() -> bool:
        calls[0] += 1
        return False

    monkeypatch.setattr(client.manager, "notify_call_completed", _count)
    client.get("users/me")
    client.delete("folders/1")
    assert calls[0] == 2


def test_error_body_raises(client: BoxClient, fake_http, response_factory) -> None:
    fake_http.queue_api(
        response_factory(404, {"type": "error", "status": 404, "code": "not_found", "message": "Not Found"})
    )
    with pytest.raises(ApiCallError, match="Not Found") as exc_info:
        client.get("folders/999")
    assert exc_info.value.status_code == 404
    assert exc_info.value.body["code"] == "not_found"


def test_error_type_with_success_status_raises(client: BoxClient, fake_http, response_factory) -> None:
    fake_http.queue_api(response_factory(200, {"type": "error", "message": "quota"}))
    with pytest.raises(ApiCallError, match="quota"):
        client.get("folders/1")


def test_empty_error_response_raises(client: BoxClient, fake_http, response_factory) -> None:
    fake_http.queue_api(response_factory(401))
    with pytest.raises(ApiCallError) as exc_info:
        client.get("folders/1")
    assert exc_info.value.status_code == 401


def test_empty_success_returns_none(client: BoxClient, fake_http, response_factory) -> None:
    fake_http.queue_api(response_factory(204))
    assert client.delete("folders/1") is None


def test_download_returns_bytes(client: BoxClient, fake_http, response_factory) -> None:
    fake_http.queue_api(response_factory(200, content=b"\x89PNG\r\n"))
    assert client.get("files/1/content") == b"\x89PNG\r\n"


def test_transport_error_raises_api_call_error(client: BoxClient, fake_http) -> None:
    fake_http.queue_api(requests.ConnectionError("reset by peer"))
    with pytest.raises(ApiCallError, match="reset by peer"):
        client.get("folders/0")


def test_revoked_client_sends_nothing(client: BoxClient, fake_http) -> None:
    client.revoke()
    with pytest.raises(RevokedError):
        client.get("folders/0")
    assert fake_http.api_calls == []
