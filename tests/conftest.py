"""Shared fixtures: RSA key pairs, a controllable clock and a fake HTTP layer.

No test in this suite talks to a real server; every HTTP call goes through
:class:`FakeHttp`, which records requests and replays scripted responses.
"""

from __future__ import annotations

import json
import threading
from collections import deque
from types import SimpleNamespace
from typing import Any, Callable, Iterator

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from box_appauth.token.config import ManagerOptions
from box_appauth.token.manager import TokenLifecycleManager
from box_appauth.token.models import Credentials

_MISSING = object()


def pytest_addoption(parser):
    """Add integration option to pytest."""
    parser.addoption(
        "--integration",
        action="store_true",
        default=False,
        help="run integration tests",
    )


# --------------------------------------------------------------------------- #
# Keys & credentials                                                          #
# --------------------------------------------------------------------------- #
def _generate_key_pair(passphrase: bytes | None = None) -> tuple[str, str]:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    encryption: serialization.KeySerializationEncryption = (
        serialization.BestAvailableEncryption(passphrase)
        if passphrase
        else serialization.NoEncryption()
    )
    private_pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=encryption,
    ).decode("ascii")
    public_pem = key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("ascii")
    return private_pem, public_pem


@pytest.fixture(scope="session")
def key_pair() -> tuple[str, str]:
    """Return ``(private_pem, public_pem)``."""
    return _generate_key_pair()


@pytest.fixture(scope="session")
def other_key_pair() -> tuple[str, str]:
    """A second, unrelated key pair for mismatch tests."""
    return _generate_key_pair()


@pytest.fixture(scope="session")
def encrypted_key_pair() -> tuple[str, str]:
    """Key pair whose private key is encrypted with passphrase ``s3cret``."""
    return _generate_key_pair(b"s3cret")


@pytest.fixture()
def credentials(key_pair: tuple[str, str]) -> Credentials:
    private_pem, public_pem = key_pair
    return Credentials(
        issuer="client-abc",
        subject="enterprise-1",
        subject_type="enterprise",
        client_id="client-abc",
        client_secret="client-secret",
        public_key=public_pem,
        private_key=private_pem,
        public_key_id="kid-1",
    )


# --------------------------------------------------------------------------- #
# Clock                                                                       #
# --------------------------------------------------------------------------- #
class FakeClock:
    """Deterministic clock; advance it explicitly."""

    def __init__(self, now: float) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(1_700_000_000.0)


@pytest.fixture()
def sleeps() -> list[float]:
    """Collects every backoff sleep (seconds)."""
    return []


# --------------------------------------------------------------------------- #
# HTTP                                                                        #
# --------------------------------------------------------------------------- #
def make_response(
    status: int = 200,
    body: Any = _MISSING,
    *,
    text: str | None = None,
    content: bytes | None = None,
    headers: dict[str, str] | None = None,
) -> SimpleNamespace:
    """Build a minimal stand-in for :class:`requests.Response`."""
    if body is not _MISSING:
        text = json.dumps(body)
    if text is not None:
        content = text.encode("utf-8")
    raw = content or b""

    def _json() -> Any:
        return json.loads(raw)

    return SimpleNamespace(
        ok=status < 400,
        status_code=status,
        text=raw.decode("utf-8", errors="replace"),
        content=raw,
        headers=dict(headers or {}),
        json=_json,
    )


def token_response(token: str, expires_in: int = 3600) -> SimpleNamespace:
    return make_response(
        200, {"access_token": token, "expires_in": expires_in, "token_type": "bearer"}
    )


class FakeHttp:
    """Scripted replacement for a ``requests.Session``.

    ``post`` serves the token and revoke endpoints; ``request`` serves
    resource calls.  Queued items may be responses or exceptions (raised).
    When the token queue is empty a fresh ``token-<n>`` response is returned.
    """

    def __init__(self) -> None:
        self.token_calls: list[SimpleNamespace] = []
        self.revoke_calls: list[SimpleNamespace] = []
        self.api_calls: list[SimpleNamespace] = []
        self._token_queue: deque[Any] = deque()
        self._revoke_queue: deque[Any] = deque()
        self._api_queue: deque[Any] = deque()
        self.gate: threading.Event | None = None
        self._lock = threading.Lock()

    def queue_token(self, *items: Any) -> None:
        self._token_queue.extend(items)

    def queue_revoke(self, *items: Any) -> None:
        self._revoke_queue.extend(items)

    def queue_api(self, *items: Any) -> None:
        self._api_queue.extend(items)

    @staticmethod
    def _serve(item: Any) -> Any:
        if isinstance(item, BaseException):
            raise item
        return item

    def post(self, url: str, *, data: dict | None = None, timeout: Any = None) -> Any:
        call = SimpleNamespace(url=url, data=dict(data or {}), timeout=timeout)
        if "revoke" in url:
            with self._lock:
                self.revoke_calls.append(call)
                item = self._revoke_queue.popleft() if self._revoke_queue else make_response(200)
            return self._serve(item)

        with self._lock:
            self.token_calls.append(call)
            n = len(self.token_calls)
            item = self._token_queue.popleft() if self._token_queue else token_response(f"token-{n}")
        if self.gate is not None:
            self.gate.wait(5)
        return self._serve(item)

    def request(self, method: str, url: str, **kwargs: Any) -> Any:
        with self._lock:
            self.api_calls.append(SimpleNamespace(method=method, url=url, **kwargs))
            item = self._api_queue.popleft() if self._api_queue else make_response(200, {})
        return self._serve(item)


@pytest.fixture()
def fake_http() -> FakeHttp:
    return FakeHttp()


@pytest.fixture()
def response_factory() -> Callable[..., SimpleNamespace]:
    return make_response


@pytest.fixture()
def token_response_factory() -> Callable[..., SimpleNamespace]:
    return token_response


# --------------------------------------------------------------------------- #
# Manager                                                                     #
# --------------------------------------------------------------------------- #
@pytest.fixture()
def manager_factory(
    credentials: Credentials,
    fake_http: FakeHttp,
    clock: FakeClock,
    sleeps: list[float],
) -> Iterator[Callable[..., TokenLifecycleManager]]:
    """Return a builder for managers wired to the fake clock and HTTP layer.

    Managers are created with ``autostart=False`` unless requested, and are
    closed at teardown.
    """
    created: list[TokenLifecycleManager] = []

    def _build(
        options: ManagerOptions | None = None,
        **kwargs: Any,
    ) -> TokenLifecycleManager:
        kwargs.setdefault("session", fake_http)
        kwargs.setdefault("clock", clock)
        kwargs.setdefault("sleep", sleeps.append)
        kwargs.setdefault("autostart", False)
        creds = kwargs.pop("credentials", credentials)
        manager = TokenLifecycleManager(creds, options or ManagerOptions(), **kwargs)
        created.append(manager)
        return manager

    yield _build
    for manager in created:
        manager.close()
