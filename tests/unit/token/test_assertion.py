"""Unit tests for AssertionBuilder and local assertion verification.

Coverage:
* claim set (nonce, skewed iat, exp/nbf, audience) and JOSE header
* fresh nonce per build
* permissive algorithm fallback
* signing / verification failures map to SigningError / ConfigurationError
"""

from __future__ import annotations

import dataclasses
import itertools
import logging

import jwt
import pytest

from box_appauth.token.assertion import AssertionBuilder, resolve_algorithm, verify_assertion
from box_appauth.token.config import TOKEN_URL
from box_appauth.token.errors import ConfigurationError, SigningError
from box_appauth.token.models import Credentials

NOW = 1_700_000_000


def _builder(credentials: Credentials, **kwargs) -> AssertionBuilder:
    counter = itertools.count(1)
    kwargs.setdefault("nonce_factory", lambda: f"nonce-{next(counter)}")
    kwargs.setdefault("clock", lambda: float(NOW))
    return AssertionBuilder(credentials, **kwargs)


def _decode(token: str, public_key: str, algorithm: str = "RS256") -> dict:
    return jwt.decode(
        token,
        public_key,
        algorithms=[algorithm],
        audience=TOKEN_URL,
        options={"verify_exp": False, "verify_nbf": False, "verify_iat": False},
    )


def test_build_signs_expected_claims(credentials: Credentials) -> None:
    assertion = _builder(credentials).build()

    payload = _decode(assertion.token, credentials.public_key)
    assert payload == {
        "box_sub_type": "enterprise",
        "jti": "nonce-1",
        "iat": NOW - 5,
        "iss": "client-abc",
        "sub": "enterprise-1",
        "aud": TOKEN_URL,
        "exp": NOW - 5 + 58,
        "nbf": NOW - 5 - 10,
    }
    header = jwt.get_unverified_header(assertion.token)
    assert header["kid"] == "kid-1"
    assert header["alg"] == "RS256"
    assert header["typ"] == "JWT"
    assert assertion.claims.audience == TOKEN_URL


def test_each_build_uses_fresh_nonce(credentials: Credentials) -> None:
    builder = _builder(credentials)
    first, second = builder.build(), builder.build()
    assert first.claims.jti != second.claims.jti
    assert first.token != second.token


def test_ttl_never_exceeds_sixty_seconds(credentials: Credentials) -> None:
    assertion = _builder(credentials, ttl_seconds=300).build()
    assert assertion.claims.expires_in == 60


def test_unsupported_algorithm_falls_back(
    credentials: Credentials, caplog: pytest.LogCaptureFixture
) -> None:
    creds = dataclasses.replace(credentials, signing_algorithm="HS256")
    with caplog.at_level(logging.WARNING, logger="box-appauth.token.assertion"):
        builder = _builder(creds)
    assert builder.algorithm == "RS256"
    assert "Will use RS256" in caplog.text
    assert jwt.get_unverified_header(builder.build().token)["alg"] == "RS256"


@pytest.mark.parametrize(("requested", "expected"), [("rs384", "RS384"), ("RS512", "RS512"), (None, "RS256")])
def test_resolve_algorithm(requested: str | None, expected: str) -> None:
    assert resolve_algorithm(requested) == expected


def test_rs512_assertion_verifies(credentials: Credentials) -> None:
    creds = dataclasses.replace(credentials, signing_algorithm="RS512")
    assertion = _builder(creds).build()
    _decode(assertion.token, creds.public_key, "RS512")
    verify_assertion(assertion, creds)


def test_malformed_private_key_raises_signing_error(credentials: Credentials) -> None:
    creds = dataclasses.replace(credentials, private_key="-----BEGIN NOT A KEY-----")
    with pytest.raises(SigningError):
        _builder(creds).build()


def test_public_key_in_private_key_slot_raises_signing_error(credentials: Credentials) -> None:
    creds = dataclasses.replace(credentials, private_key=credentials.public_key)
    with pytest.raises(SigningError, match="private key"):
        _builder(creds).build()


def test_encrypted_private_key(encrypted_key_pair: tuple[str, str], credentials: Credentials) -> None:
    private_pem, public_pem = encrypted_key_pair
    creds = dataclasses.replace(
        credentials,
        private_key=private_pem,
        public_key=public_pem,
        private_key_passphrase="s3cret",
    )
    verify_assertion(_builder(creds).build(), creds)


def test_wrong_passphrase_raises_signing_error(
    encrypted_key_pair: tuple[str, str], credentials: Credentials
) -> None:
    private_pem, public_pem = encrypted_key_pair
    creds = dataclasses.replace(
        credentials,
        private_key=private_pem,
        public_key=public_pem,
        private_key_passphrase="wrong",
    )
    with pytest.raises(SigningError):
        _builder(creds).build()


def test_verify_accepts_matching_pair(credentials: Credentials) -> None:
    verify_assertion(_builder(credentials).build(), credentials)


def test_verify_rejects_mismatched_public_key(
    credentials: Credentials, other_key_pair: tuple[str, str]
) -> None:
    assertion = _builder(credentials).build()
    mismatched = dataclasses.replace(credentials, public_key=other_key_pair[1])
    with pytest.raises(ConfigurationError, match="public_key"):
        verify_assertion(assertion, mismatched)
