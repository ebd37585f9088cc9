"""Tests for resolving the provider identity from a token response."""
import time
from unittest.mock import MagicMock, patch

import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric.rsa import generate_private_key

from login_web.errors import IdentityError
from login_web.identity import identity_from_claims, resolve_identity
from login_web.token_client import TokenResponse


@pytest.fixture(scope="module")
def rsa_key():
    return generate_private_key(public_exponent=65537, key_size=2048)


def _id_token(key, config, **overrides):
    now = int(time.time())
    payload = {
        "iss": config.issuer,
        "sub": "bi-user-1",
        "aud": config.client_id,
        "exp": now + 300,
        "iat": now,
        "preferred_username": "alice",
    }
    payload.update(overrides)
    return jwt.encode(payload, key, algorithm="RS256", headers={"kid": "k1"})


def _jwks_client_for(key):
    signing_key = MagicMock()
    signing_key.key = key.public_key()
    client = MagicMock()
    client.get_signing_key_from_jwt.return_value = signing_key
    return client


class MockUserinfo:
    def __init__(self, status_code=200, body=None):
        self.status_code = status_code
        self.headers = {"content-type": "application/json"}
        self._body = body

    def json(self):
        return self._body


def test_identity_from_verified_id_token(rsa_key, provider_config):
    tokens = TokenResponse(access_token="at", id_token=_id_token(rsa_key, provider_config))
    with patch("login_web.identity.get_jwks_client", return_value=_jwks_client_for(rsa_key)):
        identity = resolve_identity(tokens, provider_config)
    assert identity.subject == "bi-user-1"
    assert identity.username == "alice"


def test_id_token_wrong_audience_rejected(rsa_key, provider_config):
    tokens = TokenResponse(access_token="at", id_token=_id_token(rsa_key, provider_config, aud="someone-else"))
    with patch("login_web.identity.get_jwks_client", return_value=_jwks_client_for(rsa_key)):
        with pytest.raises(IdentityError):
            resolve_identity(tokens, provider_config)


def test_id_token_wrong_key_rejected(rsa_key, provider_config):
    other = generate_private_key(public_exponent=65537, key_size=2048)
    tokens = TokenResponse(access_token="at", id_token=_id_token(other, provider_config))
    with patch("login_web.identity.get_jwks_client", return_value=_jwks_client_for(rsa_key)):
        with pytest.raises(IdentityError):
            resolve_identity(tokens, provider_config)


def test_id_token_wrong_issuer_rejected(rsa_key, provider_config):
    tokens = TokenResponse(
        access_token="at", id_token=_id_token(rsa_key, provider_config, iss="https://other-idp.example")
    )
    with patch("login_web.identity.get_jwks_client", return_value=_jwks_client_for(rsa_key)):
        with pytest.raises(IdentityError):
            resolve_identity(tokens, provider_config)


def test_id_token_claims_read_when_verification_disabled(provider_config, monkeypatch):
    monkeypatch.setattr("login_web.config.ID_TOKEN_VERIFY", False)
    unsigned = jwt.encode({"sub": "bi-user-3", "username": "ivy"}, None, algorithm="none")
    with patch("login_web.identity.get_jwks_client") as jwks:
        identity = resolve_identity(TokenResponse(access_token="at", id_token=unsigned), provider_config)
    assert identity.subject == "bi-user-3"
    assert identity.username == "ivy"
    jwks.assert_not_called()


def test_userinfo_used_without_id_token(provider_config):
    tokens = TokenResponse(access_token="T")
    with patch(
        "login_web.identity.httpx.get",
        return_value=MockUserinfo(body={"sub": "bi-user-2", "email": "bob@example.com"}),
    ) as get:
        identity = resolve_identity(tokens, provider_config)
    assert identity.subject == "bi-user-2"
    assert identity.username == "bob@example.com"
    args, kwargs = get.call_args
    assert args[0] == provider_config.userinfo_endpoint
    assert kwargs["headers"]["Authorization"] == "Bearer T"


def test_userinfo_failure(provider_config):
    with patch("login_web.identity.httpx.get", return_value=MockUserinfo(status_code=401, body={})):
        with pytest.raises(IdentityError):
            resolve_identity(TokenResponse(access_token="T"), provider_config)


def test_claims_without_sub_rejected():
    with pytest.raises(IdentityError):
        identity_from_claims({"preferred_username": "x"})


def test_username_falls_back_to_subject():
    assert identity_from_claims({"sub": "abc"}).username == "abc"
