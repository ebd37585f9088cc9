"""
Provider identity from a token response: verified id_token claims when present,
otherwise the userinfo endpoint called with the access token.
"""
import logging
from dataclasses import dataclass

import httpx
import jwt
from jwt import PyJWKClient

from login_web import config as settings
from login_web.config import ProviderConfig
from login_web.errors import IdentityError
from login_web.token_client import TokenResponse

logger = logging.getLogger(__name__)

# One PyJWKClient per JWKS URI; it caches the key set
_jwks_clients: dict[str, PyJWKClient] = {}


@dataclass(frozen=True)
class ProviderIdentity:
    subject: str
    username: str


def get_jwks_client(jwks_uri: str) -> PyJWKClient:
    client = _jwks_clients.get(jwks_uri)
    if client is None:
        client = PyJWKClient(uri=jwks_uri, cache_jwk_set=True, lifespan=300)
        _jwks_clients[jwks_uri] = client
    return client


def decode_id_token(id_token: str, config: ProviderConfig) -> dict:
    """Verify signature (JWKS, RS256), iss, aud=client_id and exp. Returns claims."""
    try:
        if not settings.ID_TOKEN_VERIFY:
            return jwt.decode(id_token, options={"verify_signature": False})
        signing_key = get_jwks_client(config.jwks_uri).get_signing_key_from_jwt(id_token)
        return jwt.decode(
            id_token,
            signing_key.key,
            algorithms=["RS256"],
            audience=config.client_id,
            issuer=config.issuer,
        )
    except jwt.PyJWTError as e:
        raise IdentityError(f"id_token rejected: {e}") from e


def fetch_userinfo(access_token: str, config: ProviderConfig) -> dict:
    try:
        r = httpx.get(
            config.userinfo_endpoint,
            headers={"Authorization": f"Bearer {access_token}", "Accept": "application/json"},
            timeout=settings.TOKEN_EXCHANGE_TIMEOUT,
        )
    except httpx.HTTPError as e:
        raise IdentityError(f"userinfo unreachable: {e}") from e
    if r.status_code != 200:
        raise IdentityError(f"userinfo returned {r.status_code}")
    try:
        data = r.json()
    except ValueError as e:
        raise IdentityError("userinfo response is not JSON") from e
    if not isinstance(data, dict):
        raise IdentityError("userinfo response is not an object")
    return data


def identity_from_claims(claims: dict) -> ProviderIdentity:
    subject = claims.get("sub")
    if not subject:
        raise IdentityError("No sub claim")
    username = claims.get("preferred_username") or claims.get("username") or claims.get("email") or str(subject)
    return ProviderIdentity(subject=str(subject), username=str(username))


def resolve_identity(tokens: TokenResponse, config: ProviderConfig) -> ProviderIdentity:
    if tokens.id_token:
        claims = decode_id_token(tokens.id_token, config)
    else:
        logger.debug("No id_token in token response; using userinfo")
        claims = fetch_userinfo(tokens.access_token, config)
    return identity_from_claims(claims)
