"""
Authorization code exchange at the provider token endpoint (confidential client, PKCE).
One POST, no retry: the code is single-use, so a second attempt could only fail.
"""
import base64
import logging
from dataclasses import dataclass

import httpx

from login_web.config import TOKEN_EXCHANGE_TIMEOUT, ProviderConfig
from login_web.errors import TokenExchangeFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenResponse:
    access_token: str
    token_type: str | None = None
    expires_in: int | None = None
    scope: str | None = None
    id_token: str | None = None

    @classmethod
    def from_json(cls, data: dict) -> "TokenResponse":
        return cls(
            access_token=data["access_token"],
            token_type=data.get("token_type"),
            expires_in=data.get("expires_in"),
            scope=data.get("scope"),
            id_token=data.get("id_token") or None,
        )


def basic_auth_header(client_id: str, client_secret: str) -> str:
    """'Basic base64(client_id:client_secret)' (RFC 6749 §2.3.1)."""
    raw = f"{client_id}:{client_secret}".encode("utf-8")
    return "Basic " + base64.b64encode(raw).decode("ascii")


def _error_fields(r: httpx.Response) -> tuple[str | None, str | None]:
    """Provider error / error_description if the body is a JSON error object."""
    if not r.headers.get("content-type", "").startswith("application/json"):
        return None, None
    try:
        err = r.json()
    except ValueError:
        return None, None
    if not isinstance(err, dict):
        return None, None
    return err.get("error"), err.get("error_description")


class TokenExchangeClient:
    def __init__(self, config: ProviderConfig, timeout: float = TOKEN_EXCHANGE_TIMEOUT):
        self.config = config
        self.timeout = timeout

    def exchange(self, code: str, code_verifier: str) -> TokenResponse:
        """
        POST grant_type=authorization_code with code, code_verifier, redirect_uri.
        Raises TokenExchangeFailure on network error, non-2xx, or a body without access_token.
        """
        try:
            r = httpx.post(
                self.config.token_endpoint,
                data={
                    "grant_type": "authorization_code",
                    "code": code,
                    "code_verifier": code_verifier,
                    "redirect_uri": self.config.redirect_uri,
                },
                headers={
                    "Content-Type": "application/x-www-form-urlencoded",
                    "Authorization": basic_auth_header(self.config.client_id, self.config.client_secret),
                    "Accept": "application/json",
                },
                timeout=self.timeout,
            )
        except httpx.HTTPError as e:
            raise TokenExchangeFailure(f"Token endpoint unreachable: {e}") from e

        if not 200 <= r.status_code < 300:
            error, description = _error_fields(r)
            raise TokenExchangeFailure(
                f"Token endpoint returned {r.status_code}",
                status_code=r.status_code,
                error=error,
                error_description=description,
            )

        try:
            data = r.json()
        except ValueError as e:
            raise TokenExchangeFailure("Token response is not JSON", status_code=r.status_code) from e
        if not isinstance(data, dict) or not data.get("access_token"):
            raise TokenExchangeFailure("Token response has no access_token", status_code=r.status_code)

        tokens = TokenResponse.from_json(data)
        logger.info(
            "Token exchange ok: token_type=%s expires_in=%s scope=%r id_token=%s",
            tokens.token_type,
            tokens.expires_in,
            tokens.scope,
            "yes" if tokens.id_token else "no",
        )
        return tokens
