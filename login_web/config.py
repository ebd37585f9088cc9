"""
Login Web configuration. Provider identifiers and the client secret come from env only.
load_provider_config() is called at startup so a missing value fails fast instead of
producing a malformed provider URL.
"""
import os
from dataclasses import dataclass

from login_web.errors import ConfigError

# Identity provider base URL (region-specific)
PROVIDER_BASE_URL = os.environ.get("BI_AUTH_BASE_URL", "https://auth-us.beyondidentity.com").rstrip("/")

# Signing key for the session cookie (itsdangerous via SessionMiddleware)
SESSION_SECRET_KEY = os.environ.get("SESSION_SECRET_KEY", "")

# Session cookie lifetime (seconds); default one week
SESSION_MAX_AGE = int(os.environ.get("SESSION_MAX_AGE", str(7 * 24 * 3600)))

# Set to "1" behind TLS so the cookie is only sent over https
SESSION_HTTPS_ONLY = os.environ.get("SESSION_HTTPS_ONLY", "0") == "1"

# Pending state/verifier pair is rejected after this many seconds
HANDSHAKE_TTL_SECONDS = int(os.environ.get("HANDSHAKE_TTL_SECONDS", "600"))

# Server-to-server calls to the provider (token, userinfo)
TOKEN_EXCHANGE_TIMEOUT = float(os.environ.get("TOKEN_EXCHANGE_TIMEOUT", "10.0"))

# Verify id_token signature against the provider JWKS
ID_TOKEN_VERIFY = os.environ.get("ID_TOKEN_VERIFY", "1") != "0"

# User records and audit log
DATABASE_URL = os.environ.get("LOGIN_DATABASE_URL", "sqlite:///./login_web.db")

# Only openid is requested; identity comes from the id_token / userinfo
SCOPE = "openid"

HOME_PATH = "/"
LOGIN_PATH = "/login"

_REQUIRED_ENV = {
    "tenant_id": "BI_TENANT_ID",
    "realm_id": "BI_REALM_ID",
    "application_id": "BI_APPLICATION_ID",
    "client_id": "BI_CLIENT_ID",
    "client_secret": "BI_CLIENT_SECRET",
    "redirect_uri": "APP_REDIRECT_URI",
}


@dataclass(frozen=True)
class ProviderConfig:
    base_url: str
    tenant_id: str
    realm_id: str
    application_id: str
    client_id: str
    client_secret: str
    redirect_uri: str  # must match the URI registered for the application

    @property
    def issuer(self) -> str:
        return (
            f"{self.base_url}/v1/tenants/{self.tenant_id}"
            f"/realms/{self.realm_id}/applications/{self.application_id}"
        )

    @property
    def authorize_endpoint(self) -> str:
        return f"{self.issuer}/authorize"

    @property
    def token_endpoint(self) -> str:
        return f"{self.issuer}/token"

    @property
    def userinfo_endpoint(self) -> str:
        return f"{self.issuer}/userinfo"

    @property
    def jwks_uri(self) -> str:
        return f"{self.issuer}/.well-known/jwks.json"


def load_provider_config(environ=None) -> ProviderConfig:
    """
    Build ProviderConfig from env. Raises ConfigError listing every missing or empty variable.
    """
    env = os.environ if environ is None else environ
    values = {}
    missing = []
    for field, var in _REQUIRED_ENV.items():
        value = (env.get(var) or "").strip()
        if not value:
            missing.append(var)
        values[field] = value
    if missing:
        raise ConfigError(f"Missing required configuration: {', '.join(missing)}")
    base_url = (env.get("BI_AUTH_BASE_URL") or PROVIDER_BASE_URL).strip().rstrip("/")
    return ProviderConfig(base_url=base_url, **values)


_provider_config: ProviderConfig | None = None


def get_provider_config() -> ProviderConfig:
    """Cached ProviderConfig for the running process (dependency)."""
    global _provider_config
    if _provider_config is None:
        _provider_config = load_provider_config()
    return _provider_config


def reset_provider_config() -> None:
    global _provider_config
    _provider_config = None
