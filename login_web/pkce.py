"""
PKCE (RFC 7636) and authorize request helpers for login initiation.
S256 only. The same nonce primitive serves as CSRF state and as code_verifier.
"""
import hashlib
import secrets
from base64 import urlsafe_b64encode
from urllib.parse import urlencode

from login_web.config import SCOPE, ProviderConfig

# 32 bytes -> 43 chars base64url (RFC 7636 recommendation)
NONCE_BYTES = 32


def generate_nonce() -> str:
    """32 bytes from the OS CSPRNG, base64url without padding."""
    return secrets.token_urlsafe(NONCE_BYTES)


def derive_challenge(verifier: str) -> str:
    """code_challenge = base64url(SHA256(verifier)), no padding."""
    digest = hashlib.sha256(verifier.encode("utf-8")).digest()
    return urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def build_authorize_url(config: ProviderConfig, *, state: str, code_challenge: str) -> str:
    """Provider /authorize URL. No network I/O."""
    params = {
        "response_type": "code",
        "client_id": config.client_id,
        "redirect_uri": config.redirect_uri,
        "scope": SCOPE,
        "state": state,
        "code_challenge_method": "S256",
        "code_challenge": code_challenge,
    }
    return f"{config.authorize_endpoint}?{urlencode(params)}"
