"""
Error taxonomy for the login handshake. Every AuthError is recoverable: the caller turns it
into a redirect and keeps the detail for server-side logs only.
"""


class ConfigError(RuntimeError):
    """Required configuration is missing; raised at startup."""


class AuthError(Exception):
    """Base for handshake failures. `event` is the audit event type recorded for it."""

    event = "auth_error"


class MalformedCallback(AuthError):
    event = "callback_malformed"


class CsrfMismatch(AuthError):
    event = "csrf_mismatch"


class HandshakeExpired(CsrfMismatch):
    event = "handshake_expired"


class ProviderError(AuthError):
    """Provider redirected back with error= instead of a code."""

    event = "provider_error"

    def __init__(self, error: str, description: str | None = None):
        super().__init__(f"{error}: {description}" if description else error)
        self.error = error
        self.description = description


class SessionWriteFailure(AuthError):
    event = "session_write_fail"


class TokenExchangeFailure(AuthError):
    event = "token_exchange_fail"

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        error: str | None = None,
        error_description: str | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.error = error
        self.error_description = error_description


class IdentityError(AuthError):
    """Token response did not yield a usable provider identity."""

    event = "identity_fail"


class UserNotFound(AuthError):
    event = "session_invalid"

    def __init__(self, message: str, user_id: int | None = None):
        super().__init__(message)
        self.user_id = user_id


class UserStoreFailure(AuthError):
    """Local user record could not be written after a successful exchange."""

    event = "user_store_fail"


class InvalidTransition(AuthError):
    event = "invalid_transition"


class Unauthenticated(Exception):
    """Raised by the current-user dependency; handled as a redirect to the login page."""
