"""
Login handshake state machine: initiate -> redirect to provider -> callback -> validate
state -> exchange code (PKCE) -> finalize session -> redirect into the app.

The state lives in the session cookie between the two requests; it is derived from the
session contents on each request and every step goes through transition(), which rejects
moves the table does not allow.
"""
import hmac
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from login_web.audit import EVENT_LOGIN_OK, EVENT_LOGIN_START, EVENT_LOGOUT, OUTCOME_FAIL, log_audit
from login_web.config import HANDSHAKE_TTL_SECONDS, HOME_PATH, LOGIN_PATH, ProviderConfig
from login_web.errors import (
    AuthError,
    CsrfMismatch,
    HandshakeExpired,
    IdentityError,
    InvalidTransition,
    MalformedCallback,
    ProviderError,
    SessionWriteFailure,
    TokenExchangeFailure,
    UserStoreFailure,
)
from login_web.identity import resolve_identity
from login_web.pkce import build_authorize_url, derive_challenge, generate_nonce
from login_web.session import STARTED_AT_KEY, STATE_KEY, USER_ID_KEY, VERIFIER_KEY, SessionData, UserSession
from login_web.token_client import TokenExchangeClient
from login_web.users import upsert_by_subject

logger = logging.getLogger(__name__)


class HandshakeState(str, Enum):
    UNINITIATED = "uninitiated"
    PENDING = "pending"
    CALLBACK_RECEIVED = "callback_received"
    EXCHANGED = "exchanged"
    REJECTED = "rejected"


_TRANSITIONS: dict[HandshakeState, set[HandshakeState]] = {
    HandshakeState.UNINITIATED: {HandshakeState.PENDING, HandshakeState.REJECTED},
    # PENDING -> PENDING: a second initiation overwrites the pair
    HandshakeState.PENDING: {
        HandshakeState.PENDING,
        HandshakeState.CALLBACK_RECEIVED,
        HandshakeState.REJECTED,
        HandshakeState.UNINITIATED,
    },
    HandshakeState.CALLBACK_RECEIVED: {HandshakeState.EXCHANGED, HandshakeState.REJECTED},
    HandshakeState.EXCHANGED: {HandshakeState.PENDING, HandshakeState.REJECTED, HandshakeState.UNINITIATED},
    HandshakeState.REJECTED: set(),
}


def transition(current: HandshakeState, target: HandshakeState) -> HandshakeState:
    if target not in _TRANSITIONS[current]:
        raise InvalidTransition(f"{current.value} -> {target.value} not allowed")
    return target


def current_state(data: SessionData) -> HandshakeState:
    """PENDING needs both halves of the pair; a lone state_value or verifier counts as nothing."""
    if data.has_pending_handshake:
        return HandshakeState.PENDING
    if data.user_id is not None:
        return HandshakeState.EXCHANGED
    return HandshakeState.UNINITIATED


def state_matches(stored: str | None, received: str) -> bool:
    """Constant-time comparison; an absent stored value never matches."""
    if not stored:
        return False
    return hmac.compare_digest(stored.encode("utf-8"), received.encode("utf-8"))


@dataclass
class HandshakeOutcome:
    redirect_to: str
    state: HandshakeState
    error: AuthError | None = None
    user_id: int | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class AuthHandshakeController:
    def __init__(
        self,
        config: ProviderConfig,
        db: Session,
        *,
        token_client: TokenExchangeClient | None = None,
        ttl_seconds: int = HANDSHAKE_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
        ip: str | None = None,
    ):
        self.config = config
        self.db = db
        self.token_client = token_client or TokenExchangeClient(config)
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self.ip = ip

    def initiate(self, session: UserSession) -> str:
        """
        Store a fresh state/verifier pair in the session and return the provider URL.
        Raises SessionWriteFailure (nothing stored, no URL) if the session cannot be written.
        """
        transition(current_state(session.get()), HandshakeState.PENDING)
        state = generate_nonce()
        code_verifier = generate_nonce()
        code_challenge = derive_challenge(code_verifier)
        started_at = self.clock()

        def _store_pair(data: dict) -> None:
            data[STATE_KEY] = state
            data[VERIFIER_KEY] = code_verifier
            data[STARTED_AT_KEY] = started_at

        try:
            session.update(_store_pair)
        except SessionWriteFailure as e:
            log_audit(self.db, e.event, ip=self.ip, outcome=OUTCOME_FAIL, detail=str(e))
            raise
        log_audit(self.db, EVENT_LOGIN_START, ip=self.ip)
        return build_authorize_url(self.config, state=state, code_challenge=code_challenge)

    def handle_callback(
        self,
        session: UserSession,
        code: str | None,
        state: str | None,
        *,
        error: str | None = None,
        error_description: str | None = None,
    ) -> HandshakeOutcome:
        """Validate the provider callback and finish login. Failures come back in the outcome."""
        if error:
            return self._reject(ProviderError(error, error_description))
        if not code or not state:
            return self._reject(MalformedCallback("Callback requires both code and state"))

        data = session.get()
        current = current_state(data)
        if not state_matches(data.state_value, state):
            return self._reject(
                CsrfMismatch(f"Callback state does not match session (session {current.value})"), current
            )
        if data.auth_started_at is None or self.clock() - data.auth_started_at > self.ttl_seconds:
            return self._reject(HandshakeExpired("Pending login is older than the handshake TTL"), current)

        try:
            current = transition(current, HandshakeState.CALLBACK_RECEIVED)
        except InvalidTransition as e:
            # state matched but the verifier half of the pair is gone
            return self._reject(e, current)
        try:
            tokens = self.token_client.exchange(code, data.code_verifier)
            identity = resolve_identity(tokens, self.config)
        except (TokenExchangeFailure, IdentityError) as e:
            return self._reject(e, current)

        try:
            user = upsert_by_subject(self.db, identity.subject, identity.username)
        except SQLAlchemyError as e:
            # e.g. two tabs finishing a first login for the same subject
            self.db.rollback()
            return self._reject(UserStoreFailure(f"Could not store user: {e}"), current)

        def _finalize(d: dict) -> None:
            d.pop(STATE_KEY, None)
            d.pop(VERIFIER_KEY, None)
            d.pop(STARTED_AT_KEY, None)
            d[USER_ID_KEY] = user.id

        try:
            session.update(_finalize)
        except SessionWriteFailure as e:
            return self._reject(e, current)

        current = transition(current, HandshakeState.EXCHANGED)
        log_audit(self.db, EVENT_LOGIN_OK, user_id=user.id, ip=self.ip)
        logger.info("Login complete for user %s", user.id)
        return HandshakeOutcome(redirect_to=HOME_PATH, state=current, user_id=user.id)

    def logout(self, session: UserSession) -> str:
        user_id = session.get().user_id
        session.destroy()
        log_audit(self.db, EVENT_LOGOUT, user_id=user_id, ip=self.ip)
        return LOGIN_PATH

    def _reject(self, err: AuthError, current: HandshakeState | None = None) -> HandshakeOutcome:
        # current is None when the callback was refused before the session was read
        if current is not None:
            transition(current, HandshakeState.REJECTED)
        detail = str(err)
        if isinstance(err, TokenExchangeFailure) and err.error:
            detail = f"{detail} ({err.error}: {err.error_description or ''})"
        log_audit(self.db, err.event, ip=self.ip, outcome=OUTCOME_FAIL, detail=detail)
        return HandshakeOutcome(redirect_to=HOME_PATH, state=HandshakeState.REJECTED, error=err)
