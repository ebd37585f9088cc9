"""
Per-request session wrapper over the signed cookie mapping from Starlette's SessionMiddleware.
Passed explicitly into handshake functions; the middleware flushes it on every response.
"""
import json
import logging
from collections.abc import Callable, MutableMapping
from dataclasses import dataclass
from typing import Any

from fastapi import Request

from login_web.errors import SessionWriteFailure

logger = logging.getLogger(__name__)

STATE_KEY = "state_value"
VERIFIER_KEY = "code_verifier"
STARTED_AT_KEY = "auth_started_at"
USER_ID_KEY = "userId"


@dataclass(frozen=True)
class SessionData:
    state_value: str | None = None
    code_verifier: str | None = None
    auth_started_at: float | None = None
    user_id: int | None = None

    @property
    def has_pending_handshake(self) -> bool:
        return bool(self.state_value) and bool(self.code_verifier)


class UserSession:
    def __init__(self, store: MutableMapping[str, Any]):
        self._store = store

    def get(self) -> SessionData:
        return SessionData(
            state_value=self._store.get(STATE_KEY),
            code_verifier=self._store.get(VERIFIER_KEY),
            auth_started_at=self._store.get(STARTED_AT_KEY),
            user_id=self._store.get(USER_ID_KEY),
        )

    def update(self, mutator: Callable[[dict[str, Any]], None]) -> None:
        """
        Apply mutator to a copy and merge it back only if it succeeded and the result
        is cookie-serialisable (JSON). Either all changes land or none do.
        """
        try:
            draft = dict(self._store)
            mutator(draft)
            json.dumps(draft)
            for key in [k for k in self._store if k not in draft]:
                del self._store[key]
            self._store.update(draft)
        except Exception as e:
            raise SessionWriteFailure(f"Session update failed: {e}") from e

    def destroy(self) -> None:
        try:
            self._store.clear()
        except Exception as e:
            raise SessionWriteFailure(f"Session destroy failed: {e}") from e


def get_user_session(request: Request) -> UserSession:
    """Dependency: session for the current request (requires SessionMiddleware)."""
    return UserSession(request.session)
