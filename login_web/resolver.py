"""
Current user from the session. Any failure logs the session out; the route layer then
redirects to the login page.
"""
import logging

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from login_web.audit import OUTCOME_FAIL, get_client_ip, log_audit
from login_web.database import get_db
from login_web.errors import Unauthenticated, UserNotFound
from login_web.models import User
from login_web.session import UserSession, get_user_session
from login_web.users import find_by_id

logger = logging.getLogger(__name__)


def resolve_user(session: UserSession, db: Session) -> User:
    """
    Load the User referenced by the session's userId. Raises UserNotFound (after destroying
    the session) when userId is absent or points at a missing user.
    """
    user_id = session.get().user_id
    try:
        if user_id is None:
            raise UserNotFound("Session has no userId")
        user = find_by_id(db, user_id)
        if user is None:
            raise UserNotFound(f"User {user_id} not found", user_id=user_id)
        return user
    except UserNotFound:
        session.destroy()
        raise


def require_user(
    request: Request,
    session: UserSession = Depends(get_user_session),
    db: Session = Depends(get_db),
) -> User:
    """Dependency: authenticated User, or Unauthenticated (handled as redirect to /login)."""
    try:
        return resolve_user(session, db)
    except UserNotFound as e:
        # A missing userId is just an anonymous visitor; a stale one is worth an audit record
        if e.user_id is not None:
            log_audit(db, e.event, ip=get_client_ip(request), outcome=OUTCOME_FAIL, detail=str(e))
        raise Unauthenticated(str(e)) from e
