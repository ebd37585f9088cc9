"""
Audit logging for the login handshake. Security-relevant events only; never tokens,
verifiers, secrets or full provider responses.
"""
import logging

from fastapi import Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from login_web.models import AuditLog

logger = logging.getLogger(__name__)

EVENT_LOGIN_START = "login_start"
EVENT_LOGIN_OK = "login_ok"
EVENT_LOGOUT = "logout"

OUTCOME_SUCCESS = "success"
OUTCOME_FAIL = "fail"


def get_client_ip(request: Request | None) -> str | None:
    """Client IP if available (e.g. request.client.host). No forwarding headers."""
    if request is None or request.client is None:
        return None
    return getattr(request.client, "host", None)


def log_audit(
    db: Session,
    event_type: str,
    *,
    user_id: int | None = None,
    ip: str | None = None,
    outcome: str = OUTCOME_SUCCESS,
    detail: str | None = None,
) -> None:
    """Append one audit record. A failed write is logged and rolled back, never raised."""
    try:
        db.add(
            AuditLog(
                event_type=event_type,
                user_id=user_id,
                ip=ip,
                outcome=outcome,
                detail=detail[:255] if detail else None,
            )
        )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Could not write audit record %s", event_type)
    if outcome == OUTCOME_FAIL:
        logger.warning("audit %s fail ip=%s detail=%s", event_type, ip, detail)
