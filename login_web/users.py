"""
User persistence: lookup by local id, upsert by provider-issued subject.
"""
import logging
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from login_web.models import User

logger = logging.getLogger(__name__)


def find_by_id(db: Session, user_id: int) -> User | None:
    return db.get(User, user_id)


def upsert_by_subject(db: Session, subject: str, username: str) -> User:
    """Create the user on first login; refresh username and last_login_at on later logins."""
    now = datetime.now(timezone.utc)
    user = db.query(User).filter(User.subject == subject).first()
    if user is None:
        user = User(subject=subject, username=username, last_login_at=now)
        db.add(user)
        logger.info("Created user for subject %s", subject)
    else:
        user.username = username
        user.last_login_at = now
    db.commit()
    db.refresh(user)
    return user
