"""
Session store.

Sessions are rows keyed by an opaque id; the bearer token handed to clients is
a signed JWT that carries that id. Logging in deletes every earlier session of
the user, so the last login wins and older tokens stop authenticating.
"""
import logging
from datetime import datetime
from typing import Optional
from sqlalchemy.orm import Session

from pathwise.core.config import SESSION_DURATION_DAYS
from pathwise.core.security import (
    create_access_token,
    decode_access_token,
    generate_token,
    session_expiry,
)
from pathwise.db.models.user import User
from pathwise.db.models.user_session import UserSession

logger = logging.getLogger(__name__)


def revoke_user_sessions(db: Session, user_id: int) -> int:
    """Delete all sessions for a user. Does not commit."""
    deleted = db.query(UserSession).filter(UserSession.user_id == user_id).delete(
        synchronize_session=False
    )
    if deleted:
        logger.info(f"Revoked {deleted} session(s) for user_id={user_id}")
    return deleted


def create_session(db: Session, user: User, commit: bool = True) -> str:
    """
    Start a new session for a user, replacing any earlier one.

    Returns:
        Signed bearer token for the new session
    """
    revoke_user_sessions(db, user.id)

    session_id = generate_token()
    expires_at = session_expiry(SESSION_DURATION_DAYS)
    db.add(UserSession(user_id=user.id, token=session_id, expires_at=expires_at))
    if commit:
        db.commit()
    else:
        db.flush()

    logger.info(f"Session created for user_id={user.id}")
    return create_access_token(user.id, session_id, expires_at)


def _session_id_from_token(token: str) -> Optional[str]:
    payload = decode_access_token(token)
    if not payload:
        return None
    return payload["sid"]


def get_session_user(db: Session, token: str) -> Optional[User]:
    """Resolve a bearer token to its user, or None if the session is gone or expired."""
    session_id = _session_id_from_token(token)
    if not session_id:
        return None

    record = db.query(UserSession).filter(
        UserSession.token == session_id,
        UserSession.expires_at > datetime.utcnow()
    ).first()
    if not record:
        return None
    return record.user


def revoke_session(db: Session, token: str) -> None:
    session_id = _session_id_from_token(token)
    if not session_id:
        return
    db.query(UserSession).filter(UserSession.token == session_id).delete(synchronize_session=False)
    db.commit()


def purge_expired_sessions(db: Session) -> int:
    deleted = db.query(UserSession).filter(UserSession.expires_at <= datetime.utcnow()).delete(
        synchronize_session=False
    )
    db.commit()
    logger.info(f"Purged {deleted} expired session(s)")
    return deleted
