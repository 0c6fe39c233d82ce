"""Session service — create, verify, delete.

Sessions have a fixed lifetime (SESSION_LIFETIME_HOURS, default 24) and
are never renewed. verify_session() is run on every privileged request;
nothing is cached between requests.
"""

import logging
from datetime import timedelta

from flask import current_app

from helpdesk.extensions import db
from helpdesk.models.session import AuthSession
from helpdesk.models.user import User
from helpdesk.utils import utcnow

logger = logging.getLogger(__name__)

NO_SESSION = "Unauthorized: Authentication required"
INVALID_SESSION = "Unauthorized: Invalid session"
EXPIRED_SESSION = "Unauthorized: Session expired"
USER_NOT_FOUND = "Unauthorized: User not found"


def create_session(user):
    """Open a new session for `user`. Flushes, caller commits.

    Returns:
        The created AuthSession; its id is the opaque session identifier.
    """
    now = utcnow()
    lifetime = timedelta(hours=current_app.config.get("SESSION_LIFETIME_HOURS", 24))
    session = AuthSession(
        user_id=user.id,
        email=user.email,
        created_at=now,
        expires_at=now + lifetime,
    )
    db.session.add(session)
    db.session.flush()
    return session


def verify_session(session_id, now=None):
    """Look up a session and check it can still be used.

    Checks existence, then expiry, then that the user still exists.

    Returns:
        tuple: (session, error_message)
            - If valid: (AuthSession, None)
            - If invalid: (None, "reason string")
    """
    if not session_id:
        return None, NO_SESSION

    session = db.session.get(AuthSession, session_id)
    if session is None:
        logger.warning("Session check failed: unknown session id")
        return None, INVALID_SESSION

    if session.is_expired(now):
        logger.info(f"Session check failed: session for {session.email} expired")
        return None, EXPIRED_SESSION

    if db.session.get(User, session.user_id) is None:
        logger.warning(f"Session check failed: user {session.user_id} no longer exists")
        return None, USER_NOT_FOUND

    return session, None


def delete_session(session_id):
    """Sign out. Deleting an unknown session is a no-op. Commits."""
    deleted = AuthSession.query.filter_by(id=session_id).delete()
    db.session.commit()
    return bool(deleted)


def purge_expired_sessions():
    """Delete every expired session row. Commits.

    Returns:
        Number of rows removed.
    """
    removed = AuthSession.query.filter(
        AuthSession.expires_at <= utcnow()
    ).delete(synchronize_session=False)
    db.session.commit()
    return removed
