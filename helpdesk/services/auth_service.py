"""Auth service — signup, sign-in, sign-out, password reset.

Signup is two steps against the store (create the user, then assign roles
from the allowlist) with an explicit compensating delete if the second
step fails. These functions commit.
"""

import logging
import re
import secrets
from datetime import timedelta

from flask import current_app
from sqlalchemy.exc import IntegrityError
from werkzeug.security import check_password_hash, generate_password_hash

from helpdesk.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    PortalError,
    ValidationError,
)
from helpdesk.extensions import db
from helpdesk.models.audit import AuditEvent
from helpdesk.models.password_reset import PasswordResetToken
from helpdesk.models.user import User
from helpdesk.services import notification_service, role_service, session_service
from helpdesk.services.departments import Allowlist
from helpdesk.utils import text_field, utcnow

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

PASSWORD_HASH_METHOD = "scrypt:32768:8:1"

# Well-formed hash that matches no password. Verified against when the
# email is unknown so both failure paths cost one full scrypt run.
DUMMY_PASSWORD_HASH = (
    "scrypt:32768:8:1$q7Xk2LmN9pRt4VwZ$"
    "5f0c3a9e1b7d2468ace013579bdf2468ace013579bdf2468ace013579bdf2468"
    "ace013579bdf2468ace013579bdf2468ace013579bdf2468ace013579bdf2468"
)

INVALID_CREDENTIALS = "Invalid credentials"


def normalize_email(email):
    return (text_field(email, "Email") or "").strip().lower()


def validate_password(password):
    """Password strength rules, checked in order, first failure wins."""
    password = text_field(password, "Password") or ""
    if len(password) < 8:
        raise ValidationError("Password must be at least 8 characters")
    if not re.search(r"[A-Z]", password):
        raise ValidationError("Password must contain at least one uppercase letter")
    if not re.search(r"[a-z]", password):
        raise ValidationError("Password must contain at least one lowercase letter")
    if not re.search(r"[0-9]", password):
        raise ValidationError("Password must contain at least one number")


def hash_password(password):
    return generate_password_hash(password, method=PASSWORD_HASH_METHOD)


# ──────────────────────────────────────────────
# Signup
# ──────────────────────────────────────────────

def sign_up(email, password, allowlist=None):
    """Register an allowlisted admin.

    Validation order: email format, password length, uppercase, lowercase,
    digit, email not taken, email on the allowlist.

    Returns:
        dict with user_id, email.

    Raises:
        ValidationError, ConflictError, AuthorizationError: rejected input.
        PortalError: role assignment failed and the user was rolled back.
    """
    allowlist = allowlist or Allowlist.from_config()
    email = normalize_email(email)

    if not EMAIL_RE.match(email):
        raise ValidationError("Invalid email format")
    validate_password(password)

    if User.query.filter_by(email=email).first() is not None:
        raise ConflictError("User already exists")

    if not allowlist.is_authorized_admin(email):
        raise AuthorizationError(
            "This email is not authorized as an admin. Please contact IT support."
        )

    # --- Step 1: create the user ---
    user = User(email=email, password_hash=hash_password(password))
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        # Lost a race with a concurrent signup for the same email
        db.session.rollback()
        raise ConflictError("User already exists")
    user_id = user.id

    # --- Step 2: assign roles, undo step 1 on failure ---
    try:
        role_service.assign_role(user_id, email, allowlist=allowlist)
        AuditEvent.record("user.signed_up", actor_user_id=user_id, email=email)
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.exception(f"Role assignment failed for {email}; removing user")
        _delete_user(user_id, email)
        raise PortalError("Failed to assign admin role. Please try again.")

    logger.info(f"New admin signed up: {email}")
    return {"user_id": user_id, "email": email}


def _delete_user(user_id, email):
    """Compensating delete for a half-finished signup."""
    try:
        User.query.filter_by(id=user_id).delete()
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.critical(
            f"Signup compensation failed: user {user_id} ({email}) exists without roles"
        )
        raise


# ──────────────────────────────────────────────
# Sign-in / sign-out
# ──────────────────────────────────────────────

def sign_in(email, password):
    """Check credentials and open a session.

    Unknown emails still run a full password verification (against
    DUMMY_PASSWORD_HASH) and fail with the same message as a wrong
    password.

    Returns:
        dict with user_id, email, session_id.
    """
    email = normalize_email(email)
    user = User.query.filter_by(email=email).first() if email else None

    password_hash = user.password_hash if user is not None else DUMMY_PASSWORD_HASH
    password_ok = check_password_hash(password_hash, text_field(password, "Password") or "")

    if user is None or not password_ok:
        logger.info("Failed sign-in attempt")
        raise AuthenticationError(INVALID_CREDENTIALS)

    session = session_service.create_session(user)
    db.session.commit()

    logger.info(f"Signed in: {user.email}")
    return {"user_id": user.id, "email": user.email, "session_id": session.id}


def sign_out(session_id):
    session_service.delete_session(session_id)


# ──────────────────────────────────────────────
# Password reset
# ──────────────────────────────────────────────

def request_password_reset(email):
    """Issue a reset token and email it.

    Behaves the same whether or not the email exists; the token only ever
    leaves through the email.
    """
    email = normalize_email(email)
    user = User.query.filter_by(email=email).first() if email else None
    if user is None:
        logger.info("Password reset requested for unknown email")
        return

    ttl = timedelta(minutes=current_app.config.get("PASSWORD_RESET_TTL_MINUTES", 60))
    reset = PasswordResetToken(
        user_id=user.id,
        token=secrets.token_hex(32),
        expires_at=utcnow() + ttl,
        used=False,
    )
    db.session.add(reset)
    db.session.commit()

    notification_service.send_password_reset(user.email, reset.token)


def verify_reset_token(token):
    """Look up a reset token and check if it's usable.

    Returns:
        tuple: (reset_token, error_message)
            - If valid: (PasswordResetToken, None)
            - If invalid: (None, "reason string")
    """
    if not token or not isinstance(token, str):
        return None, "Invalid token"

    reset = PasswordResetToken.query.filter_by(token=token).first()
    if reset is None:
        return None, "Invalid token"
    if reset.used:
        return None, "Token already used"
    if reset.is_expired:
        return None, "Token expired"
    return reset, None


def reset_password(token, new_password):
    """Set a new password using a reset token. The token is then dead."""
    validate_password(new_password)

    reset, error = verify_reset_token(token)
    if error == "Token already used":
        raise ConflictError(error)
    if error:
        raise ValidationError(error)

    user = db.session.get(User, reset.user_id)
    if user is None:
        raise ValidationError("Invalid token")

    user.password_hash = hash_password(new_password)
    reset.used = True
    AuditEvent.record("user.password_reset", actor_user_id=user.id, email=user.email)
    db.session.commit()
    logger.info(f"Password reset for {user.email}")


def purge_dead_reset_tokens():
    """Delete used or expired reset tokens. Commits."""
    removed = PasswordResetToken.query.filter(
        db.or_(
            PasswordResetToken.used.is_(True),
            PasswordResetToken.expires_at <= utcnow(),
        )
    ).delete(synchronize_session=False)
    db.session.commit()
    return removed
