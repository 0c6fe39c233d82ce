"""
Custom route decorators for access control.

- session_required: valid bearer session (Flask-Login's request loader
  re-verifies it on every request).
- super_admin_required: valid session AND a super_admin role row, looked up
  fresh for this request.
"""

from functools import wraps

from flask import g
from flask_login import current_user, login_required

from helpdesk.services import role_service


def session_required(f):
    """Require a valid, unexpired session."""
    return login_required(f)


def current_session_id():
    """Opaque id of the session that authenticated this request."""
    session = g.get("auth_session")
    return session.id if session is not None else None


def super_admin_required(f):
    """Require a session whose user currently holds super_admin."""

    @wraps(f)
    @login_required
    def decorated(*args, **kwargs):
        role_service.require_super_admin(current_user.id)
        return f(*args, **kwargs)

    return decorated
