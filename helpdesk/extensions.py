"""
Deferred extension instances.

Created here, bound to the app in create_app() via init_app().
"""

import logging

from flask import g, jsonify, request
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_login import LoginManager
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

logger = logging.getLogger(__name__)

db = SQLAlchemy()
migrate = Migrate()
login_manager = LoginManager()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],  # No global limit, per-route only
    storage_uri="memory://",
)


def session_id_from_request():
    """Pull the opaque session identifier from the Authorization header."""
    header = request.headers.get("Authorization", "")
    scheme, _, value = header.partition(" ")
    if scheme.lower() != "bearer" or not value.strip():
        return None
    return value.strip()


@login_manager.request_loader
def load_user_from_request(req):
    """Resolve the bearer session into a User, re-verified on every request.

    The failure reason is parked on g so the unauthorized handler can
    report it. Imports lazily to avoid circular deps.
    """
    from helpdesk.services import session_service

    session, error = session_service.verify_session(session_id_from_request())
    if error:
        g.session_error = error
        return None

    g.auth_session = session
    return session.user


@login_manager.unauthorized_handler
def unauthorized():
    """JSON 401 instead of Flask-Login's redirect to a login view."""
    error = g.get("session_error", "Unauthorized: Authentication required")
    logger.info(f"Rejected request to {request.path}: {error}")
    return jsonify(ok=False, error=error), 401
