"""Auth blueprint — /api/auth/*

Allowlist-gated admin signup, sign-in/out, session check, password reset.
The session id comes back from sign-in and is sent on later requests as
`Authorization: Bearer <session_id>`.

Route Map:
  POST /api/auth/sign-up               — create an allowlisted admin account
  POST /api/auth/sign-in               — open a session
  POST /api/auth/sign-out              — delete the bearer session
  GET  /api/auth/session               — verify the bearer session
  POST /api/auth/forgot-password       — email a reset link (always succeeds)
  POST /api/auth/reset-password/verify — check a reset token
  POST /api/auth/reset-password        — set a new password with a token
"""

import logging

from flask import Blueprint, g, jsonify

from helpdesk.decorators import session_required
from helpdesk.extensions import limiter, session_id_from_request
from helpdesk.services import auth_service
from helpdesk.utils import request_data

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")

logger = logging.getLogger(__name__)

RESET_REQUESTED = "If an account exists for that email, a reset link has been sent."


@auth_bp.route("/sign-up", methods=["POST"])
@limiter.limit("5 per minute")
def sign_up():
    data = request_data()
    user = auth_service.sign_up(data.get("email"), data.get("password"))
    return jsonify(ok=True, user=user), 201


@auth_bp.route("/sign-in", methods=["POST"])
@limiter.limit("10 per minute")
def sign_in():
    data = request_data()
    result = auth_service.sign_in(data.get("email"), data.get("password"))
    return jsonify(ok=True, **result)


@auth_bp.route("/sign-out", methods=["POST"])
def sign_out():
    """Idempotent: an unknown or missing session still signs out."""
    session_id = session_id_from_request()
    if session_id:
        auth_service.sign_out(session_id)
    return jsonify(ok=True)


@auth_bp.route("/session", methods=["GET"])
@session_required
def session():
    return jsonify(ok=True, session=g.auth_session.to_dict())


# ──────────────────────────────────────────────
# Password reset
# ──────────────────────────────────────────────

@auth_bp.route("/forgot-password", methods=["POST"])
@limiter.limit("5 per hour")
def forgot_password():
    """Same answer whether or not the email is registered."""
    auth_service.request_password_reset(request_data().get("email"))
    return jsonify(ok=True, message=RESET_REQUESTED)


@auth_bp.route("/reset-password/verify", methods=["POST"])
@limiter.limit("20 per hour")
def verify_reset_token():
    reset, error = auth_service.verify_reset_token(request_data().get("token"))
    return jsonify(ok=True, valid=reset is not None, reason=error)


@auth_bp.route("/reset-password", methods=["POST"])
@limiter.limit("10 per hour")
def reset_password():
    data = request_data()
    auth_service.reset_password(data.get("token"), data.get("password"))
    return jsonify(ok=True, message="Password has been reset. You can now sign in.")
