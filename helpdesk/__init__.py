import os
import logging

import click
from flask import Flask, g, jsonify, request
from sqlalchemy.exc import IntegrityError

from helpdesk.config import config_by_name
from helpdesk.exceptions import PortalError
from helpdesk.extensions import db, migrate, login_manager, limiter

logger = logging.getLogger(__name__)


def create_app(config_name=None):
    """Application factory."""

    if config_name is None:
        config_name = os.environ.get("FLASK_ENV", "development")

    app = Flask(__name__)
    app.config.from_object(config_by_name[config_name])

    # --- Validate required env vars (skip in testing) ---
    if config_name != "testing":
        try:
            config_by_name[config_name].validate()
        except RuntimeError as e:
            app.logger.warning(f"Config validation: {e}")

    # --- Init extensions ---
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    limiter.init_app(app)

    # g lives on the app context, which outlives a request when one is
    # already pushed (CLI, tests). Auth state must be resolved per request.
    @app.before_request
    def reset_auth_context():
        for key in ("_login_user", "auth_session", "session_error"):
            g.pop(key, None)

    # --- Import models so Alembic can discover them ---
    with app.app_context():
        from helpdesk import models  # noqa: F401

    # --- Register blueprints ---
    from helpdesk.blueprints.auth import auth_bp
    from helpdesk.blueprints.tickets import tickets_bp
    from helpdesk.blueprints.admin import admin_bp
    from helpdesk.blueprints.files import files_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(tickets_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(files_bp)

    # --- Local file serving (dev only, no Supabase) ---
    if app.debug:
        @app.route("/uploads/<path:filepath>")
        def serve_upload(filepath):
            """Serve uploaded files from instance/uploads in dev mode."""
            from flask import send_from_directory
            upload_dir = os.path.join(app.instance_path, "uploads")
            return send_from_directory(upload_dir, filepath)

    register_error_handlers(app)

    # --- CLI commands ---
    register_cli(app)

    # --- CORS (configured origins only) ---
    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin and origin in app.config.get("CORS_ALLOWED_ORIGINS", []):
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Access-Control-Allow-Methods"] = (
                "GET, POST, PUT, PATCH, DELETE, OPTIONS"
            )
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Max-Age"] = "600"
        response.headers.add("Vary", "Origin")
        return response

    # --- Security headers ---
    @app.after_request
    def add_security_headers(response):
        """Add security headers to every response."""
        # Prevent MIME type sniffing
        response.headers["X-Content-Type-Options"] = "nosniff"
        # Prevent clickjacking
        response.headers["X-Frame-Options"] = "DENY"
        # Control referrer information
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        # JSON API: nothing to render, nothing to embed
        response.headers["Content-Security-Policy"] = (
            "default-src 'none'; frame-ancestors 'none';"
        )
        # Session ids and ticket details must not be cached
        if request.path.startswith("/api/"):
            response.headers["Cache-Control"] = "no-store"
        # Strict Transport Security (only in production)
        if not app.debug:
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )
        return response

    # --- Logging ---
    if not app.debug:
        logging.basicConfig(level=logging.INFO)

    return app


def register_error_handlers(app):
    """Every failure leaves as {"ok": false, "error": "..."}."""

    @app.errorhandler(PortalError)
    def portal_error(e):
        if e.status_code >= 500:
            logger.error(f"{request.method} {request.path} failed: {e.message}")
        else:
            logger.info(f"{request.method} {request.path} rejected ({e.status_code}): {e.message}")
        return jsonify(ok=False, error=e.message), e.status_code

    @app.errorhandler(IntegrityError)
    def integrity_error(e):
        db.session.rollback()
        logger.warning(f"{request.method} {request.path} hit a uniqueness constraint: {e.orig}")
        return jsonify(ok=False, error="Conflict: record already exists"), 409

    @app.errorhandler(404)
    def not_found(e):
        return jsonify(ok=False, error="Not found"), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify(ok=False, error="Method not allowed"), 405

    @app.errorhandler(413)
    def too_large(e):
        return jsonify(ok=False, error="Request too large"), 413

    @app.errorhandler(429)
    def rate_limited(e):
        return jsonify(ok=False, error="Too many requests. Please try again later."), 429

    @app.errorhandler(500)
    def server_error(e):
        return jsonify(ok=False, error="Internal server error"), 500


def register_cli(app):
    """Register custom CLI commands with the Flask app."""

    @app.cli.command("create-admin")
    @click.option("--email", required=True, help="Allowlisted admin email")
    @click.option("--password", required=True, help="Admin password")
    def create_admin(email, password):
        """Sign up an allowlisted admin from the command line.

        Runs the normal signup path, so the email must be on
        SUPER_ADMIN_EMAILS or DEPARTMENT_ADMINS.

        Usage:
            flask create-admin --email ict@run.edu.ng --password 'S3cretPass'
        """
        from helpdesk.services import auth_service, role_service

        try:
            user = auth_service.sign_up(email, password)
        except PortalError as e:
            raise click.ClickException(e.message)

        access = role_service.resolve_access(user["user_id"])
        click.echo(f"Created admin: {user['email']} ({access.role})")
        if not access.is_super_admin:
            click.echo(f"  Departments: {', '.join(access.sorted_departments())}")

    @app.cli.command("backfill-roles")
    def backfill_roles():
        """Assign allowlist roles to users created before roles existed.

        Usage:
            flask backfill-roles
        """
        from helpdesk.services import role_service

        result = role_service.backfill_roles()
        click.echo(
            f"Role backfill complete: {result['migrated']} migrated, "
            f"{result['skipped']} skipped"
        )

    @app.cli.command("purge-sessions")
    def purge_sessions():
        """Delete expired sessions and used/expired password reset tokens.

        Usage:
            flask purge-sessions
        """
        from helpdesk.services import auth_service, session_service

        sessions = session_service.purge_expired_sessions()
        tokens = auth_service.purge_dead_reset_tokens()
        click.echo(f"Removed {sessions} expired session(s) and {tokens} reset token(s)")
