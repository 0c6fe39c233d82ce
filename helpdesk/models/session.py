"""Auth session model.

Opaque bearer token issued at sign-in. Fixed lifetime, no renewal: once
expired the user must sign in again. Named AuthSession to keep it apart
from db.session.
"""

import secrets

from helpdesk.extensions import db
from helpdesk.utils import as_utc, utcnow


class AuthSession(db.Model):
    __tablename__ = "sessions"

    id = db.Column(
        db.String(64), primary_key=True, default=lambda: secrets.token_urlsafe(32)
    )  # the opaque session identifier handed to the client
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=False, index=True
    )  # weak reference: a deleted user just makes the session invalid
    email = db.Column(db.String(255), nullable=False)
    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=utcnow
    )
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)

    # --- Relationships ---
    user = db.relationship("User", back_populates="sessions")

    def is_expired(self, now=None):
        """Expired once now >= expires_at, deleted or not."""
        now = now or utcnow()
        return now >= as_utc(self.expires_at)

    def to_dict(self):
        return {
            "session_id": self.id,
            "user_id": self.user_id,
            "email": self.email,
            "created_at": as_utc(self.created_at).isoformat(),
            "expires_at": as_utc(self.expires_at).isoformat(),
        }

    def __repr__(self):
        return f"<AuthSession {self.id[:8]}... user={self.user_id}>"
