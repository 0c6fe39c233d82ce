"""Password reset token model.

Tokens are one-time-use with a short expiration. Once `used` is set the
token is dead for good, even inside its validity window.
"""

import uuid

from helpdesk.extensions import db
from helpdesk.utils import as_utc, utcnow


class PasswordResetToken(db.Model):
    __tablename__ = "password_reset_tokens"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=False, index=True
    )
    token = db.Column(
        db.String(64), unique=True, nullable=False
    )  # 32 random bytes, hex
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)
    used = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=utcnow
    )

    # --- Relationships ---
    user = db.relationship("User", back_populates="reset_tokens")

    @property
    def is_expired(self):
        return utcnow() >= as_utc(self.expires_at)

    @property
    def is_valid(self):
        return not self.used and not self.is_expired

    def __repr__(self):
        return f"<PasswordResetToken token={self.token[:8]}... used={self.used}>"
