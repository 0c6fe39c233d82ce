"""User model.

Stores admin credentials. Only allowlisted staff ever get a row; students
submit tickets without an account.
Flask-Login integration via UserMixin.
"""

import uuid

from flask_login import UserMixin

from helpdesk.extensions import db


class User(UserMixin, db.Model):
    __tablename__ = "users"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    email = db.Column(db.String(255), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    # passive_deletes: the signup compensation deletes a bare user row, and
    # orphaned sessions are rejected on lookup rather than cascaded.
    sessions = db.relationship(
        "AuthSession", back_populates="user", lazy="dynamic", passive_deletes=True
    )
    role_assignments = db.relationship(
        "RoleAssignment", back_populates="user", lazy="dynamic", passive_deletes=True
    )
    reset_tokens = db.relationship(
        "PasswordResetToken", back_populates="user", lazy="dynamic", passive_deletes=True
    )

    def to_dict(self):
        """Public identity. The password hash never leaves the model."""
        return {"user_id": self.id, "email": self.email}

    def __repr__(self):
        return f"<User {self.email}>"
