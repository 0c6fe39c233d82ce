"""Audit trail.

One row per security-relevant change: admin sign-ups, password resets,
role grants and removals, ticket submissions and staff updates. Public
actions (ticket submission) have no actor.
"""

import uuid

from helpdesk.extensions import db
from helpdesk.utils import utcnow


class AuditEvent(db.Model):
    __tablename__ = "audit_events"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    actor_user_id = db.Column(
        db.String(36), db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    action = db.Column(db.String(64), nullable=False, index=True)  # e.g. "role.promoted"
    metadata_ = db.Column("metadata", db.JSON, default=dict)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)

    actor = db.relationship("User")

    @classmethod
    def record(cls, action, actor_user_id=None, **metadata):
        """Stage an event on the current session. The caller commits."""
        event = cls(actor_user_id=actor_user_id, action=action, metadata_=metadata)
        db.session.add(event)
        return event

    def __repr__(self):
        return f"<AuditEvent {self.action}>"
