"""Ticket model.

A complaint submitted publicly by a student (no account). Routed to
exactly one department through `nature_of_complaint`. Only admins with
access to that department may change status or respond.
"""

import uuid

from helpdesk.extensions import db
from helpdesk.utils import as_utc, utcnow


class Ticket(db.Model):
    __tablename__ = "tickets"

    # -- Valid statuses --
    STATUSES = ["Pending", "In Progress", "Resolved", "Closed"]

    # -- Departments a complaint can be routed to (exact, case-sensitive) --
    NATURES = [
        "ICT/Portal",
        "Payment/Bursary",
        "Exams/Results",
        "Hostel/Accommodation",
        "Library",
        "Registrar",
        "Others",
    ]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    ticket_id = db.Column(
        db.String(32), unique=True, nullable=False
    )  # human code, e.g. UNIU-20261019-0042
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(255), nullable=False, index=True)
    phone = db.Column(db.String(50), nullable=True)
    matric_number = db.Column(db.String(50), nullable=True)
    jamb_number = db.Column(db.String(50), nullable=True)
    department = db.Column(db.String(100), nullable=False)  # student's academic dept
    nature_of_complaint = db.Column(
        db.String(50), nullable=False, index=True
    )  # one of NATURES
    subject = db.Column(db.String(200), nullable=False)
    message = db.Column(db.Text, nullable=False)
    status = db.Column(db.String(50), default="Pending", nullable=False)
    staff_response = db.Column(db.Text, nullable=True)
    attachment_url = db.Column(db.String(1000), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=utcnow, index=True
    )  # python-side so newest-first ordering has sub-second resolution
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "ticket_id": self.ticket_id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "matric_number": self.matric_number,
            "jamb_number": self.jamb_number,
            "department": self.department,
            "nature_of_complaint": self.nature_of_complaint,
            "subject": self.subject,
            "message": self.message,
            "status": self.status,
            "staff_response": self.staff_response,
            "attachment_url": self.attachment_url,
            "created_at": as_utc(self.created_at).isoformat() if self.created_at else None,
            "updated_at": as_utc(self.updated_at).isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Ticket {self.ticket_id} ({self.status})>"
