"""Ticket service — public submission and tracking, department-scoped admin access.

All free-text ticket content is sanitized with bleach.clean() to strip
HTML tags. Admin reads and writes go through role_service so the caller's
departments are resolved fresh for every call.

create_ticket and update_ticket commit (notifications go out only after
the row is durable); the read functions never write.
"""

import html
import logging
import re
import secrets

import bleach
from flask import current_app
from sqlalchemy.exc import IntegrityError

from helpdesk.exceptions import (
    AuthenticationError,
    AuthorizationError,
    NotFoundError,
    PortalError,
    ValidationError,
)
from helpdesk.extensions import db
from helpdesk.models.audit import AuditEvent
from helpdesk.models.ticket import Ticket
from helpdesk.services import notification_service, role_service, session_service
from helpdesk.utils import text_field, utcnow

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

TICKET_ID_ATTEMPTS = 5


def _sanitize(text, field="Field"):
    """Strip HTML tags and surrounding whitespace, keeping plain text.

    bleach escapes what it leaves behind; entities are decoded again so
    tickets store plain text and length rules count real characters.
    """
    text = text_field(text, field)
    if text is None:
        return None
    return html.unescape(bleach.clean(text, tags=[], strip=True)).strip()


def _optional(text, field="Field"):
    """Sanitize an optional field; blank becomes None."""
    return _sanitize(text, field) or None


def _check_length(value, low, high, message):
    if len(value) < low or len(value) > high:
        raise ValidationError(message)


def generate_ticket_code(now=None):
    """Human-readable code PREFIX-YYYYMMDD-NNNN from a secure random source."""
    now = now or utcnow()
    prefix = current_app.config.get("TICKET_ID_PREFIX", "UNIU")
    return f"{prefix}-{now:%Y%m%d}-{secrets.randbelow(10000):04d}"


def _unused_ticket_code():
    for _ in range(TICKET_ID_ATTEMPTS):
        code = generate_ticket_code()
        if Ticket.query.filter_by(ticket_id=code).first() is None:
            return code
    raise PortalError("Failed to create ticket. Please try again.")


# ──────────────────────────────────────────────
# Public
# ──────────────────────────────────────────────

def create_ticket(name, email, department, nature_of_complaint, subject, message,
                  matric_number=None, jamb_number=None, phone=None,
                  attachment_url=None):
    """Create a ticket from a public (unauthenticated) submission.

    Returns:
        The created Ticket (status "Pending").

    Raises:
        ValidationError: If any field breaks its rule.
    """
    name = _sanitize(name, "Name") or ""
    email = (text_field(email, "Email") or "").strip().lower()
    department = _sanitize(department, "Department") or ""
    nature_of_complaint = (text_field(nature_of_complaint, "Nature of complaint") or "").strip()
    subject = _sanitize(subject, "Subject") or ""
    message = _sanitize(message, "Message") or ""
    matric_number = _optional(matric_number, "Matric number")
    jamb_number = _optional(jamb_number, "JAMB number")
    phone = _optional(phone, "Phone")
    attachment_url = (text_field(attachment_url, "Attachment URL") or "").strip() or None

    logger.info(
        f"Ticket submission: nature={nature_of_complaint!r} "
        f"matric={bool(matric_number)} jamb={bool(jamb_number)} "
        f"attachment={bool(attachment_url)}"
    )

    # --- Validation ---
    if not EMAIL_RE.match(email):
        raise ValidationError("Invalid email format")
    _check_length(name, 2, 100, "Name must be between 2 and 100 characters")
    if len(email) > 255:
        raise ValidationError("Email too long")
    _check_length(subject, 5, 200, "Subject must be between 5 and 200 characters")
    _check_length(message, 10, 2000, "Message must be between 10 and 2000 characters")

    if nature_of_complaint not in Ticket.NATURES:
        raise ValidationError("Invalid nature of complaint")

    if matric_number:
        pattern = current_app.config["MATRIC_NUMBER_PATTERN"]
        if not re.match(pattern, matric_number):
            raise ValidationError("Invalid matric number format")

    _check_length(department, 2, 100, "Invalid department")

    if attachment_url and not attachment_url.startswith(("http://", "https://", "/")):
        raise ValidationError("Invalid attachment URL")

    # --- Insert ---
    ticket = Ticket(
        ticket_id=_unused_ticket_code(),
        name=name,
        email=email,
        phone=phone,
        matric_number=matric_number,
        jamb_number=jamb_number,
        department=department,
        nature_of_complaint=nature_of_complaint,
        subject=subject,
        message=message,
        status="Pending",
        attachment_url=attachment_url,
        created_at=utcnow(),
    )
    db.session.add(ticket)
    db.session.flush()

    AuditEvent.record(
        "ticket.created",
        ticket_id=ticket.ticket_id,
        nature_of_complaint=nature_of_complaint,
    )

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        logger.exception("Ticket insert failed")
        raise PortalError("Failed to create ticket. Please try again.")

    logger.info(f"Ticket created: {ticket.ticket_id}")
    notification_service.notify_ticket_created(ticket)
    return ticket


def track_ticket(email, ticket_id):
    """Public lookup: only returns the ticket if the email matches."""
    email = (text_field(email, "Email") or "").strip().lower()
    ticket_id = (text_field(ticket_id, "Ticket ID") or "").strip()

    ticket = Ticket.query.filter_by(ticket_id=ticket_id).first()
    if ticket is None or not email or ticket.email != email:
        raise NotFoundError("Ticket not found or email does not match")
    return ticket


# ──────────────────────────────────────────────
# Admin (session required)
# ──────────────────────────────────────────────

def _access_for(session_id):
    session, error = session_service.verify_session(session_id)
    if error:
        raise AuthenticationError(error)
    return session, role_service.resolve_access(session.user_id)


def list_tickets(session_id, status_filter=None):
    """Tickets visible to the session, newest first.

    Super admins see everything; department admins see tickets whose
    nature_of_complaint is one of their departments.

    Raises:
        AuthenticationError: No/invalid/expired session.
        AuthorizationError: Session has no departments at all.
    """
    _, access = _access_for(session_id)

    query = Ticket.query
    if not access.is_super_admin:
        if not access.departments:
            raise AuthorizationError("No departments assigned")
        query = query.filter(Ticket.nature_of_complaint.in_(sorted(access.departments)))

    if status_filter:
        if status_filter not in Ticket.STATUSES:
            raise ValidationError(
                f"Invalid status '{status_filter}'. Must be one of: {', '.join(Ticket.STATUSES)}"
            )
        query = query.filter(Ticket.status == status_filter)

    return query.order_by(Ticket.created_at.desc()).all()


def _ticket_for_admin(session_id, ticket_id):
    session, access = _access_for(session_id)

    ticket = Ticket.query.filter_by(ticket_id=ticket_id).first()
    if ticket is None:
        raise NotFoundError("Ticket not found")

    if not access.allows(ticket.nature_of_complaint):
        raise AuthorizationError("You don't have access to this ticket's department")
    return session, ticket


def get_ticket(session_id, ticket_id):
    """Single ticket by human code, gated on the ticket's department."""
    _, ticket = _ticket_for_admin(session_id, ticket_id)
    return ticket


def update_ticket(session_id, ticket_id, status=None, staff_response=None):
    """Change status and/or staff response on a ticket.

    Args:
        status: One of Ticket.STATUSES, or None to leave as is.
        staff_response: New response text (sanitized), or None to leave as is.

    Returns:
        The updated Ticket.
    """
    session, ticket = _ticket_for_admin(session_id, ticket_id)

    if status is None and staff_response is None:
        raise ValidationError("Nothing to update")

    text_field(status, "Status")
    if status is not None and status not in Ticket.STATUSES:
        raise ValidationError(
            f"Invalid status '{status}'. Must be one of: {', '.join(Ticket.STATUSES)}"
        )

    if staff_response is not None:
        staff_response = _sanitize(staff_response, "Staff response")
        if len(staff_response) > 5000:
            raise ValidationError("Staff response must be at most 5000 characters")

    old_status = ticket.status
    old_response = ticket.staff_response

    if status is not None:
        ticket.status = status
    if staff_response is not None:
        ticket.staff_response = staff_response or None
    ticket.updated_at = utcnow()

    AuditEvent.record(
        "ticket.updated",
        actor_user_id=session.user_id,
        ticket_id=ticket.ticket_id,
        old_status=old_status,
        new_status=ticket.status,
        response_changed=ticket.staff_response != old_response,
    )
    db.session.commit()

    logger.info(f"Ticket {ticket.ticket_id} updated by {session.email}: {old_status} -> {ticket.status}")

    if ticket.status != old_status or ticket.staff_response != old_response:
        notification_service.notify_ticket_updated(ticket, old_status)

    return ticket
