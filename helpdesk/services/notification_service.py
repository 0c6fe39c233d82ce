"""Notification service — who gets which email, and when.

Every function here is best-effort: a failure is logged and swallowed so
the ticket/password mutation that triggered it still succeeds.
"""

import logging

from flask import current_app

from helpdesk.services.email_service import send_email

logger = logging.getLogger(__name__)


def department_inbox(nature_of_complaint):
    """Routing address for a department, falling back to "Others"."""
    routes = current_app.config.get("DEPARTMENT_NOTIFY_EMAILS", {})
    return routes.get(nature_of_complaint) or routes.get("Others")


def _track_url():
    return f"{current_app.config['FRONTEND_BASE_URL']}/track"


def notify_ticket_created(ticket):
    """Confirmation to the student, heads-up to the department inbox."""
    data = ticket.to_dict()
    try:
        send_email(
            to=ticket.email,
            subject=f"Ticket Confirmation - {ticket.ticket_id}",
            template="emails/ticket_confirmation.html",
            context={"ticket": data, "track_url": _track_url()},
        )
    except Exception:
        logger.exception(f"Could not send confirmation for {ticket.ticket_id}")

    staff_email = department_inbox(ticket.nature_of_complaint)
    if not staff_email:
        logger.warning(
            f"No notification inbox configured for {ticket.nature_of_complaint}; "
            f"staff not notified of {ticket.ticket_id}"
        )
        return

    try:
        send_email(
            to=staff_email,
            subject=f"New Ticket: {ticket.subject} [{ticket.ticket_id}]",
            template="emails/ticket_staff_notification.html",
            context={"ticket": data},
            reply_to=ticket.email,
        )
    except Exception:
        logger.exception(f"Could not notify {staff_email} of {ticket.ticket_id}")


def notify_ticket_updated(ticket, old_status):
    """Tell the student their ticket changed (status and/or staff response)."""
    try:
        send_email(
            to=ticket.email,
            subject=f"Ticket Update - {ticket.ticket_id}",
            template="emails/ticket_status_update.html",
            context={
                "ticket": ticket.to_dict(),
                "old_status": old_status,
                "track_url": _track_url(),
            },
        )
    except Exception:
        logger.exception(f"Could not send status update for {ticket.ticket_id}")


def send_password_reset(email, token):
    reset_url = f"{current_app.config['FRONTEND_BASE_URL']}/reset-password?token={token}"
    ttl = current_app.config.get("PASSWORD_RESET_TTL_MINUTES", 60)
    try:
        send_email(
            to=email,
            subject="Password Reset Request - Admin Portal",
            template="emails/password_reset.html",
            context={"reset_url": reset_url, "ttl_minutes": ttl},
        )
    except Exception:
        logger.exception(f"Could not send password reset email to {email}")
