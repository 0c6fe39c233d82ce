"""Admin activity statistics for the super-admin dashboard."""

import logging
from datetime import timedelta

from helpdesk.models.role import RoleAssignment
from helpdesk.models.ticket import Ticket
from helpdesk.models.user import User
from helpdesk.utils import as_utc, utcnow

logger = logging.getLogger(__name__)

RECENT_WINDOW_DAYS = 30
RECENT_LIMIT = 20

_STATUS_KEYS = {
    "Pending": "pending",
    "In Progress": "in_progress",
    "Resolved": "resolved",
    "Closed": "closed",
}


def get_admin_activity_stats(now=None):
    """Admin counts, department coverage, recent role grants, ticket totals.

    The caller must already have been checked for super admin.
    """
    now = now or utcnow()
    roles = RoleAssignment.query.all()

    super_admin_count = sum(1 for r in roles if r.role == RoleAssignment.SUPER_ADMIN)
    department_admin_ids = {
        r.user_id for r in roles if r.role == RoleAssignment.DEPARTMENT_ADMIN
    }

    distribution = {}
    for r in roles:
        if r.role == RoleAssignment.DEPARTMENT_ADMIN and r.department:
            distribution[r.department] = distribution.get(r.department, 0) + 1

    # --- Recent role changes ---
    cutoff = now - timedelta(days=RECENT_WINDOW_DAYS)
    recent = sorted(
        (r for r in roles if r.assigned_at and as_utc(r.assigned_at) > cutoff),
        key=lambda r: as_utc(r.assigned_at),
        reverse=True,
    )[:RECENT_LIMIT]

    emails = {}
    if recent:
        users = User.query.filter(User.id.in_({r.user_id for r in recent})).all()
        emails = {u.id: u.email for u in users}

    recent_changes = [
        {
            "email": emails.get(r.user_id, "Unknown"),
            "role": r.role,
            "department": r.department,
            "assigned_at": as_utc(r.assigned_at).isoformat(),
        }
        for r in recent
    ]

    # --- Ticket metrics per department ---
    tickets = Ticket.query.with_entities(
        Ticket.nature_of_complaint, Ticket.status, Ticket.staff_response
    ).all()

    metrics = {}
    for dept in Ticket.NATURES:
        entry = {"total": 0, "responded": 0, "admin_count": distribution.get(dept, 0)}
        entry.update({key: 0 for key in _STATUS_KEYS.values()})
        metrics[dept] = entry

    for nature, status, staff_response in tickets:
        entry = metrics.get(nature)
        if entry is None:
            continue
        entry["total"] += 1
        if status in _STATUS_KEYS:
            entry[_STATUS_KEYS[status]] += 1
        if staff_response:
            entry["responded"] += 1

    return {
        "total_admins": super_admin_count + len(department_admin_ids),
        "super_admin_count": super_admin_count,
        "department_admin_count": len(department_admin_ids),
        "department_distribution": distribution,
        "recent_role_changes": recent_changes,
        "department_metrics": metrics,
        "total_tickets": len(tickets),
    }
