"""Role service — role resolution, department access, role management.

Resolution:
- resolve_access(user_id) -> Access (all departments / some / none)
- resolve_role(session_id), can_access(session_id, department)

Assignment:
- assign_role: signup-time assignment from the allowlist
- assign_role_manually / promote / demote / add_assignment /
  remove_assignment: super-admin operations (the caller's role is checked
  per request by the super_admin_required decorator)
- backfill_roles: one-off bootstrap for users created before roles existed

Mutating functions flush but do NOT commit; the caller commits.
"""

import logging

from helpdesk.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    NotFoundError,
    PortalError,
    ValidationError,
)
from helpdesk.extensions import db
from helpdesk.models.audit import AuditEvent
from helpdesk.models.role import RoleAssignment
from helpdesk.models.user import User
from helpdesk.services import session_service
from helpdesk.services.departments import Access, Allowlist, validate_department
from helpdesk.utils import text_field, utcnow

logger = logging.getLogger(__name__)


# ──────────────────────────────────────────────
# Resolution
# ──────────────────────────────────────────────

def _roles_for(user_id):
    return RoleAssignment.query.filter_by(user_id=user_id).all()


def access_from_rows(rows):
    """Fold a user's role rows into an Access value.

    Any super_admin row wins regardless of department rows. Department
    names are de-duplicated.
    """
    if any(r.role == RoleAssignment.SUPER_ADMIN for r in rows):
        return Access.all_departments()
    return Access.for_departments(
        r.department for r in rows
        if r.role == RoleAssignment.DEPARTMENT_ADMIN and r.department
    )


def resolve_access(user_id):
    """Fresh lookup of a user's access. Never cached."""
    return access_from_rows(_roles_for(user_id))


def _require_session(session_id):
    session, error = session_service.verify_session(session_id)
    if error:
        raise AuthenticationError(error)
    return session


def resolve_role(session_id):
    """Resolve a session into its Access.

    Raises:
        AuthenticationError: If the session is missing, unknown or expired.
    """
    session = _require_session(session_id)
    return resolve_access(session.user_id)


def can_access(session_id, department):
    """True if the session's user may see/modify tickets of `department`.

    An invalid session simply has no access.
    """
    session, error = session_service.verify_session(session_id)
    if error:
        return False
    return resolve_access(session.user_id).allows(department)


def display_name(access):
    if access.is_super_admin:
        return "Super Admin"
    if access.departments:
        return f"{', '.join(access.sorted_departments())} Admin"
    return "Department Admin"


def get_current_role(session_id):
    """Role summary for the signed-in user (powers the dashboard header)."""
    session = _require_session(session_id)
    access = resolve_access(session.user_id)
    result = {"email": session.email, "display_name": display_name(access)}
    result.update(access.to_dict())
    return result


def require_super_admin(user_id, message="Only super admins can perform this action"):
    """Raise AuthorizationError unless `user_id` currently holds super_admin."""
    access = resolve_access(user_id)
    if not access.is_super_admin:
        raise AuthorizationError(message)
    return access


def list_admins():
    """Every user holding at least one role row, with their resolved access."""
    rows = RoleAssignment.query.order_by(RoleAssignment.assigned_at.asc()).all()
    by_user = {}
    for row in rows:
        by_user.setdefault(row.user_id, []).append(row)

    if not by_user:
        return []

    users = (
        User.query
        .filter(User.id.in_(list(by_user)))
        .order_by(User.email.asc())
        .all()
    )

    admins = []
    for user in users:
        entry = {"user_id": user.id, "email": user.email}
        entry.update(access_from_rows(by_user[user.id]).to_dict())
        admins.append(entry)
    return admins


# ──────────────────────────────────────────────
# Assignment
# ──────────────────────────────────────────────

def _insert(user_id, role, department=None):
    row = RoleAssignment(
        user_id=user_id,
        role=role,
        department=department,
        assigned_at=utcnow(),
    )
    db.session.add(row)
    return row


def _audit(actor_user_id, action, **metadata):
    AuditEvent.record(action, actor_user_id=actor_user_id, **metadata)


def _get_user(user_id):
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found.")
    return user


def _clean_departments(departments):
    """Validate each department and drop repeats, keeping order."""
    if departments is None:
        return []
    if not isinstance(departments, (list, tuple)):
        raise ValidationError("Departments must be a list of department names")
    cleaned = []
    for dept in departments:
        validate_department(dept)
        if dept not in cleaned:
            cleaned.append(dept)
    return cleaned


def assign_role(user_id, email, allowlist=None):
    """Signup-time assignment from the allowlist.

    Super-admin emails get one super_admin row; otherwise one
    department_admin row per department the email is listed for.

    Raises:
        PortalError: If the email matches nothing. Signup checks the
            allowlist first, so reaching this means the two checks disagree.
    """
    allowlist = allowlist or Allowlist.from_config()

    if allowlist.is_super_admin(email):
        rows = [_insert(user_id, RoleAssignment.SUPER_ADMIN)]
    else:
        departments = allowlist.departments_for(email)
        if not departments:
            logger.error(f"Role assignment found no allowlist entry for {email}")
            raise PortalError("This email is not authorized as an admin")
        rows = [
            _insert(user_id, RoleAssignment.DEPARTMENT_ADMIN, dept)
            for dept in departments
        ]

    db.session.flush()
    logger.info(f"Assigned {len(rows)} role row(s) to {email}")
    return rows


def assign_role_manually(user_id, role, departments=None, actor_user_id=None):
    """Assign a role bypassing the allowlist.

    super_admin takes no department; department_admin needs at least one,
    and gets one row per department.
    """
    _get_user(user_id)
    existing = _roles_for(user_id)

    if role == RoleAssignment.SUPER_ADMIN:
        if departments:
            raise ValidationError("Super admins cannot be assigned departments")
        if any(r.is_super_admin for r in existing):
            raise ConflictError("User is already a super admin")
        rows = [_insert(user_id, RoleAssignment.SUPER_ADMIN)]
    elif role == RoleAssignment.DEPARTMENT_ADMIN:
        departments = _clean_departments(departments)
        if not departments:
            raise ValidationError("Department admins must have at least one department")
        held = {r.department for r in existing if r.role == RoleAssignment.DEPARTMENT_ADMIN}
        duplicates = [d for d in departments if d in held]
        if duplicates:
            raise ConflictError(
                f"This user is already assigned to: {', '.join(duplicates)}"
            )
        rows = [
            _insert(user_id, RoleAssignment.DEPARTMENT_ADMIN, dept)
            for dept in departments
        ]
    else:
        raise ValidationError(
            f"Invalid role '{role}'. Must be one of: {', '.join(RoleAssignment.ROLES)}"
        )

    db.session.flush()
    _audit(actor_user_id, "role.assigned", user_id=user_id, role=role,
           departments=departments or None)
    db.session.flush()
    return rows


def promote(user_id, actor_user_id=None):
    """Make `user_id` a super admin. Existing department rows are kept."""
    user = _get_user(user_id)
    if resolve_access(user_id).is_super_admin:
        raise ConflictError("User is already a super admin")

    row = _insert(user_id, RoleAssignment.SUPER_ADMIN)
    db.session.flush()
    _audit(actor_user_id, "role.promoted", user_id=user_id, email=user.email)
    db.session.flush()
    logger.info(f"Promoted {user.email} to super admin")
    return row


def demote(actor_user_id, user_id, convert_to_department_admin=False, departments=None):
    """Strip super_admin from `user_id`.

    The caller can never demote themselves. Another super admin demoting
    the last remaining one is allowed (logged as a warning).

    Args:
        convert_to_department_admin: If True, insert department_admin rows
            for `departments` (required, non-empty) after the demotion.
    """
    if actor_user_id == user_id:
        raise AuthorizationError("You cannot demote yourself")

    user = _get_user(user_id)
    super_rows = RoleAssignment.query.filter_by(
        user_id=user_id, role=RoleAssignment.SUPER_ADMIN
    ).all()
    if not super_rows:
        raise ValidationError("User is not a super admin")

    if convert_to_department_admin:
        departments = _clean_departments(departments)
        if not departments:
            raise ValidationError("Department admins must have at least one department")

    for row in super_rows:
        db.session.delete(row)
    db.session.flush()

    if convert_to_department_admin:
        held = {
            r.department for r in _roles_for(user_id)
            if r.role == RoleAssignment.DEPARTMENT_ADMIN
        }
        for dept in departments:
            if dept not in held:
                _insert(user_id, RoleAssignment.DEPARTMENT_ADMIN, dept)
        db.session.flush()

    remaining = RoleAssignment.query.filter_by(role=RoleAssignment.SUPER_ADMIN).count()
    if remaining == 0:
        logger.warning(f"Demoting {user.email} left the portal with no super admins")

    _audit(actor_user_id, "role.demoted", user_id=user_id, email=user.email,
           converted_departments=departments if convert_to_department_admin else None)
    db.session.flush()
    logger.info(f"Demoted {user.email} from super admin")
    return resolve_access(user_id)


def _assignment_target(user):
    """Reject edits to super admins; return the user's current rows."""
    rows = _roles_for(user.id)
    if any(r.is_super_admin for r in rows):
        raise AuthorizationError("Cannot modify super admin assignments")
    return rows


def add_assignment(email, department, actor_user_id=None):
    """Give an existing (signed-up) user one more department."""
    validate_department(department)
    email = (text_field(email, "Email") or "").strip().lower()

    user = User.query.filter_by(email=email).first()
    if user is None:
        raise NotFoundError(
            "User not found. The admin must sign up first before assignment."
        )

    rows = _assignment_target(user)
    if any(r.role == RoleAssignment.DEPARTMENT_ADMIN and r.department == department for r in rows):
        raise ConflictError("This user is already assigned to this department")

    row = _insert(user.id, RoleAssignment.DEPARTMENT_ADMIN, department)
    db.session.flush()
    _audit(actor_user_id, "role.department_added", user_id=user.id,
           email=user.email, department=department)
    db.session.flush()
    return row


def remove_assignment(user_id, department, actor_user_id=None):
    """Remove one department from a department admin.

    Not idempotent: removing a pair that does not exist is an error.
    """
    user = _get_user(user_id)
    rows = _assignment_target(user)

    row = next(
        (r for r in rows
         if r.role == RoleAssignment.DEPARTMENT_ADMIN and r.department == department),
        None,
    )
    if row is None:
        raise NotFoundError("Assignment not found")

    db.session.delete(row)
    db.session.flush()
    _audit(actor_user_id, "role.department_removed", user_id=user.id,
           email=user.email, department=department)
    db.session.flush()


def backfill_roles(allowlist=None):
    """Assign allowlist roles to every user that has none yet.

    Users already holding a role, or not on the allowlist, are skipped.
    Commits once at the end.

    Returns:
        dict with keys migrated, skipped.
    """
    allowlist = allowlist or Allowlist.from_config()
    migrated = skipped = 0

    for user in User.query.order_by(User.created_at.asc()).all():
        if RoleAssignment.query.filter_by(user_id=user.id).first() is not None:
            logger.info(f"Skipping {user.email} - already has role")
            skipped += 1
            continue

        if not allowlist.is_authorized_admin(user.email):
            logger.warning(f"Skipping {user.email} - not authorized as admin")
            skipped += 1
            continue

        assign_role(user.id, user.email, allowlist=allowlist)
        migrated += 1

    db.session.commit()
    logger.info(f"Role backfill complete: {migrated} migrated, {skipped} skipped")
    return {"migrated": migrated, "skipped": skipped}
