"""Role assignment model.

One row per (user, role, department). A user may hold several
department_admin rows; any super_admin row grants every department.
No row at all means no admin privilege.
"""

import uuid

from helpdesk.extensions import db
from helpdesk.utils import utcnow


class RoleAssignment(db.Model):
    __tablename__ = "role_assignments"

    SUPER_ADMIN = "super_admin"
    DEPARTMENT_ADMIN = "department_admin"
    ROLES = [SUPER_ADMIN, DEPARTMENT_ADMIN]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=False, index=True
    )
    role = db.Column(db.String(50), nullable=False)  # super_admin | department_admin
    department = db.Column(db.String(100), nullable=True)  # set iff department_admin
    assigned_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=utcnow
    )

    # --- Relationships ---
    user = db.relationship("User", back_populates="role_assignments")

    __table_args__ = (
        db.UniqueConstraint(
            "user_id", "role", "department", name="uq_role_assignment_user_role_dept"
        ),
        db.CheckConstraint(
            "(role = 'super_admin' AND department IS NULL) OR "
            "(role = 'department_admin' AND department IS NOT NULL)",
            name="ck_role_assignment_department",
        ),
    )

    @property
    def is_super_admin(self):
        return self.role == self.SUPER_ADMIN

    def __repr__(self):
        if self.department:
            return f"<RoleAssignment {self.role} {self.department} user={self.user_id}>"
        return f"<RoleAssignment {self.role} user={self.user_id}>"
