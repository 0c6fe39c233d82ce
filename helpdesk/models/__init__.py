# Import every model so Alembic autogenerate can see it.

from helpdesk.models.user import User  # noqa: F401
from helpdesk.models.session import AuthSession  # noqa: F401
from helpdesk.models.role import RoleAssignment  # noqa: F401
from helpdesk.models.password_reset import PasswordResetToken  # noqa: F401
from helpdesk.models.ticket import Ticket  # noqa: F401
from helpdesk.models.audit import AuditEvent  # noqa: F401
