"""Department allowlists and the resolved access value.

Allowlist: read-only view over the configured admin emails. Built from
app config by default, but every service that consults it accepts an
explicit instance so tests can substitute their own.

Access: what a role lookup resolves to. One of
    Access.all_departments()        — super admin
    Access.for_departments({...})   — department admin
    Access.no_access()              — no role rows at all
"""

from dataclasses import dataclass, field
from types import MappingProxyType

from flask import current_app

from helpdesk.exceptions import ValidationError
from helpdesk.models.ticket import Ticket


class Allowlist:
    """Static email -> entitlement configuration. Emails compare lowercased."""

    def __init__(self, super_admin_emails, department_admins):
        self._super_admins = frozenset(e.strip().lower() for e in super_admin_emails)
        self._department_admins = MappingProxyType({
            dept: email.strip().lower() for dept, email in department_admins.items()
        })

    @classmethod
    def from_config(cls, config=None):
        config = config if config is not None else current_app.config
        return cls(config["SUPER_ADMIN_EMAILS"], config["DEPARTMENT_ADMINS"])

    @property
    def super_admin_emails(self):
        return self._super_admins

    @property
    def department_admins(self):
        return self._department_admins

    def is_super_admin(self, email):
        return (email or "").lower() in self._super_admins

    def departments_for(self, email):
        """Departments whose allowlist entry equals `email`, in config order."""
        email = (email or "").lower()
        return [
            dept for dept, admin_email in self._department_admins.items()
            if admin_email == email
        ]

    def is_authorized_admin(self, email):
        """Gate used at signup: super admin or admin of at least one department."""
        return self.is_super_admin(email) or bool(self.departments_for(email))


@dataclass(frozen=True)
class Access:
    kind: str
    departments: frozenset = field(default_factory=frozenset)

    ALL = "all"
    SOME = "some"
    NONE = "none"

    @classmethod
    def all_departments(cls):
        return cls(cls.ALL)

    @classmethod
    def for_departments(cls, departments):
        departments = frozenset(departments)
        if not departments:
            return cls.no_access()
        return cls(cls.SOME, departments)

    @classmethod
    def no_access(cls):
        return cls(cls.NONE)

    @property
    def is_super_admin(self):
        return self.kind == self.ALL

    @property
    def role(self):
        if self.kind == self.ALL:
            return "super_admin"
        if self.kind == self.SOME:
            return "department_admin"
        return "none"

    def allows(self, department):
        """Exact, case-sensitive membership. No normalization."""
        if self.kind == self.ALL:
            return True
        return department in self.departments

    def sorted_departments(self):
        """Departments in the canonical Ticket.NATURES order."""
        order = {name: i for i, name in enumerate(Ticket.NATURES)}
        return sorted(self.departments, key=lambda d: (order.get(d, len(order)), d))

    def to_dict(self):
        """Wire shape: departments is null for super admins ("all")."""
        return {
            "role": self.role,
            "all_departments": self.is_super_admin,
            "departments": None if self.is_super_admin else self.sorted_departments(),
        }


def validate_department(department):
    """Reject anything outside the fixed department list."""
    if department not in Ticket.NATURES:
        raise ValidationError(
            f"Invalid department '{department}'. Must be one of: {', '.join(Ticket.NATURES)}"
        )
    return department
