"""Shared test fixtures for the helpdesk portal test suite.

Provides:
- app: Flask app configured for testing (in-memory SQLite, fixed allowlists)
- client: Flask test client
- db_session: clean database per test (tables created/dropped)
- sent_emails: send_email patched out, records every notification
- seed_data: super admin, Library admin, ICT admin (two departments), an
  unassigned user, open sessions for each, and a handful of tickets

Plus plain helpers (make_user, make_role, make_session, make_ticket,
auth_header) for tests that need their own fixtures.
"""

from datetime import timedelta
from unittest.mock import patch

import pytest
from werkzeug.security import generate_password_hash

from helpdesk import create_app
from helpdesk.extensions import db as _db
from helpdesk.models.role import RoleAssignment
from helpdesk.models.session import AuthSession
from helpdesk.models.ticket import Ticket
from helpdesk.models.user import User
from helpdesk.utils import utcnow

PASSWORD = "Passw0rdOK"

# Cheap hash so fixtures don't pay scrypt's cost on every user.
_FAST_HASH = generate_password_hash(PASSWORD, method="pbkdf2:sha256:1000")


# ──────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────

def make_user(email, password_hash=_FAST_HASH):
    user = User(email=email, password_hash=password_hash)
    _db.session.add(user)
    _db.session.flush()
    return user


def make_role(user, role=RoleAssignment.DEPARTMENT_ADMIN, department=None, assigned_at=None):
    row = RoleAssignment(
        user_id=user.id,
        role=role,
        department=department,
        assigned_at=assigned_at or utcnow(),
    )
    _db.session.add(row)
    _db.session.flush()
    return row


def make_session(user, expires_in=timedelta(hours=24)):
    now = utcnow()
    session = AuthSession(
        user_id=user.id,
        email=user.email,
        created_at=now,
        expires_at=now + expires_in,
    )
    _db.session.add(session)
    _db.session.flush()
    return session


_ticket_counter = iter(range(1, 100000))


def make_ticket(nature="Library", status="Pending", created_at=None, email="student@univ.edu", **fields):
    n = next(_ticket_counter)
    ticket = Ticket(
        ticket_id=f"UNIU-20261019-{n:04d}",
        name=fields.pop("name", "Ada Student"),
        email=email,
        department=fields.pop("department", "Computer Science"),
        nature_of_complaint=nature,
        subject=fields.pop("subject", f"Complaint number {n}"),
        message=fields.pop("message", "Something is wrong and needs fixing."),
        status=status,
        created_at=created_at or utcnow(),
        **fields,
    )
    _db.session.add(ticket)
    _db.session.flush()
    return ticket


def auth_header(session_id):
    return {"Authorization": f"Bearer {session_id}"}


# ──────────────────────────────────────────────
# Fixtures
# ──────────────────────────────────────────────

@pytest.fixture(scope="session")
def app():
    """Create the Flask application configured for testing."""
    app = create_app("testing")
    yield app


@pytest.fixture(autouse=True)
def db_session(app):
    """Create all tables before each test, drop after."""
    with app.app_context():
        _db.create_all()
        yield _db.session
        _db.session.rollback()
        _db.drop_all()


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture
def sent_emails():
    """Patch out SMTP; the mock records every send_email call."""
    with patch("helpdesk.services.notification_service.send_email") as mock_send:
        yield mock_send


@pytest.fixture
def seed_data(app, db_session):
    """Three admins with open sessions, one role-less user, tickets across departments.

    Returns plain ids/values so tests don't depend on instance state.
    """
    chief = make_user("chief@univ.edu")
    make_role(chief, RoleAssignment.SUPER_ADMIN)

    librarian = make_user("library@univ.edu")
    make_role(librarian, department="Library")

    ict = make_user("ict@univ.edu")
    for dept in ("ICT/Portal", "Exams/Results", "Others"):
        make_role(ict, department=dept)

    nobody = make_user("nobody@univ.edu")

    now = utcnow()
    old_library = make_ticket("Library", created_at=now - timedelta(hours=3))
    new_library = make_ticket("Library", status="In Progress", created_at=now - timedelta(hours=1))
    ict_ticket = make_ticket("ICT/Portal", created_at=now - timedelta(hours=2))
    bursary_ticket = make_ticket("Payment/Bursary", created_at=now - timedelta(minutes=5))

    sessions = {
        "chief": make_session(chief).id,
        "librarian": make_session(librarian).id,
        "ict": make_session(ict).id,
        "nobody": make_session(nobody).id,
    }

    _db.session.commit()

    return {
        "chief_id": chief.id,
        "librarian_id": librarian.id,
        "ict_id": ict.id,
        "nobody_id": nobody.id,
        "sessions": sessions,
        "old_library": old_library.ticket_id,
        "new_library": new_library.ticket_id,
        "ict_ticket": ict_ticket.ticket_id,
        "bursary_ticket": bursary_ticket.ticket_id,
    }
