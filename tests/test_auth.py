"""Tests for signup, sign-in, sign-out and password reset.

Covers:
- Signup validation order and messages
- Allowlist gate (not authorized / super admin / multi-department)
- Signup compensation when role assignment fails
- Sign-in: success, wrong password, unknown email (dummy hash verified)
- Sign-out deletes the session
- Password reset: no enumeration, token never echoed, single use, expiry
"""

import logging
from datetime import timedelta
from unittest.mock import MagicMock, patch

import pytest
from werkzeug.security import check_password_hash

from helpdesk.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    PortalError,
    ValidationError,
)
from helpdesk.extensions import db
from helpdesk.models.audit import AuditEvent
from helpdesk.models.password_reset import PasswordResetToken
from helpdesk.models.role import RoleAssignment
from helpdesk.models.session import AuthSession
from helpdesk.models.user import User
from helpdesk.services import auth_service
from helpdesk.services.departments import Allowlist
from helpdesk.utils import utcnow
from tests.conftest import PASSWORD, auth_header, make_user


class TestSignUpValidation:

    @pytest.mark.parametrize("email, password, message", [
        ("not-an-email", "Abcd1234", "Invalid email format"),
        ("a b@univ.edu", "Abcd1234", "Invalid email format"),
        ("library@univ.edu", "Abc123", "Password must be at least 8 characters"),
        ("library@univ.edu", "abcd1234", "Password must contain at least one uppercase letter"),
        ("library@univ.edu", "ABCD1234", "Password must contain at least one lowercase letter"),
        ("library@univ.edu", "Abcdefgh", "Password must contain at least one number"),
    ])
    def test_rejects_in_order(self, email, password, message):
        with pytest.raises(ValidationError) as exc:
            auth_service.sign_up(email, password)
        assert exc.value.message == message
        assert User.query.count() == 0

    def test_bad_email_reported_before_weak_password(self):
        with pytest.raises(ValidationError, match="Invalid email format"):
            auth_service.sign_up("nope", "x")

    def test_existing_email_is_conflict(self):
        make_user("library@univ.edu")
        db.session.commit()
        with pytest.raises(ConflictError, match="User already exists"):
            auth_service.sign_up("Library@Univ.edu", "Abcd1234")

    def test_not_on_allowlist_rejected(self):
        with pytest.raises(AuthorizationError, match="not authorized as an admin"):
            auth_service.sign_up("new@univ.edu", "Abcd1234")
        assert User.query.count() == 0

    def test_not_on_allowlist_over_http(self, client):
        resp = client.post("/api/auth/sign-up", json={
            "email": "new@univ.edu", "password": "Abcd1234",
        })
        assert resp.status_code == 403
        body = resp.get_json()
        assert body["ok"] is False
        assert "not authorized as an admin" in body["error"]

    @pytest.mark.parametrize("body, message", [
        ({"email": "library@univ.edu", "password": 12345678}, "Password must be a string"),
        ({"email": 42, "password": "Abcd1234"}, "Email must be a string"),
    ])
    def test_non_string_fields_over_http(self, client, body, message):
        resp = client.post("/api/auth/sign-up", json=body)
        assert resp.status_code == 400
        assert resp.get_json() == {"ok": False, "error": message}
        assert User.query.count() == 0

    def test_non_string_password_on_sign_in(self, client):
        resp = client.post("/api/auth/sign-in", json={
            "email": "library@univ.edu", "password": ["Abcd1234"],
        })
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Password must be a string"

    def test_non_string_reset_token_is_invalid(self):
        assert auth_service.verify_reset_token(12345) == (None, "Invalid token")


class TestSignUp:

    def test_department_admin_gets_one_row_per_department(self):
        result = auth_service.sign_up("ict@univ.edu", "Abcd1234")

        assert result["email"] == "ict@univ.edu"
        assert "password_hash" not in result
        depts = {
            r.department for r in
            RoleAssignment.query.filter_by(user_id=result["user_id"]).all()
        }
        assert depts == {"ICT/Portal", "Exams/Results", "Others"}

    def test_super_admin_gets_single_row(self):
        result = auth_service.sign_up("chief@univ.edu", "Abcd1234")

        rows = RoleAssignment.query.filter_by(user_id=result["user_id"]).all()
        assert len(rows) == 1
        assert rows[0].role == RoleAssignment.SUPER_ADMIN
        assert rows[0].department is None

    def test_password_is_hashed(self):
        result = auth_service.sign_up("library@univ.edu", "Abcd1234")
        user = db.session.get(User, result["user_id"])
        assert user.password_hash != "Abcd1234"
        assert user.password_hash.startswith("scrypt:")
        assert check_password_hash(user.password_hash, "Abcd1234")

    def test_writes_audit_event(self):
        result = auth_service.sign_up("library@univ.edu", "Abcd1234")
        event = AuditEvent.query.filter_by(action="user.signed_up").first()
        assert event is not None
        assert event.actor_user_id == result["user_id"]

    def test_injected_allowlist(self):
        allowlist = Allowlist(["boss@elsewhere.edu"], {"Library": "books@elsewhere.edu"})

        result = auth_service.sign_up("books@elsewhere.edu", "Abcd1234", allowlist=allowlist)
        rows = RoleAssignment.query.filter_by(user_id=result["user_id"]).all()
        assert [r.department for r in rows] == ["Library"]

        with pytest.raises(AuthorizationError):
            auth_service.sign_up("library@univ.edu", "Abcd1234", allowlist=allowlist)

    def test_http_returns_201(self, client):
        resp = client.post("/api/auth/sign-up", json={
            "email": "library@univ.edu", "password": "Abcd1234",
        })
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["ok"] is True
        assert body["user"]["email"] == "library@univ.edu"

    def test_cli_create_admin(self, app):
        runner = app.test_cli_runner()
        result = runner.invoke(args=["create-admin", "--email", "ict@univ.edu", "--password", "Abcd1234"])
        assert result.exit_code == 0
        assert "Created admin: ict@univ.edu (department_admin)" in result.output
        assert "ICT/Portal, Exams/Results, Others" in result.output

        again = runner.invoke(args=["create-admin", "--email", "ict@univ.edu", "--password", "Abcd1234"])
        assert again.exit_code != 0


class TestSignUpCompensation:

    def test_role_failure_deletes_user(self):
        with patch(
            "helpdesk.services.role_service.assign_role",
            side_effect=RuntimeError("store unavailable"),
        ):
            with pytest.raises(PortalError) as exc:
                auth_service.sign_up("library@univ.edu", "Abcd1234")

        assert exc.value.message == "Failed to assign admin role. Please try again."
        assert exc.value.status_code == 500
        assert User.query.filter_by(email="library@univ.edu").first() is None
        assert RoleAssignment.query.count() == 0

    def test_gate_drift_is_internal_error(self):
        """Signup gate says yes, assignment finds nothing: user is removed."""
        allowlist = MagicMock(spec=Allowlist)
        allowlist.is_authorized_admin.return_value = True
        allowlist.is_super_admin.return_value = False
        allowlist.departments_for.return_value = []

        with pytest.raises(PortalError, match="Failed to assign admin role"):
            auth_service.sign_up("drift@univ.edu", "Abcd1234", allowlist=allowlist)
        assert User.query.count() == 0

    def test_failed_compensation_logged_critical(self, caplog):
        user = make_user("orphan@univ.edu")
        db.session.commit()

        broken = MagicMock()
        broken.filter_by.side_effect = RuntimeError("db down")
        with patch.object(User, "query", broken):
            with caplog.at_level(logging.CRITICAL, logger="helpdesk.services.auth_service"):
                with pytest.raises(RuntimeError):
                    auth_service._delete_user(user.id, user.email)

        assert any(r.levelno == logging.CRITICAL for r in caplog.records)

    def test_retry_after_compensation_succeeds(self):
        with patch(
            "helpdesk.services.role_service.assign_role",
            side_effect=RuntimeError("store unavailable"),
        ):
            with pytest.raises(PortalError):
                auth_service.sign_up("library@univ.edu", "Abcd1234")

        result = auth_service.sign_up("library@univ.edu", "Abcd1234")
        assert result["email"] == "library@univ.edu"


class TestSignIn:

    def test_success_creates_session(self):
        user = make_user("library@univ.edu")
        db.session.commit()

        result = auth_service.sign_in("Library@univ.edu ", PASSWORD)

        assert result["user_id"] == user.id
        assert result["email"] == "library@univ.edu"
        session = db.session.get(AuthSession, result["session_id"])
        assert session is not None
        lifetime = session.expires_at - session.created_at
        assert lifetime == timedelta(hours=24)

    def test_wrong_password(self):
        make_user("library@univ.edu")
        db.session.commit()
        with pytest.raises(AuthenticationError) as exc:
            auth_service.sign_in("library@univ.edu", "WrongPass1")
        assert exc.value.message == "Invalid credentials"

    def test_unknown_email_same_message(self):
        with pytest.raises(AuthenticationError) as exc:
            auth_service.sign_in("ghost@univ.edu", "WrongPass1")
        assert exc.value.message == "Invalid credentials"

    def test_unknown_email_still_verifies_against_dummy_hash(self):
        with patch(
            "helpdesk.services.auth_service.check_password_hash",
            wraps=check_password_hash,
        ) as spy:
            with pytest.raises(AuthenticationError):
                auth_service.sign_in("ghost@univ.edu", "WrongPass1")

        spy.assert_called_once_with(auth_service.DUMMY_PASSWORD_HASH, "WrongPass1")

    def test_wrong_password_verifies_once(self):
        user = make_user("library@univ.edu")
        db.session.commit()
        with patch(
            "helpdesk.services.auth_service.check_password_hash",
            wraps=check_password_hash,
        ) as spy:
            with pytest.raises(AuthenticationError):
                auth_service.sign_in("library@univ.edu", "WrongPass1")

        spy.assert_called_once_with(user.password_hash, "WrongPass1")

    def test_dummy_hash_uses_real_method_and_never_matches(self):
        assert auth_service.DUMMY_PASSWORD_HASH.startswith(
            auth_service.PASSWORD_HASH_METHOD + "$"
        )
        assert check_password_hash(auth_service.DUMMY_PASSWORD_HASH, "") is False
        assert check_password_hash(auth_service.DUMMY_PASSWORD_HASH, "Abcd1234") is False

    def test_http_responses_identical(self, client):
        make_user("library@univ.edu")
        db.session.commit()

        wrong = client.post("/api/auth/sign-in", json={
            "email": "library@univ.edu", "password": "WrongPass1",
        })
        unknown = client.post("/api/auth/sign-in", json={
            "email": "ghost@univ.edu", "password": "WrongPass1",
        })
        assert wrong.status_code == unknown.status_code == 401
        assert wrong.get_json() == unknown.get_json() == {
            "ok": False, "error": "Invalid credentials",
        }

    def test_http_success(self, client):
        make_user("library@univ.edu")
        db.session.commit()
        resp = client.post("/api/auth/sign-in", json={
            "email": "library@univ.edu", "password": PASSWORD,
        })
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["ok"] is True
        assert body["session_id"]


class TestSignOut:

    def test_sign_out_kills_session(self, client, seed_data):
        sid = seed_data["sessions"]["librarian"]

        resp = client.post("/api/auth/sign-out", headers=auth_header(sid))
        assert resp.status_code == 200

        assert db.session.get(AuthSession, sid) is None
        resp = client.get("/api/auth/session", headers=auth_header(sid))
        assert resp.status_code == 401
        assert resp.get_json()["error"] == "Unauthorized: Invalid session"

    def test_sign_out_without_session_is_ok(self, client):
        resp = client.post("/api/auth/sign-out")
        assert resp.status_code == 200
        assert resp.get_json() == {"ok": True}


class TestPasswordReset:

    def _issue(self, email="library@univ.edu"):
        auth_service.request_password_reset(email)
        return PasswordResetToken.query.order_by(PasswordResetToken.created_at.desc()).first()

    def test_unknown_email_reports_success_and_sends_nothing(self, client, sent_emails):
        resp = client.post("/api/auth/forgot-password", json={"email": "ghost@univ.edu"})
        assert resp.status_code == 200
        assert resp.get_json()["ok"] is True
        assert PasswordResetToken.query.count() == 0
        sent_emails.assert_not_called()

    def test_known_email_same_response_token_only_in_email(self, client, sent_emails):
        make_user("library@univ.edu")
        db.session.commit()

        known = client.post("/api/auth/forgot-password", json={"email": "library@univ.edu"})
        unknown = client.post("/api/auth/forgot-password", json={"email": "ghost@univ.edu"})
        assert known.get_json() == unknown.get_json()

        reset = PasswordResetToken.query.one()
        assert len(reset.token) == 64
        assert reset.token not in known.get_data(as_text=True)

        sent_emails.assert_called_once()
        kwargs = sent_emails.call_args.kwargs
        assert kwargs["to"] == "library@univ.edu"
        assert reset.token in kwargs["context"]["reset_url"]

    def test_token_expires_after_an_hour(self, sent_emails):
        make_user("library@univ.edu")
        db.session.commit()
        reset = self._issue()
        delta = reset.expires_at - reset.created_at
        assert timedelta(minutes=59) < delta <= timedelta(minutes=61)

    def test_reset_then_sign_in(self, sent_emails):
        make_user("library@univ.edu")
        db.session.commit()
        reset = self._issue()

        auth_service.reset_password(reset.token, "NewPassw0rd")

        assert auth_service.sign_in("library@univ.edu", "NewPassw0rd")["session_id"]
        with pytest.raises(AuthenticationError):
            auth_service.sign_in("library@univ.edu", PASSWORD)

    def test_second_use_fails_already_used(self, sent_emails):
        make_user("library@univ.edu")
        db.session.commit()
        token = self._issue().token

        auth_service.reset_password(token, "NewPassw0rd")
        with pytest.raises(ConflictError, match="Token already used"):
            auth_service.reset_password(token, "OtherPassw0rd")

    def test_second_use_over_http(self, client, sent_emails):
        make_user("library@univ.edu")
        db.session.commit()
        token = self._issue().token

        first = client.post("/api/auth/reset-password", json={
            "token": token, "password": "NewPassw0rd",
        })
        second = client.post("/api/auth/reset-password", json={
            "token": token, "password": "OtherPassw0rd",
        })
        assert first.status_code == 200
        assert second.status_code == 409
        assert "already used" in second.get_json()["error"]

    def test_expired_token(self, sent_emails):
        make_user("library@univ.edu")
        db.session.commit()
        reset = self._issue()
        reset.expires_at = utcnow() - timedelta(seconds=1)
        db.session.commit()

        with pytest.raises(ValidationError, match="Token expired"):
            auth_service.reset_password(reset.token, "NewPassw0rd")

    def test_unknown_token(self):
        with pytest.raises(ValidationError, match="Invalid token"):
            auth_service.reset_password("f" * 64, "NewPassw0rd")

    def test_weak_password_checked_before_token(self, sent_emails):
        make_user("library@univ.edu")
        db.session.commit()
        reset = self._issue()

        with pytest.raises(ValidationError, match="at least 8 characters"):
            auth_service.reset_password(reset.token, "short")
        assert db.session.get(PasswordResetToken, reset.id).used is False

    def test_verify_endpoint(self, client, sent_emails):
        make_user("library@univ.edu")
        db.session.commit()
        reset = self._issue()

        good = client.post("/api/auth/reset-password/verify", json={"token": reset.token})
        assert good.get_json() == {"ok": True, "valid": True, "reason": None}

        bad = client.post("/api/auth/reset-password/verify", json={"token": "nope"})
        assert bad.get_json() == {"ok": True, "valid": False, "reason": "Invalid token"}

    def test_reset_writes_audit_event(self, sent_emails):
        user = make_user("library@univ.edu")
        db.session.commit()
        auth_service.reset_password(self._issue().token, "NewPassw0rd")

        event = AuditEvent.query.filter_by(action="user.password_reset").one()
        assert event.actor_user_id == user.id
