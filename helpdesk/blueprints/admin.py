"""Admin blueprint — /api/admin/*

Role overview and super-admin role management. Every route needs a bearer
session; management routes additionally need a super_admin row, checked
fresh on each request by @super_admin_required.

Route Map:
  GET    /api/admin/role                      — caller's role + departments
  GET    /api/admin/departments               — the fixed department list
  GET    /api/admin/admins                    — every user holding a role
  POST   /api/admin/roles                     — assign a role manually
  POST   /api/admin/admins/<user_id>/promote  — make super admin
  POST   /api/admin/admins/<user_id>/demote   — strip super admin
  POST   /api/admin/assignments               — add a department to an admin
  DELETE /api/admin/assignments               — remove a department from an admin
  GET    /api/admin/stats                     — admin activity statistics
"""

import logging

from flask import Blueprint, jsonify
from flask_login import current_user

from helpdesk.decorators import current_session_id, session_required, super_admin_required
from helpdesk.extensions import db
from helpdesk.models.ticket import Ticket
from helpdesk.services import analytics_service, role_service
from helpdesk.utils import request_data

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════
#  CURRENT ROLE
# ══════════════════════════════════════════════

@admin_bp.route("/role", methods=["GET"])
@session_required
def current_role():
    return jsonify(ok=True, **role_service.get_current_role(current_session_id()))


@admin_bp.route("/departments", methods=["GET"])
@session_required
def departments():
    return jsonify(ok=True, departments=Ticket.NATURES)


# ══════════════════════════════════════════════
#  ROLE MANAGEMENT (super admin)
# ══════════════════════════════════════════════

@admin_bp.route("/admins", methods=["GET"])
@super_admin_required
def list_admins():
    return jsonify(ok=True, admins=role_service.list_admins())


@admin_bp.route("/roles", methods=["POST"])
@super_admin_required
def assign_role():
    data = request_data()
    rows = role_service.assign_role_manually(
        data.get("user_id"),
        data.get("role"),
        departments=data.get("departments"),
        actor_user_id=current_user.id,
    )
    db.session.commit()
    logger.info(f"{current_user.email} assigned {data.get('role')} to {data.get('user_id')}")
    return jsonify(ok=True, assigned=len(rows)), 201


@admin_bp.route("/admins/<user_id>/promote", methods=["POST"])
@super_admin_required
def promote(user_id):
    role_service.promote(user_id, actor_user_id=current_user.id)
    db.session.commit()
    return jsonify(ok=True, **role_service.resolve_access(user_id).to_dict())


@admin_bp.route("/admins/<user_id>/demote", methods=["POST"])
@super_admin_required
def demote(user_id):
    data = request_data()
    access = role_service.demote(
        current_user.id,
        user_id,
        convert_to_department_admin=bool(data.get("convert_to_department_admin")),
        departments=data.get("departments"),
    )
    db.session.commit()
    return jsonify(ok=True, **access.to_dict())


@admin_bp.route("/assignments", methods=["POST"])
@super_admin_required
def add_assignment():
    data = request_data()
    row = role_service.add_assignment(
        data.get("email"), data.get("department"), actor_user_id=current_user.id
    )
    db.session.commit()
    return jsonify(ok=True, user_id=row.user_id, department=row.department), 201


@admin_bp.route("/assignments", methods=["DELETE"])
@super_admin_required
def remove_assignment():
    data = request_data()
    role_service.remove_assignment(
        data.get("user_id"), data.get("department"), actor_user_id=current_user.id
    )
    db.session.commit()
    return jsonify(ok=True)


# ══════════════════════════════════════════════
#  ACTIVITY
# ══════════════════════════════════════════════

@admin_bp.route("/stats", methods=["GET"])
@super_admin_required
def stats():
    return jsonify(ok=True, stats=analytics_service.get_admin_activity_stats())
