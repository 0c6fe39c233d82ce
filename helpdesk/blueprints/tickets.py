"""Tickets blueprint — /api/tickets/*

Students submit and track tickets without an account. Listing, reading
and updating tickets need a bearer session; the ticket service resolves
the caller's departments for every call.

Route Map:
  POST  /api/tickets              — submit a ticket (public)
  POST  /api/tickets/track        — look up a ticket by code + email (public)
  GET   /api/tickets?status=...   — tickets in the caller's departments
  GET   /api/tickets/<ticket_id>  — one ticket
  PATCH /api/tickets/<ticket_id>  — change status / staff response
"""

from flask import Blueprint, jsonify, request

from helpdesk.extensions import limiter, session_id_from_request
from helpdesk.services import ticket_service
from helpdesk.utils import request_data

tickets_bp = Blueprint("tickets", __name__, url_prefix="/api/tickets")

TICKET_FIELDS = (
    "name",
    "email",
    "department",
    "nature_of_complaint",
    "subject",
    "message",
    "matric_number",
    "jamb_number",
    "phone",
    "attachment_url",
)


@tickets_bp.route("", methods=["POST"])
@limiter.limit("10 per hour")
def create_ticket():
    data = request_data()
    ticket = ticket_service.create_ticket(
        **{field: data.get(field) for field in TICKET_FIELDS}
    )
    return jsonify(ok=True, ticket_id=ticket.ticket_id, ticket=ticket.to_dict()), 201


@tickets_bp.route("/track", methods=["POST"])
@limiter.limit("30 per minute")
def track_ticket():
    data = request_data()
    ticket = ticket_service.track_ticket(data.get("email"), data.get("ticket_id"))
    return jsonify(ok=True, ticket=ticket.to_dict())


@tickets_bp.route("", methods=["GET"])
def list_tickets():
    tickets = ticket_service.list_tickets(
        session_id_from_request(),
        status_filter=request.args.get("status") or None,
    )
    return jsonify(ok=True, tickets=[t.to_dict() for t in tickets])


@tickets_bp.route("/<ticket_id>", methods=["GET"])
def get_ticket(ticket_id):
    ticket = ticket_service.get_ticket(session_id_from_request(), ticket_id)
    return jsonify(ok=True, ticket=ticket.to_dict())


@tickets_bp.route("/<ticket_id>", methods=["PATCH"])
def update_ticket(ticket_id):
    data = request_data()
    ticket = ticket_service.update_ticket(
        session_id_from_request(),
        ticket_id,
        status=data.get("status"),
        staff_response=data.get("staff_response"),
    )
    return jsonify(ok=True, ticket=ticket.to_dict())
