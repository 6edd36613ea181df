# Overview: Flask API routes for the ticket queue; parses input and returns JSON responses.

# backend/hallqueue/routes/queue.py
"""
Queue routes

The display feed is public (hall screens poll it). Every transition is a
staff action; the staff identity becomes served_by and the audit actor.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import error_response, require_identity
from ..services import queue_service
from ..validation import EngineError, coerce_date


queue_bp = Blueprint("queue", __name__, url_prefix="/api/queue")


@queue_bp.get("/display")
def display_route():
    """Query params: done_limit (int, default QUEUE_DONE_LIMIT)"""
    try:
        return jsonify(queue_service.get_display_data(request.args.get("done_limit")))
    except EngineError as e:
        return error_response(e)


@queue_bp.get("/staff")
@require_identity
def staff_queue_route():
    """Query params: counter_number (int, optional)"""
    try:
        return jsonify(queue_service.get_staff_queue(request.args.get("counter_number")))
    except EngineError as e:
        return error_response(e)


@queue_bp.get("/volume")
@require_identity
def queue_volume_route():
    """Query params: day (YYYY-MM-DD, default today)"""
    try:
        day = request.args.get("day")
        return jsonify(queue_service.get_queue_volume(coerce_date(day, "day") if day else None))
    except EngineError as e:
        return error_response(e)


@queue_bp.post("/call-next")
@require_identity
def call_next_route():
    """Body: {"counter_number": int}"""
    try:
        data = request.get_json(silent=True) or {}
        ticket = queue_service.call_next(data.get("counter_number"), served_by=g.identity)
        return jsonify({"ticket": ticket.to_dict()})

    except EngineError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to call next ticket")
        return jsonify({"error": "Internal server error"}), 500


@queue_bp.post("/<int:ticket_id>/call")
@require_identity
def call_route(ticket_id: int):
    """Body: {"counter_number": int}"""
    try:
        data = request.get_json(silent=True) or {}
        ticket = queue_service.call_ticket(ticket_id, data.get("counter_number"), served_by=g.identity)
        return jsonify({"ticket": ticket.to_dict()})

    except EngineError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to call ticket")
        return jsonify({"error": "Internal server error"}), 500


@queue_bp.post("/<int:ticket_id>/complete")
@require_identity
def complete_route(ticket_id: int):
    try:
        ticket = queue_service.complete_ticket(ticket_id, actor=g.identity)
        return jsonify({"ticket": ticket.to_dict()})

    except EngineError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to complete ticket")
        return jsonify({"error": "Internal server error"}), 500


@queue_bp.post("/<int:ticket_id>/skip")
@require_identity
def skip_route(ticket_id: int):
    try:
        ticket = queue_service.skip_ticket(ticket_id, actor=g.identity)
        return jsonify({"ticket": ticket.to_dict()})

    except EngineError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to skip ticket")
        return jsonify({"error": "Internal server error"}), 500
