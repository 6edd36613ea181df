# Overview: Flask API routes for document requests; parses input and returns JSON responses.

# backend/hallqueue/routes/requests.py
"""Document request routes: detail, listing, cancellation, item edits, printing, requeue."""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import error_response, require_identity
from ..services import queue_service, request_service
from ..validation import EngineError, ValidationError
from hallqueue.time_utils import parse_iso_date


requests_bp = Blueprint("requests", __name__, url_prefix="/api/requests")


@requests_bp.get("")
@require_identity
def list_requests_route():
    """
    Query params:
    - status: pending|queued|serving|completed|cancelled (optional)
    - day: YYYY-MM-DD service day (optional)
    - limit: int (default 200, max 1000)
    """
    try:
        try:
            day = parse_iso_date(request.args.get("day"))
        except ValueError:
            raise ValidationError("day must be an ISO-8601 date", details={"field": "day"})
        limit = min(request.args.get("limit", 200, type=int), 1000)
        rows = request_service.list_requests(status=request.args.get("status"), day=day, limit=limit)
        return jsonify({"items": [r.to_dict() for r in rows], "count": len(rows)})

    except EngineError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list requests")
        return jsonify({"error": "Internal server error"}), 500


@requests_bp.get("/<int:request_id>")
@require_identity
def get_request_route(request_id: int):
    try:
        return jsonify({"request": request_service.get_request_detail(request_id)})
    except EngineError as e:
        return error_response(e)


@requests_bp.post("/<int:request_id>/cancel")
@require_identity
def cancel_request_route(request_id: int):
    try:
        cancelled = request_service.cancel_request(request_id, actor=g.identity)
        return jsonify({"request": cancelled.to_dict()})

    except EngineError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to cancel request")
        return jsonify({"error": "Internal server error"}), 500


@requests_bp.post("/<int:request_id>/requeue")
@require_identity
def requeue_request_route(request_id: int):
    """Issue a fresh ticket after a skip. Never happens automatically."""
    try:
        ticket = queue_service.requeue_request(request_id, actor=g.identity)
        return jsonify({"ticket": ticket.to_dict()}), 201

    except EngineError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to requeue request")
        return jsonify({"error": "Internal server error"}), 500


@requests_bp.post("/<int:request_id>/print")
@require_identity
def print_all_route(request_id: int):
    try:
        return jsonify(request_service.mark_all_printed(request_id))

    except EngineError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to mark request printed")
        return jsonify({"error": "Internal server error"}), 500


@requests_bp.post("/items/<int:item_id>/print")
@require_identity
def print_item_route(item_id: int):
    try:
        item = request_service.mark_item_printed(item_id)
        return jsonify({"item": item.to_dict()})

    except EngineError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to mark item printed")
        return jsonify({"error": "Internal server error"}), 500


@requests_bp.patch("/items/<int:item_id>")
@require_identity
def update_item_route(item_id: int):
    """Body: {"purpose": str}. Only before the item is printed."""
    try:
        data = request.get_json(silent=True) or {}
        if "purpose" not in data:
            raise ValidationError("purpose is required", details={"field": "purpose"})
        item = request_service.update_item_purpose(item_id, data["purpose"], actor=g.identity)
        return jsonify({"item": item.to_dict()})

    except EngineError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update request item")
        return jsonify({"error": "Internal server error"}), 500
