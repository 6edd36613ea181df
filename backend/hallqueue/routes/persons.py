# Overview: Flask API routes for person records and pending-guest review.

# backend/hallqueue/routes/persons.py
"""
Person routes

All routes require a staff identity (@require_identity). Approval and
rejection are the only way a pending kiosk guest leaves `pending`.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import error_response, require_identity
from ..services import audit_service, duplicate_service, person_service
from ..validation import EngineError


persons_bp = Blueprint("persons", __name__, url_prefix="/api/persons")


@persons_bp.get("")
@require_identity
def list_persons_route():
    """
    Query params:
    - status: active|pending|deceased|moved (optional)
    - purok: str (optional)
    - limit: int (default 200, max 1000)
    """
    try:
        limit = min(request.args.get("limit", 200, type=int), 1000)
        persons = person_service.list_persons(
            purok=request.args.get("purok"),
            status=request.args.get("status"),
            limit=limit,
        )
        return jsonify({"items": [p.to_dict() for p in persons], "count": len(persons)})

    except EngineError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list persons")
        return jsonify({"error": "Internal server error"}), 500


@persons_bp.post("")
@require_identity
def create_person_route():
    """Staff registration; creates an active record with the next resident id."""
    try:
        data = request.get_json(silent=True) or {}
        person = person_service.create_person(data, actor=g.identity)
        return jsonify({"person": person.to_dict()}), 201

    except EngineError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create person")
        return jsonify({"error": "Internal server error"}), 500


@persons_bp.get("/search")
@require_identity
def search_persons_route():
    """
    Query params:
    - q: name words, resident id ("BH-00042") or block-lot ("12-34")
    - status, purok, phase: optional filters
    - limit: int (default 50, max 200)
    """
    try:
        limit = min(request.args.get("limit", 50, type=int), 200)
        persons = person_service.search_persons(
            request.args.get("q"),
            status=request.args.get("status"),
            purok=request.args.get("purok"),
            phase=request.args.get("phase"),
            limit=limit,
        )
        return jsonify({"items": [p.to_dict() for p in persons], "count": len(persons)})

    except EngineError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to search persons")
        return jsonify({"error": "Internal server error"}), 500


@persons_bp.get("/pending")
@require_identity
def list_pending_route():
    persons = person_service.list_pending()
    return jsonify({"items": [p.to_dict() for p in persons], "count": len(persons)})


@persons_bp.get("/duplicates")
@require_identity
def find_duplicates_route():
    """
    Advisory duplicate scan for data being typed in.

    Query params: first_name, last_name, birthdate (YYYY-MM-DD), exclude_id
    """
    try:
        matches = duplicate_service.find_duplicates(
            request.args.get("first_name"),
            request.args.get("last_name"),
            request.args.get("birthdate"),
            exclude_id=request.args.get("exclude_id", type=int),
        )
        return jsonify({"matches": matches, "count": len(matches)})

    except EngineError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to scan for duplicates")
        return jsonify({"error": "Internal server error"}), 500


@persons_bp.get("/by-external-id/<string:code>")
@require_identity
def get_by_external_id_route(code: str):
    try:
        person = person_service.get_by_external_id(code)
        return jsonify({"person": person.to_dict()})
    except EngineError as e:
        return error_response(e)


@persons_bp.get("/<int:person_id>")
@require_identity
def get_person_route(person_id: int):
    try:
        person = person_service.get_person(person_id)
        return jsonify({"person": person.to_dict()})
    except EngineError as e:
        return error_response(e)


@persons_bp.patch("/<int:person_id>")
@require_identity
def update_person_route(person_id: int):
    try:
        data = request.get_json(silent=True) or {}
        person = person_service.update_person(person_id, data, actor=g.identity)
        return jsonify({"person": person.to_dict()})

    except EngineError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update person")
        return jsonify({"error": "Internal server error"}), 500


@persons_bp.get("/<int:person_id>/duplicates")
@require_identity
def person_duplicates_route(person_id: int):
    """Duplicate scan for a stored (usually pending) record, excluding itself."""
    try:
        matches = duplicate_service.find_duplicates_for_person(person_id)
        return jsonify({"person_id": person_id, "matches": matches, "count": len(matches)})

    except EngineError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to scan for duplicates")
        return jsonify({"error": "Internal server error"}), 500


@persons_bp.post("/<int:person_id>/approve")
@require_identity
def approve_route(person_id: int):
    try:
        person = person_service.approve_pending(person_id, actor=g.identity)
        return jsonify({"person": person.to_dict()})

    except EngineError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to approve person")
        return jsonify({"error": "Internal server error"}), 500


@persons_bp.post("/<int:person_id>/reject")
@require_identity
def reject_route(person_id: int):
    try:
        result = person_service.reject_pending(person_id, actor=g.identity)
        return jsonify(result)

    except EngineError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to reject person")
        return jsonify({"error": "Internal server error"}), 500


@persons_bp.get("/<int:person_id>/history")
@require_identity
def person_history_route(person_id: int):
    events = audit_service.list_events(entity_type="person", entity_id=person_id)
    return jsonify({"items": [e.to_dict() for e in events], "count": len(events)})
