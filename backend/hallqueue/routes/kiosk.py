# Overview: Public kiosk routes; parses input and returns JSON responses.

# backend/hallqueue/routes/kiosk.py
"""
Kiosk API routes

PUBLIC: kiosk terminals sit in the hall without a staff login. A staff
identity header is recorded as the audit actor when one is present.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import error_response, optional_identity
from ..services import catalog_service, person_service, request_service
from ..validation import EngineError


kiosk_bp = Blueprint("kiosk", __name__, url_prefix="/api/kiosk")


@kiosk_bp.post("/requests")
@optional_identity
def submit_request_route():
    """
    Submit a document request and receive a queue ticket.

    Body: {"person_id": int} or {"guest": {...person fields}},
          plus {"items": [{"service_type_id": int, "purpose": str}]}
    """
    try:
        data = request.get_json(silent=True) or {}
        result = request_service.submit_request(
            person_id=data.get("person_id"),
            guest=data.get("guest"),
            items=data.get("items"),
            actor=g.identity,
        )
        return jsonify(result), 201

    except EngineError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to submit request")
        return jsonify({"error": "Internal server error"}), 500


@kiosk_bp.get("/services")
def list_services_route():
    """Active catalog entries offered on the kiosk."""
    services = catalog_service.list_service_types(active_only=True)
    return jsonify({"items": [s.to_dict() for s in services], "count": len(services)})


@kiosk_bp.get("/residents/<string:code>")
def lookup_resident_route(code: str):
    """Resolve a scanned or typed resident id. Returns only what the kiosk shows."""
    try:
        person = person_service.get_by_external_id(code)
        if person.status != "active":
            return jsonify({"error": "Resident is not active", "kind": "not_found", "details": {}}), 404
        return jsonify({
            "id": person.id,
            "external_id": person.external_id,
            "full_name": person.full_name,
            "purok": person.purok,
        })

    except EngineError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to look up resident")
        return jsonify({"error": "Internal server error"}), 500
