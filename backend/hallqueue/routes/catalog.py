# Overview: Flask API routes for the service catalog; parses input and returns JSON responses.

# backend/hallqueue/routes/catalog.py
"""Service catalog routes (staff only)."""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import error_response, require_identity
from ..services import catalog_service
from ..validation import EngineError, coerce_bool


catalog_bp = Blueprint("catalog", __name__, url_prefix="/api/service-types")


@catalog_bp.get("")
@require_identity
def list_service_types_route():
    """Query params: active_only (bool, default false)"""
    try:
        active_only = coerce_bool(request.args.get("active_only", "false"), "active_only")
        services = catalog_service.list_service_types(active_only=active_only)
        return jsonify({"items": [s.to_dict() for s in services], "count": len(services)})
    except EngineError as e:
        return error_response(e)


@catalog_bp.post("")
@require_identity
def create_service_type_route():
    try:
        data = request.get_json(silent=True) or {}
        service_type = catalog_service.create_service_type(data, actor=g.identity)
        return jsonify({"service_type": service_type.to_dict()}), 201

    except EngineError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create service type")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.get("/<int:service_type_id>")
@require_identity
def get_service_type_route(service_type_id: int):
    try:
        service_type = catalog_service.get_service_type(service_type_id)
        return jsonify({"service_type": service_type.to_dict()})
    except EngineError as e:
        return error_response(e)


@catalog_bp.patch("/<int:service_type_id>")
@require_identity
def update_service_type_route(service_type_id: int):
    """
    Update an entry.

    Once any request references it only price_cents and is_active may
    change (409 invalid_state otherwise).
    """
    try:
        data = request.get_json(silent=True) or {}
        service_type = catalog_service.update_service_type(service_type_id, data, actor=g.identity)
        return jsonify({"service_type": service_type.to_dict()})

    except EngineError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update service type")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.post("/<int:service_type_id>/toggle")
@require_identity
def toggle_service_type_route(service_type_id: int):
    try:
        service_type = catalog_service.toggle_service_active(service_type_id, actor=g.identity)
        return jsonify({"service_type": service_type.to_dict()})

    except EngineError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to toggle service type")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.delete("/<int:service_type_id>")
@require_identity
def delete_service_type_route(service_type_id: int):
    try:
        catalog_service.delete_service_type(service_type_id, actor=g.identity)
        return jsonify({"deleted": True, "service_type_id": service_type_id})

    except EngineError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete service type")
        return jsonify({"error": "Internal server error"}), 500
