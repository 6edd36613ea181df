# Overview: Flask API routes for population and service statistics.

# backend/hallqueue/routes/statistics.py
from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import error_response, require_identity
from ..services import statistics_service
from ..validation import EngineError


statistics_bp = Blueprint("statistics", __name__, url_prefix="/api/statistics")


@statistics_bp.get("/snapshot")
@require_identity
def snapshot_route():
    """
    Query params:
    - purok: str (optional). Omitted or "*" means the whole population.
    """
    try:
        return jsonify(statistics_service.get_snapshot(request.args.get("purok")))

    except EngineError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to read statistics snapshot")
        return jsonify({"error": "Internal server error"}), 500


@statistics_bp.get("/dimensions")
@require_identity
def dimensions_route():
    return jsonify({"items": statistics_service.list_dimensions()})


@statistics_bp.post("/reconcile")
@require_identity
def reconcile_route():
    """Recompute every snapshot and report drift per dimension."""
    try:
        reports = statistics_service.reconcile_snapshots(actor=g.identity)
        drifted = [r["dimension"] for r in reports if r["drift"]]
        return jsonify({"dimensions": reports, "drifted": drifted})

    except EngineError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to reconcile statistics")
        return jsonify({"error": "Internal server error"}), 500
