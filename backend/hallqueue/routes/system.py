# backend/hallqueue/routes/system.py
"""
System health, version and change-feed endpoints.

/api/changes is the polling side of change notifications: clients keep
the last versions they saw and refetch the entity types whose counter
moved.
"""

import sys
import time

from flask import Blueprint, current_app, jsonify

from ..extensions import db
from ..models import DocumentRequest, Person, QueueTicket
from ..services.notification_service import INSTANCE_ID, current_versions
from hallqueue.time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """Check database connectivity with a few cheap counts."""
    start_time = time.time()
    try:
        person_count = db.session.query(Person).count()
        request_count = db.session.query(DocumentRequest).count()
        waiting_count = db.session.query(QueueTicket).filter(QueueTicket.status == "waiting").count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "persons": person_count,
                "requests": request_count,
                "waiting_tickets": waiting_count,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: database reachable
    - 503: database unhealthy
    """
    database_health = check_database_health()
    http_status = 503 if database_health["status"] == "unhealthy" else 200

    response = {
        "status": database_health["status"],
        "timestamp": to_utc_z(utcnow()),
        "checks": {"database": database_health},
    }
    return response, http_status


@system_bp.get("/version")
def version():
    env = "production" if not current_app.debug else "development"

    return {
        "api_version": "1.0.0",
        "environment": env,
        "python_version": sys.version.split()[0],
        "server_time": to_utc_z(utcnow()),
        "statistics_strategy": current_app.config["STATISTICS_STRATEGY"],
    }


@system_bp.get("/api/changes")
def changes():
    """
    Per-entity-type change counters since this process started.

    Counters are per process; a changed `instance` means the poller reached
    a different or restarted worker and must resync from scratch.
    """
    return jsonify({
        "instance": INSTANCE_ID,
        "versions": current_versions(),
        "server_time": to_utc_z(utcnow()),
    })
