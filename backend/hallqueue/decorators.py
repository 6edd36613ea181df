# Overview: Caller identity decorators and error translation for API routes.

from functools import wraps

from flask import current_app, g, jsonify, request

from .validation import EngineError


def _read_identity() -> str | None:
    header = current_app.config.get("IDENTITY_HEADER", "X-Staff-Identity")
    value = (request.headers.get(header) or "").strip()
    return value or None


def require_identity(f):
    """
    Require a staff identity from the upstream identity layer.

    Sets g.identity to the header value. The value is trusted as-is and only
    recorded (served_by, audit actor); authorization happens upstream.

    Returns 401 when the header is missing or blank.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        identity = _read_identity()
        if identity is None:
            return jsonify({"error": "Staff identity required", "kind": "unauthenticated", "details": {}}), 401
        g.identity = identity
        return f(*args, **kwargs)

    return decorated_function


def optional_identity(f):
    """Public routes: record the identity when present, g.identity=None otherwise."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        g.identity = _read_identity()
        return f(*args, **kwargs)

    return decorated_function


def error_response(e: EngineError):
    """Map an engine error to its JSON body and HTTP status."""
    return jsonify(e.to_dict()), e.http_status

