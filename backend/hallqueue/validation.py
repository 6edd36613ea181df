from __future__ import annotations

import re
from datetime import date
from typing import Any

from hallqueue.time_utils import parse_iso_date


# Maximum catalog price: 9,999,999.99 in minor units
MAX_PRICE_CENTS = 999_999_999


class EngineError(Exception):
    """
    Base for every failure the engine reports to callers.

    `kind` is stable and machine-readable; the message is surfaced verbatim.
    """
    kind = "engine_error"
    http_status = 500

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "kind": self.kind, "details": self.details}


class ValidationError(EngineError):
    """400-level input problem."""
    kind = "validation_error"
    http_status = 400


class NotFoundOrInactiveError(ValidationError):
    """Service catalog entry referenced but missing or inactive."""
    kind = "not_found_or_inactive"


class NotFoundError(EngineError):
    """Referenced id does not resolve."""
    kind = "not_found"
    http_status = 404


class InvalidStateError(EngineError):
    """Transition not legal from the current state."""
    kind = "invalid_state"
    http_status = 409


class ConflictError(EngineError):
    """
    409-level concurrent-write collision.

    Retryable conflicts (number allocation races) are retried by
    run_in_transaction; non-retryable ones (a second active ticket for the
    same request) surface immediately.
    """
    kind = "conflict"
    http_status = 409

    def __init__(self, message: str, details: dict | None = None, *, retryable: bool = True):
        super().__init__(message, details)
        self.retryable = retryable


SEXES = ("male", "female", "other")
EMPLOYMENT_STATUSES = ("employed", "unemployed")


def require_text(payload: dict, key: str, *, max_length: int = 128) -> str:
    value = optional_text(payload, key, max_length=max_length)
    if not value:
        raise ValidationError(f"{key} is required", details={"field": key})
    return value


def optional_text(payload: dict, key: str, *, max_length: int = 128) -> str | None:
    raw = payload.get(key)
    if raw is None:
        return None
    if not isinstance(raw, str):
        raise ValidationError(f"{key} must be a string", details={"field": key})
    value = raw.strip()
    if len(value) > max_length:
        raise ValidationError(f"{key} exceeds max length {max_length}", details={"field": key})
    return value


def coerce_int(value: Any, key: str) -> int:
    # bool is a subclass of int and is never a valid id/amount
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if re.fullmatch(r"-?\d+", stripped):
            return int(stripped)
    raise ValidationError(f"{key} must be an integer", details={"field": key})


def coerce_bool(value: Any, key: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false", "1", "0"):
        return value.strip().lower() in ("true", "1")
    if isinstance(value, int):
        return bool(value)
    raise ValidationError(f"{key} must be a boolean", details={"field": key})


def coerce_date(value: Any, key: str) -> date:
    try:
        parsed = parse_iso_date(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{key} must be an ISO-8601 date", details={"field": key})
    if parsed is None:
        raise ValidationError(f"{key} is required", details={"field": key})
    return parsed


def coerce_choice(value: Any, key: str, choices: tuple[str, ...]) -> str:
    if isinstance(value, str) and value.strip().lower() in choices:
        return value.strip().lower()
    raise ValidationError(
        f"{key} must be one of: {', '.join(choices)}",
        details={"field": key, "allowed": list(choices)},
    )


def validate_price_cents(value: Any) -> int:
    price = coerce_int(value, "price_cents")
    if price < 0:
        raise ValidationError("price_cents must be >= 0")
    if price > MAX_PRICE_CENTS:
        raise ValidationError(f"price_cents cannot exceed {MAX_PRICE_CENTS}")
    return price
