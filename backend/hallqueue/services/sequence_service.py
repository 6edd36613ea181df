# Overview: Monotonic number allocation for tickets, requests and person ids.

from __future__ import annotations

from datetime import date

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import SequenceCounter
from ..validation import ConflictError


TICKET = "TICKET"
REQUEST = "REQUEST"
PERSON_EXTERNAL_ID = "PERSON_EXTERNAL_ID"

GLOBAL_SCOPE = "global"


def next_value(sequence_type: str, scope_key: str) -> int:
    """
    Allocate the next number of a (type, scope) sequence.

    Must run inside run_in_transaction: the counter increment commits or
    rolls back together with the row that uses the number, so numbers are
    gap-free for sequences whose consumers never fail after allocation.
    A first-use race on the counter row raises a retryable ConflictError.
    """
    stmt = (
        update(SequenceCounter)
        .where(
            SequenceCounter.sequence_type == sequence_type,
            SequenceCounter.scope_key == scope_key,
        )
        .values(next_number=SequenceCounter.next_number + 1)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        current = (
            db.session.query(SequenceCounter.next_number)
            .filter_by(sequence_type=sequence_type, scope_key=scope_key)
            .scalar()
        )
        return current - 1

    counter = SequenceCounter(sequence_type=sequence_type, scope_key=scope_key, next_number=2)
    db.session.add(counter)
    try:
        db.session.flush()
    except IntegrityError as exc:
        raise ConflictError(
            f"Sequence {sequence_type}/{scope_key} was initialized concurrently",
            details={"sequence_type": sequence_type, "scope_key": scope_key},
        ) from exc
    return 1


def advance_past(sequence_type: str, scope_key: str, used_number: int) -> None:
    """Make sure a number assigned out-of-band is never handed out again."""
    counter = (
        db.session.query(SequenceCounter)
        .filter_by(sequence_type=sequence_type, scope_key=scope_key)
        .first()
    )
    if counter is None:
        db.session.add(SequenceCounter(
            sequence_type=sequence_type,
            scope_key=scope_key,
            next_number=used_number + 1,
        ))
        db.session.flush()
    elif counter.next_number <= used_number:
        counter.next_number = used_number + 1
        db.session.flush()


def day_scope(day: date) -> str:
    return day.isoformat()


def format_ticket_number(number: int) -> str:
    return f"{current_app.config['TICKET_PREFIX']}-{number:03d}"


def format_request_number(day: date, number: int) -> str:
    return f"{current_app.config['REQUEST_PREFIX']}-{day:%Y%m%d}-{number:03d}"


def format_external_id(number: int) -> str:
    return f"{current_app.config['PERSON_ID_PREFIX']}-{number:05d}"


def parse_external_id(value: str) -> int | None:
    """Return the numeric part of a well-formed external id, else None."""
    prefix = current_app.config["PERSON_ID_PREFIX"] + "-"
    normalized = value.strip().upper()
    if not normalized.startswith(prefix.upper()):
        return None
    digits = normalized[len(prefix):]
    if not digits.isdigit():
        return None
    return int(digits)


def next_external_id() -> str:
    return format_external_id(next_value(PERSON_EXTERNAL_ID, GLOBAL_SCOPE))
