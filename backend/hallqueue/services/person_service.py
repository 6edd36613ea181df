# Overview: Person records: registration, edits, and the pending-guest lifecycle.

"""
Person Service

LIFECYCLE:
- Kiosk guests are created `pending` without an external id.
- approve_pending: pending -> active, assigns the next external id.
- reject_pending: deletes a pending record whose requests, if any, were all
  cancelled; those requests go with it.
- update_person: active <-> deceased/moved. `pending` is never entered or
  left through an edit.

Every change feeds the statistics deltas inside its own transaction.
"""

from __future__ import annotations

import re
from datetime import date

from flask import current_app
from sqlalchemy import or_

from ..extensions import db
from ..models import DocumentRequest, Person
from ..models.persons import PERSON_STATUSES, SECTOR_FLAGS, name_key
from ..validation import (
    EMPLOYMENT_STATUSES,
    SEXES,
    InvalidStateError,
    NotFoundError,
    ValidationError,
    coerce_bool,
    coerce_choice,
    coerce_date,
    optional_text,
    require_text,
)
from hallqueue.time_utils import service_day, utcnow
from . import audit_service, sequence_service, statistics_service
from .concurrency import lock_for_update, run_in_transaction
from .notification_service import publish
from .statistics_service import PersonFacts


REQUIRED_FIELDS = ("first_name", "last_name", "sex", "birthdate", "purok")


def _validate_birthdate(value) -> date:
    birthdate = coerce_date(value, "birthdate")
    if birthdate > service_day():
        raise ValidationError("birthdate cannot be in the future", details={"field": "birthdate"})
    return birthdate


def _apply_fields(person: Person, payload: dict, *, partial: bool) -> list[str]:
    """
    Validate and copy writable fields onto person.

    Returns the names of fields whose value changed. With partial=False the
    required identity fields must all be present.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Person payload must be an object")

    if not partial:
        missing = [f for f in REQUIRED_FIELDS if payload.get(f) in (None, "")]
        if missing:
            raise ValidationError(
                f"Missing required fields: {', '.join(missing)}",
                details={"fields": missing},
            )

    values: dict = {}
    for key in ("first_name", "last_name", "purok"):
        if key in payload:
            values[key] = require_text(payload, key)
    if "middle_name" in payload:
        values["middle_name"] = optional_text(payload, "middle_name") or ""
    for key in ("suffix", "phase", "block", "lot", "contact_number"):
        if key in payload:
            values[key] = optional_text(payload, key, max_length=32) or None
    if "email" in payload:
        values["email"] = optional_text(payload, "email", max_length=255) or None
    if "sex" in payload:
        values["sex"] = coerce_choice(payload["sex"], "sex", SEXES)
    if "birthdate" in payload:
        values["birthdate"] = _validate_birthdate(payload["birthdate"])
    for flag in SECTOR_FLAGS:
        if flag in payload:
            values[flag] = coerce_bool(payload[flag], flag)
    if "employment_status" in payload:
        raw = payload["employment_status"]
        values["employment_status"] = (
            None if raw in (None, "") else coerce_choice(raw, "employment_status", EMPLOYMENT_STATUSES)
        )

    changed = []
    for key, value in values.items():
        if getattr(person, key) != value:
            setattr(person, key, value)
            changed.append(key)

    if "last_name" in values:
        person.last_name_key = name_key(person.last_name)
    if person.middle_name is None:
        person.middle_name = ""
    return changed


def build_person(payload: dict, *, status: str = "active") -> Person:
    """Validated, unsaved Person. Caller adds it inside its transaction."""
    if status not in PERSON_STATUSES:
        raise ValidationError(
            f"status must be one of: {', '.join(PERSON_STATUSES)}",
            details={"field": "status"},
        )
    person = Person(status=status, middle_name="")
    for flag in SECTOR_FLAGS:
        setattr(person, flag, False)
    _apply_fields(person, payload, partial=False)
    return person


def _get_for_update(person_id: int) -> Person:
    person = lock_for_update(db.session.query(Person).filter_by(id=person_id)).first()
    if person is None:
        raise NotFoundError(f"Person {person_id} not found", details={"person_id": person_id})
    return person


def _assign_external_id(person: Person, explicit: str | None) -> None:
    if not explicit:
        person.external_id = sequence_service.next_external_id()
        return

    number = sequence_service.parse_external_id(explicit)
    if number is None:
        raise ValidationError(
            f"external_id {explicit!r} is not a valid resident id",
            details={"field": "external_id"},
        )
    normalized = sequence_service.format_external_id(number)
    taken = db.session.query(Person.id).filter(Person.external_id == normalized).first()
    if taken is not None:
        raise ValidationError(
            f"external_id {normalized} is already assigned",
            details={"field": "external_id", "person_id": taken[0]},
        )
    sequence_service.advance_past(
        sequence_service.PERSON_EXTERNAL_ID, sequence_service.GLOBAL_SCOPE, number
    )
    person.external_id = normalized


def create_person(payload: dict, *, status: str = "active", actor: str | None = None) -> Person:
    """
    Register a person (staff registration and bulk import use this).

    Non-pending records get an external id: the supplied `external_id` if
    it is well formed and free, otherwise the next one in sequence.
    """
    explicit = optional_text(payload, "external_id", max_length=32) if isinstance(payload, dict) else None

    def _op():
        person = build_person(payload, status=status)
        if status != "pending":
            _assign_external_id(person, explicit)
        elif explicit:
            raise ValidationError("Pending records cannot carry an external_id", details={"field": "external_id"})

        db.session.add(person)
        db.session.flush()

        statistics_service.apply_person_change(None, PersonFacts.from_person(person))
        audit_service.record(
            audit_service.PersonCreated(status=person.status, external_id=person.external_id),
            entity_id=person.id,
            actor=actor,
        )
        return person

    person = run_in_transaction(_op)
    current_app.logger.info("Person %s created (%s)", person.id, person.status)
    publish("person", "created", person.id)
    return person


def update_person(person_id: int, changes: dict, *, actor: str | None = None) -> Person:
    if not isinstance(changes, dict) or not changes:
        raise ValidationError("No changes supplied")
    if "external_id" in changes:
        raise ValidationError("external_id cannot be edited", details={"field": "external_id"})

    def _op():
        person = _get_for_update(person_id)
        before = PersonFacts.from_person(person)

        changed = _apply_fields(person, changes, partial=True)

        if "status" in changes:
            target = coerce_choice(changes["status"], "status", PERSON_STATUSES)
            if person.status == "pending" or target == "pending":
                raise InvalidStateError(
                    "Pending records change status only through approval or rejection",
                    details={"person_id": person.id, "status": person.status, "target": target},
                )
            if target != person.status:
                person.status = target
                changed.append("status")

        if not changed:
            return person, []

        db.session.flush()
        statistics_service.apply_person_change(before, PersonFacts.from_person(person), person_id=person.id)
        audit_service.record(
            audit_service.PersonUpdated(changed_fields=sorted(changed)),
            entity_id=person.id,
            actor=actor,
        )
        return person, changed

    person, changed = run_in_transaction(_op)
    if changed:
        current_app.logger.info("Person %s updated: %s", person.id, ", ".join(sorted(changed)))
        publish("person", "updated", person.id)
    return person


def approve_pending(person_id: int, *, actor: str | None = None) -> Person:
    """pending -> active with a freshly assigned external id."""
    def _op():
        person = _get_for_update(person_id)
        if person.status != "pending":
            raise InvalidStateError(
                f"Person {person_id} is not pending (status={person.status})",
                details={"person_id": person_id, "status": person.status},
            )
        before = PersonFacts.from_person(person)

        person.status = "active"
        person.external_id = sequence_service.next_external_id()
        person.updated_at = utcnow()
        db.session.flush()

        statistics_service.apply_person_change(before, PersonFacts.from_person(person), person_id=person.id)
        audit_service.record(
            audit_service.PersonApproved(external_id=person.external_id),
            entity_id=person.id,
            actor=actor,
        )
        return person

    person = run_in_transaction(_op)
    current_app.logger.info("Person %s approved as %s", person.id, person.external_id)
    publish("person", "approved", person.id)
    return person


def reject_pending(person_id: int, *, actor: str | None = None) -> dict:
    """
    Delete a pending record.

    Refused while a live or completed request (queued, serving, completed)
    references the person; the refusal itself is audited. Requests that were
    all cancelled are discarded with the person, together with their items
    and skipped tickets.
    """
    def _op():
        person = _get_for_update(person_id)
        if person.status != "pending":
            raise InvalidStateError(
                f"Person {person_id} is not pending (status={person.status})",
                details={"person_id": person_id, "status": person.status},
            )

        requests = (
            db.session.query(DocumentRequest)
            .filter(DocumentRequest.person_id == person.id)
            .order_by(DocumentRequest.id)
            .all()
        )
        blocking = [r.request_number for r in requests if r.status != "cancelled"]
        if blocking:
            return {"blocked": True, "request_numbers": blocking}

        facts = PersonFacts.from_person(person)
        summary = {"full_name": person.full_name, "birthdate": person.birthdate.isoformat()}
        discarded = [r.request_number for r in requests]

        # Children and person go in one flush
        for request in requests:
            for ticket in request.tickets:
                db.session.delete(ticket)
            for item in request.items:
                db.session.delete(item)
            db.session.delete(request)
        db.session.delete(person)
        db.session.flush()

        statistics_service.apply_person_change(facts, None)
        audit_service.record(
            audit_service.PersonRejected(**summary, discarded_requests=discarded),
            entity_id=person_id,
            actor=actor,
        )
        return {"blocked": False, "discarded_requests": discarded}

    outcome = run_in_transaction(_op)

    if outcome["blocked"]:
        # Record the refusal in its own transaction; the rejection wrote nothing
        def _audit():
            audit_service.record(
                audit_service.PersonRejectBlocked(request_numbers=outcome["request_numbers"]),
                entity_id=person_id,
                actor=actor,
            )

        run_in_transaction(_audit)
        current_app.logger.warning(
            "Rejection of person %s refused: referenced by %s",
            person_id, ", ".join(outcome["request_numbers"]),
        )
        raise InvalidStateError(
            "Person has open or completed requests and cannot be rejected",
            details={"person_id": person_id, "request_numbers": outcome["request_numbers"]},
        )

    current_app.logger.info("Pending person %s rejected", person_id)
    publish("person", "rejected", person_id)
    if outcome["discarded_requests"]:
        publish("request", "discarded")
    return {"person_id": person_id, "rejected": True, "discarded_requests": outcome["discarded_requests"]}


def get_person(person_id: int) -> Person:
    person = db.session.get(Person, person_id)
    if person is None:
        raise NotFoundError(f"Person {person_id} not found", details={"person_id": person_id})
    return person


def get_by_external_id(code: str) -> Person:
    """Lookup by resident id as scanned or typed ("bh-00042" works)."""
    number = sequence_service.parse_external_id(code or "")
    if number is None:
        raise ValidationError(f"{code!r} is not a valid resident id", details={"field": "external_id"})
    normalized = sequence_service.format_external_id(number)
    person = db.session.query(Person).filter(Person.external_id == normalized).first()
    if person is None:
        raise NotFoundError(f"Person {normalized} not found", details={"external_id": normalized})
    return person


def list_pending(limit: int = 200) -> list[Person]:
    return (
        db.session.query(Person)
        .filter(Person.status == "pending")
        .order_by(Person.created_at.asc(), Person.id.asc())
        .limit(limit)
        .all()
    )


def list_persons(*, purok: str | None = None, status: str | None = None, limit: int = 200) -> list[Person]:
    q = db.session.query(Person)
    if purok:
        q = q.filter(Person.purok == purok)
    if status:
        q = q.filter(Person.status == coerce_choice(status, "status", PERSON_STATUSES))
    return q.order_by(Person.last_name_key.asc(), Person.id.asc()).limit(limit).all()


_BLOCK_LOT = re.compile(r"^(\d+)[\s-]+(\d+)$")


def _like(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def search_persons(
    term: str | None,
    *,
    status: str | None = None,
    purok: str | None = None,
    phase: str | None = None,
    limit: int = 50,
) -> list[Person]:
    """
    Staff search box.

    - "BH-00042" / "bh42": exact resident id
    - "12-34" / "12 34": block and lot
    - anything else: every word must appear in a name part or the resident id

    Blank terms return nothing. status, purok and phase narrow any branch.
    """
    term = (term or "").strip()
    if not term:
        return []

    q = db.session.query(Person)
    if status:
        q = q.filter(Person.status == coerce_choice(status, "status", PERSON_STATUSES))
    if purok:
        q = q.filter(Person.purok == purok)
    if phase:
        q = q.filter(Person.phase == phase)

    prefix = current_app.config["PERSON_ID_PREFIX"].upper()
    id_match = re.fullmatch(rf"{re.escape(prefix)}-?(\d+)", term.upper())
    block_lot = _BLOCK_LOT.match(term)
    if id_match:
        q = q.filter(Person.external_id == sequence_service.format_external_id(int(id_match.group(1))))
    elif block_lot:
        q = q.filter(Person.block == block_lot.group(1), Person.lot == block_lot.group(2))
    else:
        for word in term.split():
            pattern = _like(word)
            q = q.filter(or_(
                Person.first_name.ilike(pattern, escape="\\"),
                Person.middle_name.ilike(pattern, escape="\\"),
                Person.last_name.ilike(pattern, escape="\\"),
                Person.suffix.ilike(pattern, escape="\\"),
                Person.external_id.ilike(pattern, escape="\\"),
            ))

    return (
        q.order_by(Person.last_name_key.asc(), Person.first_name.asc(), Person.id.asc())
        .limit(limit)
        .all()
    )
