# Overview: Document requests: atomic kiosk submission, cancellation and printing.

"""
Request Service

submit_request is the one entry point the kiosk, staff console and bulk
import all use. In a single transaction it:

1. resolves the person, or creates a pending guest record
2. snapshots catalog prices into request items
3. allocates the REQ-YYYYMMDD-### number
4. queues the request and mints its ticket

All input validation runs before the first write, and any failure rolls
back every step: no request without a ticket, no ticket without a request,
no orphaned guest record.

REQUEST STATUSES: pending -> queued -> serving -> completed, with
cancelled reachable from pending and queued.
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app

from ..extensions import db
from ..models import DocumentRequest, DocumentRequestItem, Person, ServiceType
from ..models.requests import REQUEST_STATUSES
from ..validation import (
    InvalidStateError,
    NotFoundError,
    NotFoundOrInactiveError,
    ValidationError,
    coerce_choice,
    coerce_int,
)
from hallqueue.time_utils import service_day, service_day_bounds, utcnow
from . import audit_service, person_service, queue_service, sequence_service, statistics_service
from .concurrency import lock_for_update, run_in_transaction
from .notification_service import publish
from .statistics_service import PersonFacts


CANCELLABLE_STATUSES = ("pending", "queued")


def _validate_items(items) -> list[dict]:
    if not isinstance(items, list) or not items:
        raise ValidationError("At least one item is required", details={"field": "items"})

    limit = current_app.config.get("MAX_ITEMS_PER_REQUEST", 50)
    if len(items) > limit:
        raise ValidationError(
            f"A request may hold at most {limit} items",
            details={"field": "items", "max": limit},
        )

    validated = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError(f"items[{index}] must be an object", details={"index": index})
        if item.get("service_type_id") is None:
            raise ValidationError(f"items[{index}].service_type_id is required", details={"index": index})
        service_type_id = coerce_int(item["service_type_id"], f"items[{index}].service_type_id")

        purpose = item.get("purpose")
        if purpose is not None and not isinstance(purpose, str):
            raise ValidationError(f"items[{index}].purpose must be a string", details={"index": index})
        purpose = (purpose or "").strip()
        if len(purpose) > 255:
            raise ValidationError(f"items[{index}].purpose exceeds max length 255", details={"index": index})

        validated.append({"service_type_id": service_type_id, "purpose": purpose})
    return validated


def _resolve_service_types(items: list[dict]) -> dict[int, ServiceType]:
    ids = {item["service_type_id"] for item in items}
    found = {
        st.id: st
        for st in db.session.query(ServiceType).filter(ServiceType.id.in_(ids)).all()
    }

    for index, item in enumerate(items):
        service_type = found.get(item["service_type_id"])
        if service_type is None or not service_type.is_active:
            raise NotFoundOrInactiveError(
                f"Service type {item['service_type_id']} is not available",
                details={"index": index, "service_type_id": item["service_type_id"]},
            )
        if service_type.requires_purpose and not item["purpose"]:
            raise ValidationError(
                f"{service_type.name} requires a purpose",
                details={"index": index, "service_type_id": service_type.id, "field": "purpose"},
            )
    return found


def submit_request(
    *,
    person_id: int | None = None,
    guest: dict | None = None,
    items=None,
    actor: str | None = None,
    now: datetime | None = None,
) -> dict:
    """
    Create a request with its items and ticket for an existing person or a
    new pending guest. Exactly one of person_id and guest must be given.

    Returns {request_id, request_number, ticket_id, ticket_number,
    person_id, total_price_cents}.
    """
    if (person_id is None) == (guest is None):
        raise ValidationError("Provide exactly one of person_id or guest")
    if person_id is not None:
        person_id = coerce_int(person_id, "person_id")
    validated_items = _validate_items(items)

    def _op():
        service_types = _resolve_service_types(validated_items)

        guest_person = None
        if guest is not None:
            guest_person = person_service.build_person(guest, status="pending")
            person = guest_person
        else:
            person = db.session.get(Person, person_id)
            if person is None:
                raise NotFoundError(f"Person {person_id} not found", details={"person_id": person_id})

        # Writes start here
        if guest_person is not None:
            db.session.add(guest_person)
            db.session.flush()
            statistics_service.apply_person_change(None, PersonFacts.from_person(guest_person))

        submitted_at = now or utcnow()
        day = service_day(submitted_at)
        number = sequence_service.next_value(sequence_service.REQUEST, sequence_service.day_scope(day))

        request = DocumentRequest(
            person_id=person.id,
            request_number=sequence_service.format_request_number(day, number),
            status="pending",
            requested_at=submitted_at,
        )
        db.session.add(request)
        db.session.flush()

        total = 0
        for item in validated_items:
            service_type = service_types[item["service_type_id"]]
            db.session.add(DocumentRequestItem(
                request_id=request.id,
                service_type_id=service_type.id,
                purpose=item["purpose"],
                unit_price_cents=service_type.price_cents,
                status="pending",
            ))
            total += service_type.price_cents
        request.total_price_cents = total

        request.status = "queued"
        ticket = queue_service.create_ticket(request, now=submitted_at, actor=actor)

        audit_service.record(
            audit_service.RequestSubmitted(
                request_number=request.request_number,
                ticket_number=ticket.queue_number,
                person_id=person.id,
                guest_created=guest_person is not None,
                service_type_ids=[item["service_type_id"] for item in validated_items],
                total_price_cents=total,
            ),
            entity_id=request.id,
            actor=actor,
        )

        return {
            "request_id": request.id,
            "request_number": request.request_number,
            "ticket_id": ticket.id,
            "ticket_number": ticket.queue_number,
            "person_id": person.id,
            "guest_created": guest_person is not None,
            "total_price_cents": total,
        }

    result = run_in_transaction(_op)
    current_app.logger.info(
        "Request %s submitted for person %s with ticket %s",
        result["request_number"], result["person_id"], result["ticket_number"],
    )
    if result["guest_created"]:
        publish("person", "created", result["person_id"])
    publish("request", "submitted", result["request_id"])
    publish("ticket", "issued", result["ticket_id"])
    return result


def _get_request(request_id: int) -> DocumentRequest:
    request = db.session.get(DocumentRequest, request_id)
    if request is None:
        raise NotFoundError(f"Request {request_id} not found", details={"request_id": request_id})
    return request


def get_request_detail(request_id: int) -> dict:
    request = _get_request(request_id)
    active = queue_service.active_ticket_for(request.id)

    data = request.to_dict()
    data["person"] = request.person.to_dict()
    data["items"] = [item.to_dict() for item in request.items]
    data["active_ticket"] = active.to_dict() if active else None
    data["tickets"] = [t.to_dict() for t in request.tickets]
    return data


def list_requests(*, status: str | None = None, day=None, limit: int = 200) -> list[DocumentRequest]:
    q = db.session.query(DocumentRequest)
    if status:
        q = q.filter(DocumentRequest.status == coerce_choice(status, "status", REQUEST_STATUSES))
    if day is not None:
        start, end = service_day_bounds(day)
        q = q.filter(DocumentRequest.requested_at >= start, DocumentRequest.requested_at < end)
    return q.order_by(DocumentRequest.requested_at.desc(), DocumentRequest.id.desc()).limit(limit).all()


def cancel_request(request_id: int, *, actor: str | None = None) -> DocumentRequest:
    """pending|queued -> cancelled; a waiting ticket is skipped with it."""
    def _op():
        request = lock_for_update(db.session.query(DocumentRequest).filter_by(id=request_id)).first()
        if request is None:
            raise NotFoundError(f"Request {request_id} not found", details={"request_id": request_id})
        if request.status not in CANCELLABLE_STATUSES:
            raise InvalidStateError(
                f"Request {request.request_number} cannot be cancelled (status={request.status})",
                details={"request_id": request.id, "status": request.status},
            )

        ticket = queue_service.skip_active_ticket(request, actor=actor)
        previous = request.status
        request.status = "cancelled"
        request.cancelled_at = utcnow()
        db.session.flush()

        audit_service.record(
            audit_service.RequestCancelled(request_number=request.request_number, previous_status=previous),
            entity_id=request.id,
            actor=actor,
        )
        return request, ticket.id if ticket else None

    request, ticket_id = run_in_transaction(_op)
    current_app.logger.info("Request %s cancelled", request.request_number)
    publish("request", "cancelled", request.id)
    if ticket_id is not None:
        publish("ticket", "skipped", ticket_id)
    return request


def _print(item: DocumentRequestItem, now: datetime) -> bool:
    if item.status == "printed":
        return False
    item.status = "printed"
    item.printed_at = now
    return True


def _require_printable(request: DocumentRequest) -> None:
    if request.status == "cancelled":
        raise InvalidStateError(
            f"Request {request.request_number} is cancelled",
            details={"request_id": request.id, "status": request.status},
        )


def mark_item_printed(item_id: int) -> DocumentRequestItem:
    """pending -> printed. Re-marking keeps the first printed_at."""
    def _op():
        item = db.session.get(DocumentRequestItem, item_id)
        if item is None:
            raise NotFoundError(f"Request item {item_id} not found", details={"item_id": item_id})
        _require_printable(item.request)
        changed = _print(item, utcnow())
        db.session.flush()
        return item, changed

    item, changed = run_in_transaction(_op)
    if changed:
        publish("request", "printed", item.request_id)
    return item


def mark_all_printed(request_id: int) -> dict:
    def _op():
        request = _get_request(request_id)
        _require_printable(request)
        now = utcnow()
        printed = sum(1 for item in request.items if _print(item, now))
        db.session.flush()
        return {"request_id": request.id, "printed": printed, "items": len(request.items)}

    result = run_in_transaction(_op)
    if result["printed"]:
        publish("request", "printed", request_id)
    return result



def update_item_purpose(item_id: int, purpose, *, actor: str | None = None) -> DocumentRequestItem:
    """
    Staff correction of an item's purpose before printing.

    Refused once the item is printed or the request is cancelled. Entries
    that require a purpose still need a non-blank one.
    """
    if purpose is None:
        purpose = ""
    if not isinstance(purpose, str):
        raise ValidationError("purpose must be a string", details={"field": "purpose"})
    purpose = purpose.strip()
    if len(purpose) > 255:
        raise ValidationError("purpose exceeds max length 255", details={"field": "purpose"})

    def _op():
        item = lock_for_update(db.session.query(DocumentRequestItem).filter_by(id=item_id)).first()
        if item is None:
            raise NotFoundError(f"Request item {item_id} not found", details={"item_id": item_id})
        _require_printable(item.request)
        if item.status == "printed":
            raise InvalidStateError(
                f"Request item {item_id} is already printed",
                details={"item_id": item_id, "status": item.status},
            )
        if item.service_type.requires_purpose and not purpose:
            raise ValidationError(
                f"Purpose is required for {item.service_type.name}",
                details={"item_id": item_id, "field": "purpose"},
            )

        previous = item.purpose
        item.purpose = purpose
        db.session.flush()
        audit_service.record(
            audit_service.ItemPurposeChanged(
                request_number=item.request.request_number,
                previous_purpose=previous,
                purpose=purpose,
            ),
            entity_id=item.id,
            actor=actor,
        )
        return item

    item = run_in_transaction(_op)
    publish("request", "updated", item.request_id)
    return item
