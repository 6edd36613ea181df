# Overview: Queue tickets: daily numbering and the waiting/serving/done/skipped state machine.

"""
Queue Service

STATE MACHINE:
    waiting -> serving -> done
    waiting -> skipped
    serving -> skipped
done and skipped are terminal. Anything else raises InvalidStateError and
leaves the ticket untouched.

NUMBERING: "Q-001" resets at the first ticket of each local service day.
The per-day TICKET counter row is incremented in the same transaction as
the ticket insert, so a rolled-back submission never burns a number, and
UNIQUE(service_day, sequence) turns any leftover race into a retry.

SKIPS: a skip frees the request's active-ticket slot but never re-queues
automatically. Staff call requeue_request() to issue a fresh number.
"""

from __future__ import annotations

from datetime import date, datetime

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentRequest, QueueTicket
from ..models.queue import TICKET_STATUSES
from ..validation import ConflictError, InvalidStateError, NotFoundError, ValidationError, coerce_int
from hallqueue.time_utils import service_day, service_day_bounds, utcnow
from . import audit_service, sequence_service, statistics_service
from .concurrency import lock_for_update, run_in_transaction
from .notification_service import publish


def _get_ticket_for_update(ticket_id: int) -> QueueTicket:
    ticket = lock_for_update(db.session.query(QueueTicket).filter_by(id=ticket_id)).first()
    if ticket is None:
        raise NotFoundError(f"Ticket {ticket_id} not found", details={"ticket_id": ticket_id})
    return ticket


def _get_request_for_update(request_id: int) -> DocumentRequest:
    request = lock_for_update(db.session.query(DocumentRequest).filter_by(id=request_id)).first()
    if request is None:
        raise NotFoundError(f"Request {request_id} not found", details={"request_id": request_id})
    return request


def active_ticket_for(request_id: int) -> QueueTicket | None:
    return db.session.query(QueueTicket).filter(QueueTicket.active_request_id == request_id).first()


def _validate_counter(counter_number) -> int:
    counter = coerce_int(counter_number, "counter_number")
    if counter < 1:
        raise ValidationError("counter_number must be >= 1", details={"field": "counter_number"})
    return counter


def _require_transition(ticket: QueueTicket, target: str) -> None:
    if not ticket.can_transition(target):
        raise InvalidStateError(
            f"Ticket {ticket.queue_number} cannot go from {ticket.status} to {target}",
            details={"ticket_id": ticket.id, "status": ticket.status, "target": target},
        )


def _transition(ticket: QueueTicket, target: str, *, actor: str | None) -> str:
    _require_transition(ticket, target)
    previous = ticket.status
    ticket.status = target
    audit_service.record(
        audit_service.TicketTransition(
            queue_number=ticket.queue_number,
            from_status=previous,
            to_status=target,
            counter_number=ticket.counter_number,
        ),
        entity_id=ticket.id,
        actor=actor,
    )
    return previous


def create_ticket(request: DocumentRequest, *, now: datetime | None = None, actor: str | None = None) -> QueueTicket:
    """
    Mint one waiting ticket for request inside the caller's transaction.

    Raises a non-retryable ConflictError if the request already has an
    active (waiting or serving) ticket.
    """
    existing = active_ticket_for(request.id)
    if existing is not None:
        raise ConflictError(
            f"Request {request.request_number} already has active ticket {existing.queue_number}",
            details={"request_id": request.id, "ticket_id": existing.id},
            retryable=False,
        )

    now = now or utcnow()
    day = service_day(now)
    sequence = sequence_service.next_value(sequence_service.TICKET, sequence_service.day_scope(day))

    ticket = QueueTicket(
        request_id=request.id,
        active_request_id=request.id,
        service_day=day,
        sequence=sequence,
        queue_number=sequence_service.format_ticket_number(sequence),
        status="waiting",
        created_at=now,
    )
    db.session.add(ticket)
    try:
        db.session.flush()
    except IntegrityError as exc:
        raise ConflictError(
            "Ticket number collided with a concurrent submission",
            details={"service_day": day.isoformat(), "sequence": sequence},
        ) from exc

    audit_service.record(
        audit_service.TicketTransition(
            queue_number=ticket.queue_number,
            from_status=None,
            to_status="waiting",
        ),
        entity_id=ticket.id,
        actor=actor,
    )
    return ticket


def issue_ticket(request_id: int, *, now: datetime | None = None, actor: str | None = None) -> QueueTicket:
    """Standalone issue for a pending or queued request without an active ticket."""
    def _op():
        request = _get_request_for_update(request_id)
        if request.status not in ("pending", "queued"):
            raise InvalidStateError(
                f"Request {request.request_number} cannot be queued (status={request.status})",
                details={"request_id": request.id, "status": request.status},
            )
        ticket = create_ticket(request, now=now, actor=actor)
        request.status = "queued"
        return ticket

    ticket = run_in_transaction(_op)
    current_app.logger.info("Ticket %s issued for request %s", ticket.queue_number, request_id)
    publish("ticket", "issued", ticket.id)
    return ticket


def requeue_request(request_id: int, *, now: datetime | None = None, actor: str | None = None) -> QueueTicket:
    """
    Issue a fresh ticket after the previous one was skipped.

    The request must still be open (queued or serving) and hold no active
    ticket. It returns to queued.
    """
    def _op():
        request = _get_request_for_update(request_id)
        if request.status not in ("queued", "serving"):
            raise InvalidStateError(
                f"Request {request.request_number} cannot be requeued (status={request.status})",
                details={"request_id": request.id, "status": request.status},
            )
        ticket = create_ticket(request, now=now, actor=actor)
        request.status = "queued"
        return ticket

    ticket = run_in_transaction(_op)
    current_app.logger.info("Request %s requeued as %s", request_id, ticket.queue_number)
    publish("ticket", "issued", ticket.id)
    publish("request", "requeued", request_id)
    return ticket


def _start_serving(ticket: QueueTicket, counter: int, served_by: str | None, actor: str | None) -> QueueTicket:
    _require_transition(ticket, "serving")
    ticket.counter_number = counter
    ticket.served_by = served_by
    ticket.started_at = utcnow()
    _transition(ticket, "serving", actor=actor)

    request = ticket.request
    if request.status == "queued":
        request.status = "serving"
    db.session.flush()
    return ticket


def call_ticket(ticket_id: int, counter_number, served_by: str | None = None) -> QueueTicket:
    """waiting -> serving at a counter."""
    counter = _validate_counter(counter_number)

    def _op():
        ticket = _get_ticket_for_update(ticket_id)
        return _start_serving(ticket, counter, served_by, served_by)

    ticket = run_in_transaction(_op)
    current_app.logger.info("Ticket %s called to counter %s by %s", ticket.queue_number, counter, served_by)
    publish("ticket", "called", ticket.id)
    publish("request", "serving", ticket.request_id)
    return ticket


def call_next(counter_number, served_by: str | None = None) -> QueueTicket:
    """Call the oldest waiting ticket. NotFoundError when nobody is waiting."""
    counter = _validate_counter(counter_number)

    def _op():
        ticket = lock_for_update(
            db.session.query(QueueTicket)
            .filter(QueueTicket.status == "waiting")
            .order_by(QueueTicket.created_at.asc(), QueueTicket.id.asc())
        ).first()
        if ticket is None:
            raise NotFoundError("No tickets are waiting")
        return _start_serving(ticket, counter, served_by, served_by)

    ticket = run_in_transaction(_op)
    current_app.logger.info("Ticket %s called to counter %s by %s", ticket.queue_number, counter, served_by)
    publish("ticket", "called", ticket.id)
    publish("request", "serving", ticket.request_id)
    return ticket


def complete_ticket(ticket_id: int, *, actor: str | None = None) -> QueueTicket:
    """serving -> done; the request is completed and counted in statistics."""
    def _op():
        ticket = _get_ticket_for_update(ticket_id)
        _transition(ticket, "done", actor=actor)
        now = utcnow()
        ticket.completed_at = now

        request = ticket.request
        request.status = "completed"
        request.completed_at = now
        db.session.flush()

        statistics_service.apply_request_completed(request)
        return ticket

    ticket = run_in_transaction(_op)
    current_app.logger.info("Ticket %s done", ticket.queue_number)
    publish("ticket", "completed", ticket.id)
    publish("request", "completed", ticket.request_id)
    publish("statistics", "updated")
    return ticket


def skip_ticket(ticket_id: int, *, actor: str | None = None) -> QueueTicket:
    """waiting|serving -> skipped. The request status is left as it is."""
    def _op():
        ticket = _get_ticket_for_update(ticket_id)
        _transition(ticket, "skipped", actor=actor)
        ticket.skipped_at = utcnow()
        ticket.active_request_id = None
        db.session.flush()
        return ticket

    ticket = run_in_transaction(_op)
    current_app.logger.info("Ticket %s skipped", ticket.queue_number)
    publish("ticket", "skipped", ticket.id)
    return ticket


def skip_active_ticket(request: DocumentRequest, *, actor: str | None = None) -> QueueTicket | None:
    """Inside a caller's transaction: retire the request's waiting ticket, if any."""
    ticket = active_ticket_for(request.id)
    if ticket is None:
        return None
    if ticket.status != "waiting":
        raise InvalidStateError(
            f"Ticket {ticket.queue_number} is already {ticket.status}",
            details={"ticket_id": ticket.id, "status": ticket.status},
        )
    _transition(ticket, "skipped", actor=actor)
    ticket.skipped_at = utcnow()
    ticket.active_request_id = None
    db.session.flush()
    return ticket


# =============================================================================
# Read-only feeds
# =============================================================================

def get_display_data(done_limit: int | None = None) -> dict:
    """
    Public display feed. Pure read: same state, same answer.

    waiting and serving oldest-first; done newest-first, at most done_limit.
    """
    if done_limit is None:
        done_limit = current_app.config.get("QUEUE_DONE_LIMIT", 10)
    done_limit = coerce_int(done_limit, "done_limit")
    if done_limit < 0:
        raise ValidationError("done_limit must be >= 0", details={"field": "done_limit"})

    def _by_status(status: str):
        return (
            db.session.query(QueueTicket)
            .filter(QueueTicket.status == status)
            .order_by(QueueTicket.created_at.asc(), QueueTicket.id.asc())
            .all()
        )

    done = (
        db.session.query(QueueTicket)
        .filter(QueueTicket.status == "done")
        .order_by(QueueTicket.completed_at.desc(), QueueTicket.id.desc())
        .limit(done_limit)
        .all()
    )

    return {
        "waiting": [t.to_dict() for t in _by_status("waiting")],
        "serving": [t.to_dict() for t in _by_status("serving")],
        "done": [t.to_dict() for t in done],
    }


def _enriched(ticket: QueueTicket) -> dict:
    data = ticket.to_dict()
    request = ticket.request
    person = request.person
    data["request"] = {
        "id": request.id,
        "request_number": request.request_number,
        "status": request.status,
        "total_price_cents": request.total_price_cents,
        "items": [item.to_dict() for item in request.items],
    }
    data["person"] = {
        "id": person.id,
        "external_id": person.external_id,
        "full_name": person.full_name,
        "status": person.status,
        "purok": person.purok,
    }
    return data


def get_staff_queue(counter_number=None) -> dict:
    """
    Staff console feed: tickets with their request and person.

    counter_number narrows serving and today's done list to one counter;
    the waiting list is shared by every counter.
    """
    counter = _validate_counter(counter_number) if counter_number not in (None, "") else None

    waiting = (
        db.session.query(QueueTicket)
        .filter(QueueTicket.status == "waiting")
        .order_by(QueueTicket.created_at.asc(), QueueTicket.id.asc())
        .all()
    )

    serving_q = db.session.query(QueueTicket).filter(QueueTicket.status == "serving")
    start, end = service_day_bounds(service_day())
    done_q = db.session.query(QueueTicket).filter(
        QueueTicket.status == "done",
        QueueTicket.completed_at >= start,
        QueueTicket.completed_at < end,
    )
    if counter is not None:
        serving_q = serving_q.filter(QueueTicket.counter_number == counter)
        done_q = done_q.filter(QueueTicket.counter_number == counter)

    serving = serving_q.order_by(QueueTicket.started_at.asc(), QueueTicket.id.asc()).all()
    done = done_q.order_by(QueueTicket.completed_at.desc(), QueueTicket.id.desc()).all()

    return {
        "counter_number": counter,
        "waiting": [_enriched(t) for t in waiting],
        "serving": [_enriched(t) for t in serving],
        "done": [_enriched(t) for t in done],
        "counts": {
            "waiting": len(waiting),
            "serving": len(serving),
            "done_today": len(done),
            "issued_today": get_queue_volume()["tickets"],
        },
    }


def get_queue_volume(day: date | None = None) -> dict:
    """
    Tickets issued and requests submitted on one service day (default today).

    Requeued requests count once in `requests` and once per ticket in
    `tickets`. by_status is the current status of that day's tickets.
    """
    day = day or service_day()
    by_status = {status: 0 for status in TICKET_STATUSES}
    for status, count in (
        db.session.query(QueueTicket.status, func.count(QueueTicket.id))
        .filter(QueueTicket.service_day == day)
        .group_by(QueueTicket.status)
    ):
        by_status[status] = int(count)

    start, end = service_day_bounds(day)
    requests = (
        db.session.query(func.count(DocumentRequest.id))
        .filter(DocumentRequest.requested_at >= start, DocumentRequest.requested_at < end)
        .scalar()
    )
    return {
        "service_day": day.isoformat(),
        "tickets": sum(by_status.values()),
        "requests": int(requests or 0),
        "by_status": by_status,
    }
