# Overview: Append-only audit trail with one payload shape per action kind.

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import ClassVar, Optional

from ..extensions import db
from ..models import AuditEvent
from hallqueue.time_utils import utcnow
"""
Audit invariants

- Append-only: events are never updated or deleted.
- Events are written inside the same DB transaction as the change they record.
- The action set is closed: each action has exactly one payload dataclass.
"""


@dataclass(frozen=True)
class AuditPayload:
    action: ClassVar[str] = ""
    entity_type: ClassVar[str] = ""

    def to_json(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class RequestSubmitted(AuditPayload):
    action: ClassVar[str] = "request.submitted"
    entity_type: ClassVar[str] = "request"

    request_number: str
    ticket_number: str
    person_id: int
    guest_created: bool
    service_type_ids: list[int] = field(default_factory=list)
    total_price_cents: int = 0


@dataclass(frozen=True)
class RequestCancelled(AuditPayload):
    action: ClassVar[str] = "request.cancelled"
    entity_type: ClassVar[str] = "request"

    request_number: str
    previous_status: str


@dataclass(frozen=True)
class ItemPurposeChanged(AuditPayload):
    action: ClassVar[str] = "request_item.purpose_changed"
    entity_type: ClassVar[str] = "request_item"

    request_number: str
    previous_purpose: str
    purpose: str


@dataclass(frozen=True)
class TicketTransition(AuditPayload):
    action: ClassVar[str] = "ticket.transition"
    entity_type: ClassVar[str] = "ticket"

    queue_number: str
    from_status: Optional[str]
    to_status: str
    counter_number: Optional[int] = None


@dataclass(frozen=True)
class PersonCreated(AuditPayload):
    action: ClassVar[str] = "person.created"
    entity_type: ClassVar[str] = "person"

    status: str
    external_id: Optional[str] = None


@dataclass(frozen=True)
class PersonApproved(AuditPayload):
    action: ClassVar[str] = "person.approved"
    entity_type: ClassVar[str] = "person"

    external_id: str


@dataclass(frozen=True)
class PersonRejected(AuditPayload):
    action: ClassVar[str] = "person.rejected"
    entity_type: ClassVar[str] = "person"

    full_name: str
    birthdate: str
    discarded_requests: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class PersonRejectBlocked(AuditPayload):
    action: ClassVar[str] = "person.reject_blocked"
    entity_type: ClassVar[str] = "person"

    request_numbers: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class PersonUpdated(AuditPayload):
    action: ClassVar[str] = "person.updated"
    entity_type: ClassVar[str] = "person"

    changed_fields: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ServiceTypeChanged(AuditPayload):
    action: ClassVar[str] = "service_type.changed"
    entity_type: ClassVar[str] = "service_type"

    changed_fields: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class StatisticsReconciled(AuditPayload):
    action: ClassVar[str] = "statistics.reconciled"
    entity_type: ClassVar[str] = "statistics"

    dimensions: int
    drifted_dimensions: list[str] = field(default_factory=list)


def record(payload: AuditPayload, *, entity_id: int, actor: str | None = None) -> AuditEvent:
    """
    Append an audit event in the current transaction.

    - No domain logic here.
    - flush() assigns the id without committing.
    """
    event = AuditEvent(
        action=payload.action,
        entity_type=payload.entity_type,
        entity_id=entity_id,
        actor=actor,
        payload=payload.to_json(),
        occurred_at=utcnow(),
    )
    db.session.add(event)
    db.session.flush()
    return event


def list_events(*, entity_type: str | None = None, entity_id: int | None = None, limit: int = 100) -> list[AuditEvent]:
    q = db.session.query(AuditEvent)
    if entity_type:
        q = q.filter(AuditEvent.entity_type == entity_type)
    if entity_id is not None:
        q = q.filter(AuditEvent.entity_id == entity_id)
    return q.order_by(AuditEvent.occurred_at.desc(), AuditEvent.id.desc()).limit(limit).all()
