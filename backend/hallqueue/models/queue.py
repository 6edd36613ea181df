from __future__ import annotations

from ..extensions import db
from hallqueue.time_utils import to_utc_z


TICKET_STATUSES = ("waiting", "serving", "done", "skipped")

# Legal transitions; done and skipped are terminal
TICKET_TRANSITIONS = {
    "waiting": ("serving", "skipped"),
    "serving": ("done", "skipped"),
    "done": (),
    "skipped": (),
}


class QueueTicket(db.Model):
    """
    Queue entry for one DocumentRequest.

    NUMBERING: (service_day, sequence) is unique, so "Q-001" repeats every
    local day but never twice within one.

    ACTIVE SLOT: active_request_id mirrors request_id until the ticket is
    skipped, then becomes NULL. The unique constraint on it allows any
    number of skipped tickets but only one live ticket per request.
    """
    __tablename__ = "queue_tickets"
    __table_args__ = (
        db.UniqueConstraint("service_day", "sequence", name="uq_queue_tickets_day_sequence"),
        db.UniqueConstraint("active_request_id", name="uq_queue_tickets_active_request"),
        db.Index("ix_queue_tickets_status_created", "status", "created_at"),
        db.Index("ix_queue_tickets_counter_status", "counter_number", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    request_id = db.Column(db.Integer, db.ForeignKey("document_requests.id"), nullable=False, index=True)
    active_request_id = db.Column(db.Integer, nullable=True)

    service_day = db.Column(db.Date, nullable=False, index=True)
    sequence = db.Column(db.Integer, nullable=False)
    queue_number = db.Column(db.String(16), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default="waiting", index=True)
    counter_number = db.Column(db.Integer, nullable=True)
    served_by = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False)
    started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    skipped_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    request = db.relationship("DocumentRequest", backref=db.backref("tickets", lazy=True, order_by="QueueTicket.id"))
    __mapper_args__ = {"version_id_col": version_id}

    def can_transition(self, target: str) -> bool:
        return target in TICKET_TRANSITIONS.get(self.status, ())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "request_id": self.request_id,
            "queue_number": self.queue_number,
            "service_day": self.service_day.isoformat(),
            "status": self.status,
            "counter_number": self.counter_number,
            "served_by": self.served_by,
            "created_at": to_utc_z(self.created_at),
            "started_at": to_utc_z(self.started_at) if self.started_at else None,
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
            "skipped_at": to_utc_z(self.skipped_at) if self.skipped_at else None,
            "version_id": self.version_id,
        }
