from __future__ import annotations

from ..extensions import db
from hallqueue.time_utils import to_utc_z


REQUEST_STATUSES = ("pending", "queued", "serving", "completed", "cancelled")
ITEM_STATUSES = ("pending", "printed")


class DocumentRequest(db.Model):
    """
    One citizen visit: the documents asked for and the ticket that serves them.

    total_price_cents is the sum of the items' unit_price_cents snapshots
    taken at creation; later catalog price changes never reprice it.
    """
    __tablename__ = "document_requests"
    __table_args__ = (
        db.UniqueConstraint("request_number", name="uq_document_requests_request_number"),
        db.Index("ix_document_requests_status_requested", "status", "requested_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    person_id = db.Column(db.Integer, db.ForeignKey("persons.id"), nullable=False, index=True)

    # Human-readable number (e.g., "REQ-20261018-007")
    request_number = db.Column(db.String(64), nullable=False)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    total_price_cents = db.Column(db.Integer, nullable=False, default=0)

    requested_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    person = db.relationship("Person", backref=db.backref("requests", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "person_id": self.person_id,
            "request_number": self.request_number,
            "status": self.status,
            "total_price_cents": self.total_price_cents,
            "requested_at": to_utc_z(self.requested_at),
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "version_id": self.version_id,
        }


class DocumentRequestItem(db.Model):
    """One requested service within a DocumentRequest."""
    __tablename__ = "document_request_items"
    __table_args__ = (
        db.Index("ix_document_request_items_request_status", "request_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    request_id = db.Column(db.Integer, db.ForeignKey("document_requests.id"), nullable=False, index=True)
    service_type_id = db.Column(db.Integer, db.ForeignKey("service_types.id"), nullable=False, index=True)

    purpose = db.Column(db.String(255), nullable=False, default="")
    unit_price_cents = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    printed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    request = db.relationship("DocumentRequest", backref=db.backref("items", lazy=True, order_by="DocumentRequestItem.id"))
    service_type = db.relationship("ServiceType")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "request_id": self.request_id,
            "service_type_id": self.service_type_id,
            "service_name": self.service_type.name if self.service_type else None,
            "purpose": self.purpose,
            "unit_price_cents": self.unit_price_cents,
            "status": self.status,
            "printed_at": to_utc_z(self.printed_at) if self.printed_at else None,
            "created_at": to_utc_z(self.created_at),
        }
