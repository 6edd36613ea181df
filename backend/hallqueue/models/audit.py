from __future__ import annotations

from ..extensions import db
from hallqueue.time_utils import to_utc_z


class AuditEvent(db.Model):
    """
    Append-only audit trail of engine actions.

    payload shape is fixed per action (see services/audit_service.py);
    rows are never updated or deleted.
    """
    __tablename__ = "audit_events"
    __table_args__ = (
        db.Index("ix_audit_events_entity", "entity_type", "entity_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    action = db.Column(db.String(64), nullable=False, index=True)
    entity_type = db.Column(db.String(32), nullable=False)
    entity_id = db.Column(db.Integer, nullable=False)
    actor = db.Column(db.String(128), nullable=True)
    payload = db.Column(db.JSON, nullable=False, default=dict)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "action": self.action,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "actor": self.actor,
            "payload": dict(self.payload or {}),
            "occurred_at": to_utc_z(self.occurred_at),
        }
