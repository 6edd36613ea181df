from __future__ import annotations

from ..extensions import db
from hallqueue.time_utils import to_utc_z


class SequenceCounter(db.Model):
    """
    Atomic monotonic sequences.

    WHY: Prevent race conditions when numbering tickets, requests and
    person external ids. One row per (sequence_type, scope_key), e.g.
    ("TICKET", "2026-10-18") or ("PERSON_EXTERNAL_ID", "global").
    """
    __tablename__ = "sequence_counters"
    __table_args__ = (
        db.UniqueConstraint("sequence_type", "scope_key", name="uq_sequence_counters_type_scope"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sequence_type = db.Column(db.String(32), nullable=False, index=True)
    scope_key = db.Column(db.String(32), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sequence_type": self.sequence_type,
            "scope_key": self.scope_key,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }
