from __future__ import annotations

from ..extensions import db
from hallqueue.time_utils import to_utc_z


class ServiceType(db.Model):
    """
    Requestable document/service (e.g. "Barangay Clearance").

    Once a request item references an entry only price_cents and is_active
    may change; items keep the price they were created with.
    """
    __tablename__ = "service_types"
    __table_args__ = (
        db.UniqueConstraint("name", name="uq_service_types_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    template_key = db.Column(db.String(128), nullable=False)
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    requires_purpose = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "template_key": self.template_key,
            "price_cents": self.price_cents,
            "requires_purpose": self.requires_purpose,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
