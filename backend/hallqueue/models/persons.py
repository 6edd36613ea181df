from __future__ import annotations

from ..extensions import db
from hallqueue.time_utils import to_utc_z


PERSON_STATUSES = ("active", "deceased", "moved", "pending")

SECTOR_FLAGS = (
    "is_pwd",
    "is_senior_citizen",
    "is_solo_parent",
    "is_osy",
    "is_ofw",
    "is_registered_voter",
)


def name_key(value: str | None) -> str:
    """Case- and spacing-insensitive form of a name used for matching."""
    if not value:
        return ""
    cleaned = "".join(ch if ch.isalnum() else " " for ch in value.casefold())
    return " ".join(cleaned.split())


class Person(db.Model):
    """
    Identity and demographic record.

    WHY: Document requests and statistics hang off one person record.
    Kiosk guests start as `pending` with no external id; staff approval
    assigns the next external id (e.g. "BH-00042") and makes them `active`.
    """
    __tablename__ = "persons"
    __table_args__ = (
        db.UniqueConstraint("external_id", name="uq_persons_external_id"),
        db.Index("ix_persons_last_name_key", "last_name_key"),
        db.Index("ix_persons_birthdate", "birthdate"),
        db.Index("ix_persons_status_purok", "status", "purok"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Barcode-ready sequence; NULL while pending
    external_id = db.Column(db.String(32), nullable=True)

    first_name = db.Column(db.String(128), nullable=False)
    middle_name = db.Column(db.String(128), nullable=False, default="")
    last_name = db.Column(db.String(128), nullable=False)
    suffix = db.Column(db.String(16), nullable=True)
    last_name_key = db.Column(db.String(128), nullable=False)

    sex = db.Column(db.String(8), nullable=False)
    birthdate = db.Column(db.Date, nullable=False)

    # Locality
    purok = db.Column(db.String(64), nullable=False, index=True)
    phase = db.Column(db.String(32), nullable=True)
    block = db.Column(db.String(32), nullable=True)
    lot = db.Column(db.String(32), nullable=True)

    # Sectoral information
    is_pwd = db.Column(db.Boolean, nullable=False, default=False)
    is_senior_citizen = db.Column(db.Boolean, nullable=False, default=False)
    is_solo_parent = db.Column(db.Boolean, nullable=False, default=False)
    is_osy = db.Column(db.Boolean, nullable=False, default=False)
    is_ofw = db.Column(db.Boolean, nullable=False, default=False)
    is_registered_voter = db.Column(db.Boolean, nullable=False, default=False)
    employment_status = db.Column(db.String(16), nullable=True)  # employed, unemployed

    contact_number = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def full_name(self) -> str:
        parts = [self.first_name, self.middle_name, self.last_name, self.suffix]
        return " ".join(p for p in parts if p)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "external_id": self.external_id,
            "first_name": self.first_name,
            "middle_name": self.middle_name,
            "last_name": self.last_name,
            "suffix": self.suffix,
            "full_name": self.full_name,
            "sex": self.sex,
            "birthdate": self.birthdate.isoformat() if self.birthdate else None,
            "purok": self.purok,
            "phase": self.phase,
            "block": self.block,
            "lot": self.lot,
            "is_pwd": self.is_pwd,
            "is_senior_citizen": self.is_senior_citizen,
            "is_solo_parent": self.is_solo_parent,
            "is_osy": self.is_osy,
            "is_ofw": self.is_ofw,
            "is_registered_voter": self.is_registered_voter,
            "employment_status": self.employment_status,
            "contact_number": self.contact_number,
            "email": self.email,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
