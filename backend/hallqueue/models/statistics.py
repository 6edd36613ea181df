from __future__ import annotations

from ..extensions import db
from hallqueue.time_utils import to_utc_z


ALL_DIMENSION = "*"


class StatisticsSnapshot(db.Model):
    """
    Denormalized population/service rollup for one dimension.

    dimension is a purok name, or "*" for the whole population. counts is a
    flat mapping of bucket key -> int (e.g. "age.18-35.female").

    This is a cache: it is always derivable by recomputation and may lag
    one commit behind. Age brackets are evaluated as of `as_of`.
    """
    __tablename__ = "statistics_snapshots"
    __table_args__ = (
        db.UniqueConstraint("dimension", name="uq_statistics_snapshots_dimension"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    dimension = db.Column(db.String(64), nullable=False)
    as_of = db.Column(db.Date, nullable=False)
    counts = db.Column(db.JSON, nullable=False, default=dict)
    last_updated = db.Column(db.DateTime(timezone=True), nullable=False)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "dimension": self.dimension,
            "as_of": self.as_of.isoformat(),
            "counts": dict(self.counts or {}),
            "last_updated": to_utc_z(self.last_updated),
        }
