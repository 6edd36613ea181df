# Overview: Population and service statistics, cached per dimension.

"""
Statistics Service - pre-aggregated counters

WHY: Dashboards read population breakdowns for tens of thousands of people.
Tabulating on every view is O(population); the incremental cache makes
reads O(1) and charges each mutation a constant number of delta writes.

STRATEGIES (STATISTICS_STRATEGY):
- recompute: tabulate the partition on every read, store nothing.
- incremental: one StatisticsSnapshot row per dimension, updated with
  signed deltas in the same transaction as the mutation.

CONSISTENCY: a snapshot must always equal a recompute at the same as_of.
reconcile_snapshots() is the periodic pass that restores that invariant if
a delta was ever missed, and rolls age brackets forward to today.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentRequest, Person, StatisticsSnapshot
from ..models.statistics import ALL_DIMENSION
from ..validation import ConflictError
from hallqueue.time_utils import age_on, service_day, to_utc_z, utcnow
from . import audit_service
from .concurrency import lock_for_update, run_in_transaction


STRATEGY_INCREMENTAL = "incremental"
STRATEGY_RECOMPUTE = "recompute"
STRATEGIES = (STRATEGY_INCREMENTAL, STRATEGY_RECOMPUTE)

AGE_BRACKETS = (
    ("0-5", 0, 5),
    ("6-12", 6, 12),
    ("13-17", 13, 17),
    ("18-35", 18, 35),
    ("36-50", 36, 50),
    ("51-65", 51, 65),
    ("66+", 66, None),
)

# sector name -> Person boolean column
SECTOR_COLUMNS = (
    ("pwd", "is_pwd"),
    ("senior_citizen", "is_senior_citizen"),
    ("solo_parent", "is_solo_parent"),
    ("osy", "is_osy"),
    ("ofw", "is_ofw"),
    ("registered_voter", "is_registered_voter"),
)
SECTORS = tuple(name for name, _ in SECTOR_COLUMNS) + ("employed", "unemployed")

STATUS_KEYS = ("active", "pending", "deceased", "moved")

SERVICE_COMPLETED = "service.requests_completed"
SERVICE_REVENUE = "service.revenue_cents"


@dataclass(frozen=True)
class PersonFacts:
    """The attributes of a person that statistics depend on."""
    purok: str
    status: str
    sex: str
    birthdate: date
    sectors: tuple[str, ...]

    @classmethod
    def from_person(cls, person) -> "PersonFacts":
        sectors = [name for name, column in SECTOR_COLUMNS if getattr(person, column)]
        if person.employment_status in ("employed", "unemployed"):
            sectors.append(person.employment_status)
        return cls(
            purok=person.purok,
            status=person.status,
            sex=person.sex,
            birthdate=person.birthdate,
            sectors=tuple(sectors),
        )


def _age_bracket(age: int) -> str | None:
    for label, low, high in AGE_BRACKETS:
        if age >= low and (high is None or age <= high):
            return label
    return None


def _by_sex(prefix: str, sex: str) -> list[str]:
    keys = [f"{prefix}.total"]
    if sex in ("male", "female"):
        keys.append(f"{prefix}.{sex}")
    return keys


def person_buckets(facts: PersonFacts, as_of: date) -> list[str]:
    """Every bucket one person contributes +1 to."""
    buckets = [f"status.{facts.status}"]
    if facts.status != "active":
        return buckets

    buckets += ["population.total", f"population.{facts.sex}"]

    bracket = _age_bracket(age_on(facts.birthdate, as_of))
    if bracket:
        buckets += _by_sex(f"age.{bracket}", facts.sex)

    for sector in facts.sectors:
        buckets += _by_sex(f"sector.{sector}", facts.sex)
    return buckets


def empty_counts() -> dict[str, int]:
    counts = {f"status.{s}": 0 for s in STATUS_KEYS}
    for key in ("total", "male", "female", "other"):
        counts[f"population.{key}"] = 0
    for label, _, _ in AGE_BRACKETS:
        for key in ("total", "male", "female"):
            counts[f"age.{label}.{key}"] = 0
    for sector in SECTORS:
        for key in ("total", "male", "female"):
            counts[f"sector.{sector}.{key}"] = 0
    counts[SERVICE_COMPLETED] = 0
    counts[SERVICE_REVENUE] = 0
    return counts


def normalize_dimension(dimension: str | None) -> str:
    if dimension is None:
        return ALL_DIMENSION
    dimension = dimension.strip()
    return dimension or ALL_DIMENSION


def strategy() -> str:
    return current_app.config.get("STATISTICS_STRATEGY", STRATEGY_INCREMENTAL)


# =============================================================================
# Recompute (source of truth)
# =============================================================================

def recompute_counts(dimension: str, as_of: date) -> dict[str, int]:
    """Full tabulation of one partition. O(partition size)."""
    counts = empty_counts()

    columns = [Person.purok, Person.status, Person.sex, Person.birthdate, Person.employment_status]
    columns += [getattr(Person, column) for _, column in SECTOR_COLUMNS]
    q = db.session.query(*columns)
    if dimension != ALL_DIMENSION:
        q = q.filter(Person.purok == dimension)

    for row in q.yield_per(1000):
        for bucket in person_buckets(PersonFacts.from_person(row), as_of):
            counts[bucket] += 1

    service_q = db.session.query(
        func.count(DocumentRequest.id),
        func.coalesce(func.sum(DocumentRequest.total_price_cents), 0),
    ).filter(DocumentRequest.status == "completed")
    if dimension != ALL_DIMENSION:
        service_q = service_q.join(Person, Person.id == DocumentRequest.person_id).filter(
            Person.purok == dimension
        )
    completed, revenue = service_q.one()
    counts[SERVICE_COMPLETED] = int(completed or 0)
    counts[SERVICE_REVENUE] = int(revenue or 0)
    return counts


def _person_service_volume(person_id: int) -> tuple[int, int]:
    completed, revenue = db.session.query(
        func.count(DocumentRequest.id),
        func.coalesce(func.sum(DocumentRequest.total_price_cents), 0),
    ).filter(
        DocumentRequest.person_id == person_id,
        DocumentRequest.status == "completed",
    ).one()
    return int(completed or 0), int(revenue or 0)


# =============================================================================
# Incremental deltas (called inside the mutation's transaction)
# =============================================================================

def _load_snapshot(dimension: str) -> StatisticsSnapshot | None:
    return lock_for_update(
        db.session.query(StatisticsSnapshot).filter_by(dimension=dimension)
    ).first()


def _store_snapshot(dimension: str, as_of: date, counts: dict[str, int]) -> StatisticsSnapshot:
    snapshot = db.session.query(StatisticsSnapshot).filter_by(dimension=dimension).first()
    if snapshot is None:
        snapshot = StatisticsSnapshot(dimension=dimension)
        db.session.add(snapshot)
    snapshot.as_of = as_of
    snapshot.counts = counts
    snapshot.last_updated = utcnow()
    try:
        db.session.flush()
    except IntegrityError as exc:
        raise ConflictError(
            f"Snapshot for {dimension!r} was created concurrently",
            details={"dimension": dimension},
        ) from exc
    return snapshot


def _apply(person_changes: dict[str, list[tuple[PersonFacts, int]]], service_deltas: dict[str, dict[str, int]]) -> None:
    # The mutation must be visible before a missing row is built by recompute
    db.session.flush()

    today = service_day()
    for dimension in set(person_changes) | set(service_deltas):
        snapshot = _load_snapshot(dimension)
        if snapshot is None or snapshot.as_of < today:
            # A fresh recompute already reflects this mutation and today's ages
            _store_snapshot(dimension, today, recompute_counts(dimension, today))
            continue

        counts = dict(snapshot.counts or {})
        for facts, sign in person_changes.get(dimension, []):
            for bucket in person_buckets(facts, snapshot.as_of):
                counts[bucket] = counts.get(bucket, 0) + sign
        for bucket, delta in service_deltas.get(dimension, {}).items():
            counts[bucket] = counts.get(bucket, 0) + delta

        # Reassign so the JSON column is flagged dirty
        snapshot.counts = counts
        snapshot.last_updated = utcnow()
    db.session.flush()


def apply_person_change(
    before: PersonFacts | None,
    after: PersonFacts | None,
    *,
    person_id: int | None = None,
) -> None:
    """
    Apply the signed delta for a person being created (before=None),
    deleted (after=None) or edited. A purok move also carries the
    person's completed-service volume to the new purok.
    """
    if strategy() != STRATEGY_INCREMENTAL:
        return
    if before == after:
        return

    person_changes: dict[str, list[tuple[PersonFacts, int]]] = {}
    for facts, sign in ((before, -1), (after, 1)):
        if facts is None:
            continue
        for dimension in (facts.purok, ALL_DIMENSION):
            person_changes.setdefault(dimension, []).append((facts, sign))

    service_deltas: dict[str, dict[str, int]] = {}
    if before and after and before.purok != after.purok and person_id is not None:
        completed, revenue = _person_service_volume(person_id)
        if completed:
            service_deltas[before.purok] = {SERVICE_COMPLETED: -completed, SERVICE_REVENUE: -revenue}
            service_deltas[after.purok] = {SERVICE_COMPLETED: completed, SERVICE_REVENUE: revenue}

    _apply(person_changes, service_deltas)


def apply_request_completed(request: DocumentRequest) -> None:
    if strategy() != STRATEGY_INCREMENTAL:
        return
    delta = {SERVICE_COMPLETED: 1, SERVICE_REVENUE: request.total_price_cents}
    purok = request.person.purok
    _apply({}, {purok: dict(delta), ALL_DIMENSION: dict(delta)})


# =============================================================================
# Reads
# =============================================================================

def get_snapshot(dimension: str | None = None) -> dict:
    """
    Snapshot for a purok, or for everyone when dimension is None/"*".

    Incremental strategy: O(1) read of the cached row. A missing row, or one
    whose age brackets were evaluated before today, is answered with a
    recompute that is not stored; reads never write. The next mutation in
    that dimension (or reconcile_snapshots) stores the fresh row.
    """
    dimension = normalize_dimension(dimension)
    today = service_day()

    if strategy() == STRATEGY_RECOMPUTE:
        return {
            "dimension": dimension,
            "as_of": today.isoformat(),
            "counts": recompute_counts(dimension, today),
            "last_updated": to_utc_z(utcnow()),
            "strategy": STRATEGY_RECOMPUTE,
        }

    snapshot = db.session.query(StatisticsSnapshot).filter_by(dimension=dimension).first()
    if snapshot is None or snapshot.as_of < today:
        return {
            "dimension": dimension,
            "as_of": today.isoformat(),
            "counts": recompute_counts(dimension, today),
            "last_updated": to_utc_z(utcnow()),
            "strategy": STRATEGY_INCREMENTAL,
        }

    result = snapshot.to_dict()
    result["strategy"] = STRATEGY_INCREMENTAL
    return result


def list_dimensions() -> list[str]:
    puroks = {row[0] for row in db.session.query(Person.purok).distinct()}
    stored = {row[0] for row in db.session.query(StatisticsSnapshot.dimension)}
    return [ALL_DIMENSION] + sorted((puroks | stored) - {ALL_DIMENSION})


# =============================================================================
# Reconciliation
# =============================================================================

def _diff(cached: dict[str, int], actual: dict[str, int]) -> dict[str, dict[str, int]]:
    drift = {}
    for key in sorted(set(cached) | set(actual)):
        if cached.get(key, 0) != actual.get(key, 0):
            drift[key] = {"cached": cached.get(key, 0), "actual": actual.get(key, 0)}
    return drift


def reconcile_snapshots(actor: str | None = None) -> list[dict]:
    """
    Recompute every dimension and overwrite its snapshot.

    Drift is measured against a recompute at the row's own as_of, so age
    roll-forward is not reported as drift; only missed deltas are.
    Returns one report per dimension.
    """
    def _op():
        today = service_day()
        reports = []
        for dimension in list_dimensions():
            actual_today = recompute_counts(dimension, today)
            snapshot = db.session.query(StatisticsSnapshot).filter_by(dimension=dimension).first()

            drift: dict = {}
            if snapshot is not None:
                expected = actual_today if snapshot.as_of == today else recompute_counts(dimension, snapshot.as_of)
                drift = _diff(dict(snapshot.counts or {}), expected)
                if drift:
                    current_app.logger.warning(
                        "Statistics drift in dimension %r: %s", dimension, drift
                    )

            _store_snapshot(dimension, today, actual_today)
            reports.append({"dimension": dimension, "drift": drift, "created": snapshot is None})

        audit_service.record(
            audit_service.StatisticsReconciled(
                dimensions=len(reports),
                drifted_dimensions=[r["dimension"] for r in reports if r["drift"]],
            ),
            entity_id=0,
            actor=actor,
        )
        return reports

    reports = run_in_transaction(_op)
    from .notification_service import publish
    publish("statistics", "reconciled")
    return reports
