# Overview: Advisory duplicate-person detection for the approval review.

"""
Candidates are narrowed with the two indexed columns (birthdate,
last_name_key) before any string comparison runs, so the scan stays
proportional to people sharing a birthday or surname, not to the
population.

Confidence:
- high: first, last name and birthdate identical after trimming
- medium: same normalized last name and birthdate, and the first name is
  equal after normalization or within the fuzzy distance threshold
- low: same normalized last name and the same birth year
"""

from __future__ import annotations

from datetime import date

from flask import current_app
from rapidfuzz.distance import Levenshtein
from sqlalchemy import or_

from ..extensions import db
from ..models import Person
from ..models.persons import name_key
from ..validation import NotFoundError, ValidationError, coerce_date


CONFIDENCE_ORDER = {"high": 0, "medium": 1, "low": 2}


def _classify(person: Person, first_name: str, last_name: str, birthdate: date) -> tuple[str, str] | None:
    if (
        person.birthdate == birthdate
        and person.first_name.strip() == first_name
        and person.last_name.strip() == last_name
    ):
        return "high", "Exact match on first name, last name and birthdate"

    same_last = person.last_name_key == name_key(last_name)
    if not same_last:
        return None

    if person.birthdate == birthdate:
        candidate_first = name_key(person.first_name)
        wanted_first = name_key(first_name)
        if candidate_first == wanted_first:
            return "medium", "Same name after normalization and same birthdate"

        threshold = current_app.config.get("DUPLICATE_FUZZY_THRESHOLD", 0.2)
        distance = Levenshtein.normalized_distance(candidate_first, wanted_first)
        if distance <= threshold:
            return "medium", f"Similar first name (distance {distance:.2f}), same last name and birthdate"

    if person.birthdate.year == birthdate.year:
        return "low", "Same last name and birth year"
    return None


def find_duplicates(
    first_name: str,
    last_name: str,
    birthdate,
    exclude_id: int | None = None,
) -> list[dict]:
    """Pure read. Returns [{person, confidence, reason}] best match first."""
    first_name = (first_name or "").strip()
    last_name = (last_name or "").strip()
    if not first_name or not last_name:
        raise ValidationError("first_name and last_name are required")
    birthdate = coerce_date(birthdate, "birthdate")

    q = db.session.query(Person).filter(
        or_(Person.birthdate == birthdate, Person.last_name_key == name_key(last_name))
    )
    if exclude_id is not None:
        q = q.filter(Person.id != exclude_id)

    matches = []
    for person in q.all():
        classified = _classify(person, first_name, last_name, birthdate)
        if classified is None:
            continue
        confidence, reason = classified
        matches.append((CONFIDENCE_ORDER[confidence], person.id, person, confidence, reason))

    matches.sort(key=lambda m: (m[0], m[1]))
    limit = current_app.config.get("DUPLICATE_MATCH_LIMIT", 10)

    return [
        {"person": person.to_dict(), "confidence": confidence, "reason": reason}
        for _, _, person, confidence, reason in matches[:limit]
    ]


def find_duplicates_for_person(person_id: int) -> list[dict]:
    person = db.session.get(Person, person_id)
    if person is None:
        raise NotFoundError(f"Person {person_id} not found", details={"person_id": person_id})
    return find_duplicates(person.first_name, person.last_name, person.birthdate, exclude_id=person.id)
