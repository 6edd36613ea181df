"""
Duplicate detection tests.

Verifies:
- Exact first/last/birthdate match is high confidence
- Case/format-only differences and close spellings are medium
- Same surname and birth year is low
- Ordering, exclusion and the result cap
"""

import pytest

from hallqueue.services import duplicate_service
from hallqueue.validation import NotFoundError, ValidationError


class TestConfidence:

    def test_exact_match_is_high(self, make_person):
        existing = make_person(first_name="Juan", last_name="Santos", birthdate="1985-03-02")

        matches = duplicate_service.find_duplicates("Juan", "Santos", "1985-03-02")

        assert len(matches) == 1
        assert matches[0]["confidence"] == "high"
        assert matches[0]["person"]["id"] == existing.id

    def test_surrounding_whitespace_still_high(self, make_person):
        make_person(first_name="Juan", last_name="Santos", birthdate="1985-03-02")

        matches = duplicate_service.find_duplicates("  Juan ", "Santos  ", "1985-03-02")

        assert matches[0]["confidence"] == "high"

    def test_case_only_difference_is_medium(self, make_person):
        make_person(first_name="Juan", last_name="Dela Cruz", birthdate="1985-03-02")

        matches = duplicate_service.find_duplicates("JUAN", "dela cruz", "1985-03-02")

        assert [m["confidence"] for m in matches] == ["medium"]

    def test_close_first_name_spelling_is_medium(self, make_person):
        make_person(first_name="Jonathan", last_name="Reyes", birthdate="2001-11-30")

        matches = duplicate_service.find_duplicates("Jonathon", "Reyes", "2001-11-30")

        assert [m["confidence"] for m in matches] == ["medium"]

    def test_distant_first_name_same_birthdate_falls_to_low(self, make_person):
        make_person(first_name="Ana", last_name="Reyes", birthdate="2001-11-30")

        matches = duplicate_service.find_duplicates("Bartolome", "Reyes", "2001-11-30")

        assert [m["confidence"] for m in matches] == ["low"]

    def test_same_surname_and_birth_year_is_low(self, make_person):
        make_person(first_name="Pedro", last_name="Garcia", birthdate="1970-01-15")

        matches = duplicate_service.find_duplicates("Jose", "Garcia", "1970-08-09")

        assert [m["confidence"] for m in matches] == ["low"]

    def test_same_birthdate_different_surname_is_not_a_match(self, make_person):
        make_person(first_name="Juan", last_name="Santos", birthdate="1985-03-02")

        assert duplicate_service.find_duplicates("Juan", "Mendoza", "1985-03-02") == []

    def test_same_surname_other_year_is_not_a_match(self, make_person):
        make_person(first_name="Juan", last_name="Santos", birthdate="1985-03-02")

        assert duplicate_service.find_duplicates("Juan", "Santos", "1986-03-02") == []


class TestOrderingAndLimits:

    def test_ordered_high_medium_low_then_id(self, make_person):
        low = make_person(first_name="Carlo", last_name="Bautista", birthdate="1999-12-01")
        medium = make_person(first_name="LIZA", last_name="Bautista", birthdate="1999-06-10")
        high = make_person(first_name="Liza", last_name="Bautista", birthdate="1999-06-10")

        matches = duplicate_service.find_duplicates("Liza", "Bautista", "1999-06-10")

        assert [m["person"]["id"] for m in matches] == [high.id, medium.id, low.id]
        assert [m["confidence"] for m in matches] == ["high", "medium", "low"]

    def test_exclude_id_skips_the_record_itself(self, make_person):
        pending = make_person(status="pending", first_name="Rosa", last_name="Lim", birthdate="1960-02-02")

        assert duplicate_service.find_duplicates("Rosa", "Lim", "1960-02-02", exclude_id=pending.id) == []

    def test_results_are_capped(self, app, make_person, monkeypatch):
        monkeypatch.setitem(app.config, "DUPLICATE_MATCH_LIMIT", 3)
        for i in range(5):
            make_person(first_name=f"Person{i}", last_name="Aquino", birthdate=f"1980-0{i + 1}-01")

        matches = duplicate_service.find_duplicates("Someone", "Aquino", "1980-12-12")

        assert len(matches) == 3

    def test_scan_for_stored_person_excludes_itself(self, make_person):
        active = make_person(first_name="Nena", last_name="Cruz", birthdate="1955-07-07")
        pending = make_person(status="pending", first_name="Nena", last_name="Cruz", birthdate="1955-07-07")

        matches = duplicate_service.find_duplicates_for_person(pending.id)

        assert [m["person"]["id"] for m in matches] == [active.id]
        assert matches[0]["confidence"] == "high"


class TestInputs:

    def test_unknown_person_id(self, db_session):
        with pytest.raises(NotFoundError):
            duplicate_service.find_duplicates_for_person(999)

    def test_missing_names_rejected(self, db_session):
        with pytest.raises(ValidationError):
            duplicate_service.find_duplicates("", "Santos", "1985-03-02")

    def test_bad_birthdate_rejected(self, db_session):
        with pytest.raises(ValidationError):
            duplicate_service.find_duplicates("Juan", "Santos", "03/02/1985")
