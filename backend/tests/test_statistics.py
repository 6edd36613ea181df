"""
Statistics aggregator tests.

Verifies:
- Incremental snapshots equal a fresh recompute after any mix of mutations
- Bucket semantics (active-only population, age brackets, sectors)
- Service volume follows completions and purok moves
- Reconciliation reports and repairs drift
"""

from datetime import timedelta

import pytest

from hallqueue.extensions import db
from hallqueue.models import StatisticsSnapshot
from hallqueue.models.statistics import ALL_DIMENSION
from hallqueue.services import person_service, queue_service, request_service, statistics_service
from hallqueue.time_utils import service_day

from conftest import birthdate_for_age, person_payload


def _assert_matches_recompute(dimension):
    snapshot = db.session.query(StatisticsSnapshot).filter_by(dimension=dimension).one()
    expected = statistics_service.recompute_counts(dimension, snapshot.as_of)
    assert snapshot.counts == expected


def _complete(request_id):
    ticket = queue_service.active_ticket_for(request_id)
    queue_service.call_ticket(ticket.id, 1)
    queue_service.complete_ticket(ticket.id)


class TestBuckets:

    def test_population_counts_active_only(self, make_person):
        make_person(sex="female", purok="Purok 1")
        make_person(sex="male", purok="Purok 1", first_name="Jose")
        make_person(status="pending", sex="male", purok="Purok 1", first_name="Guest")

        counts = statistics_service.get_snapshot("Purok 1")["counts"]

        assert counts["population.total"] == 2
        assert counts["population.female"] == 1
        assert counts["population.male"] == 1
        assert counts["status.active"] == 2
        assert counts["status.pending"] == 1

    @pytest.mark.parametrize("age,bracket", [
        (0, "0-5"), (5, "0-5"), (6, "6-12"), (13, "13-17"), (17, "13-17"),
        (18, "18-35"), (36, "36-50"), (51, "51-65"), (65, "51-65"), (66, "66+"), (90, "66+"),
    ])
    def test_age_brackets(self, make_person, age, bracket):
        make_person(birthdate=birthdate_for_age(age).isoformat(), sex="male")

        counts = statistics_service.get_snapshot()["counts"]

        assert counts[f"age.{bracket}.total"] == 1
        assert counts[f"age.{bracket}.male"] == 1

    def test_sectors_and_employment(self, make_person):
        make_person(is_pwd=True, is_registered_voter=True, employment_status="employed")

        counts = statistics_service.get_snapshot()["counts"]

        assert counts["sector.pwd.female"] == 1
        assert counts["sector.registered_voter.total"] == 1
        assert counts["sector.employed.total"] == 1
        assert counts["sector.unemployed.total"] == 0
        assert counts["sector.ofw.total"] == 0

    def test_unknown_purok_reads_as_zero_without_storing(self, db_session):
        snapshot = statistics_service.get_snapshot("Nowhere")

        assert snapshot["counts"]["population.total"] == 0
        assert db.session.query(StatisticsSnapshot).filter_by(dimension="Nowhere").count() == 0


class TestIncrementalMatchesRecompute:

    def test_after_mixed_mutations(self, make_person, clearance):
        a = make_person(purok="Purok 1", is_pwd=True)
        b = make_person(purok="Purok 2", first_name="Ben", sex="male", birthdate=birthdate_for_age(70).isoformat())
        guest = request_service.submit_request(
            guest=person_payload(purok="Purok 2", first_name="Gina"),
            items=[{"service_type_id": clearance.id}],
        )
        rejected = make_person(status="pending", purok="Purok 1", first_name="Temp")

        person_service.approve_pending(guest["person_id"])
        person_service.reject_pending(rejected.id)
        person_service.update_person(a.id, {"is_pwd": False, "is_solo_parent": True})
        person_service.update_person(b.id, {"status": "deceased"})
        _complete(guest["request_id"])

        for dimension in (ALL_DIMENSION, "Purok 1", "Purok 2"):
            _assert_matches_recompute(dimension)

        counts = statistics_service.get_snapshot("Purok 2")["counts"]
        assert counts["service.requests_completed"] == 1
        assert counts["service.revenue_cents"] == 5000
        assert counts["status.deceased"] == 1

    def test_purok_move_carries_service_volume(self, make_person, clearance):
        person = make_person(purok="Purok 1")
        result = request_service.submit_request(person_id=person.id, items=[{"service_type_id": clearance.id}])
        _complete(result["request_id"])

        person_service.update_person(person.id, {"purok": "Purok 3"})

        old = statistics_service.get_snapshot("Purok 1")["counts"]
        new = statistics_service.get_snapshot("Purok 3")["counts"]
        assert old["service.requests_completed"] == 0
        assert old["population.total"] == 0
        assert new["service.requests_completed"] == 1
        assert new["service.revenue_cents"] == 5000
        for dimension in (ALL_DIMENSION, "Purok 1", "Purok 3"):
            _assert_matches_recompute(dimension)

    def test_stale_row_is_rolled_forward_on_read(self, make_person):
        make_person()
        snapshot = db.session.query(StatisticsSnapshot).filter_by(dimension=ALL_DIMENSION).one()
        snapshot.as_of = service_day() - timedelta(days=1)
        db.session.commit()

        fresh = statistics_service.get_snapshot()

        assert fresh["as_of"] == service_day().isoformat()


class TestRecomputeStrategy:

    def test_recompute_stores_nothing(self, app, make_person, monkeypatch):
        monkeypatch.setitem(app.config, "STATISTICS_STRATEGY", "recompute")
        make_person()

        snapshot = statistics_service.get_snapshot()

        assert snapshot["strategy"] == "recompute"
        assert snapshot["counts"]["population.total"] == 1
        assert db.session.query(StatisticsSnapshot).count() == 0


class TestReconcile:

    def test_reports_and_repairs_drift(self, make_person):
        make_person(purok="Purok 1")
        make_person(purok="Purok 2", first_name="Ben")

        snapshot = db.session.query(StatisticsSnapshot).filter_by(dimension="Purok 1").one()
        tampered = dict(snapshot.counts)
        tampered["population.total"] += 5
        snapshot.counts = tampered
        db.session.commit()

        reports = {r["dimension"]: r for r in statistics_service.reconcile_snapshots(actor="cli")}

        assert reports["Purok 1"]["drift"] == {"population.total": {"cached": 6, "actual": 1}}
        assert reports["Purok 2"]["drift"] == {}
        assert reports[ALL_DIMENSION]["drift"] == {}
        assert statistics_service.get_snapshot("Purok 1")["counts"]["population.total"] == 1

    def test_age_roll_forward_is_not_drift(self, make_person):
        make_person(birthdate=birthdate_for_age(19).isoformat())
        snapshot = db.session.query(StatisticsSnapshot).filter_by(dimension=ALL_DIMENSION).one()
        # Aged 17 back then. Pretend the row was last evaluated two years ago, consistently
        as_of = service_day().replace(year=service_day().year - 2, month=6, day=1)
        snapshot.as_of = as_of
        snapshot.counts = statistics_service.recompute_counts(ALL_DIMENSION, as_of)
        db.session.commit()

        reports = {r["dimension"]: r for r in statistics_service.reconcile_snapshots()}

        assert reports[ALL_DIMENSION]["drift"] == {}
        counts = statistics_service.get_snapshot()["counts"]
        assert counts["age.13-17.total"] == 0
        assert counts["age.18-35.total"] == 1


@pytest.fixture
def world(make_person, clearance):
    resident_a = make_person(purok="Purok 1", is_pwd=True)
    resident_b = make_person(
        purok="Purok 2", first_name="Ben", sex="male", birthdate=birthdate_for_age(67).isoformat()
    )
    guest = request_service.submit_request(
        guest=person_payload(purok="Purok 2", first_name="Gina"),
        items=[{"service_type_id": clearance.id}],
    )
    b_request = request_service.submit_request(
        person_id=resident_b.id, items=[{"service_type_id": clearance.id}]
    )
    return {
        "a": resident_a.id,
        "b": resident_b.id,
        "b_request": b_request["request_id"],
        "guest": guest["person_id"],
        "guest_request": guest["request_id"],
        "service_type_id": clearance.id,
    }


def _skip_and_requeue(world):
    ticket = queue_service.active_ticket_for(world["b_request"])
    queue_service.skip_ticket(ticket.id)
    queue_service.requeue_request(world["b_request"])


def _cancel_fresh_request(world):
    result = request_service.submit_request(
        person_id=world["a"], items=[{"service_type_id": world["service_type_id"]}]
    )
    request_service.cancel_request(result["request_id"])


STEPS = {
    "move_guest": lambda w: person_service.update_person(w["guest"], {"purok": "Purok 3"}),
    "approve_guest": lambda w: person_service.approve_pending(w["guest"]),
    "skip_requeue_b": _skip_and_requeue,
    "complete_b": lambda w: _complete(w["b_request"]),
    "complete_guest": lambda w: _complete(w["guest_request"]),
    "cancel_a": _cancel_fresh_request,
    "move_b": lambda w: person_service.update_person(w["b"], {"purok": "Purok 4"}),
    "deceased_a": lambda w: person_service.update_person(w["a"], {"status": "deceased"}),
}


class TestMutationSequences:

    @pytest.mark.parametrize("sequence", [
        ["move_guest", "skip_requeue_b", "complete_b", "approve_guest", "cancel_a", "move_b"],
        ["approve_guest", "move_b", "complete_guest", "skip_requeue_b", "deceased_a", "move_guest"],
        ["cancel_a", "complete_guest", "move_guest", "approve_guest", "complete_b", "move_b", "deceased_a"],
        ["skip_requeue_b", "move_b", "skip_requeue_b", "complete_b", "move_guest", "cancel_a", "approve_guest"],
    ])
    def test_every_stored_row_matches_recompute_after_each_step(self, world, sequence):
        for step in sequence:
            STEPS[step](world)

            rows = db.session.query(StatisticsSnapshot).all()
            assert {row.dimension for row in rows} >= {ALL_DIMENSION, "Purok 1", "Purok 2"}
            for row in rows:
                expected = statistics_service.recompute_counts(row.dimension, row.as_of)
                assert row.counts == expected, f"{row.dimension} drifted after {step}"


class TestReadsNeverWrite:

    def test_stale_row_stays_stale_until_the_next_mutation(self, make_person):
        make_person(purok="Purok 1")
        snapshot = db.session.query(StatisticsSnapshot).filter_by(dimension=ALL_DIMENSION).one()
        yesterday = service_day() - timedelta(days=1)
        snapshot.as_of = yesterday
        db.session.commit()

        assert statistics_service.get_snapshot()["counts"]["population.total"] == 1
        db.session.expire_all()
        assert db.session.query(StatisticsSnapshot).filter_by(dimension=ALL_DIMENSION).one().as_of == yesterday

        make_person(purok="Purok 1", first_name="Jose")

        db.session.expire_all()
        row = db.session.query(StatisticsSnapshot).filter_by(dimension=ALL_DIMENSION).one()
        assert row.as_of == service_day()
        assert row.counts["population.total"] == 2
        _assert_matches_recompute(ALL_DIMENSION)

    def test_missing_row_is_answered_without_storing(self, make_person):
        make_person(purok="Purok 1")
        db.session.query(StatisticsSnapshot).filter_by(dimension="Purok 1").delete()
        db.session.commit()

        snapshot = statistics_service.get_snapshot("Purok 1")

        assert snapshot["counts"]["population.total"] == 1
        assert snapshot["as_of"] == service_day().isoformat()
        assert db.session.query(StatisticsSnapshot).filter_by(dimension="Purok 1").count() == 0
