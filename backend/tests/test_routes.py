"""
HTTP boundary tests.

Verifies:
- Kiosk submission is public; staff routes return 401 without an identity
- Engine errors map to {"error", "kind", "details"} with their status
- The staff identity becomes served_by and the audit actor
"""

import pytest

from hallqueue.extensions import db
from hallqueue.models import AuditEvent

from conftest import STAFF, person_payload


def _submit(client, service_id, **body):
    payload = {"items": [{"service_type_id": service_id, "purpose": "Work"}]}
    payload.update(body)
    return client.post("/api/kiosk/requests", json=payload)


class TestIdentity:

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/persons"),
            ("POST", "/api/persons/1/approve"),
            ("POST", "/api/persons/1/reject"),
            ("GET", "/api/persons/duplicates"),
            ("GET", "/api/persons/search"),
            ("PATCH", "/api/requests/items/1"),
            ("GET", "/api/queue/volume"),
            ("POST", "/api/queue/call-next"),
            ("POST", "/api/queue/1/complete"),
            ("POST", "/api/requests/1/requeue"),
            ("GET", "/api/statistics/snapshot"),
            ("POST", "/api/statistics/reconcile"),
            ("GET", "/api/service-types"),
        ],
    )
    def test_staff_routes_require_identity(self, client, db_session, method, path):
        response = client.open(path, method=method)

        assert response.status_code == 401
        assert response.json["kind"] == "unauthenticated"

    def test_kiosk_submission_is_public(self, client, clearance):
        response = _submit(client, clearance.id, guest=person_payload())

        assert response.status_code == 201
        assert response.json["ticket_number"] == "Q-001"

    def test_display_is_public(self, client, db_session):
        response = client.get("/api/queue/display")

        assert response.status_code == 200
        assert response.json == {"waiting": [], "serving": [], "done": []}


class TestErrors:

    def test_validation_error_shape(self, client, clearance):
        response = client.post("/api/kiosk/requests", json={"guest": person_payload(), "items": []})

        assert response.status_code == 400
        assert response.json["kind"] == "validation_error"
        assert response.json["error"]

    def test_inactive_service_kind(self, client, make_service):
        closed = make_service(name="Closed", is_active=False)

        response = _submit(client, closed.id, guest=person_payload())

        assert response.status_code == 400
        assert response.json["kind"] == "not_found_or_inactive"
        assert response.json["details"]["service_type_id"] == closed.id

    def test_not_found(self, client, db_session, staff_headers):
        response = client.post("/api/queue/999/skip", headers=staff_headers)

        assert response.status_code == 404
        assert response.json["kind"] == "not_found"

    def test_invalid_state(self, client, clearance, staff_headers):
        ticket_id = _submit(client, clearance.id, guest=person_payload()).json["ticket_id"]

        response = client.post(f"/api/queue/{ticket_id}/complete", headers=staff_headers)

        assert response.status_code == 409
        assert response.json["kind"] == "invalid_state"

    @pytest.mark.parametrize("raw", ["--5", "-", "1.5", "5a", " "])
    def test_malformed_integers_are_validation_errors(self, client, db_session, staff_headers, raw):
        display = client.get("/api/queue/display", query_string={"done_limit": raw})
        staff = client.get("/api/queue/staff", query_string={"counter_number": raw}, headers=staff_headers)

        assert display.status_code == 400
        assert display.json["kind"] == "validation_error"
        assert staff.status_code == 400
        assert staff.json["kind"] == "validation_error"

    def test_empty_queue_call_next(self, client, db_session, staff_headers):
        response = client.post("/api/queue/call-next", json={"counter_number": 1}, headers=staff_headers)

        assert response.status_code == 404


class TestStaffFlow:

    def test_call_serve_complete(self, client, clearance, staff_headers):
        submitted = _submit(client, clearance.id, guest=person_payload()).json

        called = client.post("/api/queue/call-next", json={"counter_number": 4}, headers=staff_headers)
        assert called.status_code == 200
        assert called.json["ticket"]["served_by"] == STAFF
        assert called.json["ticket"]["counter_number"] == 4

        done = client.post(f"/api/queue/{submitted['ticket_id']}/complete", headers=staff_headers)
        assert done.json["ticket"]["status"] == "done"

        display = client.get("/api/queue/display?done_limit=5").json
        assert [t["queue_number"] for t in display["done"]] == ["Q-001"]

        actors = {e.actor for e in db.session.query(AuditEvent).filter_by(action="ticket.transition")}
        assert STAFF in actors

    def test_review_and_approve_guest(self, client, make_person, clearance, staff_headers):
        make_person(first_name="Rosa", last_name="Lim", birthdate="1960-02-02")
        guest_id = _submit(
            client, clearance.id, guest=person_payload(first_name="Rosa", last_name="Lim", birthdate="1960-02-02")
        ).json["person_id"]

        duplicates = client.get(f"/api/persons/{guest_id}/duplicates", headers=staff_headers).json
        assert duplicates["matches"][0]["confidence"] == "high"

        approved = client.post(f"/api/persons/{guest_id}/approve", headers=staff_headers)
        assert approved.status_code == 200
        assert approved.json["person"]["external_id"] == "BH-00002"

    def test_reject_referenced_guest_conflicts(self, client, clearance, staff_headers):
        guest_id = _submit(client, clearance.id, guest=person_payload()).json["person_id"]

        response = client.post(f"/api/persons/{guest_id}/reject", headers=staff_headers)

        assert response.status_code == 409
        assert response.json["details"]["request_numbers"]

    def test_duplicate_query_endpoint(self, client, make_person, staff_headers):
        make_person(first_name="Juan", last_name="Santos", birthdate="1985-03-02")

        response = client.get(
            "/api/persons/duplicates?first_name=Juan&last_name=Santos&birthdate=1985-03-02",
            headers=staff_headers,
        )

        assert response.status_code == 200
        assert response.json["count"] == 1

    def test_statistics_snapshot_and_reconcile(self, client, make_person, staff_headers):
        make_person(purok="Purok 5")

        snapshot = client.get(
            "/api/statistics/snapshot", query_string={"purok": "Purok 5"}, headers=staff_headers
        ).json
        assert snapshot["counts"]["population.total"] == 1

        reconciled = client.post("/api/statistics/reconcile", headers=staff_headers).json
        assert reconciled["drifted"] == []

    def test_changes_feed_moves_after_mutation(self, client, clearance):
        before = client.get("/api/changes").json["versions"].get("ticket", 0)

        _submit(client, clearance.id, guest=person_payload())

        after = client.get("/api/changes").json["versions"]["ticket"]
        assert after == before + 1

    def test_search_persons(self, client, make_person, staff_headers):
        make_person(first_name="Rosa", last_name="Lim")
        make_person(first_name="Juan", last_name="Santos")

        response = client.get("/api/persons/search", query_string={"q": "rosa"}, headers=staff_headers)

        assert response.status_code == 200
        assert [p["first_name"] for p in response.json["items"]] == ["Rosa"]

    def test_search_rejects_unknown_status(self, client, db_session, staff_headers):
        response = client.get(
            "/api/persons/search", query_string={"q": "rosa", "status": "alive"}, headers=staff_headers
        )

        assert response.status_code == 400

    def test_edit_item_purpose(self, client, clearance, staff_headers):
        request_id = _submit(client, clearance.id, guest=person_payload()).json["request_id"]
        item_id = client.get(f"/api/requests/{request_id}", headers=staff_headers).json["request"]["items"][0]["id"]

        edited = client.patch(f"/api/requests/items/{item_id}", json={"purpose": "Travel"}, headers=staff_headers)
        missing = client.patch(f"/api/requests/items/{item_id}", json={}, headers=staff_headers)

        assert edited.status_code == 200
        assert edited.json["item"]["purpose"] == "Travel"
        assert missing.status_code == 400
        audit = db.session.query(AuditEvent).filter_by(action="request_item.purpose_changed").one()
        assert audit.actor == STAFF

    def test_queue_volume(self, client, clearance, staff_headers):
        _submit(client, clearance.id, guest=person_payload())

        today = client.get("/api/queue/volume", headers=staff_headers)
        bad_day = client.get("/api/queue/volume?day=yesterday", headers=staff_headers)

        assert today.json["tickets"] == 1
        assert today.json["by_status"]["waiting"] == 1
        assert bad_day.status_code == 400

    def test_changes_feed_names_its_counting_process(self, client, clearance):
        first = client.get("/api/changes").json

        _submit(client, clearance.id, guest=person_payload())

        second = client.get("/api/changes").json
        assert first["instance"] == second["instance"]
        assert len(second["instance"]) == 32
