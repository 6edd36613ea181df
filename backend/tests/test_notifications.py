"""
Change notification tests.

Verifies:
- Committed mutations signal once per affected entity type
- Failed operations signal nothing
- Version counters only move forward
"""

import pytest

from hallqueue.services import notification_service, queue_service, request_service
from hallqueue.services.notification_service import entity_changed
from hallqueue.validation import InvalidStateError, ValidationError

from conftest import person_payload


@pytest.fixture
def received():
    events = []

    def _receiver(sender, **kwargs):
        events.append((sender, kwargs["action"]))

    with entity_changed.connected_to(_receiver):
        yield events


def test_guest_submission_signals_each_entity(clearance, received):
    request_service.submit_request(guest=person_payload(), items=[{"service_type_id": clearance.id}])

    assert received == [
        ("person", "created"),
        ("request", "submitted"),
        ("ticket", "issued"),
    ]


def test_completion_signals_statistics(clearance, received):
    result = request_service.submit_request(guest=person_payload(), items=[{"service_type_id": clearance.id}])
    queue_service.call_ticket(result["ticket_id"], 1)
    received.clear()

    queue_service.complete_ticket(result["ticket_id"])

    assert ("statistics", "updated") in received
    assert ("ticket", "completed") in received


def test_failures_signal_nothing(clearance, received):
    with pytest.raises(ValidationError):
        request_service.submit_request(guest=person_payload(), items=[])

    result = request_service.submit_request(guest=person_payload(), items=[{"service_type_id": clearance.id}])
    received.clear()

    with pytest.raises(InvalidStateError):
        queue_service.complete_ticket(result["ticket_id"])

    assert received == []


def test_versions_increase(clearance):
    before = notification_service.current_versions()

    request_service.submit_request(guest=person_payload(), items=[{"service_type_id": clearance.id}])

    after = notification_service.current_versions()
    assert after["request"] == before.get("request", 0) + 1
    assert after["person"] == before.get("person", 0) + 1
