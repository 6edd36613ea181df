"""
Concurrency tests for numbering and queue transitions.

Runs against a file-backed SQLite database so threads hold separate
connections and actually contend for the write lock.
"""
import os
import tempfile
import threading
import unittest

from hallqueue import create_app
from hallqueue.extensions import db
from hallqueue.models import DocumentRequest, QueueTicket
from hallqueue.services import catalog_service, person_service, queue_service, request_service
from hallqueue.validation import EngineError, InvalidStateError


def _guest(n: int) -> dict:
    return {
        "first_name": f"Guest{n}",
        "last_name": "Concurrent",
        "sex": "male" if n % 2 else "female",
        "birthdate": "1980-01-01",
        "purok": "Purok 1",
    }


class ConcurrencyTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        db_path = os.path.join(self.tmpdir.name, "concurrency.db")
        self.app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
            "TRANSACTION_RETRY_ATTEMPTS": 20,
            "TRANSACTION_RETRY_BACKOFF": 0.01,
        })

        with self.app.app_context():
            db.drop_all()
            db.create_all()

            service = catalog_service.create_service_type({
                "name": "Barangay Clearance",
                "template_key": "clearance",
                "price_cents": 5000,
            })
            self.service_type_id = service.id

    def tearDown(self):
        with self.app.app_context():
            db.session.remove()
            db.drop_all()
            db.session.remove()
            db.engine.dispose()
        self.tmpdir.cleanup()

    def _run_threads(self, count, target):
        barrier = threading.Barrier(count)
        results = []
        errors = []
        lock = threading.Lock()

        def worker(n):
            with self.app.app_context():
                try:
                    barrier.wait()
                    value = target(n)
                    with lock:
                        results.append(value)
                except Exception as exc:
                    with lock:
                        errors.append(exc)
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(count)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        return results, errors

    def test_concurrent_submissions_get_gap_free_numbers(self):
        count = 10

        def submit(n):
            return request_service.submit_request(
                guest=_guest(n), items=[{"service_type_id": self.service_type_id}]
            )

        results, errors = self._run_threads(count, submit)

        self.assertEqual(errors, [])
        ticket_numbers = sorted(r["ticket_number"] for r in results)
        self.assertEqual(ticket_numbers, [f"Q-{n:03d}" for n in range(1, count + 1)])
        request_suffixes = sorted(r["request_number"].rsplit("-", 1)[1] for r in results)
        self.assertEqual(request_suffixes, [f"{n:03d}" for n in range(1, count + 1)])

        with self.app.app_context():
            self.assertEqual(db.session.query(QueueTicket).count(), count)
            self.assertEqual(db.session.query(DocumentRequest).count(), count)

    def test_two_guests_at_once(self):
        results, errors = self._run_threads(
            2,
            lambda n: request_service.submit_request(
                guest=_guest(n), items=[{"service_type_id": self.service_type_id}]
            ),
        )

        self.assertEqual(errors, [])
        self.assertEqual(sorted(r["ticket_number"] for r in results), ["Q-001", "Q-002"])

    def test_concurrent_approvals_get_distinct_external_ids(self):
        with self.app.app_context():
            pending_ids = [
                person_service.create_person(_guest(n), status="pending").id for n in range(5)
            ]

        results, errors = self._run_threads(
            len(pending_ids),
            lambda n: person_service.approve_pending(pending_ids[n]).external_id,
        )

        self.assertEqual(errors, [])
        self.assertEqual(sorted(results), [f"BH-{n:05d}" for n in range(1, 6)])

    def test_racing_transitions_apply_exactly_once(self):
        with self.app.app_context():
            result = request_service.submit_request(
                guest=_guest(0), items=[{"service_type_id": self.service_type_id}]
            )
            ticket_id = result["ticket_id"]

        def call(n):
            return queue_service.call_ticket(ticket_id, n + 1, served_by=f"clerk{n}").counter_number

        results, errors = self._run_threads(4, call)

        self.assertEqual(len(results), 1)
        self.assertEqual(len(errors), 3)
        for error in errors:
            self.assertIsInstance(error, InvalidStateError)

        with self.app.app_context():
            ticket = db.session.get(QueueTicket, ticket_id)
            self.assertEqual(ticket.status, "serving")
            self.assertEqual(ticket.counter_number, results[0])

    def test_concurrent_call_next_never_hands_out_the_same_ticket(self):
        with self.app.app_context():
            for n in range(3):
                request_service.submit_request(
                    guest=_guest(n), items=[{"service_type_id": self.service_type_id}]
                )

        results, errors = self._run_threads(
            5, lambda n: queue_service.call_next(n + 1, served_by=f"clerk{n}").id
        )

        self.assertEqual(len(results), 3)
        self.assertEqual(len(set(results)), 3)
        self.assertEqual(len(errors), 2)
        for error in errors:
            self.assertIsInstance(error, EngineError)
            self.assertEqual(error.kind, "not_found")


if __name__ == "__main__":
    unittest.main()
