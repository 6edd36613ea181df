"""
Pytest fixtures for hallqueue backend tests.

Provides the application on an in-memory database, a per-test table wipe,
factories for catalog entries and persons, and a test client.
"""

from datetime import date, datetime

import pytest

from hallqueue import create_app
from hallqueue.extensions import db
from hallqueue.services import catalog_service, person_service
from hallqueue.time_utils import service_day, service_timezone


STAFF = "clerk.santos"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'TRANSACTION_RETRY_BACKOFF': 0,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def staff_headers():
    return {"X-Staff-Identity": STAFF}


def birthdate_for_age(age: int) -> date:
    """A birthdate that makes someone exactly `age` on today's service day."""
    return date(service_day().year - age, 1, 1)


def at_local(day: date, hour: int = 9, minute: int = 0) -> datetime:
    """UTC-naive instant for a local (UTC+8) wall-clock time on `day`."""
    return datetime(day.year, day.month, day.day, hour, minute) - service_timezone().utcoffset(None)


@pytest.fixture(scope='function')
def make_service(db_session):
    counter = {"n": 0}

    def _make(name=None, price_cents=5000, requires_purpose=False, is_active=True, template_key="generic"):
        counter["n"] += 1
        return catalog_service.create_service_type({
            "name": name or f"Service {counter['n']}",
            "template_key": template_key,
            "price_cents": price_cents,
            "requires_purpose": requires_purpose,
            "is_active": is_active,
        })

    return _make


@pytest.fixture(scope='function')
def clearance(make_service):
    return make_service(name="Barangay Clearance", price_cents=5000, template_key="clearance")


def person_payload(**overrides) -> dict:
    payload = {
        "first_name": "Maria",
        "middle_name": "Reyes",
        "last_name": "Dela Cruz",
        "sex": "female",
        "birthdate": "1990-05-14",
        "purok": "Purok 1",
    }
    payload.update(overrides)
    return payload


@pytest.fixture(scope='function')
def make_person(db_session):
    def _make(status="active", **overrides):
        return person_service.create_person(person_payload(**overrides), status=status)

    return _make
