"""
Shared pytest fixtures for the WifiDesk test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - make_request / make_settings: ORM helper factories
"""

from datetime import datetime, timezone

import pytest

from wifidesk import create_app
from wifidesk.models import db as _db
from wifidesk.models.escalation import EscalationSettings
from wifidesk.models.wifi_request import RequestStatus, WifiRequest
from wifidesk.services.scheduler_service import SchedulerService


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    SchedulerService.init_app(app)
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Factories ────────────────────────────────────────────────────────────


def _create_request(
    request_id="john101a",
    *,
    status=RequestStatus.PENDING,
    created_at=None,
    updated_at=None,
    was_escalated=False,
    name="John Doe",
    email="john@example.com",
    room_number="101A",
    device_type="laptop",
    issue_type="connect",
    description="Cannot join the network",
):
    """Create a WifiRequest directly in DB with explicit timestamps."""
    created_at = created_at or datetime.now(timezone.utc)
    req = WifiRequest(
        id=request_id,
        name=name,
        email=email,
        room_number=room_number,
        device_type=device_type,
        issue_type=issue_type,
        description=description,
        status=RequestStatus(status).value,
        was_escalated=was_escalated,
        created_at=created_at,
        updated_at=updated_at or created_at,
    )
    _db.session.add(req)
    _db.session.commit()
    return req


def _create_settings(emails=("it@hotel.example",), pending_threshold=20, progress_threshold=45):
    """Create the EscalationSettings singleton directly in DB."""
    settings = EscalationSettings(
        emails=list(emails) if emails is not None else None,
        pending_threshold=pending_threshold,
        progress_threshold=progress_threshold,
    )
    _db.session.add(settings)
    _db.session.commit()
    return settings


@pytest.fixture()
def make_request():
    return _create_request


@pytest.fixture()
def make_settings():
    return _create_settings
