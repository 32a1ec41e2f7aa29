"""
Shared fixtures for the Field Estimator test suite.

Timers are replaced by ManualTimer so debounce and status decay are driven
explicitly by the tests instead of by wall-clock time.
"""

from unittest.mock import MagicMock

import pytest

from core.gateway import RemoteStoreGateway
from core.local_cache import LocalCache
from models.session import Role, Session
from services.state_store import StateStore
from services.sync_service import SyncService


DEBOUNCE_SECONDS = 3.0
DECAY_SECONDS = 0.5


class ManualTimer:
    """Stand-in for threading.Timer that only runs when fire() is called."""

    def __init__(self, interval, function):
        self.interval = interval
        self.function = function
        self.daemon = False
        self.started = False
        self.cancelled = False
        self.fired = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    @property
    def is_pending(self):
        return self.started and not self.cancelled and not self.fired

    def fire(self):
        assert self.is_pending, "timer is not pending"
        self.fired = True
        self.function()


class ManualTimerFactory:
    """Creates ManualTimers and remembers them."""

    def __init__(self):
        self.timers = []

    def __call__(self, interval, function):
        timer = ManualTimer(interval, function)
        self.timers.append(timer)
        return timer

    def pending(self, interval=None):
        return [
            t for t in self.timers
            if t.is_pending and (interval is None or t.interval == interval)
        ]

    def pending_debounce(self):
        return self.pending(DEBOUNCE_SECONDS)

    def fire_debounce(self):
        """Fire the single pending debounce timer."""
        pending = self.pending(DEBOUNCE_SECONDS)
        assert len(pending) == 1, f"expected one pending debounce timer, found {len(pending)}"
        pending[0].fire()

    def fire_decay(self):
        for timer in self.pending(DECAY_SECONDS):
            timer.fire()


# Fixtures

@pytest.fixture
def admin_session():
    return Session(
        username="acme-foam",
        role=Role.ADMIN,
        company_name="Acme Foam Co",
        store_handle="sheet-123",
        storage_handle="folder-456",
    )


@pytest.fixture
def crew_session():
    return Session(
        username="acme-foam",
        role=Role.CREW,
        company_name="Acme Foam Co",
        store_handle="sheet-123",
        storage_handle="folder-456",
    )


@pytest.fixture
def gateway():
    """Gateway double; every call succeeds unless a test says otherwise."""
    mock = MagicMock(spec=RemoteStoreGateway)
    mock.is_configured = True
    mock.pull_company_state.return_value = {
        "companyProfile": {"companyName": "Acme Foam Co", "crewAccessPin": "1234"},
    }
    mock.push_company_state.return_value = None
    mock.create_field_log_resource.return_value = "https://sheets.example/wo-1"
    mock.delete_estimate.return_value = None
    mock.complete_job.return_value = None
    mock.upload_image.return_value = "https://files.example/photo.jpg"
    return mock


@pytest.fixture
def local_cache(tmp_path):
    cache = LocalCache(tmp_path / "cache")
    yield cache
    cache.close()


@pytest.fixture
def store():
    return StateStore()


@pytest.fixture
def timers():
    return ManualTimerFactory()


@pytest.fixture
def sync(store, gateway, local_cache, timers):
    service = SyncService(
        store,
        gateway,
        local_cache,
        debounce_seconds=DEBOUNCE_SECONDS,
        status_decay_seconds=DECAY_SECONDS,
        timer_factory=timers,
    )
    yield service
    service.shutdown()


@pytest.fixture
def signed_in(sync, store, admin_session):
    """Admin session loaded from the (mock) cloud, ready for edits."""
    sync.begin_session(admin_session)
    return store
