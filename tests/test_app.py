import pytest

from pulsetrade.app import PulseTradeApp
from pulsetrade.app_config import AppConfig
from pulsetrade.main import create_storage
from pulsetrade.memory_storage import MemoryStorage
from pulsetrade.notification_manager import NotificationManager
from pulsetrade.scheduler import Scheduler
from pulsetrade.settlement_poller import JOB_ID, SettlementPoller
from pulsetrade.storage import DatabaseStorage


class FakeServer:
    def __init__(self, log):
        self.log = log
        self.running = False

    def start_server(self):
        self.log.append("api started")
        self.running = True

    def stop(self):
        self.log.append("api stopped")
        self.running = False


def test_start_and_graceful_shutdown(storage, trade_manager):
    log = []
    scheduler = Scheduler()
    notifications = NotificationManager()
    app = PulseTradeApp(notifications, scheduler, FakeServer(log), SettlementPoller(storage, trade_manager))

    app.start()
    try:
        assert app.running
        assert JOB_ID in scheduler.jobs
        assert notifications.running
    finally:
        app.handle_shutdown(None, None)

    assert not app.running
    assert app.shutdown_event.is_set()
    assert not notifications.running
    assert not scheduler.running
    assert log == ["api started", "api stopped"]

    app.handle_shutdown(None, None)
    assert log == ["api started", "api stopped"]


def test_memory_backend():
    storage, db = create_storage(AppConfig(overrides={"storage": {"backend": "memory"}}))

    assert isinstance(storage, MemoryStorage)
    assert db is None


def test_database_backend():
    storage, db = create_storage(AppConfig(overrides={"database": {"url": "sqlite:///:memory:"}}))
    try:
        assert isinstance(storage, DatabaseStorage)
        assert db.test_connection()
    finally:
        db.close()


def test_unknown_backend():
    with pytest.raises(ValueError):
        create_storage(AppConfig(overrides={"storage": {"backend": "json"}}))
