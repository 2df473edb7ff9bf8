from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from pulsetrade.bank_account_service import BankAccountService
from pulsetrade.errors import UpstreamUnavailable
from pulsetrade.fee_calculator import FeeCalculator
from pulsetrade.ledger import BalanceLedger
from pulsetrade.memory_storage import MemoryStorage
from pulsetrade.notification_manager import NotificationManager
from pulsetrade.settings_service import SettingsService
from pulsetrade.trade_manager import TradeLifecycleManager
from pulsetrade.user import UserRole
from pulsetrade.wallet_service import WalletService


class FakeClock:
    def __init__(self, start=datetime(2024, 1, 1, 12, 0, 0)):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


class FakeOracle:
    """Price source with settable prices"""

    def __init__(self, prices=None):
        self.prices = {k: Decimal(str(v)) for k, v in (prices or {}).items()}
        self.unavailable = False

    def set_price(self, crypto_id, price):
        self.prices[crypto_id] = Decimal(str(price))

    def get_market_data(self):
        if self.unavailable:
            raise UpstreamUnavailable("feed down")
        return [{"id": k, "current_price": float(v)} for k, v in self.prices.items()]

    def get_crypto_by_id(self, crypto_id):
        for entry in self.get_market_data():
            if entry["id"] == crypto_id:
                return entry
        return None

    def get_current_price(self, crypto_id):
        if self.unavailable:
            raise UpstreamUnavailable("feed down")
        return self.prices.get(crypto_id)


class EventRecorder:
    def __init__(self):
        self.events = []

    def __call__(self, event, payload):
        self.events.append((event, payload))

    def names(self):
        return [event for event, _ in self.events]


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def oracle():
    return FakeOracle({"bitcoin": 50000, "ethereum": 3000})


@pytest.fixture
def settings_service(storage):
    return SettingsService(storage)


@pytest.fixture
def fee_calculator(settings_service):
    return FeeCalculator(None, settings_service)


@pytest.fixture
def ledger(storage):
    return BalanceLedger(storage)


@pytest.fixture
def notifications():
    return NotificationManager()


@pytest.fixture
def trade_manager(storage, ledger, oracle, notifications, settings_service, fee_calculator, clock):
    return TradeLifecycleManager(storage, ledger, oracle, notifications, settings_service, fee_calculator,
                                 clock=clock)


@pytest.fixture
def wallet_service(storage, ledger, notifications, settings_service, fee_calculator):
    return WalletService(storage, ledger, notifications, settings_service, fee_calculator)


@pytest.fixture
def bank_account_service(storage):
    return BankAccountService(storage, max_per_user=2)


@pytest.fixture
def make_user(storage):
    counter = iter(range(1, 1000))

    def _make(balance="1000", role=UserRole.USER, username=None):
        n = next(counter)
        return storage.create_user(
            username or f"user{n}",
            f"user{n}@example.com",
            password_hash="x",
            password_salt="00",
            role=role,
            balance=balance,
        )
    return _make


@pytest.fixture
def user(make_user):
    return make_user(balance="1000")


@pytest.fixture
def admin(make_user):
    return make_user(balance="0", role=UserRole.ADMIN, username="admin")


@pytest.fixture
def agent(make_user):
    return make_user(balance="0", role=UserRole.AGENT, username="agent")


@pytest.fixture
def make_recorder():
    return EventRecorder
