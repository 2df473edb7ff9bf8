from datetime import datetime

import pytest

from pulsetrade.db import Database
from pulsetrade.memory_storage import MemoryStorage
from pulsetrade.storage import DatabaseStorage
from pulsetrade.trade import TradeDirection, TradeResult, TradeStatus
from pulsetrade.transaction import PaymentMethod, TransactionStatus, TransactionType


@pytest.fixture(params=["memory", "database"])
def backend(request):
    if request.param == "memory":
        yield MemoryStorage()
        return
    db = Database("sqlite:///:memory:")
    db.initialize()
    yield DatabaseStorage(db)
    db.close()


@pytest.fixture
def owner(backend):
    return backend.create_user("owner", "owner@example.com", password_hash="x", password_salt="00", balance="100")


def new_trade(backend, user_id, **fields):
    values = dict(
        user_id=user_id,
        crypto_id="bitcoin",
        entry_price="50000",
        amount="10.00",
        direction=TradeDirection.UP,
        duration=60,
        profit_percentage="30",
        status=TradeStatus.ACTIVE,
        created_at=datetime(2024, 1, 1, 12, 0, 0),
    )
    values.update(fields)
    return backend.create_trade(**values)


def test_user_lookup_and_balance(backend, owner):
    assert backend.get_user_by_username("owner").id == owner.id
    assert backend.get_user_by_email("owner@example.com").id == owner.id
    assert backend.get_user(9999) is None

    backend.update_user_balance(owner.id, "42.50")

    assert backend.get_user(owner.id).balance == "42.50"


def test_complete_trade_only_once(backend, owner):
    trade = new_trade(backend, owner.id)
    end = datetime(2024, 1, 1, 12, 1, 0)

    completed = backend.complete_trade(trade.id, TradeResult.WIN, end)

    assert completed.status == TradeStatus.COMPLETED
    assert completed.result == TradeResult.WIN
    assert completed.end_time == end
    assert backend.complete_trade(trade.id, TradeResult.LOSE, end) is None
    assert backend.get_trade(trade.id).result == TradeResult.WIN


def test_active_trades_oldest_first(backend, owner):
    first = new_trade(backend, owner.id)
    second = new_trade(backend, owner.id)
    done = new_trade(backend, owner.id)
    backend.complete_trade(done.id, TradeResult.LOSE, datetime(2024, 1, 1, 12, 1, 0))

    assert [t.id for t in backend.get_active_trades()] == [first.id, second.id]


def test_transition_transaction_from_expected_status(backend, owner):
    transaction = backend.create_transaction(
        user_id=owner.id,
        transaction_type=TransactionType.DEPOSIT,
        amount="25.00",
        method=PaymentMethod.PROMPTPAY,
        status=TransactionStatus.PENDING,
    )

    approved = backend.transition_transaction(transaction.id, TransactionStatus.PENDING,
                                              TransactionStatus.APPROVED, "ok")

    assert approved.status == TransactionStatus.APPROVED
    assert approved.note == "ok"
    assert backend.transition_transaction(transaction.id, TransactionStatus.PENDING,
                                          TransactionStatus.REJECTED) is None


def test_single_default_bank_account(backend, owner):
    first = backend.create_bank_account(user_id=owner.id, bank_name="A", account_number="111111",
                                        account_name="Owner", is_default=True)
    second = backend.create_bank_account(user_id=owner.id, bank_name="B", account_number="222222",
                                         account_name="Owner", is_default=True)

    defaults = [a.id for a in backend.get_bank_accounts_by_user(owner.id) if a.is_default]
    assert defaults == [second.id]

    backend.update_bank_account_default(first.id, True)

    defaults = [a.id for a in backend.get_bank_accounts_by_user(owner.id) if a.is_default]
    assert defaults == [first.id]
    assert backend.delete_bank_account(first.id)
    assert not backend.delete_bank_account(first.id)


def test_settings_round_trip(backend):
    assert backend.get_setting("siteName") is None

    backend.save_setting("siteName", '"Pulse"')
    backend.save_setting("siteName", '"PulseTrade"')

    assert backend.get_setting("siteName") == '"PulseTrade"'
    assert backend.get_all_settings() == {"siteName": '"PulseTrade"'}
