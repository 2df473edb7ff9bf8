from decimal import Decimal

import pytest

from pulsetrade.scheduler import Scheduler
from pulsetrade.settlement_poller import JOB_ID, SettlementPoller
from pulsetrade.trade import TradeResult, TradeStatus


@pytest.fixture
def poller(storage, trade_manager, clock):
    return SettlementPoller(storage, trade_manager, interval=5, clock=clock)


def open_trade(trade_manager, user, duration=60, crypto_id="bitcoin"):
    return trade_manager.open(user.id, crypto_id, "100", "up", duration, entry_price="50000", profit_percentage="30")


def test_sweep_settles_only_expired_trades(poller, trade_manager, storage, oracle, clock, user):
    short = open_trade(trade_manager, user, duration=60)
    long = open_trade(trade_manager, user, duration=300)
    oracle.set_price("bitcoin", 51000)
    clock.advance(60)

    stats = poller.sweep()

    assert stats == {"checked": 2, "settled": 1, "deferred": 0, "skipped": 0, "failed": 0}
    assert storage.get_trade(short.id).result == TradeResult.WIN
    assert storage.get_trade(long.id).status == TradeStatus.ACTIVE


def test_malformed_trade_does_not_block_the_others(poller, trade_manager, storage, ledger, oracle, clock, make_user):
    users = [make_user(balance="1000") for _ in range(4)]
    trades = [open_trade(trade_manager, u) for u in users]
    storage.update_trade(trades[1].id, created_at="not a timestamp")
    oracle.set_price("bitcoin", 51000)
    clock.advance(61)

    stats = poller.sweep()

    assert stats["settled"] == 3
    assert stats["skipped"] == 1
    assert storage.get_trade(trades[1].id).status == TradeStatus.ACTIVE
    for index in (0, 2, 3):
        assert storage.get_trade(trades[index].id).status == TradeStatus.COMPLETED
        assert ledger.get_balance(users[index].id) == Decimal("1030.00")


def test_missing_price_defers_until_next_sweep(poller, trade_manager, storage, oracle, clock, user):
    trade = open_trade(trade_manager, user)
    oracle.unavailable = True
    clock.advance(61)

    assert poller.sweep()["deferred"] == 1
    assert storage.get_trade(trade.id).status == TradeStatus.ACTIVE

    oracle.unavailable = False
    oracle.set_price("bitcoin", 40000)
    clock.advance(5)

    assert poller.sweep()["settled"] == 1
    assert storage.get_trade(trade.id).result == TradeResult.LOSE


def test_unexpected_error_is_counted_and_sweep_continues(poller, trade_manager, storage, oracle, clock, user,
                                                         monkeypatch):
    first = open_trade(trade_manager, user)
    second = open_trade(trade_manager, user)
    oracle.set_price("bitcoin", 51000)
    clock.advance(61)
    real_settle = trade_manager.settle

    def flaky_settle(trade_id, broadcast=False):
        if trade_id == first.id:
            raise RuntimeError("boom")
        return real_settle(trade_id, broadcast=broadcast)
    monkeypatch.setattr(trade_manager, "settle", flaky_settle)

    stats = poller.sweep()

    assert stats["failed"] == 1
    assert stats["settled"] == 1
    assert storage.get_trade(second.id).status == TradeStatus.COMPLETED


def test_sweep_broadcasts_completion(poller, trade_manager, notifications, oracle, clock, user, make_recorder):
    recorder = make_recorder()
    notifications.subscribe(recorder)
    open_trade(trade_manager, user)
    oracle.set_price("bitcoin", 51000)
    clock.advance(61)

    poller.sweep()
    notifications.flush()

    assert recorder.names() == ["trade-completed"]


def test_register_adds_interval_job(poller):
    scheduler = Scheduler(clock=lambda: 0.0)
    poller.register(scheduler)

    assert scheduler.jobs[JOB_ID]["interval"] == 5
    assert scheduler.jobs[JOB_ID]["func"] == poller.sweep
