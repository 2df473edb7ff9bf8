import threading
from decimal import Decimal

import pytest

from pulsetrade.errors import InsufficientBalance, MalformedRecord, UserNotFound, ValidationError


def test_debit_and_credit_round_to_cents(ledger, user):
    assert ledger.debit(user.id, Decimal("0.105")) == Decimal("999.90")
    assert ledger.credit(user.id, Decimal("10.005")) == Decimal("1009.91")


def test_debit_beyond_balance_has_no_effect(ledger, user):
    with pytest.raises(InsufficientBalance) as excinfo:
        ledger.debit(user.id, Decimal("1000.01"))

    assert excinfo.value.user_id == user.id
    assert ledger.get_balance(user.id) == Decimal("1000")


def test_non_positive_amounts_are_rejected(ledger, user):
    with pytest.raises(ValidationError):
        ledger.debit(user.id, Decimal("0"))
    with pytest.raises(ValidationError):
        ledger.credit(user.id, Decimal("-5"))


def test_unknown_user(ledger):
    with pytest.raises(UserNotFound):
        ledger.get_balance(12345)


def test_non_numeric_balance_is_malformed(ledger, storage, user):
    storage.update_user(user.id, balance="lots")

    with pytest.raises(MalformedRecord):
        ledger.credit(user.id, Decimal("1"))


def test_set_balance(ledger, user):
    assert ledger.set_balance(user.id, Decimal("42")) == Decimal("42.00")
    with pytest.raises(ValidationError):
        ledger.set_balance(user.id, Decimal("-1"))


def test_concurrent_debits_never_overdraw(ledger, user):
    successes = []
    failures = []
    barrier = threading.Barrier(20)

    def worker():
        barrier.wait()
        try:
            ledger.debit(user.id, Decimal("100"))
            successes.append(1)
        except InsufficientBalance:
            failures.append(1)

    threads = [threading.Thread(target=worker) for _ in range(20)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(successes) == 10
    assert len(failures) == 10
    assert ledger.get_balance(user.id) == Decimal("0.00")
