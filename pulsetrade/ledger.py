"""
Balance ledger

Every read-modify-write of a user's balance goes through this module and
runs under that user's re-entrant lock. Settlement and transaction review
take the same lock around their conditional status change, so a credit is
applied at most once per completed trade or reviewed transaction.
"""

import logging
import threading
from contextlib import contextmanager
from decimal import Decimal, InvalidOperation
from typing import Dict

from pulsetrade.errors import InsufficientBalance, MalformedRecord, UserNotFound, ValidationError
from pulsetrade.fee_calculator import format_money, quantize_money

logger = logging.getLogger(__name__)

class BalanceLedger:
    """
    Debit/credit operations on user balances
    """

    def __init__(self, storage):
        self.storage = storage
        self._locks: Dict[int, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, user_id: int) -> threading.RLock:
        with self._locks_guard:
            lock = self._locks.get(user_id)
            if lock is None:
                lock = self._locks[user_id] = threading.RLock()
            return lock

    @contextmanager
    def locked(self, user_id: int):
        """Hold the user's balance lock for a compound operation"""
        lock = self._lock_for(user_id)
        with lock:
            yield

    def get_balance(self, user_id: int) -> Decimal:
        user = self.storage.get_user(user_id)
        if user is None:
            raise UserNotFound(user_id)
        try:
            balance = Decimal(str(user.balance))
        except (InvalidOperation, ValueError):
            raise MalformedRecord(f"User {user_id} has a non-numeric balance: {user.balance!r}")
        if not balance.is_finite():
            raise MalformedRecord(f"User {user_id} has a non-numeric balance: {user.balance!r}")
        return balance

    def debit(self, user_id: int, amount: Decimal) -> Decimal:
        """
        Remove funds from a balance.

        Args:
            user_id: Owner of the balance
            amount: Positive amount to remove

        Returns:
            Decimal: The new balance

        Raises:
            InsufficientBalance: The balance is lower than amount; nothing is changed
        """
        amount = self._check_amount(amount)
        with self.locked(user_id):
            balance = self.get_balance(user_id)
            if balance < amount:
                raise InsufficientBalance(user_id, format_money(balance), format_money(amount))
            return self._store(user_id, balance - amount)

    def credit(self, user_id: int, amount: Decimal) -> Decimal:
        """
        Add funds to a balance and return the new balance
        """
        amount = self._check_amount(amount)
        with self.locked(user_id):
            return self._store(user_id, self.get_balance(user_id) + amount)

    def set_balance(self, user_id: int, amount: Decimal) -> Decimal:
        if amount < 0:
            raise ValidationError("Balance cannot be negative")
        with self.locked(user_id):
            previous = self.storage.get_user(user_id)
            if previous is None:
                raise UserNotFound(user_id)
            logger.info(f"Balance of user {user_id} set from {previous.balance} to {format_money(amount)}")
            return self._store(user_id, amount)

    def _store(self, user_id: int, balance: Decimal) -> Decimal:
        balance = quantize_money(balance)
        if self.storage.update_user_balance(user_id, str(balance)) is None:
            raise UserNotFound(user_id)
        logger.debug(f"Balance of user {user_id} is now {balance}")
        return balance

    @staticmethod
    def _check_amount(amount: Decimal) -> Decimal:
        if not isinstance(amount, Decimal):
            amount = Decimal(str(amount))
        if not amount.is_finite() or amount <= 0:
            raise ValidationError("Amount must be a positive number")
        return amount
