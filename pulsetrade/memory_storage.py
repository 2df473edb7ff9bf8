"""
In-process Storage implementation

Records live in dictionaries guarded by a single lock. Every read returns a
detached copy so callers never mutate stored state behind the storage's back,
matching what DatabaseStorage hands out.
"""

import itertools
import logging
import threading
from typing import Dict

from pulsetrade.bank_account import BankAccount
from pulsetrade.helpers import utcnow
from pulsetrade.setting import Setting
from pulsetrade.storage import Storage
from pulsetrade.trade import Trade, TradeStatus
from pulsetrade.transaction import Transaction, TransactionStatus
from pulsetrade.user import User, UserRole

logger = logging.getLogger(__name__)


def _clone(record):
    values = {column.name: getattr(record, column.name) for column in record.__table__.columns}
    return type(record)(**values)


class MemoryStorage(Storage):
    """
    Dictionary-backed storage
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._users: Dict[int, User] = {}
        self._trades: Dict[int, Trade] = {}
        self._transactions: Dict[int, Transaction] = {}
        self._bank_accounts: Dict[int, BankAccount] = {}
        self._settings: Dict[str, Setting] = {}
        self._ids = {name: itertools.count(1) for name in ("user", "trade", "transaction", "bank_account")}
        logger.info("Memory storage initialized")

    def _insert(self, table, kind, model, fields, defaults):
        now = utcnow()
        values = dict(defaults)
        values.setdefault("created_at", now)
        if hasattr(model, "updated_at"):
            values.setdefault("updated_at", now)
        values.update(fields)
        with self._lock:
            values["id"] = next(self._ids[kind])
            record = model(**values)
            table[record.id] = record
            return _clone(record)

    def _update(self, table, record_id, fields):
        with self._lock:
            record = table.get(record_id)
            if record is None:
                return None
            for key, value in fields.items():
                if hasattr(record, key):
                    setattr(record, key, value)
            if hasattr(record, "updated_at"):
                record.updated_at = utcnow()
            return _clone(record)

    def _get(self, table, record_id):
        with self._lock:
            record = table.get(record_id)
            return _clone(record) if record is not None else None

    def _select(self, table, predicate=None, newest_first=True):
        with self._lock:
            records = [_clone(r) for r in table.values() if predicate is None or predicate(r)]
        return sorted(records, key=lambda r: r.id, reverse=newest_first)

    # Users

    def create_user(self, username, email, **fields):
        with self._lock:
            for user in self._users.values():
                if user.username == username or user.email == email:
                    raise ValueError("Username or email already exists")
        return self._insert(self._users, "user", User, dict(fields, username=username, email=email),
                            {"role": UserRole.USER, "balance": "0"})

    def get_user(self, user_id):
        return self._get(self._users, user_id)

    def get_user_by_username(self, username):
        users = self._select(self._users, lambda u: u.username == username)
        return users[0] if users else None

    def get_user_by_email(self, email):
        users = self._select(self._users, lambda u: u.email == email)
        return users[0] if users else None

    def get_all_users(self):
        return self._select(self._users, newest_first=False)

    def update_user(self, user_id, **fields):
        return self._update(self._users, user_id, fields)

    # Trades

    def create_trade(self, **fields):
        return self._insert(self._trades, "trade", Trade, fields, {"status": TradeStatus.ACTIVE})

    def get_trade(self, trade_id):
        return self._get(self._trades, trade_id)

    def get_trades_by_user(self, user_id):
        return self._select(self._trades, lambda t: t.user_id == user_id)

    def get_all_trades(self):
        return self._select(self._trades)

    def get_active_trades(self):
        return self._select(self._trades, lambda t: t.status == TradeStatus.ACTIVE, newest_first=False)

    def update_trade(self, trade_id, **fields):
        return self._update(self._trades, trade_id, fields)

    def complete_trade(self, trade_id, result, end_time):
        with self._lock:
            trade = self._trades.get(trade_id)
            if trade is None or trade.status != TradeStatus.ACTIVE:
                return None
            trade.status = TradeStatus.COMPLETED
            trade.result = result
            trade.end_time = end_time
            trade.closed_at = end_time
            return _clone(trade)

    # Transactions

    def create_transaction(self, **fields):
        return self._insert(self._transactions, "transaction", Transaction, fields,
                            {"status": TransactionStatus.PENDING})

    def get_transaction(self, transaction_id):
        return self._get(self._transactions, transaction_id)

    def get_transactions_by_user(self, user_id):
        return self._select(self._transactions, lambda t: t.user_id == user_id)

    def get_all_transactions(self):
        return self._select(self._transactions)

    def transition_transaction(self, transaction_id, from_status, to_status, note=None):
        with self._lock:
            transaction = self._transactions.get(transaction_id)
            if transaction is None or transaction.status != from_status:
                return None
            transaction.status = to_status
            if note is not None:
                transaction.note = note
            transaction.updated_at = utcnow()
            return _clone(transaction)

    # Bank accounts

    def create_bank_account(self, **fields):
        if fields.get("is_default"):
            with self._lock:
                for account in self._bank_accounts.values():
                    if account.user_id == fields["user_id"]:
                        account.is_default = False
        return self._insert(self._bank_accounts, "bank_account", BankAccount, fields, {"is_default": False})

    def get_bank_account(self, account_id):
        return self._get(self._bank_accounts, account_id)

    def get_bank_accounts_by_user(self, user_id):
        return self._select(self._bank_accounts, lambda a: a.user_id == user_id, newest_first=False)

    def get_all_bank_accounts(self):
        return self._select(self._bank_accounts, newest_first=False)

    def update_bank_account(self, account_id, **fields):
        return self._update(self._bank_accounts, account_id, fields)

    def update_bank_account_default(self, account_id, is_default):
        with self._lock:
            account = self._bank_accounts.get(account_id)
            if account is None:
                return None
            if is_default:
                for other in self._bank_accounts.values():
                    if other.user_id == account.user_id:
                        other.is_default = False
            account.is_default = is_default
            account.updated_at = utcnow()
            return _clone(account)

    def delete_bank_account(self, account_id):
        with self._lock:
            return self._bank_accounts.pop(account_id, None) is not None

    # Settings

    def get_setting(self, key):
        with self._lock:
            setting = self._settings.get(key)
            return setting.value if setting else None

    def save_setting(self, key, value):
        with self._lock:
            self._settings[key] = Setting(key=key, value=value, updated_at=utcnow())

    def get_all_settings(self):
        with self._lock:
            return {key: setting.value for key, setting in self._settings.items()}
