"""
Persistence interface for PulseTrade

Services depend only on Storage. DatabaseStorage is the canonical
implementation backed by the SQLAlchemy repositories; MemoryStorage (see
memory_storage.py) keeps everything in process for development and tests.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional

from pulsetrade.bank_account import BankAccount
from pulsetrade.bank_account_repository import BankAccountRepository
from pulsetrade.settings_repository import SettingsRepository
from pulsetrade.trade import Trade, TradeResult
from pulsetrade.trade_repository import TradeRepository
from pulsetrade.transaction import Transaction, TransactionStatus
from pulsetrade.transaction_repository import TransactionRepository
from pulsetrade.user import User
from pulsetrade.user_repository import UserRepository

logger = logging.getLogger(__name__)


class Storage(ABC):
    """
    Read/write contract for users, trades, transactions, bank accounts and
    settings. Methods returning a single record return None when it does
    not exist.
    """

    # Users

    @abstractmethod
    def create_user(self, username: str, email: str, **fields) -> User:
        pass

    @abstractmethod
    def get_user(self, user_id: int) -> Optional[User]:
        pass

    @abstractmethod
    def get_user_by_username(self, username: str) -> Optional[User]:
        pass

    @abstractmethod
    def get_user_by_email(self, email: str) -> Optional[User]:
        pass

    @abstractmethod
    def get_all_users(self) -> List[User]:
        pass

    @abstractmethod
    def update_user(self, user_id: int, **fields) -> Optional[User]:
        pass

    def update_user_balance(self, user_id: int, balance: str) -> Optional[User]:
        return self.update_user(user_id, balance=balance)

    # Trades

    @abstractmethod
    def create_trade(self, **fields) -> Trade:
        pass

    @abstractmethod
    def get_trade(self, trade_id: int) -> Optional[Trade]:
        pass

    @abstractmethod
    def get_trades_by_user(self, user_id: int) -> List[Trade]:
        pass

    @abstractmethod
    def get_all_trades(self) -> List[Trade]:
        pass

    @abstractmethod
    def get_active_trades(self) -> List[Trade]:
        pass

    @abstractmethod
    def update_trade(self, trade_id: int, **fields) -> Optional[Trade]:
        pass

    @abstractmethod
    def complete_trade(self, trade_id: int, result: TradeResult, end_time: datetime) -> Optional[Trade]:
        """
        Complete a trade only if it is still active; None otherwise
        """
        pass

    # Transactions

    @abstractmethod
    def create_transaction(self, **fields) -> Transaction:
        pass

    @abstractmethod
    def get_transaction(self, transaction_id: int) -> Optional[Transaction]:
        pass

    @abstractmethod
    def get_transactions_by_user(self, user_id: int) -> List[Transaction]:
        pass

    @abstractmethod
    def get_all_transactions(self) -> List[Transaction]:
        pass

    @abstractmethod
    def transition_transaction(self, transaction_id: int, from_status: TransactionStatus,
                               to_status: TransactionStatus, note: Optional[str] = None) -> Optional[Transaction]:
        """
        Change status only if the transaction is still in from_status; None otherwise
        """
        pass

    # Bank accounts

    @abstractmethod
    def create_bank_account(self, **fields) -> BankAccount:
        pass

    @abstractmethod
    def get_bank_account(self, account_id: int) -> Optional[BankAccount]:
        pass

    @abstractmethod
    def get_bank_accounts_by_user(self, user_id: int) -> List[BankAccount]:
        pass

    @abstractmethod
    def get_all_bank_accounts(self) -> List[BankAccount]:
        pass

    @abstractmethod
    def update_bank_account(self, account_id: int, **fields) -> Optional[BankAccount]:
        pass

    @abstractmethod
    def update_bank_account_default(self, account_id: int, is_default: bool) -> Optional[BankAccount]:
        pass

    @abstractmethod
    def delete_bank_account(self, account_id: int) -> bool:
        pass

    # Settings

    @abstractmethod
    def get_setting(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    def save_setting(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    def get_all_settings(self) -> Dict[str, str]:
        pass


class DatabaseStorage(Storage):
    """
    Storage backed by the SQLAlchemy repositories
    """

    def __init__(self, db):
        self.db = db
        self.users = UserRepository(db)
        self.trades = TradeRepository(db)
        self.transactions = TransactionRepository(db)
        self.bank_accounts = BankAccountRepository(db)
        self.settings = SettingsRepository(db)
        logger.info("Database storage initialized")

    def create_user(self, username, email, **fields):
        return self.users.create_user(username, email, **fields)

    def get_user(self, user_id):
        return self.users.get_user_by_id(user_id)

    def get_user_by_username(self, username):
        return self.users.get_user_by_username(username)

    def get_user_by_email(self, email):
        return self.users.get_user_by_email(email)

    def get_all_users(self):
        return self.users.get_all_users()

    def update_user(self, user_id, **fields):
        return self.users.update_user(user_id, **fields)

    def create_trade(self, **fields):
        return self.trades.add_trade(**fields)

    def get_trade(self, trade_id):
        return self.trades.get_trade_by_id(trade_id)

    def get_trades_by_user(self, user_id):
        return self.trades.get_trades_by_user(user_id)

    def get_all_trades(self):
        return self.trades.get_all_trades()

    def get_active_trades(self):
        return self.trades.get_active_trades()

    def update_trade(self, trade_id, **fields):
        return self.trades.update_trade(trade_id, **fields)

    def complete_trade(self, trade_id, result, end_time):
        return self.trades.complete_trade(trade_id, result, end_time)

    def create_transaction(self, **fields):
        return self.transactions.add_transaction(**fields)

    def get_transaction(self, transaction_id):
        return self.transactions.get_transaction_by_id(transaction_id)

    def get_transactions_by_user(self, user_id):
        return self.transactions.get_transactions_by_user(user_id)

    def get_all_transactions(self):
        return self.transactions.get_all_transactions()

    def transition_transaction(self, transaction_id, from_status, to_status, note=None):
        return self.transactions.transition_status(transaction_id, from_status, to_status, note)

    def create_bank_account(self, **fields):
        return self.bank_accounts.add_bank_account(**fields)

    def get_bank_account(self, account_id):
        return self.bank_accounts.get_bank_account_by_id(account_id)

    def get_bank_accounts_by_user(self, user_id):
        return self.bank_accounts.get_bank_accounts_by_user(user_id)

    def get_all_bank_accounts(self):
        return self.bank_accounts.get_all_bank_accounts()

    def update_bank_account(self, account_id, **fields):
        return self.bank_accounts.update_bank_account(account_id, **fields)

    def update_bank_account_default(self, account_id, is_default):
        return self.bank_accounts.set_default(account_id, is_default)

    def delete_bank_account(self, account_id):
        return self.bank_accounts.delete_bank_account(account_id)

    def get_setting(self, key):
        return self.settings.get_value(key)

    def save_setting(self, key, value):
        self.settings.save_value(key, value)

    def get_all_settings(self):
        return self.settings.get_all_values()
