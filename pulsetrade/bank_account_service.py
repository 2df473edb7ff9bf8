# pulsetrade/bank_account_service.py
import logging
import threading
from typing import Any, Dict, List, Optional

from pulsetrade.bank_account import BankAccount
from pulsetrade.errors import BankAccountNotFound, PermissionDenied, ValidationError
from pulsetrade.permissions import Capability, has_capability
from pulsetrade.validators import ensure_valid, validate_bank_account

logger = logging.getLogger(__name__)

class BankAccountService:
    """
    Users' saved payout accounts.

    Each user keeps at most max_per_user accounts, and exactly one of them is
    the default whenever they have any.
    """

    def __init__(self, storage, max_per_user: int = 2):
        self.storage = storage
        self.max_per_user = max_per_user
        # Serialises count checks and default promotion
        self._lock = threading.Lock()

    def create(self, user_id: int, bank_name: str, account_number: str, account_name: str,
               is_default: bool = False) -> BankAccount:
        """
        Save a bank account for a user.

        Args:
            user_id: Account owner
            bank_name: Bank name
            account_number: Account number, digits with optional dashes or spaces
            account_name: Name on the account
            is_default: Make this the default account

        Returns:
            BankAccount: The saved account
        """
        ensure_valid(validate_bank_account(bank_name, account_number, account_name))

        with self._lock:
            existing = self.storage.get_bank_accounts_by_user(user_id)
            if len(existing) >= self.max_per_user:
                raise ValidationError(
                    f"A maximum of {self.max_per_user} bank accounts is allowed, delete one first"
                )

            account = self.storage.create_bank_account(
                user_id=user_id,
                bank_name=bank_name.strip(),
                account_number=account_number.strip(),
                account_name=account_name.strip(),
                is_default=bool(is_default) or not existing,
            )

        logger.info(f"Bank account {account.id} added for user {user_id}")
        return account

    def list_for_user(self, user_id: int) -> List[BankAccount]:
        return self.storage.get_bank_accounts_by_user(user_id)

    def update(self, actor, account_id: int, values: Dict[str, Any]) -> BankAccount:
        """
        Edit an account's details; owners edit their own, staff with
        MANAGE_BANK_ACCOUNTS edit any.
        """
        account = self._get_for(actor, account_id)

        bank_name = values.get("bank_name", account.bank_name)
        account_number = values.get("account_number", account.account_number)
        account_name = values.get("account_name", account.account_name)
        ensure_valid(validate_bank_account(bank_name, account_number, account_name))

        updated = self.storage.update_bank_account(
            account_id,
            bank_name=bank_name.strip(),
            account_number=account_number.strip(),
            account_name=account_name.strip(),
        )
        if updated is None:
            raise BankAccountNotFound(account_id)

        if values.get("is_default") is True and not updated.is_default:
            updated = self.set_default(actor, account_id)

        logger.info(f"Bank account {account_id} updated by user {actor.id}")
        return updated

    def set_default(self, actor, account_id: int) -> BankAccount:
        self._get_for(actor, account_id)
        with self._lock:
            account = self.storage.update_bank_account_default(account_id, True)
        if account is None:
            raise BankAccountNotFound(account_id)
        return account

    def delete(self, actor, account_id: int) -> None:
        """
        Remove an account; if it was the default another one is promoted.
        """
        account = self._get_for(actor, account_id)

        with self._lock:
            if not self.storage.delete_bank_account(account_id):
                raise BankAccountNotFound(account_id)

            promoted: Optional[BankAccount] = None
            if account.is_default:
                remaining = self.storage.get_bank_accounts_by_user(account.user_id)
                if remaining:
                    promoted = self.storage.update_bank_account_default(remaining[0].id, True)

        logger.info(f"Bank account {account_id} deleted by user {actor.id}"
                    + (f", account {promoted.id} is now default" if promoted else ""))

    def _get_for(self, actor, account_id: int) -> BankAccount:
        account = self.storage.get_bank_account(account_id)
        if account is None:
            raise BankAccountNotFound(account_id)
        if account.user_id != actor.id and not has_capability(actor, Capability.MANAGE_BANK_ACCOUNTS):
            raise PermissionDenied("You don't have permission to modify this bank account")
        return account
