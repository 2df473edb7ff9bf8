# pulsetrade/wallet_service.py
import logging
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from pulsetrade.errors import (
    BankAccountNotFound, InvalidStateTransition, MalformedRecord, TransactionNotFound, UserNotFound,
    ValidationError
)
from pulsetrade.fee_calculator import format_money
from pulsetrade.helpers import truncate_string
from pulsetrade.permissions import Capability, require_capability
from pulsetrade.transaction import PaymentMethod, Transaction, TransactionStatus, TransactionType
from pulsetrade.validators import ensure_valid, parse_money, validate_choice

logger = logging.getLogger(__name__)

WITHDRAWAL_PENDING_NOTE = "Funds debited, awaiting approval"

# Reviewer decisions a pending transaction can move to
REVIEW_STATUSES = (TransactionStatus.APPROVED, TransactionStatus.REJECTED, TransactionStatus.FROZEN)

class WalletService:
    """
    Deposit and withdrawal requests and their manual review.

    Deposits are credited only when approved. Withdrawals are debited when
    requested and refunded if rejected; a frozen withdrawal keeps the funds.
    """

    def __init__(self, storage, ledger, notifications, settings_service, fee_calculator):
        self.storage = storage
        self.ledger = ledger
        self.notifications = notifications
        self.settings_service = settings_service
        self.fee_calculator = fee_calculator

    def request_deposit(self, user_id: int, amount, method, payment_proof: Optional[str] = None) -> Transaction:
        """
        Record a pending deposit.

        Args:
            user_id: Depositing user
            amount: Amount transferred
            method: "bank" or "promptpay"
            payment_proof: Base64 image of the transfer slip

        Returns:
            Transaction: The pending deposit
        """
        value = self._parse_amount(amount, "minDepositAmount")
        method = self._parse_method(method)
        if self.storage.get_user(user_id) is None:
            raise UserNotFound(user_id)

        transaction = self.storage.create_transaction(
            user_id=user_id,
            transaction_type=TransactionType.DEPOSIT,
            amount=format_money(value),
            method=method,
            payment_proof=payment_proof,
            status=TransactionStatus.PENDING,
        )
        logger.info(f"Deposit {transaction.id} requested by user {user_id}: {transaction.amount} via {method.value}")
        return transaction

    def request_withdrawal(self, user_id: int, amount, method, bank_name: Optional[str] = None,
                           bank_account: Optional[str] = None) -> Transaction:
        """
        Debit the amount and record a pending withdrawal.

        Raises:
            InsufficientBalance: Balance lower than the amount; nothing is recorded
        """
        value = self._parse_amount(amount, "minWithdrawalAmount")
        method = self._parse_method(method)
        return self._withdraw(user_id, value, dict(
            method=method,
            bank_name=bank_name,
            bank_account=bank_account,
            note=WITHDRAWAL_PENDING_NOTE,
        ))

    def request_withdrawal_to_saved_account(self, user_id: int, amount, bank_account_id: int) -> Transaction:
        """
        Withdraw to one of the user's saved bank accounts, withholding the withdrawal fee.

        The full amount is debited; fee and net payout are recorded on the
        transaction for the reviewer.
        """
        value = self._parse_amount(amount, "minWithdrawalAmount")

        account = self.storage.get_bank_account(bank_account_id)
        if account is None or account.user_id != user_id:
            raise BankAccountNotFound(bank_account_id)

        fee_percentage = self.fee_calculator.withdrawal_fee_percentage()
        fee, net = self.fee_calculator.withdrawal_fee(value, fee_percentage)

        return self._withdraw(user_id, value, dict(
            method=PaymentMethod.BANK,
            fee=format_money(fee),
            bank_name=account.bank_name,
            bank_account=account.account_number,
            account_name=account.account_name,
            bank_account_id=account.id,
            note=f"{WITHDRAWAL_PENDING_NOTE} | fee {fee_percentage}%: {format_money(fee)}, net: {format_money(net)}",
        ))

    def _withdraw(self, user_id: int, value: Decimal, fields) -> Transaction:
        balance = self.ledger.debit(user_id, value)
        try:
            transaction = self.storage.create_transaction(
                user_id=user_id,
                transaction_type=TransactionType.WITHDRAW,
                amount=format_money(value),
                status=TransactionStatus.PENDING,
                **fields
            )
        except Exception as e:
            logger.error(f"Recording withdrawal for user {user_id} failed, refunding: {str(e)}")
            self.ledger.credit(user_id, value)
            raise

        logger.info(f"Withdrawal {transaction.id} requested by user {user_id}: {transaction.amount}")
        self.notifications.notify_balance_update(user_id, balance)
        return transaction

    def review_transaction(self, actor, transaction_id: int, status, note: Optional[str] = None) -> Transaction:
        """
        Approve, reject or freeze a pending transaction.

        Args:
            actor: Reviewer, needs MANAGE_TRANSACTIONS
            transaction_id: Transaction to review
            status: "approved", "rejected" or "frozen"
            note: Optional reviewer note

        Returns:
            Transaction: The reviewed transaction

        Raises:
            InvalidStateTransition: The transaction is no longer pending
        """
        require_capability(actor, Capability.MANAGE_TRANSACTIONS)

        if not isinstance(status, TransactionStatus):
            ensure_valid(validate_choice(status, [s.value for s in REVIEW_STATUSES], "status"))
            status = TransactionStatus(status)
        elif status not in REVIEW_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(s.value for s in REVIEW_STATUSES)}")

        transaction = self.storage.get_transaction(transaction_id)
        if transaction is None:
            raise TransactionNotFound(transaction_id)

        try:
            amount = Decimal(transaction.amount)
        except (InvalidOperation, TypeError):
            raise MalformedRecord(f"Transaction {transaction_id} has an unparseable amount: {transaction.amount!r}")

        balance = None
        with self.ledger.locked(transaction.user_id):
            reviewed = self.storage.transition_transaction(
                transaction_id, TransactionStatus.PENDING, status, note
            )
            if reviewed is None:
                current = self.storage.get_transaction(transaction_id)
                current_status = current.status.value if current is not None else "missing"
                raise InvalidStateTransition(
                    f"Transaction {transaction_id} is {current_status}, only pending transactions can be reviewed"
                )

            credits_owner = (
                (reviewed.transaction_type == TransactionType.DEPOSIT and status == TransactionStatus.APPROVED)
                or (reviewed.transaction_type == TransactionType.WITHDRAW and status == TransactionStatus.REJECTED)
            )
            if credits_owner and amount > 0:
                balance = self.ledger.credit(reviewed.user_id, amount)

        logger.info(f"Transaction {transaction_id} ({reviewed.transaction_type.value}) {status.value} "
                    f"by user {actor.id}" + (f": {truncate_string(note, 80)}" if note else ""))
        if balance is not None:
            self.notifications.notify_balance_update(reviewed.user_id, balance)
        return reviewed

    def list_transactions(self, user_id: int) -> List[Transaction]:
        return self.storage.get_transactions_by_user(user_id)

    def list_all_transactions(self, actor) -> List[Transaction]:
        require_capability(actor, Capability.MANAGE_TRANSACTIONS)
        return self.storage.get_all_transactions()

    def _parse_amount(self, amount, minimum_key: str) -> Decimal:
        value = parse_money(amount, "amount")
        minimum = Decimal(str(self.settings_service.get(minimum_key)))
        if value < minimum:
            raise ValidationError(f"amount must be at least {format_money(minimum)}")
        return value

    @staticmethod
    def _parse_method(method) -> PaymentMethod:
        if isinstance(method, PaymentMethod):
            return method
        ensure_valid(validate_choice(method, [m.value for m in PaymentMethod], "method"))
        return PaymentMethod(method)
