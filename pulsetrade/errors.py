"""
Exception hierarchy for PulseTrade services
"""


class PulseTradeError(Exception):
    """Base class for all domain errors."""
    pass


class ValidationError(PulseTradeError):
    """Malformed or out-of-range input."""
    pass


class InsufficientBalance(PulseTradeError):
    """A debit would take a balance below zero."""

    def __init__(self, user_id, balance, amount):
        self.user_id = user_id
        self.balance = balance
        self.amount = amount
        super().__init__(f"Insufficient balance for user {user_id}: balance {balance}, requested {amount}")


class NotFound(PulseTradeError):
    """Referenced record does not exist."""
    entity = "Record"

    def __init__(self, record_id=None, message=None):
        self.record_id = record_id
        super().__init__(message or f"{self.entity} {record_id} not found")


class UserNotFound(NotFound):
    entity = "User"


class TradeNotFound(NotFound):
    entity = "Trade"


class TransactionNotFound(NotFound):
    entity = "Transaction"


class BankAccountNotFound(NotFound):
    entity = "Bank account"


class UpstreamUnavailable(PulseTradeError):
    """Price feed failed and no cached market data is available."""
    pass


class MalformedRecord(PulseTradeError):
    """A stored record holds an unparseable timestamp or numeric field."""
    pass


class PermissionDenied(PulseTradeError):
    """Actor lacks the capability required for an operation."""
    pass


class AuthenticationError(PulseTradeError):
    """Invalid credentials or token."""
    pass


class InvalidStateTransition(PulseTradeError):
    """Record is not in a state that allows the requested change."""
    pass
