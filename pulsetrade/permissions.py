"""
Role capabilities

Call sites ask for a capability rather than comparing role strings.
"""

import enum
import logging

from pulsetrade.errors import PermissionDenied
from pulsetrade.user import UserRole

logger = logging.getLogger(__name__)

class Capability(enum.Enum):
    VIEW_ALL_TRADES = "view_all_trades"
    SET_PREDETERMINED_RESULT = "set_predetermined_result"
    SETTLE_ANY_TRADE = "settle_any_trade"
    VIEW_ALL_USERS = "view_all_users"
    MANAGE_USERS = "manage_users"
    MANAGE_TRANSACTIONS = "manage_transactions"
    MANAGE_BANK_ACCOUNTS = "manage_bank_accounts"
    MANAGE_SETTINGS = "manage_settings"

ROLE_CAPABILITIES = {
    UserRole.USER: frozenset(),
    UserRole.AGENT: frozenset({
        Capability.VIEW_ALL_TRADES,
        Capability.SET_PREDETERMINED_RESULT,
        Capability.VIEW_ALL_USERS,
    }),
    UserRole.ADMIN: frozenset(Capability),
}

def capabilities_for(role) -> frozenset:
    if isinstance(role, str):
        try:
            role = UserRole(role)
        except ValueError:
            return frozenset()
    return ROLE_CAPABILITIES.get(role, frozenset())

def has_capability(user, capability: Capability) -> bool:
    return user is not None and capability in capabilities_for(user.role)

def require_capability(user, capability: Capability) -> None:
    """Raise PermissionDenied unless the user holds the capability"""
    if not has_capability(user, capability):
        logger.warning(f"Unauthorized {capability.value} attempt by user {getattr(user, 'id', None)}")
        raise PermissionDenied(f"Missing permission: {capability.value}")
