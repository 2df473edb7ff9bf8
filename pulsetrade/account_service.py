"""
Profile and administrative user management
"""

import logging
from typing import Any, Dict, List

from pulsetrade.errors import UserNotFound, ValidationError
from pulsetrade.permissions import Capability, require_capability
from pulsetrade.user import User, UserRole
from pulsetrade.validators import ensure_valid, parse_decimal, validate_choice, validate_profile

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("email", "full_name", "display_name", "phone_number", "avatar_url")

class AccountService:
    """
    Self-service profile edits and staff edits of any user
    """

    def __init__(self, storage, ledger, auth):
        self.storage = storage
        self.ledger = ledger
        self.auth = auth

    def get_user(self, user_id: int) -> User:
        user = self.storage.get_user(user_id)
        if user is None:
            raise UserNotFound(user_id)
        return user

    def update_profile(self, user_id: int, values: Dict[str, Any]) -> User:
        """
        Update the caller's own profile fields.

        Args:
            user_id: User editing their profile
            values: Any of email, full_name, display_name, phone_number, avatar_url

        Returns:
            User: The updated user
        """
        fields = {key: values[key] for key in PROFILE_FIELDS if values.get(key) is not None}
        self._check_profile(user_id, fields)

        user = self.storage.update_user(user_id, **fields)
        if user is None:
            raise UserNotFound(user_id)
        logger.info(f"Profile of user {user_id} updated: {', '.join(sorted(fields)) or 'no changes'}")
        return user

    def list_users(self, actor) -> List[User]:
        require_capability(actor, Capability.VIEW_ALL_USERS)
        return self.storage.get_all_users()

    def admin_update_user(self, actor, user_id: int, values: Dict[str, Any]) -> User:
        """
        Staff edit of another user: profile, role, password and balance.

        The balance is written through the ledger so it cannot interleave
        with a settlement or review for the same user.
        """
        require_capability(actor, Capability.MANAGE_USERS)
        self.get_user(user_id)

        fields = {key: values[key] for key in PROFILE_FIELDS if values.get(key) is not None}
        self._check_profile(user_id, fields)

        if values.get("role") is not None:
            ensure_valid(validate_choice(values["role"], [r.value for r in UserRole], "role"))
            fields["role"] = UserRole(values["role"])
        if values.get("password"):
            fields.update(self.auth.hash_password_fields(values["password"]))

        balance = None
        if values.get("balance") is not None:
            balance = parse_decimal(values["balance"], "balance")
            if balance < 0:
                raise ValidationError("balance cannot be negative")

        if not fields and balance is None:
            raise ValidationError("No data to update")

        if fields:
            self.storage.update_user(user_id, **fields)
        if balance is not None:
            self.ledger.set_balance(user_id, balance)

        changed = sorted(key for key in fields if not key.startswith("password"))
        if "password_hash" in fields:
            changed.append("password")
        if balance is not None:
            changed.append("balance")
        logger.info(f"User {user_id} updated by user {actor.id}: {', '.join(changed)}")
        return self.get_user(user_id)

    def _check_profile(self, user_id: int, fields: Dict[str, Any]):
        errors = validate_profile(fields)
        if errors:
            raise ValidationError("; ".join(errors.values()))
        if "email" in fields:
            other = self.storage.get_user_by_email(fields["email"])
            if other is not None and other.id != user_id:
                raise ValidationError("Email already in use")
