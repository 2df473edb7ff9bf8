# pulsetrade/settings_service.py
import json
import logging
from decimal import Decimal
from typing import Any, Dict

from pulsetrade.errors import ValidationError
from pulsetrade.helpers import safe_json_loads
from pulsetrade.permissions import Capability, require_capability

logger = logging.getLogger(__name__)

# Keys an administrator may set, with their defaults
DEFAULT_SETTINGS: Dict[str, Any] = {
    "maintenanceMode": False,
    "maintenanceMessage": "",
    "allowRegistrations": True,
    "allowTrading": True,
    "siteName": "PulseTrade",
    "withdrawalFeePercentage": 3,
    "minDepositAmount": 0,
    "minWithdrawalAmount": 0,
    "tradeDurations": [60, 120, 300],
    # Deposit destination shown to users
    "bank_name": "",
    "bank_account_number": "",
    "bank_account_name": "",
    "promptpay_number": "",
    "promptpay_tax_id": "",
    "promptpay_name": "",
}

BOOLEAN_KEYS = {"maintenanceMode", "allowRegistrations", "allowTrading"}
PERCENTAGE_KEYS = {"withdrawalFeePercentage"}
AMOUNT_KEYS = {"minDepositAmount", "minWithdrawalAmount"}


class SettingsService:
    """
    Typed access to the process-wide settings table

    Values are stored JSON encoded and read on every call; there is no cache.
    """

    def __init__(self, storage):
        self.storage = storage

    def get(self, key: str) -> Any:
        if key not in DEFAULT_SETTINGS:
            raise KeyError(key)
        raw = self.storage.get_setting(key)
        if raw is None:
            return DEFAULT_SETTINGS[key]
        return safe_json_loads(raw, DEFAULT_SETTINGS[key])

    def get_all(self) -> Dict[str, Any]:
        stored = self.storage.get_all_settings()
        values = dict(DEFAULT_SETTINGS)
        for key, raw in stored.items():
            if key in values:
                values[key] = safe_json_loads(raw, values[key])
        return values

    def update(self, actor, values: Dict[str, Any]) -> Dict[str, Any]:
        """
        Validate and persist a batch of settings.

        Args:
            actor: User performing the change, needs MANAGE_SETTINGS
            values: Key/value pairs to store

        Returns:
            Dict[str, Any]: All settings after the update
        """
        require_capability(actor, Capability.MANAGE_SETTINGS)

        unknown = sorted(set(values) - set(DEFAULT_SETTINGS))
        if unknown:
            raise ValidationError(f"Unknown settings: {', '.join(unknown)}")

        cleaned = {key: self._clean(key, value) for key, value in values.items()}
        for key, value in cleaned.items():
            self.storage.save_setting(key, json.dumps(value))

        logger.info(f"Settings updated by user {actor.id}: {', '.join(sorted(cleaned))}")
        return self.get_all()

    def _clean(self, key: str, value: Any) -> Any:
        if key in BOOLEAN_KEYS:
            if not isinstance(value, bool):
                raise ValidationError(f"{key} must be true or false")
            return value
        if key in PERCENTAGE_KEYS or key in AMOUNT_KEYS:
            if isinstance(value, bool) or not isinstance(value, (int, float, str)):
                raise ValidationError(f"{key} must be a number")
            try:
                number = Decimal(str(value))
            except ArithmeticError:
                raise ValidationError(f"{key} must be a number")
            if not number.is_finite() or number < 0 or (key in PERCENTAGE_KEYS and number > 100):
                raise ValidationError(f"{key} is out of range")
            return float(number) if number != number.to_integral_value() else int(number)
        if key == "tradeDurations":
            if (not isinstance(value, list) or not value
                    or not all(isinstance(v, int) and not isinstance(v, bool) and v > 0 for v in value)):
                raise ValidationError("tradeDurations must be a list of positive integers")
            return sorted(set(value))
        if not isinstance(value, str):
            raise ValidationError(f"{key} must be a string")
        return value.strip()

    def ensure_trading_enabled(self) -> None:
        if self.get("maintenanceMode"):
            raise ValidationError(self.get("maintenanceMessage") or "System is under maintenance")
        if not self.get("allowTrading"):
            raise ValidationError("Trading is currently disabled")

    def deposit_accounts(self) -> Dict[str, Any]:
        """
        Destination accounts users should transfer deposits to
        """
        values = self.get_all()
        return {
            "bank": {
                "name": values["bank_name"],
                "accountNumber": values["bank_account_number"],
                "accountName": values["bank_account_name"],
            },
            "promptpay": {
                "number": values["promptpay_number"],
                "taxId": values["promptpay_tax_id"],
                "name": values["promptpay_name"],
            },
        }
