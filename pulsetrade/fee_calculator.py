# pulsetrade/fee_calculator.py
import logging
from typing import Optional, Tuple
from decimal import Decimal, ROUND_HALF_UP

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
HUNDRED = Decimal("100")

def quantize_money(value: Decimal) -> Decimal:
    """Round a monetary amount to cents"""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)

def format_money(value: Decimal) -> str:
    """Monetary amount as the string persisted in balance/amount columns"""
    return str(quantize_money(value))

class FeeCalculator:
    """
    Payout and fee calculations

    Trade payouts return the stake plus the profit share; withdrawal fees are
    a percentage withheld from the requested amount. All arithmetic is done
    in Decimal and rounded half-up to cents.
    """

    def __init__(self, config=None, settings_service=None):
        """
        Initialize the Fee Calculator.

        Args:
            config (AppConfig, optional): Supplies the duration to profit table
            settings_service (SettingsService, optional): Supplies the withdrawal fee
        """
        self.settings_service = settings_service
        
        get = config.get if config is not None else (lambda key, default=None: default)
        self.default_profit_percentage = Decimal(str(get('trading.default_profit_percentage', 30)))
        table = get('trading.profit_by_duration', {"60": 30, "120": 40, "300": 50}) or {}
        self.profit_by_duration = {int(k): Decimal(str(v)) for k, v in table.items()}

    def profit_percentage_for_duration(self, duration: int) -> Decimal:
        """
        Profit percentage offered for a trade duration.

        Args:
            duration (int): Trade duration in seconds

        Returns:
            Decimal: Profit percentage, falling back to the default rate
        """
        return self.profit_by_duration.get(int(duration), self.default_profit_percentage)

    def trade_profit(self, amount: Decimal, profit_percentage: Decimal) -> Decimal:
        """Profit share credited on a winning trade"""
        return quantize_money(amount * profit_percentage / HUNDRED)

    def trade_payout(self, amount: Decimal, profit_percentage: Decimal) -> Decimal:
        """
        Amount credited back on a winning trade: the stake plus the profit.

        Args:
            amount (Decimal): Stake debited when the trade was opened
            profit_percentage (Decimal): Profit percentage recorded on the trade

        Returns:
            Decimal: Total credit
        """
        return quantize_money(amount + self.trade_profit(amount, profit_percentage))

    def withdrawal_fee_percentage(self) -> Decimal:
        if self.settings_service is None:
            return Decimal("0")
        return Decimal(str(self.settings_service.get("withdrawalFeePercentage")))

    def withdrawal_fee(self, amount: Decimal, fee_percentage: Optional[Decimal] = None) -> Tuple[Decimal, Decimal]:
        """
        Split a withdrawal into fee and net payout.

        Args:
            amount (Decimal): Requested withdrawal amount
            fee_percentage (Decimal, optional): Override for the configured fee

        Returns:
            Tuple[Decimal, Decimal]: (fee, net amount)
        """
        if fee_percentage is None:
            fee_percentage = self.withdrawal_fee_percentage()
        fee = quantize_money(amount * fee_percentage / HUNDRED)
        return fee, quantize_money(amount - fee)
