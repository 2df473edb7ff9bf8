"""
Trade lifecycle for PulseTrade

Opens timed up/down trades against the live price, records staff-forced
outcomes and settles expired trades. Settlement is the only place a trade
moves from active to completed; the change is conditional on the trade
still being active and runs under the owner's balance lock, so a payout is
credited at most once however many settlers race.
"""

import logging
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Callable, List

from pulsetrade.errors import (
    MalformedRecord, PermissionDenied, TradeNotFound, UpstreamUnavailable, ValidationError
)
from pulsetrade.fee_calculator import format_money
from pulsetrade.helpers import parse_timestamp, utcnow
from pulsetrade.permissions import Capability, has_capability, require_capability
from pulsetrade.trade import Trade, TradeDirection, TradeResult, TradeStatus
from pulsetrade.validators import (
    ensure_valid, parse_decimal, parse_money, parse_positive_decimal, validate_choice, validate_percentage
)

logger = logging.getLogger(__name__)


def trade_expiry(trade: Trade) -> datetime:
    """
    Moment a trade becomes eligible for settlement.

    Raises:
        MalformedRecord: created_at or duration cannot be interpreted
    """
    created_at = parse_timestamp(trade.created_at)
    if created_at is None:
        raise MalformedRecord(f"Trade {trade.id} has an unparseable created_at: {trade.created_at!r}")
    try:
        duration = int(trade.duration)
    except (TypeError, ValueError):
        raise MalformedRecord(f"Trade {trade.id} has an unparseable duration: {trade.duration!r}")
    if duration < 0:
        raise MalformedRecord(f"Trade {trade.id} has a negative duration: {duration}")
    return created_at + timedelta(seconds=duration)


def decide_result(direction: TradeDirection, entry_price: Decimal, current_price: Decimal) -> TradeResult:
    """Price rule: a strict move in the chosen direction wins, anything else loses"""
    if direction == TradeDirection.UP and current_price > entry_price:
        return TradeResult.WIN
    if direction == TradeDirection.DOWN and current_price < entry_price:
        return TradeResult.WIN
    return TradeResult.LOSE


def _stored_decimal(trade: Trade, field: str) -> Decimal:
    raw = getattr(trade, field)
    try:
        value = Decimal(str(raw))
    except (InvalidOperation, ValueError):
        raise MalformedRecord(f"Trade {trade.id} has an unparseable {field}: {raw!r}")
    if not value.is_finite():
        raise MalformedRecord(f"Trade {trade.id} has an unparseable {field}: {raw!r}")
    return value


class TradeLifecycleManager:
    """
    Open, force and settle trades
    """

    def __init__(self, storage, ledger, oracle, notifications, settings_service, fee_calculator,
                 clock: Callable[[], datetime] = utcnow):
        self.storage = storage
        self.ledger = ledger
        self.oracle = oracle
        self.notifications = notifications
        self.settings_service = settings_service
        self.fee_calculator = fee_calculator
        self.clock = clock

    def open(self, user_id: int, crypto_id: str, amount, direction, duration,
             entry_price=None, profit_percentage=None) -> Trade:
        """
        Open a trade and debit its stake.

        Args:
            user_id: Trader
            crypto_id: CoinGecko coin id
            amount: Stake, a positive number
            direction: "up" or "down"
            duration: Seconds until expiry, one of the tradeDurations setting
            entry_price: Price to record; the current market price if omitted
            profit_percentage: Profit share on a win; derived from duration if omitted

        Returns:
            Trade: The new active trade

        Raises:
            ValidationError: Bad input or trading disabled
            InsufficientBalance: Balance lower than the stake
            UserNotFound: Unknown user
        """
        self.settings_service.ensure_trading_enabled()

        if not crypto_id or not str(crypto_id).strip():
            raise ValidationError("cryptoId is required")
        crypto_id = str(crypto_id).strip()

        stake = parse_money(amount, "amount")
        direction = self._parse_direction(direction)
        duration = self._parse_duration(duration)

        if profit_percentage is None:
            percentage = self.fee_calculator.profit_percentage_for_duration(duration)
        else:
            percentage = parse_decimal(profit_percentage, "profitPercentage")
            ensure_valid(validate_percentage(percentage))

        # A trade on a coin the feed cannot price would never settle
        if self.oracle.get_crypto_by_id(crypto_id) is None:
            raise ValidationError(f"Unknown cryptocurrency: {crypto_id}")
        if entry_price is None:
            price = self.oracle.get_current_price(crypto_id)
            if price is None:
                raise ValidationError(f"No current price for {crypto_id}")
        else:
            price = parse_positive_decimal(entry_price, "entryPrice")

        balance = self.ledger.debit(user_id, stake)
        try:
            trade = self.storage.create_trade(
                user_id=user_id,
                crypto_id=crypto_id,
                entry_price=str(price),
                amount=format_money(stake),
                direction=direction,
                duration=duration,
                profit_percentage=str(percentage),
                status=TradeStatus.ACTIVE,
                created_at=self.clock(),
            )
        except Exception as e:
            logger.error(f"Creating trade for user {user_id} failed, refunding stake: {str(e)}")
            self.ledger.credit(user_id, stake)
            raise

        logger.info(f"Trade {trade.id} opened: user {user_id} {direction.value} {crypto_id} "
                    f"stake {trade.amount} for {duration}s at {trade.entry_price}")
        self.notifications.notify_trade_update(user_id, trade.to_dict())
        self.notifications.notify_balance_update(user_id, balance)
        return trade

    def set_predetermined(self, actor, trade_id: int, result) -> Trade:
        """
        Force the outcome a trade will settle with; None clears it
        """
        require_capability(actor, Capability.SET_PREDETERMINED_RESULT)

        if result is not None and not isinstance(result, TradeResult):
            ensure_valid(validate_choice(result, [r.value for r in TradeResult], "result"))
            result = TradeResult(result)

        trade = self.storage.update_trade(trade_id, predetermined_result=result)
        if trade is None:
            raise TradeNotFound(trade_id)

        logger.info(f"Predetermined result of trade {trade_id} set to "
                    f"{result.value if result else None} by user {actor.id}")
        return trade

    def settle(self, trade_id: int, broadcast: bool = False) -> Trade:
        """
        Complete a trade and pay out a win.

        A trade that is no longer active is returned unchanged.

        Args:
            trade_id: Trade to settle
            broadcast: Also announce the completion to every connection

        Returns:
            Trade: The trade after settlement

        Raises:
            TradeNotFound: Unknown trade
            UpstreamUnavailable: No predetermined result and no current price
            MalformedRecord: Stored entry price or stake cannot be parsed
        """
        trade = self.storage.get_trade(trade_id)
        if trade is None:
            raise TradeNotFound(trade_id)
        if trade.status != TradeStatus.ACTIVE:
            return trade

        stake = _stored_decimal(trade, "amount")
        percentage = _stored_decimal(trade, "profit_percentage")
        result = trade.predetermined_result or self._price_result(trade)

        balance = None
        with self.ledger.locked(trade.user_id):
            current = self.storage.get_trade(trade_id)
            if current is None or current.status != TradeStatus.ACTIVE:
                return current if current is not None else trade
            if current.predetermined_result is not None:
                result = current.predetermined_result

            completed = self.storage.complete_trade(trade_id, result, self.clock())
            if completed is None:
                return self.storage.get_trade(trade_id)

            if result == TradeResult.WIN:
                payout = self.fee_calculator.trade_payout(stake, percentage)
                if payout > 0:
                    balance = self.ledger.credit(trade.user_id, payout)

        logger.info(f"Trade {trade_id} settled: {result.value}"
                    f"{' (predetermined)' if completed.predetermined_result else ''}")

        self.notifications.notify_trade_update(completed.user_id, completed.to_dict())
        if balance is not None:
            self.notifications.notify_balance_update(completed.user_id, balance)
        if broadcast:
            self.notifications.notify_trade_completed(completed.id, completed.user_id,
                                                      result.value, completed.status.value)
        return completed

    def _price_result(self, trade: Trade) -> TradeResult:
        entry_price = _stored_decimal(trade, "entry_price")
        current_price = self.oracle.get_current_price(trade.crypto_id)
        if current_price is None:
            raise UpstreamUnavailable(f"No current price for {trade.crypto_id}")
        return decide_result(trade.direction, entry_price, current_price)

    def update_status(self, actor, trade_id: int, status: str) -> Trade:
        """
        Manually trigger settlement of one trade.

        Owners may settle their own trade once it has expired; holders of
        SETTLE_ANY_TRADE may settle any trade at any time. Any result the
        caller might want is ignored; the usual decision rule applies.
        """
        if status != TradeStatus.COMPLETED.value:
            raise ValidationError("Only status 'completed' can be requested")

        trade = self.storage.get_trade(trade_id)
        if trade is None:
            raise TradeNotFound(trade_id)

        if not has_capability(actor, Capability.SETTLE_ANY_TRADE):
            if trade.user_id != actor.id:
                raise PermissionDenied("Cannot settle another user's trade")
            if trade.status == TradeStatus.ACTIVE and self.clock() < trade_expiry(trade):
                raise ValidationError("Trade has not expired yet")

        return self.settle(trade_id)

    def get_trade(self, trade_id: int) -> Trade:
        trade = self.storage.get_trade(trade_id)
        if trade is None:
            raise TradeNotFound(trade_id)
        return trade

    def list_trades(self, user_id: int) -> List[Trade]:
        return self.storage.get_trades_by_user(user_id)

    def list_all_trades(self, actor) -> List[Trade]:
        require_capability(actor, Capability.VIEW_ALL_TRADES)
        return self.storage.get_all_trades()

    def _parse_direction(self, direction) -> TradeDirection:
        if isinstance(direction, TradeDirection):
            return direction
        ensure_valid(validate_choice(direction, [d.value for d in TradeDirection], "direction"))
        return TradeDirection(direction)

    def _parse_duration(self, duration) -> int:
        if isinstance(duration, bool):
            raise ValidationError("duration must be a whole number of seconds")
        try:
            seconds = int(duration)
        except (TypeError, ValueError):
            raise ValidationError("duration must be a whole number of seconds")
        if seconds != duration and str(seconds) != str(duration).strip():
            raise ValidationError("duration must be a whole number of seconds")

        allowed = self.settings_service.get("tradeDurations")
        if seconds not in allowed:
            raise ValidationError(f"duration must be one of: {', '.join(str(d) for d in allowed)}")
        return seconds
