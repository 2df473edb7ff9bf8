"""
Background settlement of expired trades
"""

import logging
from datetime import datetime
from typing import Callable, Dict

from pulsetrade.errors import MalformedRecord, UpstreamUnavailable
from pulsetrade.helpers import utcnow
from pulsetrade.trade_manager import trade_expiry

logger = logging.getLogger(__name__)

JOB_ID = "settle_expired_trades"

class SettlementPoller:
    """
    Periodically settles every active trade whose duration has elapsed.

    One bad trade never stops the sweep: unreadable records are skipped,
    trades without a price are retried on the next tick and anything else
    is logged and counted as failed.
    """

    def __init__(self, storage, trade_manager, interval: float = 5,
                 clock: Callable[[], datetime] = utcnow):
        self.storage = storage
        self.trade_manager = trade_manager
        self.interval = interval
        self.clock = clock

    def register(self, scheduler):
        scheduler.add_job(JOB_ID, self.sweep, self.interval)

    def sweep(self) -> Dict[str, int]:
        """
        Settle expired active trades once.

        Returns:
            Dict[str, int]: checked, settled, deferred, skipped and failed counts
        """
        stats = {"checked": 0, "settled": 0, "deferred": 0, "skipped": 0, "failed": 0}
        now = self.clock()

        for trade in self.storage.get_active_trades():
            stats["checked"] += 1
            try:
                if now < trade_expiry(trade):
                    continue
                self.trade_manager.settle(trade.id, broadcast=True)
                stats["settled"] += 1
            except MalformedRecord as e:
                logger.error(f"Skipping trade {trade.id}: {str(e)}")
                stats["skipped"] += 1
            except UpstreamUnavailable as e:
                logger.warning(f"Deferring trade {trade.id} to the next sweep: {str(e)}")
                stats["deferred"] += 1
            except Exception as e:
                logger.exception(f"Error settling trade {trade.id}: {str(e)}")
                stats["failed"] += 1

        if stats["settled"] or stats["deferred"] or stats["skipped"] or stats["failed"]:
            logger.info(f"Settlement sweep: {stats}")
        return stats
