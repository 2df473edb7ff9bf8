"""
Market data client for PulseTrade

Fetches the top coins from the CoinGecko REST API and keeps the last good
snapshot. A stale snapshot is served when the feed fails, so settlement can
continue through short outages.
"""

import logging
import threading
import time
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Optional

import requests

from pulsetrade.decorators import retry
from pulsetrade.errors import UpstreamUnavailable

logger = logging.getLogger(__name__)

class RateLimited(Exception):
    """The price feed answered HTTP 429"""
    def __init__(self, message: str, retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after

def _retry_after_seconds(response) -> Optional[float]:
    value = response.headers.get("Retry-After")
    try:
        return float(value) if value is not None else None
    except ValueError:
        return None

class MarketDataCache:
    """
    Last market snapshot, the clock time it was fetched at and the time
    before which a failed feed is not asked again
    """
    def __init__(self):
        self.snapshot: Optional[List[Dict[str, Any]]] = None
        self.fetched_at: Optional[float] = None
        self.retry_at: Optional[float] = None

    def store(self, snapshot: List[Dict[str, Any]], fetched_at: float):
        self.snapshot = snapshot
        self.fetched_at = fetched_at
        self.retry_at = None

    def mark_failed(self, now: float, cooldown: float):
        self.retry_at = now + cooldown

    def in_cooldown(self, now: float) -> bool:
        return self.retry_at is not None and now < self.retry_at

    def is_fresh(self, now: float, ttl: float) -> bool:
        return self.snapshot is not None and self.fetched_at is not None and now - self.fetched_at < ttl

class PriceOracle:
    """
    CoinGecko client with TTL cache and rate-limit backoff
    """

    def __init__(self, config=None, session: Optional[requests.Session] = None,
                 clock: Callable[[], float] = time.monotonic):
        """
        Initialize the price oracle.

        Args:
            config (AppConfig, optional): Reads the price_feed section
            session (requests.Session, optional): HTTP session, created if omitted
            clock (callable): Returns seconds; drives cache expiry
        """
        get = config.get if config is not None else (lambda key, default=None: default)
        self.base_url = get('price_feed.base_url', "https://api.coingecko.com/api/v3").rstrip('/')
        self.vs_currency = get('price_feed.vs_currency', "usd")
        self.per_page = int(get('price_feed.per_page', 20))
        self.cache_ttl = float(get('price_feed.cache_ttl', 60))
        self.request_timeout = float(get('price_feed.request_timeout', 10))
        max_retries = int(get('price_feed.max_retries', 5))
        retry_delay = float(get('price_feed.retry_delay', 2.0))
        max_retry_delay = float(get('price_feed.max_retry_delay', 60))
        self.failure_cooldown = float(get('price_feed.failure_cooldown', 30))

        self.session = session or requests.Session()
        self.clock = clock
        self.cache = MarketDataCache()
        self._cache_lock = threading.Lock()
        # Held by the one caller refreshing from the feed
        self._refresh_lock = threading.Lock()

        # Only 429 responses are retried; other failures fall through to the stale cache
        self._fetch_json = retry(max_attempts=max_retries, delay=retry_delay, backoff=2.0,
                                 exceptions=(RateLimited,), max_delay=max_retry_delay)(self._request_json)

    def _request_json(self, path: str, params: Optional[Dict[str, Any]] = None):
        url = f"{self.base_url}{path}"
        response = self.session.get(url, params=params, timeout=self.request_timeout)
        if response.status_code == 429:
            raise RateLimited(f"Rate limited by {url}", _retry_after_seconds(response))
        response.raise_for_status()
        return response.json()

    def get_market_data(self) -> List[Dict[str, Any]]:
        """
        Top coins by market cap, served from cache while it is fresh.

        Only one caller at a time asks the feed. While a refresh is running,
        or for failure_cooldown seconds after one failed, other callers get
        the stale snapshot without waiting.

        Returns:
            List[Dict[str, Any]]: CoinGecko market entries

        Raises:
            UpstreamUnavailable: The feed failed and nothing was ever cached
        """
        snapshot = self._cached_snapshot()
        if snapshot is not None:
            return snapshot

        if not self._refresh_lock.acquire(blocking=False):
            with self._cache_lock:
                stale = self.cache.snapshot
            if stale is not None:
                return stale
            self._refresh_lock.acquire()
        try:
            # The refresh we waited on may have already filled the cache
            snapshot = self._cached_snapshot()
            if snapshot is not None:
                return snapshot
            return self._refresh()
        finally:
            self._refresh_lock.release()

    def _cached_snapshot(self) -> Optional[List[Dict[str, Any]]]:
        """Snapshot to serve without asking the feed, None when a refresh is due"""
        with self._cache_lock:
            now = self.clock()
            if self.cache.is_fresh(now, self.cache_ttl):
                return self.cache.snapshot
            if self.cache.in_cooldown(now):
                if self.cache.snapshot is None:
                    raise UpstreamUnavailable("Market data unavailable, price feed is cooling down")
                return self.cache.snapshot
            return None

    def _refresh(self) -> List[Dict[str, Any]]:
        started = self.clock()
        try:
            data = self._fetch_json("/coins/markets", {
                "vs_currency": self.vs_currency,
                "order": "market_cap_desc",
                "per_page": self.per_page,
                "page": 1,
                "sparkline": "true",
                "price_change_percentage": "24h",
            })
            if not isinstance(data, list):
                raise ValueError("Unexpected market data payload")
        except (requests.RequestException, RateLimited, ValueError) as e:
            with self._cache_lock:
                self.cache.mark_failed(self.clock(), self.failure_cooldown)
                stale = self.cache.snapshot
            if stale is not None:
                logger.warning(f"Price feed failed, serving cached market data for the next "
                               f"{self.failure_cooldown:g}s: {str(e)}")
                return stale
            logger.error(f"Price feed failed with no cached market data: {str(e)}")
            raise UpstreamUnavailable(f"Market data unavailable: {str(e)}")

        with self._cache_lock:
            self.cache.store(data, started)
        logger.debug(f"Market data refreshed: {len(data)} coins")
        return data

    def get_crypto_by_id(self, crypto_id: str) -> Optional[Dict[str, Any]]:
        """
        Look a coin up in the market snapshot, then query it directly.

        Returns:
            Optional[Dict[str, Any]]: Market entry, or None if the coin is unknown

        Raises:
            UpstreamUnavailable: The coin is not in the snapshot and the feed is unusable
        """
        for entry in self.get_market_data():
            if entry.get("id") == crypto_id:
                return entry

        with self._cache_lock:
            cooling_down = self.cache.in_cooldown(self.clock())
        if cooling_down:
            raise UpstreamUnavailable(f"Could not fetch {crypto_id}: price feed is cooling down")
        return self._fetch_coin(crypto_id)

    def _fetch_coin(self, crypto_id: str) -> Optional[Dict[str, Any]]:
        try:
            data = self._fetch_json(f"/coins/{crypto_id}", {
                "localization": "false",
                "tickers": "false",
                "market_data": "true",
                "community_data": "false",
                "developer_data": "false",
                "sparkline": "true",
            })
        except requests.HTTPError as e:
            if e.response is not None and e.response.status_code == 404:
                return None
            raise UpstreamUnavailable(f"Could not fetch {crypto_id}: {str(e)}")
        except RateLimited as e:
            with self._cache_lock:
                self.cache.mark_failed(self.clock(), self.failure_cooldown)
            raise UpstreamUnavailable(f"Could not fetch {crypto_id}: {str(e)}")
        except (requests.RequestException, ValueError) as e:
            raise UpstreamUnavailable(f"Could not fetch {crypto_id}: {str(e)}")

        market = data.get("market_data") or {}

        def in_currency(field):
            return (market.get(field) or {}).get(self.vs_currency)

        return {
            "id": data.get("id"),
            "symbol": data.get("symbol"),
            "name": data.get("name"),
            "image": (data.get("image") or {}).get("large"),
            "current_price": in_currency("current_price"),
            "market_cap": in_currency("market_cap"),
            "market_cap_rank": market.get("market_cap_rank"),
            "total_volume": in_currency("total_volume"),
            "high_24h": in_currency("high_24h"),
            "low_24h": in_currency("low_24h"),
            "price_change_percentage_24h": market.get("price_change_percentage_24h"),
            "sparkline_in_7d": {"price": (market.get("sparkline_7d") or {}).get("price") or []},
        }

    def get_current_price(self, crypto_id: str) -> Optional[Decimal]:
        """Current price of a coin, None if the coin is unknown or unpriced"""
        entry = self.get_crypto_by_id(crypto_id)
        if not entry or entry.get("current_price") is None:
            return None
        try:
            return Decimal(str(entry["current_price"]))
        except InvalidOperation:
            logger.warning(f"Unparseable price for {crypto_id}: {entry['current_price']!r}")
            return None
