"""
Exchange rate resolver: the only entry point other code should call.

Read path (get_rate):
1. Codes are validated; identity pairs resolve to 1.0 without touching cache or network
2. Fresh cache entries are served as live
3. Otherwise the provider is asked; success refreshes the cache
4. On provider failure a cached entry (however old) is served as stale
5. With nothing cached the result is RateUnavailable

Refresh path (refresh_all_rates) re-fetches every tracked pair regardless of
freshness and never falls back to stale data.
"""
from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Tuple, Union

from ..cache import RateCache
from ..clients.provider import RateFetcher
from ..db import RateStore
from ..errors import FetchFailed
from ..models import (
    PairFailure,
    RateEntry,
    RateQuote,
    RateResult,
    RateSource,
    RateUnavailable,
    RefreshReport,
)
from ..utils.currency import Pair, cross_pairs, normalize_code, pair_label
from ..utils.time import as_of_datetime, utc_now

logger = logging.getLogger(__name__)

AsOf = Union[date, datetime, str, None]


class RateResolver:
    def __init__(
        self,
        cache: RateCache,
        fetcher: RateFetcher,
        store: Optional[RateStore] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.cache = cache
        self.fetcher = fetcher
        self.store = store
        self.clock = clock
        self._inflight: Dict[Pair, asyncio.Task] = {}

    # ---------------- read path ----------------
    async def get_rate(self, base: str, quote: str, as_of: AsOf = None) -> RateResult:
        b = normalize_code(base)
        q = normalize_code(quote)
        if b == q:
            return RateQuote(rate=1.0, source=RateSource.LIVE, fetched_at=self.clock())

        reference = as_of_datetime(as_of) or self.clock()

        entry = self.cache.get(b, q)
        if entry is not None and self.cache.is_fresh(entry, reference):
            logger.debug(f"Cache hit for {b}/{q}")
            return RateQuote(rate=entry.rate, source=RateSource.LIVE, fetched_at=entry.fetched_at)

        await self._track(b, q)
        try:
            fresh = await self._fetch_single_flight(b, q)
        except FetchFailed as e:
            # Re-read: a concurrent fetch may have filled the cache meanwhile
            entry = self.cache.get(b, q) or entry
            if entry is not None:
                logger.warning(
                    f"Serving stale rate for {pair_label(b, q)} fetched at "
                    f"{entry.fetched_at.isoformat()}: {e.reason}"
                )
                return RateQuote(rate=entry.rate, source=RateSource.STALE, fetched_at=entry.fetched_at)
            logger.error(f"No rate available for {pair_label(b, q)}: {e.reason}")
            return RateUnavailable(base_currency=b, quote_currency=q, reason=e.reason)

        return RateQuote(rate=fresh.rate, source=RateSource.LIVE, fetched_at=fresh.fetched_at)

    async def _fetch_single_flight(self, base: str, quote: str) -> RateEntry:
        """Concurrent misses for one pair share a single provider call."""
        key = (base, quote)
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._fetch_and_store(base, quote))
            self._inflight[key] = task
            task.add_done_callback(lambda _t, k=key: self._inflight.pop(k, None))
        return await asyncio.shield(task)

    async def _fetch_and_store(self, base: str, quote: str) -> RateEntry:
        rate = await self.fetcher.fetch_rate(base, quote)
        return await self._store(base, quote, rate)

    async def _store(self, base: str, quote: str, rate: float) -> RateEntry:
        entry = self.cache.put(base, quote, rate, self.clock(), RateSource.LIVE)
        if self.store is not None:
            try:
                await self.store.save_entry(entry)
            except Exception as e:
                logger.error(f"Failed to persist rate {pair_label(base, quote)}: {e}")
        return entry

    async def _track(self, base: str, quote: str) -> None:
        if self.cache.track(base, quote) and self.store is not None:
            try:
                await self.store.save_pair(base, quote)
            except Exception as e:
                logger.error(f"Failed to persist tracked pair {pair_label(base, quote)}: {e}")

    def track_pairs(self, pairs: Iterable[Tuple[str, str]]) -> None:
        for base, quote in pairs:
            b, q = normalize_code(base), normalize_code(quote)
            self.cache.track(b, q)

    # ---------------- cache views ----------------
    def is_cache_valid(self, base: str, quote: str) -> bool:
        b, q = normalize_code(base), normalize_code(quote)
        entry = self.cache.get(b, q)
        return entry is not None and self.cache.is_fresh(entry, self.clock())

    def get_all_rates(self, base: str) -> Dict[str, float]:
        """Fresh cached rates for BASE keyed by quote currency. No network."""
        b = normalize_code(base)
        now = self.clock()
        return {
            e.quote_currency: e.rate
            for e in self.cache.entries_for_base(b)
            if self.cache.is_fresh(e, now)
        }

    # ---------------- refresh path ----------------
    async def refresh_all_rates(self) -> RefreshReport:
        """
        Forced refresh of every tracked pair, one provider call per base currency.
        A failing base or quote is recorded in the report and its cache entry is left alone.
        """
        report = RefreshReport(started_at=self.clock())
        by_base: Dict[str, List[str]] = defaultdict(list)
        for base, quote in self.cache.tracked_pairs():
            if base != quote:
                by_base[base].append(quote)

        logger.info(
            f"Refreshing {sum(len(v) for v in by_base.values())} pairs across {len(by_base)} base currencies"
        )
        for base in sorted(by_base):
            quotes = by_base[base]
            try:
                table = await self.fetcher.fetch_table(base)
            except FetchFailed as e:
                for quote in quotes:
                    report.failed.append(PairFailure(base, quote, e.reason))
                logger.warning(f"Refresh failed for base {base} ({len(quotes)} pairs): {e.reason}")
                continue
            for quote in quotes:
                try:
                    rate = self.fetcher.pick(table, base, quote)
                except FetchFailed as e:
                    report.failed.append(PairFailure(base, quote, e.reason))
                    logger.warning(f"Refresh failed for {pair_label(base, quote)}: {e.reason}")
                    continue
                await self._store(base, quote, rate)
                report.succeeded.append((base, quote))

        report.finished_at = self.clock()
        logger.info(
            f"Refresh finished: {len(report.succeeded)}/{report.attempted} pairs updated, "
            f"{len(report.failed)} failed"
        )
        return report


def build_resolver(cfg) -> RateResolver:
    """Wire cache, fetcher and optional store from settings. The store is not loaded here."""
    cache = RateCache(freshness_window=timedelta(hours=cfg.EXCHANGE_RATE_CACHE_TTL_HOURS))
    fetcher = RateFetcher(
        base_url=cfg.EXCHANGE_RATE_API_URL,
        api_key=cfg.EXCHANGE_RATE_API_KEY,
        timeout=cfg.HTTP_TIMEOUT,
    )
    store = RateStore(cfg.DB_PATH) if cfg.DB_PATH else None
    resolver = RateResolver(cache, fetcher, store=store)
    resolver.track_pairs(cross_pairs(cfg.refresh_currency_list()))
    return resolver
