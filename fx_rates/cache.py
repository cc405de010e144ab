"""
In-process rate cache.

Holds at most one RateEntry per ordered (base, quote) pair plus the set of
pairs the scheduled refresh should cover. All operations are synchronous and
never touch the network.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Set, Tuple

from .models import Freshness, RateEntry, RateSource
from .utils.currency import Pair

DEFAULT_FRESHNESS_WINDOW = timedelta(hours=24)


class RateCache:
    def __init__(self, freshness_window: timedelta = DEFAULT_FRESHNESS_WINDOW):
        if freshness_window <= timedelta(0):
            raise ValueError("freshness window must be positive")
        self.freshness_window = freshness_window
        self._entries: Dict[Pair, RateEntry] = {}
        self._tracked: Set[Pair] = set()

    def get(self, base: str, quote: str) -> Optional[RateEntry]:
        return self._entries.get((base, quote))

    def put(
        self,
        base: str,
        quote: str,
        rate: float,
        fetched_at: datetime,
        source: RateSource = RateSource.LIVE,
    ) -> RateEntry:
        """Overwrite whatever is held for this exact ordered pair."""
        entry = RateEntry(
            base_currency=base,
            quote_currency=quote,
            rate=rate,
            fetched_at=fetched_at,
            source=source,
        )
        self._entries[(base, quote)] = entry
        self._tracked.add((base, quote))
        return entry

    def classify(self, entry: RateEntry, now: datetime) -> Freshness:
        if now - entry.fetched_at < self.freshness_window:
            return Freshness.FRESH
        return Freshness.STALE

    def is_fresh(self, entry: RateEntry, now: datetime) -> bool:
        return self.classify(entry, now) == Freshness.FRESH

    def entries_for_base(self, base: str) -> List[RateEntry]:
        return [e for (b, _), e in self._entries.items() if b == base]

    # ---------------- tracked pairs ----------------
    def track(self, base: str, quote: str) -> bool:
        """Register a pair for the scheduled refresh. Returns True when it was new."""
        if base == quote or (base, quote) in self._tracked:
            return False
        self._tracked.add((base, quote))
        return True

    def track_many(self, pairs: Iterable[Tuple[str, str]]) -> None:
        for base, quote in pairs:
            self.track(base, quote)

    def tracked_pairs(self) -> List[Pair]:
        return sorted(self._tracked)

    def __len__(self) -> int:
        return len(self._entries)
