import asyncio
import logging
from datetime import datetime
from typing import Optional

import aiosqlite

from .cache import RateCache
from .models import RateEntry, RateSource
from .utils.time import ensure_utc

logger = logging.getLogger(__name__)

SCHEMA = """
PRAGMA journal_mode=WAL;
CREATE TABLE IF NOT EXISTS rate_cache(
  base_currency TEXT NOT NULL,
  quote_currency TEXT NOT NULL,
  rate REAL NOT NULL,
  fetched_at TEXT NOT NULL,
  source TEXT NOT NULL,
  PRIMARY KEY (base_currency, quote_currency)
);

CREATE TABLE IF NOT EXISTS tracked_pairs(
  base_currency TEXT NOT NULL,
  quote_currency TEXT NOT NULL,
  PRIMARY KEY (base_currency, quote_currency)
);
"""


class RateStore:
    """
    SQLite-backed copy of the rate cache so entries and tracked pairs survive restarts.
    Every write touches a single row; memory stays the source of truth while running.
    """

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._conn: Optional[aiosqlite.Connection] = None
        self._open_lock = asyncio.Lock()

    async def open(self) -> aiosqlite.Connection:
        async with self._open_lock:
            if self._conn is None:
                conn = await aiosqlite.connect(self.db_path)
                await conn.executescript(SCHEMA)
                await conn.commit()
                self._conn = conn
        return self._conn

    async def close(self) -> None:
        if self._conn is not None:
            await self._conn.close()
            self._conn = None

    async def load_into(self, cache: RateCache) -> int:
        """Warm the cache from disk. Returns the number of entries loaded."""
        conn = await self.open()
        loaded = 0
        cur = await conn.execute(
            "SELECT base_currency, quote_currency, rate, fetched_at FROM rate_cache"
        )
        for base, quote, rate, fetched_at in await cur.fetchall():
            try:
                ts = ensure_utc(datetime.fromisoformat(fetched_at))
                r = float(rate)
            except (TypeError, ValueError):
                logger.warning(f"Skipping unreadable cache row {base}_{quote}")
                continue
            if r <= 0:
                continue
            cache.put(base, quote, r, ts, RateSource.LIVE)
            loaded += 1
        cur = await conn.execute("SELECT base_currency, quote_currency FROM tracked_pairs")
        cache.track_many(await cur.fetchall())
        logger.info(f"Loaded {loaded} cached rates from {self.db_path}")
        return loaded

    async def save_entry(self, entry: RateEntry) -> None:
        conn = await self.open()
        await conn.execute(
            "INSERT INTO rate_cache(base_currency, quote_currency, rate, fetched_at, source) VALUES(?,?,?,?,?) "
            "ON CONFLICT(base_currency, quote_currency) DO UPDATE SET "
            "rate=excluded.rate, fetched_at=excluded.fetched_at, source=excluded.source",
            (
                entry.base_currency,
                entry.quote_currency,
                entry.rate,
                ensure_utc(entry.fetched_at).isoformat(),
                entry.source.value,
            ),
        )
        await conn.commit()

    async def save_pair(self, base: str, quote: str) -> None:
        conn = await self.open()
        await conn.execute(
            "INSERT OR IGNORE INTO tracked_pairs(base_currency, quote_currency) VALUES(?,?)",
            (base, quote),
        )
        await conn.commit()
