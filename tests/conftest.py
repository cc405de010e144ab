import asyncio
import os
import warnings
from datetime import datetime, timedelta, timezone

import pytest

# Settings are read once at import; pin a test environment before fx_rates is imported
os.environ.setdefault("ENV", "test")
os.environ.setdefault("EXCHANGE_RATE_API_URL", "https://rates.test/v6/latest")
os.environ.setdefault("EXCHANGE_RATE_CRON_SECRET", "test-cron-secret")
os.environ.pop("DB_PATH", None)
os.environ.pop("REFRESH_CURRENCIES", None)

from starlette.testclient import TestClient  # noqa: E402

from fx_rates.cache import RateCache  # noqa: E402
from fx_rates.clients.provider import RateFetcher  # noqa: E402
from fx_rates.errors import FetchFailed  # noqa: E402
from fx_rates.services.resolver import RateResolver  # noqa: E402

T0 = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeFetcher:
    """In-memory stand-in for RateFetcher. Tables are keyed by base currency."""

    pick = staticmethod(RateFetcher.pick)

    def __init__(self):
        self.tables = {}
        self.errors = {}
        self.calls = []
        self.delay = 0.0

    async def fetch_table(self, base):
        self.calls.append(base)
        if self.delay:
            await asyncio.sleep(self.delay)
        if base in self.errors:
            raise FetchFailed(self.errors[base], base=base)
        if base not in self.tables:
            raise FetchFailed("provider_error:unsupported-code", base=base)
        return dict(self.tables[base])

    async def fetch_rate(self, base, quote):
        table = await self.fetch_table(base)
        return self.pick(table, base, quote)


@pytest.fixture(scope="session", autouse=True)
def _silence_warnings():
    warnings.filterwarnings("ignore", category=DeprecationWarning, message=r".*on_event.*")


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def fetcher():
    return FakeFetcher()


@pytest.fixture()
def cache():
    return RateCache()


@pytest.fixture()
def resolver(cache, fetcher, clock):
    return RateResolver(cache, fetcher, clock=clock)


@pytest.fixture()
def app(resolver):
    from fx_rates.main import app as fastapi_app

    fastapi_app.state.resolver = resolver
    yield fastapi_app
    fastapi_app.state.resolver = None


@pytest.fixture()
def client(app):
    return TestClient(app)
