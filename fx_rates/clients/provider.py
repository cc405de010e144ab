from __future__ import annotations

import math
from typing import Any, Dict, Optional

import httpx

from ..errors import FetchFailed
from ..settings import settings


def _validate_rate(value: Any) -> Optional[float]:
    """Positive, finite float or None. Booleans and strings are not rates."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        rate = float(value)
    except (OverflowError, ValueError):
        return None
    if math.isnan(rate) or math.isinf(rate) or rate <= 0:
        return None
    return rate


class RateFetcher:
    """
    Client for exchangerate-api.com style providers (open.er-api.com by default).

    GET {base_url}/{BASE} returns
      {"result": "success", "base_code": "USD", "rates": {"EUR": 0.92, ...}}
    or
      {"result": "error", "error-type": "unsupported-code"}

    Every failure is raised as FetchFailed; nothing else escapes.
    """

    def __init__(
        self,
        base_url: str = settings.EXCHANGE_RATE_API_URL,
        api_key: Optional[str] = settings.EXCHANGE_RATE_API_KEY,
        timeout: float = settings.HTTP_TIMEOUT,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = (api_key or "").strip() or None
        self.timeout = timeout

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json", "User-Agent": "fx_rates/1.0"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def fetch_table(self, base: str) -> Dict[str, Any]:
        """One request for the raw QUOTE -> value table of BASE. Values are not validated yet."""
        url = f"{self.base_url}/{base}"
        try:
            async with httpx.AsyncClient(timeout=httpx.Timeout(self.timeout)) as client:
                r = await client.get(url, headers=self._headers())
        except httpx.TimeoutException:
            raise FetchFailed("timeout", base=base) from None
        except httpx.HTTPError as e:
            raise FetchFailed(f"network_error:{type(e).__name__}", base=base) from None

        if r.status_code == 429:
            raise FetchFailed("rate_limited", base=base)
        if r.status_code != 200:
            raise FetchFailed(f"http_{r.status_code}", base=base)

        try:
            js = r.json()
        except ValueError:
            raise FetchFailed("malformed_response", base=base) from None
        if not isinstance(js, dict):
            raise FetchFailed("malformed_response", base=base)

        if js.get("result") == "error":
            raise FetchFailed(f"provider_error:{js.get('error-type') or 'unknown'}", base=base)

        reported_base = str(js.get("base_code") or base).upper()
        if reported_base != base:
            raise FetchFailed(f"base_mismatch:{reported_base}", base=base)

        raw = js.get("rates")
        if raw is None:
            raw = js.get("conversion_rates")
        if not isinstance(raw, dict):
            raise FetchFailed("malformed_response", base=base)
        return {str(code).upper(): value for code, value in raw.items()}

    async def fetch_all(self, base: str) -> Dict[str, float]:
        """Validated QUOTE -> rate table of BASE. Invalid entries are dropped; nothing valid is a failure."""
        table = await self.fetch_table(base)
        rates: Dict[str, float] = {}
        for code, value in table.items():
            rate = _validate_rate(value)
            if rate is not None:
                rates[code] = rate
        if not rates:
            raise FetchFailed("no_valid_rates", base=base)
        return rates

    async def fetch_rate(self, base: str, quote: str) -> float:
        """QUOTE per 1 BASE, validated."""
        try:
            table = await self.fetch_table(base)
        except FetchFailed as e:
            raise FetchFailed(e.reason, base=base, quote=quote) from None
        return self.pick(table, base, quote)

    @staticmethod
    def pick(table: Dict[str, Any], base: str, quote: str) -> float:
        if quote not in table or table[quote] is None:
            raise FetchFailed("missing_rate", base=base, quote=quote)
        rate = _validate_rate(table[quote])
        if rate is None:
            raise FetchFailed("invalid_rate", base=base, quote=quote)
        return rate
