"""
Conversion helpers on top of RateResolver.

Amounts are converted with Decimal and rounded to 2 places (half-up); the rate
itself is never rounded.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Union

from ..models import RateQuote, RateSource
from .resolver import AsOf, RateResolver

logger = logging.getLogger(__name__)

Number = Union[Decimal, float, int, str]

TOLERANCE = Decimal("0.01")


def qd(x: Decimal, q: str = "0.01") -> Decimal:
    return x.quantize(Decimal(q), rounding=ROUND_HALF_UP)


def _dec(x: Number) -> Decimal:
    return x if isinstance(x, Decimal) else Decimal(str(x))


@dataclass(frozen=True)
class Conversion:
    amount: Decimal
    converted: Decimal
    rate: float
    source: RateSource
    fetched_at: datetime

    @property
    def is_stale(self) -> bool:
        return self.source == RateSource.STALE


def calculate_base_amount(native_amount: Number, exchange_rate: Number) -> Decimal:
    """native * rate rounded to 2 dp, e.g. 1000 at 0.024390 -> 24.39."""
    return qd(_dec(native_amount) * _dec(exchange_rate))


def validate_amount_calculation(native_amount: Number, exchange_rate: Number, base_amount: Number) -> bool:
    expected = calculate_base_amount(native_amount, exchange_rate)
    return abs(expected - _dec(base_amount)) <= TOLERANCE


async def get_exchange_rate(resolver: RateResolver, from_ccy: str, to_ccy: str, as_of: AsOf = None) -> Optional[float]:
    """Plain rate or None when no rate can be determined. Never a default."""
    result = await resolver.get_rate(from_ccy, to_ccy, as_of)
    if not isinstance(result, RateQuote):
        return None
    if result.is_stale:
        logger.warning(f"Using stale exchange rate {from_ccy}->{to_ccy} = {result.rate} (fetched {result.fetched_at.isoformat()})")
    return result.rate


async def convert(resolver: RateResolver, amount: Number, from_ccy: str, to_ccy: str, as_of: AsOf = None) -> Optional[Conversion]:
    result = await resolver.get_rate(from_ccy, to_ccy, as_of)
    if not isinstance(result, RateQuote):
        return None
    amt = _dec(amount)
    return Conversion(
        amount=amt,
        converted=calculate_base_amount(amt, result.rate),
        rate=result.rate,
        source=result.source,
        fetched_at=result.fetched_at,
    )


async def convert_amount(resolver: RateResolver, amount: Number, from_ccy: str, to_ccy: str, as_of: AsOf = None) -> Optional[Decimal]:
    conv = await convert(resolver, amount, from_ccy, to_ccy, as_of)
    return conv.converted if conv is not None else None
