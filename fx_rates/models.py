"""Domain types and API envelopes for fx_rates."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, Field


class RateSource(str, Enum):
    LIVE = "live"
    STALE = "stale"


class Freshness(str, Enum):
    FRESH = "fresh"
    STALE = "stale"


@dataclass(frozen=True)
class RateEntry:
    """One cached observation: amount_in_quote = amount_in_base * rate."""
    base_currency: str
    quote_currency: str
    rate: float
    fetched_at: datetime
    source: RateSource = RateSource.LIVE


@dataclass(frozen=True)
class RateQuote:
    """Successful lookup result."""
    rate: float
    source: RateSource
    fetched_at: datetime

    @property
    def is_stale(self) -> bool:
        return self.source == RateSource.STALE


@dataclass(frozen=True)
class RateUnavailable:
    """No rate could be determined; carries the underlying fetch failure reason."""
    base_currency: str
    quote_currency: str
    reason: str


RateResult = Union[RateQuote, RateUnavailable]


@dataclass(frozen=True)
class PairFailure:
    base_currency: str
    quote_currency: str
    reason: str

    def to_dict(self) -> Dict[str, str]:
        return {"pair": f"{self.base_currency}_{self.quote_currency}", "reason": self.reason}


@dataclass
class RefreshReport:
    """Outcome of a forced refresh of every tracked pair."""
    started_at: datetime
    finished_at: Optional[datetime] = None
    succeeded: List[Tuple[str, str]] = field(default_factory=list)
    failed: List[PairFailure] = field(default_factory=list)

    @property
    def attempted(self) -> int:
        return len(self.succeeded) + len(self.failed)

    def summary(self) -> Dict[str, Any]:
        return {
            "attempted": self.attempted,
            "succeeded": len(self.succeeded),
            "failed": [f.to_dict() for f in self.failed],
        }


# ---------------- API envelopes ----------------

class ErrorCode(str, Enum):
    BAD_INPUT = "BAD_INPUT"
    NOT_FOUND = "NOT_FOUND"
    INTERNAL = "INTERNAL"


class ErrorBody(BaseModel):
    code: ErrorCode
    message: str
    source: str = "fx_rates"
    retriable: bool = False
    details: Optional[Dict[str, Any]] = None


class OkEnvelope(BaseModel):
    ok: bool = True
    data: Dict[str, Any]
    ts: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ErrEnvelope(BaseModel):
    ok: bool = False
    error: ErrorBody
    ts: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class RateResp(BaseModel):
    pair: str          # e.g. USD_EUR
    rate: float        # EUR per 1 USD
    source: RateSource
    fetched_at: datetime
    stale: bool
