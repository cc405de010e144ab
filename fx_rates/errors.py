"""Exception types raised inside fx_rates."""
from __future__ import annotations


class FetchFailed(Exception):
    """The rate provider could not deliver a usable rate."""

    def __init__(self, reason: str, *, base: str | None = None, quote: str | None = None):
        super().__init__(reason)
        self.reason = reason
        self.base = base
        self.quote = quote


class CronMisconfigured(Exception):
    """The refresh endpoint has no shared secret configured."""


class CronUnauthorized(Exception):
    """The refresh endpoint was called without the expected bearer token."""

    def __init__(self, header_present: bool):
        super().__init__("invalid or missing authorization token")
        self.header_present = header_present
