#!/usr/bin/env python3
"""
Sidecar cron job for the daily exchange rate refresh.

Runs as a separate process (e.g. once a day at 02:00 UTC) and calls the
fx_rates refresh endpoint with the shared bearer secret.

Usage:
    fx-rates-cron [--base-url URL] [--secret SECRET] [--dry-run]

Environment variables:
    CRON_BASE_URL: fx_rates service URL (default: http://localhost:8000)
    EXCHANGE_RATE_CRON_SECRET: shared secret expected by the endpoint
    LOG_LEVEL: Logging level (default: INFO)
"""
import argparse
import asyncio
import logging
import os
import sys
from typing import Optional

import httpx

logger = logging.getLogger("fx_rates_cron")

REFRESH_PATH = "/api/cron/refresh-rates"


class RefreshCronJob:
    """Triggers the scheduled refresh on a running fx_rates service."""

    def __init__(self, base_url: str, secret: str, timeout: float = 300):
        self.base_url = base_url.rstrip("/")
        self.secret = secret
        self.timeout = timeout  # a full refresh makes one provider call per base currency

    async def health_check(self) -> bool:
        try:
            async with httpx.AsyncClient(timeout=httpx.Timeout(10)) as client:
                response = await client.get(f"{self.base_url}/health")
            if response.status_code == 200 and response.json().get("ok"):
                return True
            logger.warning(f"Health check HTTP {response.status_code}")
            return False
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Health check failed: {e}")
            return False

    async def run_refresh(self) -> Optional[dict]:
        """Call the refresh endpoint. Returns the response body on success, None otherwise."""
        try:
            async with httpx.AsyncClient(timeout=httpx.Timeout(self.timeout)) as client:
                logger.info("Starting exchange rate refresh")
                response = await client.get(
                    f"{self.base_url}{REFRESH_PATH}",
                    headers={"Authorization": f"Bearer {self.secret}"},
                )
        except httpx.TimeoutException:
            logger.error("Timeout running exchange rate refresh")
            return None
        except httpx.HTTPError as e:
            logger.error(f"Cannot reach fx_rates service: {e}")
            return None

        try:
            data = response.json()
        except ValueError:
            logger.error(f"HTTP {response.status_code}: {response.text}")
            return None

        if response.status_code != 200 or not data.get("success"):
            logger.error(f"Refresh failed (HTTP {response.status_code}): {data.get('error')} - {data.get('details')}")
            return None

        logger.info(
            f"Refreshed {data.get('succeeded', 0)}/{data.get('attempted', 0)} pairs in {data.get('durationMs')}ms"
        )
        for failed in data.get("failed") or []:
            logger.warning(f"Pair {failed.get('pair')} not refreshed: {failed.get('reason')}")
        return data

    async def run(self) -> bool:
        if not await self.health_check():
            logger.error("Health check failed, skipping refresh")
            return False
        return await self.run_refresh() is not None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Exchange rate refresh cron job")
    parser.add_argument(
        "--base-url",
        default=os.getenv("CRON_BASE_URL", "http://localhost:8000"),
        help="fx_rates service base URL",
    )
    parser.add_argument(
        "--secret",
        default=os.getenv("EXCHANGE_RATE_CRON_SECRET", ""),
        help="Bearer secret expected by the refresh endpoint",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Only perform the health check",
    )
    return parser


async def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    if not args.secret:
        logger.error("No cron secret given (--secret or EXCHANGE_RATE_CRON_SECRET)")
        return 1

    job = RefreshCronJob(base_url=args.base_url, secret=args.secret)

    if args.dry_run:
        logger.info("Dry run mode: health check only")
        return 0 if await job.health_check() else 1

    return 0 if await job.run() else 1


def cli() -> None:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
