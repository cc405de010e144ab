from __future__ import annotations

import hmac
import logging
import time
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from .errors import CronMisconfigured, CronUnauthorized
from .models import ErrEnvelope, ErrorBody, ErrorCode, OkEnvelope, RateQuote, RateResp
from .services.conversion import convert
from .services.resolver import RateResolver
from .settings import settings
from .utils.currency import normalize_code, pair_label

logger = logging.getLogger(__name__)

router = APIRouter()

CRON_PATH = "/api/cron/refresh-rates"


def get_resolver(request: Request) -> RateResolver:
    resolver = getattr(request.app.state, "resolver", None)
    if resolver is None:
        raise RuntimeError("rate resolver not initialised; application startup has not run")
    return resolver


def success(data: dict) -> JSONResponse:
    payload = OkEnvelope(data=data)
    return JSONResponse(content=jsonable_encoder(payload))


def failure(code: ErrorCode, message: str, *, retriable: bool = False, details: dict | None = None, status_code: int = 400) -> JSONResponse:
    error = ErrEnvelope(error=ErrorBody(code=code, message=message, retriable=retriable, details=details))
    return JSONResponse(content=jsonable_encoder(error), status_code=status_code)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("/rates")
async def get_rate(
    from_ccy: str = Query(..., alias="from", description="ISO 4217 base currency"),
    to_ccy: str = Query(..., alias="to", description="ISO 4217 quote currency"),
    date: Optional[str] = Query(None, description="YYYY-MM-DD, freshness reference"),
    resolver: RateResolver = Depends(get_resolver),
):
    try:
        result = await resolver.get_rate(from_ccy, to_ccy, date)
    except ValueError as ve:
        return failure(ErrorCode.BAD_INPUT, str(ve))
    except Exception as e:
        logger.exception("Rate lookup failed")
        return failure(ErrorCode.INTERNAL, str(e) or type(e).__name__, status_code=500)

    b, q = from_ccy.strip().upper(), to_ccy.strip().upper()
    if not isinstance(result, RateQuote):
        return failure(
            ErrorCode.NOT_FOUND,
            f"Exchange rate not found for {b} to {q}",
            retriable=True,
            details={"pair": pair_label(b, q), "reason": result.reason},
            status_code=404,
        )
    resp = RateResp(
        pair=pair_label(b, q),
        rate=result.rate,
        source=result.source,
        fetched_at=result.fetched_at,
        stale=result.is_stale,
    )
    return success(resp.model_dump())


@router.get("/rates/{base}")
async def get_all_rates(base: str, resolver: RateResolver = Depends(get_resolver)):
    try:
        b = normalize_code(base)
        rates = resolver.get_all_rates(b)
    except ValueError as ve:
        return failure(ErrorCode.BAD_INPUT, str(ve))
    return success({"base": b, "rates": rates})


@router.get("/convert")
async def convert_amount(
    amount: str = Query(...),
    from_ccy: str = Query(..., alias="from"),
    to_ccy: str = Query(..., alias="to"),
    date: Optional[str] = Query(None),
    resolver: RateResolver = Depends(get_resolver),
):
    try:
        amt = Decimal(amount.strip())
    except InvalidOperation:
        amt = None
    if amt is None or not amt.is_finite():
        return failure(ErrorCode.BAD_INPUT, f"invalid amount: {amount!r}")
    try:
        conv = await convert(resolver, amt, from_ccy, to_ccy, date)
    except ValueError as ve:
        return failure(ErrorCode.BAD_INPUT, str(ve))
    except Exception as e:
        logger.exception("Conversion failed")
        return failure(ErrorCode.INTERNAL, str(e) or type(e).__name__, status_code=500)

    b, q = from_ccy.strip().upper(), to_ccy.strip().upper()
    if conv is None:
        # Never show a figure computed without a rate
        return failure(
            ErrorCode.NOT_FOUND,
            f"Cannot convert {b} to {q}: no exchange rate available",
            retriable=True,
            details={"pair": pair_label(b, q)},
            status_code=404,
        )
    return success({
        "pair": pair_label(b, q),
        "amount": str(conv.amount),
        "converted": str(conv.converted),
        "rate": conv.rate,
        "source": conv.source.value,
        "fetched_at": conv.fetched_at.isoformat(),
        "stale": conv.is_stale,
    })


# ---------------- scheduled refresh ----------------

def check_cron_auth(authorization: Optional[str]) -> None:
    secret = (settings.EXCHANGE_RATE_CRON_SECRET or "").strip()
    if not secret:
        raise CronMisconfigured("EXCHANGE_RATE_CRON_SECRET not configured")
    expected = f"Bearer {secret}"
    received = authorization or ""
    if not hmac.compare_digest(received.encode("utf-8"), expected.encode("utf-8")):
        raise CronUnauthorized(header_present=bool(authorization))


@router.get(CRON_PATH)
async def cron_refresh_rates(
    authorization: Optional[str] = Header(default=None),
    resolver: RateResolver = Depends(get_resolver),
):
    try:
        check_cron_auth(authorization)
    except CronMisconfigured as e:
        logger.error(f"{e}; set it in the environment to enable scheduled refreshes")
        return JSONResponse(
            {"error": "Server misconfiguration", "details": "Cron secret not configured", "timestamp": _now_iso()},
            status_code=500,
        )
    except CronUnauthorized as e:
        logger.warning(f"Unauthorized cron attempt (authorization header {'present' if e.header_present else 'missing'})")
        return JSONResponse(
            {"error": "Unauthorized", "details": "Invalid or missing authorization token", "timestamp": _now_iso()},
            status_code=401,
        )

    logger.info("Starting scheduled exchange rate refresh")
    started = time.monotonic()
    try:
        report = await resolver.refresh_all_rates()
    except Exception as e:
        logger.exception("Cron refresh failed")
        return JSONResponse(
            {"error": "Refresh failed", "details": str(e) or type(e).__name__, "timestamp": _now_iso()},
            status_code=500,
        )
    duration_ms = int((time.monotonic() - started) * 1000)
    logger.info(f"Exchange rate refresh completed in {duration_ms}ms")

    return JSONResponse({
        "success": True,
        "message": "Exchange rates refreshed successfully",
        "timestamp": _now_iso(),
        "durationMs": duration_ms,
        **report.summary(),
    })


@router.api_route(CRON_PATH, methods=["POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"], include_in_schema=False)
async def cron_method_not_allowed():
    return JSONResponse({"error": "Method not allowed"}, status_code=405, headers={"Allow": "GET"})
