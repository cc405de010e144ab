"""FastAPI application entrypoint."""
from __future__ import annotations

import logging
from datetime import datetime, timezone

import uvicorn
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .api import router
from .models import ErrEnvelope, ErrorBody, ErrorCode
from .services.resolver import build_resolver
from .settings import settings


logger = logging.getLogger(settings.APP_NAME)


app = FastAPI(title=settings.APP_NAME)
app.include_router(router)


@app.on_event("startup")
async def startup() -> None:
    logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
    resolver = build_resolver(settings)
    if resolver.store is not None:
        try:
            await resolver.store.load_into(resolver.cache)
        except Exception as e:
            logger.error(f"Could not load persisted rates from {settings.DB_PATH}: {e}")
    if not (settings.EXCHANGE_RATE_CRON_SECRET or "").strip():
        logger.error("EXCHANGE_RATE_CRON_SECRET not configured; scheduled refresh endpoint will refuse requests")
    app.state.resolver = resolver


@app.on_event("shutdown")
async def shutdown() -> None:
    resolver = getattr(app.state, "resolver", None)
    if resolver is not None and resolver.store is not None:
        await resolver.store.close()


@app.exception_handler(RequestValidationError)
async def request_validation_handler(_: Request, exc: RequestValidationError):
    payload = ErrEnvelope(
        error=ErrorBody(
            code=ErrorCode.BAD_INPUT,
            message="invalid input",
            details={"errors": exc.errors()},
        )
    )
    return JSONResponse(status_code=400, content=jsonable_encoder(payload))


@app.get("/health")
async def health():
    return {"ok": True, "data": {"status": "healthy"}, "ts": datetime.now(timezone.utc).isoformat()}


def run() -> None:
    uvicorn.run("fx_rates.main:app", host=settings.HOST, port=settings.PORT, reload=False)


if __name__ == "__main__":
    run()


__all__ = ["app"]
