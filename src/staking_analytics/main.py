from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware

from .api import api_router
from .cache import RedisTimedCache
from .config import get_settings
from .db import get_db
from .observability import PROMETHEUS_CONTENT_TYPE, generate_prometheus_metrics
from .providers import CoinGeckoClient, ERC20SupplySource
from .redis_client import get_redis
from .repositories import TokenRepository
from .valuation import ValuationService


@asynccontextmanager
async def lifespan(app: FastAPI):  # pragma: no cover - exercised against live services
    settings = get_settings()
    logger = logging.getLogger(settings.service_name)
    logger.info("Starting %s", settings.service_name)
    db = get_db()
    try:
        await db.connect()
        if db.is_connected:
            logger.info("Database pool initialized")
    except Exception as exc:
        logger.exception("Failed to initialize database pool: %s", exc)
    redis_client = get_redis()
    try:
        await redis_client.connect()
        if redis_client.is_connected:
            logger.info("Redis client initialized")
        else:
            logger.warning("Redis client unavailable; every lookup will miss the cache")
    except Exception as exc:
        logger.exception("Failed to initialize Redis (continuing without cache): %s", exc)

    price_source = CoinGeckoClient()
    supply_source = ERC20SupplySource(settings=settings)
    app.state.token_repository = TokenRepository(db)
    app.state.valuation_service = ValuationService(
        cache=RedisTimedCache(redis_client),
        price_source=price_source,
        supply_source=supply_source,
        settings=settings,
    )
    logger.info("Valuation service ready (rpc=%s)", supply_source.rpc_url)
    yield
    logger.info("Stopping %s", settings.service_name)
    await price_source.close()
    await get_db().disconnect()
    await get_redis().disconnect()
    logger.info("%s stopped successfully", settings.service_name)


settings = get_settings()

log_level = getattr(logging, settings.log_level.upper(), logging.INFO)
log_path = Path(settings.log_dir or "logs")
log_path.mkdir(parents=True, exist_ok=True)
file_handler = logging.FileHandler(log_path / "staking_analytics.log")
file_handler.setFormatter(
    logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
)
root_logger = logging.getLogger()
root_logger.setLevel(log_level)
root_logger.addHandler(file_handler)
app = FastAPI(title="Staking Analytics Service", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allow_origins,
    allow_credentials=False,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)
app.include_router(api_router, prefix="/api")


@app.get("/metrics")
async def prometheus_metrics() -> Response:
    payload = generate_prometheus_metrics()
    return Response(content=payload, media_type=PROMETHEUS_CONTENT_TYPE)


@app.get("/healthz")
async def healthz() -> dict[str, object]:
    redis_status = await get_redis().health_check()
    return {
        "status": "ok",
        "redis": redis_status,
        "database": get_db().is_connected,
    }


@app.get("/readyz")
async def readyz() -> dict[str, object]:
    redis_status = await get_redis().health_check()
    ready = bool(redis_status.get("alive")) and get_db().is_connected
    return {
        "status": "ok" if ready else "degraded",
        "redis": redis_status,
        "database": get_db().is_connected,
    }
