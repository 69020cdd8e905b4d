"""
Health probes for the database, Redis and the three media/payment providers.
"""

import logging
from typing import Dict

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
import redis.asyncio as redis
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import get_db
from services.providers import (
    BaseImageHost,
    BaseMediaProvider,
    BasePaymentGateway,
    get_image_host,
    get_media_provider,
    get_payment_gateway,
)

router = APIRouter()
logger = logging.getLogger(__name__)


def _provider_states(
    media: BaseMediaProvider,
    images: BaseImageHost,
    gateway: BasePaymentGateway,
) -> Dict[str, str]:
    return {
        client.provider_name: "configured" if client.configured else "missing"
        for client in (media, images, gateway)
    }


async def _database_state(db: AsyncSession) -> str:
    try:
        await db.execute(text("SELECT 1"))
    except Exception as exc:
        logger.warning("Database health check failed: %s", exc)
        return f"down: {exc}"
    return "up"


async def _redis_state() -> str:
    client = redis.from_url(settings.REDIS_URL)
    try:
        await client.ping()
    except Exception as exc:
        return f"down: {exc}"
    finally:
        await client.aclose()
    return "up"


@router.get("/health")
async def health_check(
    db: AsyncSession = Depends(get_db),
    media: BaseMediaProvider = Depends(get_media_provider),
    images: BaseImageHost = Depends(get_image_host),
    gateway: BasePaymentGateway = Depends(get_payment_gateway),
):
    """
    Overall system health.

    Redis only backs rate limiting, so an outage degrades but does not fail.
    """
    database = await _database_state(db)
    redis_state = await _redis_state()
    return {
        "status": "healthy" if database == "up" and redis_state == "up" else "degraded",
        "api": "up",
        "database": database,
        "redis": redis_state,
        "providers": _provider_states(media, images, gateway),
    }


@router.get("/health/ready")
async def readiness_check(
    db: AsyncSession = Depends(get_db),
    media: BaseMediaProvider = Depends(get_media_provider),
    images: BaseImageHost = Depends(get_image_host),
    gateway: BasePaymentGateway = Depends(get_payment_gateway),
):
    """Ready once the database answers and every provider has credentials."""
    missing = [name for name, state in _provider_states(media, images, gateway).items() if state == "missing"]
    if await _database_state(db) != "up":
        missing.append("database")

    if missing:
        return JSONResponse(status_code=503, content={"ready": False, "missing": missing})
    return {"ready": True}


@router.get("/health/live")
async def liveness_check():
    return {"alive": True}
