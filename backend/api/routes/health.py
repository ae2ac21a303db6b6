"""Health check endpoints.

Provides:
- Basic liveness check (/health)
- Dependency check of the database and the Celery broker (/health/ready)
"""

import logging
import time
from typing import Any

import redis.asyncio as aioredis
from fastapi import APIRouter
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.config import get_settings
from db import database

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["health"])

_start_time = time.monotonic()


@router.get("", response_model=dict[str, Any])
async def liveness() -> dict[str, Any]:
    """
    Get API name and version.
    Used as a simple liveness check.
    """
    settings = get_settings()
    return {
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "ok",
        "uptime_seconds": round(time.monotonic() - _start_time, 1),
    }


async def _check_database() -> str:
    try:
        async with database.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        logger.error("Database health check failed: %s", e)
        return "unavailable"
    return "ok"


async def _check_broker(url: str) -> str:
    client = aioredis.from_url(url, socket_connect_timeout=2, socket_timeout=2)
    try:
        await client.ping()
    except (RedisError, OSError) as e:
        logger.warning("Broker health check failed: %s", e)
        return "unavailable"
    finally:
        await client.aclose()
    return "ok"


@router.get("/ready")
async def readiness():
    """
    Readiness check with dependency verification.

    Only an unreachable database makes the API unready (503). Without the
    broker, scheduled triggers stop but webhooks, events and test runs
    still execute in-process, so it only degrades the status.
    """
    checks = {
        "database": await _check_database(),
        "broker": await _check_broker(get_settings().REDIS_URL),
    }
    healthy = all(v == "ok" for v in checks.values())
    return JSONResponse(
        status_code=503 if checks["database"] != "ok" else 200,
        content={"status": "ok" if healthy else "degraded", "checks": checks},
    )
