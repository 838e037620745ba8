"""
Health, readiness and metrics endpoints
"""
from typing import Optional

from fastapi import APIRouter, Depends, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from api.dependencies import get_cache, get_settings, get_store
from lib import prometheus_metrics as prom
from lib.logging import RequestLogger
from lib.redis_client import RedisClient
from lib.settings import Settings
from lib.store import ReferralStore

router = APIRouter(tags=["ops"])


@router.get("/healthz")
async def health_check(response: Response, store: ReferralStore = Depends(get_store)):
    """
    Health check endpoint
    Returns: {"ok": true} with 200 if the database answers
    """
    logger = RequestLogger()
    request_id = logger.log_request("GET", "/healthz")

    db_healthy = await store.health_check()
    prom.health_check_status.labels(check_type="database").set(1 if db_healthy else 0)

    if db_healthy:
        status_code = 200
        result = {"ok": True, "database": "connected"}
    else:
        status_code = 503
        result = {"ok": False, "database": "disconnected"}

    result["latency_ms"] = logger.log_response(status_code, "health-check")
    result["request_id"] = request_id

    response.status_code = status_code
    return result


@router.get("/readyz")
async def readiness_check(
    response: Response,
    store: ReferralStore = Depends(get_store),
    cache: Optional[RedisClient] = Depends(get_cache)
):
    """
    Readiness check endpoint
    Redis is optional: a missing cache is reported but does not fail readiness
    """
    logger = RequestLogger()
    request_id = logger.log_request("GET", "/readyz")

    db_healthy = await store.health_check()
    redis_healthy = await cache.ping() if cache is not None else False
    prom.health_check_status.labels(check_type="database").set(1 if db_healthy else 0)
    prom.health_check_status.labels(check_type="redis").set(1 if redis_healthy else 0)

    status_code = 200 if db_healthy else 503
    result = {
        "ready": db_healthy,
        "database": "ok" if db_healthy else "unavailable",
        "redis": "ok" if redis_healthy else "unavailable",
    }

    result["latency_ms"] = logger.log_response(status_code, "readiness-check")
    result["request_id"] = request_id

    response.status_code = status_code
    return result


@router.get("/version")
async def version_info(settings: Settings = Depends(get_settings)):
    """Return API version information"""
    return {
        "version": "0.1.0",
        "name": settings.app_name,
        "environment": settings.environment,
    }


@router.get("/metrics", response_class=Response)
async def metrics():
    """Prometheus metrics endpoint"""
    prom.update_uptime()
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
