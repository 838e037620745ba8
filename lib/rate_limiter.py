"""Per-IP rate limiting middleware for the public and management API"""
import time
from bisect import bisect_right
from typing import Dict, List, Tuple

from fastapi import Request
from fastapi.responses import JSONResponse

from lib.logging import get_logger

logger = get_logger(__name__)

# Ops endpoints are never limited
EXEMPT_PATHS = ("/healthz", "/readyz", "/metrics")

MINUTE = 60
HOUR = 3600


class RateLimiter:
    """
    Sliding one-minute and one-hour windows per client IP.

    Each client keeps the timestamps of its accepted requests from the last
    hour, oldest first. A client whose window empties is forgotten, and idle
    clients are swept out at most once per `sweep_interval` seconds, so the
    table only holds clients seen in the last hour.
    """

    def __init__(
        self,
        requests_per_minute: int = 600,
        requests_per_hour: int = 20000,
        sweep_interval: float = MINUTE
    ):
        self.requests_per_minute = requests_per_minute
        self.requests_per_hour = requests_per_hour
        self.sweep_interval = sweep_interval
        self.clients: Dict[str, List[float]] = {}
        self._last_sweep = 0.0

    def _sweep(self, now: float):
        cutoff = now - HOUR
        idle = [client for client, hits in self.clients.items() if not hits or hits[-1] <= cutoff]
        for client in idle:
            del self.clients[client]
        self._last_sweep = now
        if idle:
            logger.debug(f"Rate limiter dropped {len(idle)} idle clients")

    def _recent_hits(self, client_id: str, now: float) -> List[float]:
        hits = self.clients.get(client_id, [])
        expired = bisect_right(hits, now - HOUR)
        if expired:
            del hits[:expired]
        return hits

    def check(self, client_id: str, now: float) -> Tuple[bool, Dict[str, str]]:
        """Record a request if both windows allow it. Returns (allowed, headers)."""
        if now - self._last_sweep >= self.sweep_interval:
            self._sweep(now)

        hits = self._recent_hits(client_id, now)
        first_in_minute = bisect_right(hits, now - MINUTE)
        minute_count = len(hits) - first_in_minute
        hour_count = len(hits)

        if minute_count >= self.requests_per_minute:
            reset = hits[first_in_minute] + MINUTE
            return False, {
                "X-RateLimit-Limit": str(self.requests_per_minute),
                "X-RateLimit-Remaining": "0",
                "X-RateLimit-Reset": str(int(reset)),
                "Retry-After": str(max(int(reset - now), 1)),
            }

        if hour_count >= self.requests_per_hour:
            reset = hits[0] + HOUR
            return False, {
                "X-RateLimit-Limit-Hour": str(self.requests_per_hour),
                "X-RateLimit-Remaining-Hour": "0",
                "X-RateLimit-Reset-Hour": str(int(reset)),
                "Retry-After": str(max(int(reset - now), 1)),
            }

        hits.append(now)
        self.clients[client_id] = hits

        return True, {
            "X-RateLimit-Limit": str(self.requests_per_minute),
            "X-RateLimit-Remaining": str(self.requests_per_minute - minute_count - 1),
            "X-RateLimit-Limit-Hour": str(self.requests_per_hour),
            "X-RateLimit-Remaining-Hour": str(self.requests_per_hour - hour_count - 1),
        }

    async def __call__(self, request: Request, call_next):
        if request.url.path in EXEMPT_PATHS:
            return await call_next(request)

        client_id = request.client.host if request.client else "unknown"
        allowed, headers = self.check(client_id, time.time())

        if not allowed:
            logger.warning(f"Rate limit exceeded for {client_id} on {request.url.path}")
            return JSONResponse(
                status_code=429,
                content={"error": "Rate limit exceeded", "retry_after": headers["Retry-After"]},
                headers=headers
            )

        response = await call_next(request)
        response.headers.update(headers)
        return response
