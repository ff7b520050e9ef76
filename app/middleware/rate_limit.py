"""Per-IP sliding-window rate limiting for the expensive endpoints.

AI analysis, AI chat and PDF parsing each get their own bucket per client
IP. Counters live in process memory, so each worker limits independently.
"""

import logging
import threading
import time
from collections import defaultdict, deque
from typing import Deque, Dict, Tuple

from fastapi import HTTPException, Request, status

from app.config import get_settings

logger = logging.getLogger(__name__)


class RateLimiter:
    def __init__(self):
        self._hits: Dict[Tuple[str, str], Deque[float]] = defaultdict(deque)
        self._lock = threading.Lock()

    def allow(self, client_ip: str, bucket: str, limit: int, window_seconds: float) -> bool:
        """Count this hit against ``(client_ip, bucket)``; False once ``limit`` is reached."""
        now = time.monotonic()
        with self._lock:
            hits = self._hits[(client_ip, bucket)]
            while hits and hits[0] <= now - window_seconds:
                hits.popleft()
            if len(hits) >= limit:
                return False
            hits.append(now)
            return True

    def reset(self):
        with self._lock:
            self._hits.clear()


limiter = RateLimiter()


def get_client_ip(request: Request) -> str:
    """First hop of X-Forwarded-For when behind a proxy, else the socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def rate_limit(request: Request, bucket: str):
    """Raise 429 when the caller has used up ``bucket`` for the current window."""
    settings = get_settings()
    limit = settings.rate_limit_requests
    window = settings.rate_limit_window
    client_ip = get_client_ip(request)
    if limiter.allow(client_ip, bucket, limit, window):
        return
    logger.warning(f"Rate limit hit: {client_ip} on {bucket} ({limit} per {window}s)")
    raise HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail=f"Too many requests. Try again in {window} seconds.",
        headers={"Retry-After": str(window)},
    )
