"""
Rate Limiting Middleware
Limits requests per client address and endpoint bucket
"""

import threading
import time
from typing import Dict, List, Optional, Tuple
import logging

from fastapi import Request

from config import Config
from utils.error_handler import RateLimited

logger = logging.getLogger(__name__)


class RateLimiter:
    """Simple in-memory sliding-window rate limiter"""

    def __init__(self, cleanup_interval_seconds: int = 60):
        self._requests: Dict[Tuple[str, str], List[float]] = {}  # (client, bucket) -> [timestamp, ...]
        self._windows: Dict[Tuple[str, str], int] = {}
        self._lock = threading.Lock()
        self._cleanup_interval = cleanup_interval_seconds
        self._last_cleanup = 0.0

    def is_rate_limited(
        self,
        client_id: str,
        bucket: str = "general",
        max_requests: int = 60,
        window_seconds: int = 60,
        now: Optional[float] = None,
    ) -> Tuple[bool, Optional[int]]:
        """
        Check if a client is rate limited

        Args:
            client_id: Client address
            bucket: Endpoint bucket being called
            max_requests: Maximum requests allowed in window
            window_seconds: Time window in seconds

        Returns:
            Tuple of (is_limited, seconds_until_reset)
        """
        now = time.time() if now is None else now
        cutoff = now - window_seconds
        key = (client_id, bucket)

        with self._lock:
            if now - self._last_cleanup >= self._cleanup_interval:
                self._cleanup_expired(now)

            # Remove expired requests
            recent = [req_time for req_time in self._requests.get(key, []) if req_time > cutoff]

            if len(recent) >= max_requests:
                self._requests[key] = recent
                reset_time = int(min(recent) + window_seconds - now)
                return True, max(1, reset_time)

            recent.append(now)
            self._requests[key] = recent
            self._windows[key] = window_seconds
            return False, None

    def _cleanup_expired(self, now: float) -> None:
        """Drop clients with nothing left inside their window; caller holds the lock"""
        self._last_cleanup = now
        expired = [
            key
            for key, timestamps in self._requests.items()
            if not timestamps or timestamps[-1] <= now - self._windows.get(key, 0)
        ]
        for key in expired:
            self._requests.pop(key, None)
            self._windows.pop(key, None)

        if expired:
            logger.debug(f"Rate limiter cleanup: removed {len(expired)} idle client bucket(s)")

    def reset(self, client_id: Optional[str] = None):
        """Forget recorded requests for one client, or for everyone"""
        with self._lock:
            if client_id is None:
                self._requests.clear()
                self._windows.clear()
                return
            for key in [key for key in self._requests if key[0] == client_id]:
                del self._requests[key]
                self._windows.pop(key, None)


def bucket_for_path(path: str) -> str:
    """Map a request path to its rate limit bucket"""
    if path.startswith("/session") or path.startswith("/accounts") or path.startswith("/staff-accounts"):
        return "auth"
    if path.startswith("/payments"):
        return "payment"
    return "general"


def client_id_for(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def check_request(limiter: RateLimiter, request: Request) -> None:
    """Raise RateLimited when the caller has used up its bucket"""
    if not Config.RATE_LIMITING_ENABLED:
        return

    bucket = bucket_for_path(request.url.path)
    limits = Config.get_rate_limit(bucket)
    client_id = client_id_for(request)

    is_limited, reset_time = limiter.is_rate_limited(
        client_id, bucket, limits["max_requests"], limits["window_seconds"]
    )
    if is_limited:
        logger.warning(f"⏱️ Rate limit exceeded for client {client_id} on bucket {bucket}")
        raise RateLimited(retry_after=reset_time)
