"""
In-memory rate limiting for login, registration and checkout.

Sliding-window counter per (client IP, route). Single-process only; a
multi-worker deployment needs a shared store.
"""
import time
import logging
from collections import defaultdict, deque

from fastapi import Request

from domain.errors import RateLimitError

logger = logging.getLogger(__name__)


class RateLimiter:
    """Sliding-window limiter keyed by an arbitrary string."""

    def __init__(self):
        self._requests: dict[str, deque[float]] = defaultdict(deque)

    def _cleanup(self, key: str, window_seconds: int, now: float):
        cutoff = now - window_seconds
        q = self._requests[key]
        while q and q[0] <= cutoff:
            q.popleft()

    def check(self, key: str, max_requests: int, window_seconds: int) -> bool:
        """Record a hit for `key`; False when the window is already full."""
        now = time.monotonic()
        self._cleanup(key, window_seconds, now)

        if len(self._requests[key]) >= max_requests:
            return False

        self._requests[key].append(now)
        return True

    def remaining(self, key: str, max_requests: int, window_seconds: int) -> int:
        self._cleanup(key, window_seconds, time.monotonic())
        return max(0, max_requests - len(self._requests[key]))

    def reset(self) -> None:
        self._requests.clear()


_limiter = RateLimiter()


def get_limiter() -> RateLimiter:
    return _limiter


def rate_limit(max_requests: int = 10, window_seconds: int = 60):
    """
    FastAPI dependency factory.

    Usage:
        @router.post("/auth/login")
        async def login(..., _rate=Depends(rate_limit(10, 60))):
            ...
    """
    async def _check_rate_limit(request: Request):
        client_ip = request.client.host if request.client else "unknown"
        route_path = request.url.path
        key = f"{client_ip}:{route_path}"

        if not _limiter.check(key, max_requests, window_seconds):
            logger.warning(
                f"Rate limit exceeded: {client_ip} on {route_path} "
                f"({max_requests}/{window_seconds}s)"
            )
            err = RateLimitError(
                f"Rate limit exceeded. Maximum {max_requests} requests "
                f"per {window_seconds} seconds. Try again later.",
                details={"limit": max_requests, "windowSeconds": window_seconds},
            )
            err.headers = {"Retry-After": str(window_seconds)}
            raise err

    return _check_rate_limit
