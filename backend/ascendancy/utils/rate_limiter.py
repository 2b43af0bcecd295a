"""
Memory-based sliding-window rate limiter.
Keys are arbitrary strings (an email, or a client IP when no email is known).
"""
import time
from collections import defaultdict, deque
from typing import Callable, Deque, Dict, Optional

from fastapi import Request

from ascendancy.exceptions import RateLimitExceeded


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


class RateLimiter:
    """Allows `requests` hits per key within any `window`-second span."""

    def __init__(self, requests: int, window: int, clock: Callable[[], float] = time.monotonic):
        self.requests = requests
        self.window = window
        self._clock = clock
        self._hits: Dict[str, Deque[float]] = defaultdict(deque)

    def hit(self, key: str) -> None:
        """Record one hit for key, raising RateLimitExceeded when over the limit."""
        now = self._clock()
        hits = self._hits[key]
        while hits and now - hits[0] >= self.window:
            hits.popleft()

        if len(hits) >= self.requests:
            retry_after = int(self.window - (now - hits[0])) + 1
            raise RateLimitExceeded(retry_after)

        hits.append(now)

    def reset(self, key: Optional[str] = None) -> None:
        if key is None:
            self._hits.clear()
        else:
            self._hits.pop(key, None)


def rate_limit(requests: int, window: int):
    """
    Per-IP dependency.
    Example: Depends(rate_limit(requests=5, window=60))
    """
    limiter = RateLimiter(requests, window)

    def dependency(request: Request):
        limiter.hit(f"ip:{client_ip(request)}")
        return True

    dependency.limiter = limiter
    return dependency


# Shared limiters for the OTP endpoints
otp_request_limiter = RateLimiter(requests=5, window=15 * 60)
otp_verify_limiter = RateLimiter(requests=10, window=15 * 60)
