"""Fixed-window in-memory rate limiting, one store per category.

Counters live in process memory, so limits apply per worker process.
"""
import math
import threading
import time
from dataclasses import dataclass

from fastapi import Request

from agriconnect.config import settings
from agriconnect.errors import ApiError


@dataclass(frozen=True)
class RateLimitConfig:
    window_seconds: int
    max_requests: int
    message: str = "Too many requests, please try again later."


@dataclass(frozen=True)
class RateLimitDecision:
    limited: bool
    limit: int
    remaining: int
    reset_at: float
    retry_after: int


class RateLimiter:
    def __init__(self, config: RateLimitConfig, clock=time.time):
        self.config = config
        self._clock = clock
        self._store: dict[str, tuple[int, float]] = {}
        self._lock = threading.Lock()

    def check(self, identifier: str) -> RateLimitDecision:
        """Count one request for identifier and report whether it is over the limit."""
        with self._lock:
            now = self._clock()
            self._cleanup(now)

            record = self._store.get(identifier)
            if record is None or now > record[1]:
                reset_at = now + self.config.window_seconds
                self._store[identifier] = (1, reset_at)
                return self._decision(False, self.config.max_requests - 1, reset_at, now)

            count, reset_at = record
            if count >= self.config.max_requests:
                return self._decision(True, 0, reset_at, now)

            self._store[identifier] = (count + 1, reset_at)
            return self._decision(False, self.config.max_requests - count - 1, reset_at, now)

    def _decision(self, limited: bool, remaining: int, reset_at: float, now: float) -> RateLimitDecision:
        # Retry-After is whole seconds and never zero.
        retry_after = max(1, math.ceil(reset_at - now))
        return RateLimitDecision(limited, self.config.max_requests, remaining, reset_at, retry_after)

    def _cleanup(self, now: float) -> None:
        expired = [key for key, (_, reset_at) in self._store.items() if reset_at < now]
        for key in expired:
            del self._store[key]

    def reset(self) -> None:
        with self._lock:
            self._store.clear()

    def __len__(self) -> int:
        return len(self._store)


RATE_LIMITS = {
    "general": RateLimitConfig(window_seconds=15 * 60, max_requests=100),
    "auth": RateLimitConfig(
        window_seconds=15 * 60,
        max_requests=10,
        message="Too many authentication attempts, please try again later.",
    ),
    "password_reset": RateLimitConfig(
        window_seconds=60 * 60,
        max_requests=3,
        message="Too many password reset attempts, please try again later.",
    ),
    "upload": RateLimitConfig(
        window_seconds=60,
        max_requests=10,
        message="Too many upload requests, please slow down.",
    ),
    "messaging": RateLimitConfig(
        window_seconds=60 * 60,
        max_requests=5,
        message="Too many messages sent, please try again later.",
    ),
}

rate_limiters = {category: RateLimiter(config) for category, config in RATE_LIMITS.items()}


def reset_rate_limiters() -> None:
    for limiter in rate_limiters.values():
        limiter.reset()


def get_identifier(request: Request, user_id: int | None = None) -> str:
    if user_id is not None:
        return f"user:{user_id}"
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        ip = forwarded.split(",")[0].strip()
    elif request.client:
        ip = request.client.host
    else:
        ip = "unknown"
    return f"ip:{ip}"


def enforce_rate_limit(category: str, identifier: str) -> None:
    """Raise TOO_MANY_REQUESTS when identifier is over the limit for category."""
    if not settings.RATE_LIMIT_ENABLED:
        return
    limiter = rate_limiters[category]
    decision = limiter.check(identifier)
    if not decision.limited:
        return

    raise ApiError(
        "TOO_MANY_REQUESTS",
        limiter.config.message,
        headers={
            "Retry-After": str(decision.retry_after),
            "X-RateLimit-Limit": str(decision.limit),
            "X-RateLimit-Remaining": "0",
            "X-RateLimit-Reset": str(math.ceil(decision.reset_at)),
        },
    )
