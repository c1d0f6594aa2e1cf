"""Rate limiting for the AI-backed endpoints."""
import logging
import re
import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Pattern, Tuple

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from app.settings import settings


@dataclass
class RateLimitBucket:
    """Request timestamps inside the current window."""
    requests: list = field(default_factory=list)


class RateLimiter:
    """In-memory rate limiter using a sliding window.

    State is per process; several workers each enforce their own window.
    """

    def __init__(self):
        # {rule name: {client key: bucket}}
        self.buckets: Dict[str, Dict[str, RateLimitBucket]] = defaultdict(dict)
        # {rule name: time of the last idle-bucket sweep}
        self.last_sweep: Dict[str, float] = {}

    def is_allowed(
        self,
        client_key: str,
        rule: str,
        max_requests: int,
        window_seconds: int
    ) -> Tuple[bool, int]:
        """
        Record a request if it fits in the window.

        Args:
            client_key: User ID or client IP
            rule: Rate limit rule name
            max_requests: Maximum requests allowed in window
            window_seconds: Time window in seconds

        Returns:
            Tuple of (is_allowed, retry_after_seconds)
        """
        now = time.time()
        rule_buckets = self.buckets[rule]
        self._sweep_idle(rule, rule_buckets, now, window_seconds)

        bucket = rule_buckets.get(client_key)
        if bucket is not None:
            bucket.requests = [ts for ts in bucket.requests if now - ts < window_seconds]
            if not bucket.requests:
                del rule_buckets[client_key]
                bucket = None

        if bucket is None:
            if max_requests <= 0:
                return False, window_seconds
            rule_buckets[client_key] = RateLimitBucket(requests=[now])
            return True, 0

        if len(bucket.requests) < max_requests:
            bucket.requests.append(now)
            return True, 0

        retry_after = int(window_seconds - (now - min(bucket.requests))) + 1
        return False, retry_after

    def _sweep_idle(
        self,
        rule: str,
        rule_buckets: Dict[str, RateLimitBucket],
        now: float,
        window_seconds: int
    ) -> None:
        """Drop clients with no request inside the window, at most once per window."""
        if now - self.last_sweep.get(rule, 0.0) < window_seconds:
            return
        self.last_sweep[rule] = now
        idle = [
            key for key, bucket in rule_buckets.items()
            if not any(now - ts < window_seconds for ts in bucket.requests)
        ]
        for key in idle:
            del rule_buckets[key]

    def reset(self):
        """Reset all rate limit buckets (for testing)."""
        self.buckets.clear()
        self.last_sweep.clear()


# Global rate limiter instance
rate_limiter = RateLimiter()


@dataclass(frozen=True)
class RateLimitRule:
    name: str
    path: Pattern[str]
    methods: Tuple[str, ...]
    max_requests: int
    window_seconds: int

    def matches(self, method: str, path: str) -> bool:
        return method in self.methods and self.path.fullmatch(path) is not None


def default_rules() -> List[RateLimitRule]:
    """Rules for every endpoint that calls an AI vendor."""
    return [
        RateLimitRule(
            name="ai",
            path=re.compile(r"/api/analyze-image"),
            methods=("POST",),
            max_requests=settings.RATE_LIMIT_AI_REQUESTS,
            window_seconds=settings.RATE_LIMIT_AI_WINDOW,
        ),
        RateLimitRule(
            name="ai",
            path=re.compile(r"/api/items/\d+/explain"),
            methods=("POST",),
            max_requests=settings.RATE_LIMIT_AI_REQUESTS,
            window_seconds=settings.RATE_LIMIT_AI_WINDOW,
        ),
    ]


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Applies the sliding-window limit per user (or per IP when anonymous).

    Both AI endpoints share one bucket, so the limit caps a user's total
    vendor traffic.
    """

    def __init__(self, app: ASGIApp, rules: Optional[List[RateLimitRule]] = None):
        super().__init__(app)
        self.logger = logging.getLogger("app.ratelimit")
        self.rules = rules if rules is not None else default_rules()

    async def dispatch(self, request: Request, call_next):
        if not settings.RATE_LIMIT_ENABLED:
            return await call_next(request)

        path = request.url.path
        rule = next((r for r in self.rules if r.matches(request.method, path)), None)
        if rule is None:
            return await call_next(request)

        user_id = request.headers.get("X-User-Id")
        client_ip = request.client.host if request.client else "unknown"
        client_key = f"user:{user_id}" if user_id else f"ip:{client_ip}"

        allowed, retry_after = rate_limiter.is_allowed(
            client_key=client_key,
            rule=rule.name,
            max_requests=rule.max_requests,
            window_seconds=rule.window_seconds
        )
        if allowed:
            return await call_next(request)

        self.logger.warning(
            f"Rate limit exceeded for {client_key} on {path}",
            extra={
                'request_id': getattr(request.state, 'request_id', None),
                'extra_fields': {
                    'client_key': client_key,
                    'endpoint': path,
                    'retry_after': retry_after
                }
            }
        )
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content={
                "error": "Too many requests",
                "message": f"Rate limit exceeded. Try again in {retry_after} seconds.",
            },
            headers={"Retry-After": str(retry_after)},
        )
