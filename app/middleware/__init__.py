"""Request logging and rate limiting middleware."""
from .logging import RequestLoggingMiddleware, setup_logging
from .rate_limit import RateLimitMiddleware

__all__ = [
    "RequestLoggingMiddleware",
    "setup_logging",
    "RateLimitMiddleware",
]
