"""Caching and rate limiting primitives."""

from src.reliability.cache import TTLCache
from src.reliability.rate_limiter import FixedWindowRateLimiter

__all__ = ["FixedWindowRateLimiter", "TTLCache"]
