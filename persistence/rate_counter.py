"""
Gate Rate Counter

Fixed-window per-IP request counter in Redis.

Key Schema:
    rl:ip:{ip}  → request count, expires WINDOW_SECONDS after the first hit
"""

import logging
from typing import Optional

import redis
from redis.exceptions import RedisError


logger = logging.getLogger(__name__)


class FixedWindowRateCounter:
    """
    Counts requests per IP in a fixed window.

    exceeded() increments and reports whether the count passed the limit.
    Without Redis, or on Redis errors, the counter reports "not exceeded".
    """

    WINDOW_SECONDS: int = 60

    def __init__(self, client: Optional[redis.Redis], limit_per_window: int = 60) -> None:
        self.client = client
        self.limit = limit_per_window

    def _key(self, ip: str) -> str:
        return f"rl:ip:{ip}"

    def exceeded(self, ip: str) -> bool:
        if self.client is None:
            return False

        key = self._key(ip)
        try:
            count = int(self.client.incr(key))
            if count == 1:
                self.client.expire(key, self.WINDOW_SECONDS)
        except RedisError as e:
            logger.warning(f"Rate counter unavailable for {ip}: {e}")
            return False

        if count > self.limit:
            logger.info(f"Rate limit exceeded for {ip}: {count}/{self.limit}")
            return True
        return False
