"""
Gate Nonce Registry

Optional single-use enforcement for challenge tokens.

Key Schema:
    token:nonce:{nonce}  → "1", expires with the token

The token wire format is unchanged; the registry only remembers which
nonces were already consumed until their token would have expired.
"""

import logging
import time
from typing import Optional

import redis
from redis.exceptions import RedisError


logger = logging.getLogger(__name__)


class RedisNonceRegistry:
    """
    Marks token nonces as consumed using SET NX EX.

    Fails closed: when Redis is unreachable the nonce is treated as
    already used, so verification denies.
    """

    def __init__(self, client: Optional[redis.Redis]) -> None:
        self.client = client

    def _key(self, nonce: str) -> str:
        return f"token:nonce:{nonce}"

    def consume(self, nonce: str, expires_at: int) -> bool:
        if self.client is None:
            logger.error("Nonce registry has no Redis client, rejecting token")
            return False

        ttl = max(1, int(expires_at - time.time()))
        try:
            created = self.client.set(self._key(nonce), "1", nx=True, ex=ttl)
        except RedisError as e:
            logger.error(f"Nonce registry unavailable, rejecting token: {e}")
            return False

        if not created:
            logger.warning(f"Replayed challenge token nonce={nonce}")
            return False
        return True
