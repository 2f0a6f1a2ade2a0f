import os
import logging
from functools import lru_cache

import redis
from redis.exceptions import RedisError, AuthenticationError

logger = logging.getLogger(__name__)

# Shared by the rate counter, the reputation cache and the nonce registry
MAX_CONNECTIONS = 50
SOCKET_TIMEOUT_SECONDS = 2.0


def _build_pool() -> redis.ConnectionPool:
    url = os.getenv("REDIS_URL")
    if url:
        return redis.ConnectionPool.from_url(
            url,
            decode_responses=True,
            max_connections=MAX_CONNECTIONS,
            socket_timeout=SOCKET_TIMEOUT_SECONDS,
        )

    password = os.getenv("REDIS_PASSWORD") or None
    if password is None:
        logger.warning("REDIS_PASSWORD is not set, connecting without authentication.")

    return redis.ConnectionPool(
        host=os.getenv("REDIS_HOST", "localhost"),
        port=int(os.getenv("REDIS_PORT", 6379)),
        db=int(os.getenv("REDIS_DB", 0)),
        password=password,
        decode_responses=True,
        max_connections=MAX_CONNECTIONS,
        socket_timeout=SOCKET_TIMEOUT_SECONDS,
    )


@lru_cache(maxsize=1)
def get_redis_client() -> redis.Redis:
    """
    Process-wide Redis client over a bounded connection pool.

    REDIS_URL wins when set; otherwise REDIS_HOST (localhost),
    REDIS_PORT (6379), REDIS_DB (0) and REDIS_PASSWORD (optional).

    Raises RedisError when the server does not answer PING, so callers
    can decide to run without Redis.
    """
    pool = _build_pool()
    client = redis.Redis(connection_pool=pool)

    try:
        client.ping()
    except AuthenticationError:
        logger.critical("Redis authentication failed. Check REDIS_PASSWORD.")
        raise
    except RedisError as e:
        logger.critical(f"Could not connect to Redis: {e}")
        raise

    kwargs = pool.connection_kwargs
    logger.info(f"Connected to Redis at {kwargs.get('host')}:{kwargs.get('port')}/{kwargs.get('db', 0)}")
    return client
