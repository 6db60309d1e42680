"""
Redis Client

One client per process, shared by the session store and the rate
limiter. redis.from_url() connects lazily, so building the client never
fails; errors surface on the first command.
"""
from functools import lru_cache
import redis
from portal.config import get_settings

settings = get_settings()


@lru_cache()
def get_redis_client() -> redis.Redis:
    return redis.from_url(
        settings.REDIS_URL,
        decode_responses=True,
        socket_connect_timeout=5
    )
