from typing import Optional
from redis import Redis
from tgauth.settings import settings


def get_redis(url: Optional[str] = None) -> Redis:
    """
    Client for challenge records and counters. Responses are decoded: records
    are JSON text and the Lua scripts reply with tagged string arrays.
    """
    return Redis.from_url(
        url or settings.REDIS_URL,
        decode_responses=True,
        socket_timeout=settings.REDIS_SOCKET_TIMEOUT_SEC,
    )
