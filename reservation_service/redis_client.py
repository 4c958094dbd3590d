import redis.asyncio as redis

from .config import REDIS_CONNECT_TIMEOUT_SECONDS, REDIS_SOCKET_TIMEOUT_SECONDS, REDIS_URL

_client: redis.Redis | None = None


def get_redis() -> redis.Redis:
    """Connection pool shared by the circuit breakers and the accommodation locks."""
    global _client
    if _client is None:
        if not REDIS_URL:
            raise RuntimeError("REDIS_URL environment variable is not set")
        _client = redis.from_url(
            REDIS_URL,
            decode_responses=True,
            socket_timeout=REDIS_SOCKET_TIMEOUT_SECONDS,
            socket_connect_timeout=REDIS_CONNECT_TIMEOUT_SECONDS,
        )
    return _client


async def close_redis() -> None:
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None
