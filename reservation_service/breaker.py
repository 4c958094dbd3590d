import time

from redis.exceptions import RedisError

from .redis_client import get_redis

CLOSED = "CLOSED"
OPEN = "OPEN"
HALF_OPEN = "HALF_OPEN"


class CircuitBreakerOpen(Exception):
    pass


class CircuitBreaker:
    """
    Circuit breaker for one upstream service, kept in a Redis hash so every
    reservation-service instance sees the same state.

    CLOSED counts failures inside failure_window_seconds and opens after
    failure_threshold of them. OPEN rejects calls for reset_timeout_seconds, then
    lets one trial call through as HALF_OPEN. A failed trial re-opens the circuit; any
    success clears it.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        reset_timeout_seconds: int = 15,
        failure_window_seconds: int = 60,
        client=None,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.reset_timeout_seconds = reset_timeout_seconds
        self.failure_window_seconds = failure_window_seconds
        self._client = client

    @property
    def client(self):
        return self._client if self._client is not None else get_redis()

    @property
    def key(self) -> str:
        return f"cb:reservation:{self.name}"

    async def allow_request(self) -> None:
        try:
            state, opened_at = await self.client.hmget(self.key, ["state", "opened_at"])
            if state != OPEN:
                return
            if opened_at and time.time() - float(opened_at) < self.reset_timeout_seconds:
                raise CircuitBreakerOpen(f"{self.name} is unavailable (circuit open)")
            await self.client.hset(self.key, "state", HALF_OPEN)
        except RedisError as e:
            # breaker state unknown; let the call through
            print(f"[reservation-service] breaker state unavailable for {self.name}: {e}")

    async def record_success(self) -> None:
        try:
            await self.client.delete(self.key)
        except RedisError as e:
            print(f"[reservation-service] breaker update failed for {self.name}: {e}")

    async def record_failure(self) -> None:
        try:
            await self._count_failure()
        except RedisError as e:
            print(f"[reservation-service] breaker update failed for {self.name}: {e}")

    async def _count_failure(self) -> None:
        if await self.client.hget(self.key, "state") == HALF_OPEN:
            await self._open()
            return

        failures = await self.client.hincrby(self.key, "failures", 1)
        if failures == 1:
            await self.client.expire(self.key, self.failure_window_seconds)
        if failures >= self.failure_threshold:
            await self._open()

    async def _open(self) -> None:
        print(f"[reservation-service] circuit opened for {self.name}")
        pipe = self.client.pipeline()
        pipe.hset(self.key, mapping={"state": OPEN, "opened_at": str(time.time()), "failures": 0})
        pipe.expire(self.key, self.reset_timeout_seconds + 30)
        await pipe.execute()
