import asyncio
from contextlib import asynccontextmanager

from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from .config import LOCK_BACKEND, LOCK_TIMEOUT_SECONDS, LOCK_WAIT_SECONDS


class LockTimeout(Exception):
    pass


class _Slot:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = asyncio.Lock()
        self.users = 0


class LocalResourceLocks:
    """
    In-process exclusive lock per accommodation.

    Only serializes callers inside one process; use RedisResourceLocks when more
    than one instance writes to the same database. A slot lives only while some
    caller holds or waits for it.
    """

    def __init__(self, wait_seconds: float = LOCK_WAIT_SECONDS):
        self.wait_seconds = wait_seconds
        self._slots: dict[str, _Slot] = {}

    def __len__(self) -> int:
        return len(self._slots)

    @asynccontextmanager
    async def hold(self, resource_id: str):
        slot = self._slots.get(resource_id)
        if slot is None:
            slot = self._slots[resource_id] = _Slot()
        slot.users += 1
        try:
            try:
                await asyncio.wait_for(slot.lock.acquire(), timeout=self.wait_seconds)
            except asyncio.TimeoutError:
                raise LockTimeout(f"Timed out waiting for lock on accommodation {resource_id}")
            try:
                yield
            finally:
                slot.lock.release()
        finally:
            slot.users -= 1
            if slot.users == 0:
                del self._slots[resource_id]


class RedisResourceLocks:
    """
    Redis lock per accommodation (shared across service instances).

    timeout bounds how long a crashed holder can keep the lock,
    blocking_timeout bounds how long a caller waits for it. An unreachable or
    stalled Redis counts as a lock timeout, so callers retry instead of failing hard.
    """

    def __init__(
        self,
        client,
        timeout_seconds: float = LOCK_TIMEOUT_SECONDS,
        wait_seconds: float = LOCK_WAIT_SECONDS,
    ):
        self.client = client
        self.timeout_seconds = timeout_seconds
        self.wait_seconds = wait_seconds

    def _key(self, resource_id: str) -> str:
        return f"reservation_lock:{resource_id}"

    @asynccontextmanager
    async def hold(self, resource_id: str):
        lock = self.client.lock(
            self._key(resource_id),
            timeout=self.timeout_seconds,
            blocking_timeout=self.wait_seconds,
        )
        try:
            acquired = await lock.acquire()
        except (RedisConnectionError, RedisTimeoutError) as e:
            raise LockTimeout(f"Redis unavailable while locking accommodation {resource_id}: {e}")
        if not acquired:
            raise LockTimeout(f"Timed out waiting for lock on accommodation {resource_id}")
        try:
            yield
        finally:
            try:
                await lock.release()
            except RedisError as e:
                # expired or unreachable; the exclusion constraint still guards the rows
                print(f"[reservation-service] lock release failed for {resource_id}: {e}")


def build_locks():
    if LOCK_BACKEND == "local":
        return LocalResourceLocks()
    if LOCK_BACKEND == "redis":
        from .redis_client import get_redis
        return RedisResourceLocks(get_redis())
    raise RuntimeError(f"Unknown LOCK_BACKEND: {LOCK_BACKEND}")
