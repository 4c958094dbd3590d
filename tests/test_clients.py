import httpx
import pytest
from fastapi import HTTPException
from redis.exceptions import ConnectionError as RedisConnectionError

from reservation_service import breaker as breaker_module
from reservation_service.clients import ACCOMMODATION_NOT_FOUND, AccommodationClient, UserClient
from reservation_service.locks import LocalResourceLocks
from reservation_service.notifications import NotificationBridge
from reservation_service.services import ReservationService

from .conftest import ACCOMMODATION_ID, GUEST_ID, HOST_ID, TODAY, day


class FakePipeline:
    def __init__(self, redis):
        self.redis = redis
        self.ops = []

    def __getattr__(self, name):
        def queue(*args, **kwargs):
            self.ops.append((name, args, kwargs))
        return queue

    async def execute(self):
        for name, args, kwargs in self.ops:
            await getattr(self.redis, name)(*args, **kwargs)


class FakeRedis:
    """In-memory stand-in for the hash commands the circuit breaker uses."""

    def __init__(self):
        self.hashes = {}

    async def hget(self, key, field):
        return self.hashes.get(key, {}).get(field)

    async def hmget(self, key, fields):
        h = self.hashes.get(key, {})
        return [h.get(f) for f in fields]

    async def hset(self, key, field=None, value=None, mapping=None):
        h = self.hashes.setdefault(key, {})
        if field is not None:
            h[field] = str(value)
        for k, v in (mapping or {}).items():
            h[k] = str(v)

    async def hincrby(self, key, field, amount):
        h = self.hashes.setdefault(key, {})
        h[field] = str(int(h.get(field, 0)) + amount)
        return int(h[field])

    async def expire(self, key, seconds):
        pass

    async def delete(self, key):
        self.hashes.pop(key, None)

    def pipeline(self):
        return FakePipeline(self)


@pytest.fixture
def fake_redis(monkeypatch):
    fake = FakeRedis()
    monkeypatch.setattr(breaker_module, "get_redis", lambda: fake)
    return fake


@pytest.fixture
def upstream(monkeypatch):
    """Route every outgoing httpx call to a handler the test sets."""
    state = {"handler": None, "requests": []}
    real_client = httpx.AsyncClient

    def handle(request):
        state["requests"].append(request)
        return state["handler"](request)

    def client_factory(*args, **kwargs):
        return real_client(*args, transport=httpx.MockTransport(handle), **kwargs)

    monkeypatch.setattr(httpx, "AsyncClient", client_factory)
    return state


async def test_validate_parses_result(fake_redis, upstream):
    upstream["handler"] = lambda request: httpx.Response(
        200,
        json={
            "valid": True,
            "host_id": HOST_ID,
            "total_price": "250.00",
            "pricing_mode": "PER_UNIT",
            "approval_mode": "AUTOMATIC",
            "accommodation_name": "Beach House",
        },
    )

    result = await AccommodationClient("http://accommodations").validate(ACCOMMODATION_ID, day(10), day(12), 2)

    assert result.valid is True
    assert result.is_auto_approval is True
    assert str(result.total_price) == "250.00"
    request = upstream["requests"][0]
    assert request.method == "POST"
    assert request.url.path == f"/internal/accommodations/{ACCOMMODATION_ID}/validate-reservation"


async def test_validate_not_found(fake_redis, upstream):
    upstream["handler"] = lambda request: httpx.Response(404)

    result = await AccommodationClient("http://accommodations").validate(ACCOMMODATION_ID, day(10), day(12), 2)

    assert result.valid is False
    assert result.error_code == ACCOMMODATION_NOT_FOUND


async def test_user_summary(fake_redis, upstream):
    upstream["handler"] = lambda request: httpx.Response(
        200, json={"user_id": GUEST_ID, "email": "guest@example.com", "first_name": "John", "last_name": "Doe"}
    )

    summary = await UserClient("http://users").get_summary(GUEST_ID)

    assert summary.found is True
    assert summary.full_name == "John Doe"
    assert upstream["requests"][0].url.path == f"/internal/users/{GUEST_ID}/summary"

    upstream["handler"] = lambda request: httpx.Response(404)
    assert (await UserClient("http://users").get_summary("nobody")).found is False


async def test_upstream_errors_open_breaker(fake_redis, upstream):
    upstream["handler"] = lambda request: httpx.Response(500, text="boom")
    client = UserClient("http://users")

    for _ in range(client.breaker.failure_threshold):
        with pytest.raises(HTTPException) as exc:
            await client.get_summary(GUEST_ID)
        assert exc.value.status_code == 500

    calls = len(upstream["requests"])
    with pytest.raises(HTTPException) as exc:
        await client.get_summary(GUEST_ID)
    assert exc.value.status_code == 503
    assert len(upstream["requests"]) == calls


async def test_timeout_maps_to_504(fake_redis, upstream):
    def timeout(request):
        raise httpx.ReadTimeout("slow", request=request)

    upstream["handler"] = timeout

    with pytest.raises(HTTPException) as exc:
        await UserClient("http://users").get_summary(GUEST_ID)
    assert exc.value.status_code == 504


async def test_half_open_trial_call_closes_circuit(fake_redis, upstream):
    client = UserClient("http://users")
    client.breaker.reset_timeout_seconds = 0
    await client.breaker._open()

    upstream["handler"] = lambda request: httpx.Response(200, json={"user_id": GUEST_ID, "email": "g@example.com"})
    assert (await client.get_summary(GUEST_ID)).found is True
    assert client.breaker.key not in fake_redis.hashes


async def test_user_summary_explicit_miss(fake_redis, upstream):
    upstream["handler"] = lambda request: httpx.Response(200, json={"found": False})

    summary = await UserClient("http://users").get_summary("nobody")

    assert summary.found is False
    assert summary.email is None


async def test_explicit_miss_suppresses_notification(fake_redis, upstream, accommodations, publisher, session_factory):
    upstream["handler"] = lambda request: httpx.Response(200, json={"found": False})
    bridge = NotificationBridge(publisher=publisher, users=UserClient("http://users"))
    service = ReservationService(
        session_factory=session_factory,
        locks=LocalResourceLocks(wait_seconds=1),
        accommodations=accommodations,
        notifier=bridge,
        today=lambda: TODAY,
    )

    await service.create(ACCOMMODATION_ID, day(10), day(12), 2, GUEST_ID)

    assert publisher.published == []


async def test_client_errors_do_not_trip_breaker(fake_redis, upstream):
    upstream["handler"] = lambda request: httpx.Response(422, text="bad request")
    client = UserClient("http://users")

    for _ in range(client.breaker.failure_threshold + 1):
        with pytest.raises(HTTPException) as exc:
            await client.get_summary(GUEST_ID)
        assert exc.value.status_code == 422

    assert len(upstream["requests"]) == client.breaker.failure_threshold + 1


async def test_unreachable_upstream_maps_to_502(fake_redis, upstream):
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    upstream["handler"] = refuse

    with pytest.raises(HTTPException) as exc:
        await UserClient("http://users").get_summary(GUEST_ID)
    assert exc.value.status_code == 502


class DownRedis:
    def __getattr__(self, name):
        async def fail(*args, **kwargs):
            raise RedisConnectionError("connection refused")
        return fail


async def test_breaker_lets_calls_through_when_redis_is_down(monkeypatch, upstream):
    monkeypatch.setattr(breaker_module, "get_redis", lambda: DownRedis())
    upstream["handler"] = lambda request: httpx.Response(200, json={"user_id": GUEST_ID, "email": "g@example.com"})

    summary = await UserClient("http://users").get_summary(GUEST_ID)

    assert summary.found is True
