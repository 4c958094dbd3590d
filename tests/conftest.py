import os
import tempfile
from datetime import date, timedelta
from decimal import Decimal

# configuration is read at import time
os.environ.setdefault(
    "RESERVATION_DB",
    "sqlite+aiosqlite:///" + os.path.join(tempfile.mkdtemp(prefix="reservations-"), "app.db"),
)
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")
os.environ.setdefault("LOCK_BACKEND", "local")

import pytest
import pytest_asyncio

from reservation_service.clients import AccommodationValidation, UserSummary
from reservation_service.db import create_tables, get_engine, get_session
from reservation_service.locks import LocalResourceLocks
from reservation_service.notifications import NotificationBridge
from reservation_service.services import ReservationService

TODAY = date.today()

ACCOMMODATION_ID = "9f6a1c2e-0000-4000-8000-000000000001"
OTHER_ACCOMMODATION_ID = "9f6a1c2e-0000-4000-8000-000000000002"
HOST_ID = "5b1d7c3a-0000-4000-8000-00000000000a"
GUEST_ID = "2c8e4f6b-0000-4000-8000-0000000000b1"
OTHER_GUEST_ID = "2c8e4f6b-0000-4000-8000-0000000000b2"


def day(n: int) -> date:
    return TODAY + timedelta(days=n)


class FakeAccommodations:
    def __init__(self):
        self.approval_mode = "MANUAL"
        self.result: AccommodationValidation | None = None
        self.error: Exception | None = None
        self.calls = []

    async def validate(self, accommodation_id, start_date, end_date, guest_count):
        self.calls.append((accommodation_id, start_date, end_date, guest_count))
        if self.error is not None:
            raise self.error
        if self.result is not None:
            return self.result
        nights = (end_date - start_date).days
        return AccommodationValidation(
            valid=True,
            host_id=HOST_ID,
            total_price=Decimal("100.00") * nights,
            pricing_mode="PER_UNIT",
            approval_mode=self.approval_mode,
            accommodation_name="Beach House",
        )


class FakeUsers:
    def __init__(self):
        self.users = {
            HOST_ID: UserSummary(found=True, user_id=HOST_ID, email="host@example.com",
                                 first_name="Jane", last_name="Smith", role="HOST"),
            GUEST_ID: UserSummary(found=True, user_id=GUEST_ID, email="guest@example.com",
                                  first_name="John", last_name="Doe", role="GUEST"),
            OTHER_GUEST_ID: UserSummary(found=True, user_id=OTHER_GUEST_ID, email="other@example.com",
                                        first_name="Ana", last_name="Lee", role="GUEST"),
        }
        self.error: Exception | None = None

    async def get_summary(self, user_id):
        if self.error is not None:
            raise self.error
        return self.users.get(user_id, UserSummary(found=False))


class FakePublisher:
    enabled = True

    def __init__(self):
        self.published = []
        self.error: Exception | None = None

    async def publish_event(self, event_type, data):
        if self.error is not None:
            raise self.error
        self.published.append((event_type, data))
        return True

    def routing_keys(self):
        return [rk for rk, _ in self.published]

    def data(self, routing_key):
        return [data for rk, data in self.published if rk == routing_key]


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine = get_engine(f"sqlite+aiosqlite:///{tmp_path / 'reservations.db'}")
    await create_tables(engine)
    try:
        yield get_session(engine)
    finally:
        await engine.dispose()


@pytest.fixture
def accommodations():
    return FakeAccommodations()


@pytest.fixture
def users():
    return FakeUsers()


@pytest.fixture
def publisher():
    return FakePublisher()


@pytest.fixture
def service(session_factory, accommodations, users, publisher):
    return ReservationService(
        session_factory=session_factory,
        locks=LocalResourceLocks(wait_seconds=2),
        accommodations=accommodations,
        notifier=NotificationBridge(publisher=publisher, users=users),
        today=lambda: TODAY,
    )


@pytest.fixture
def create(service):
    async def _create(start: int, end: int, guest_id: str = GUEST_ID, accommodation_id: str = ACCOMMODATION_ID,
                      guest_count: int = 2):
        return await service.create(accommodation_id, day(start), day(end), guest_count, guest_id)

    return _create
