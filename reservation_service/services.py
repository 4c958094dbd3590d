from datetime import date, timedelta

from sqlalchemy.exc import IntegrityError

from .clients import ACCOMMODATION_NOT_FOUND, accommodation_client
from .config import CONTENTION_RETRIES
from .db import SessionLocal
from .errors import (
    ConflictError,
    ForbiddenError,
    InvalidRequestError,
    InvalidStateError,
    NotFoundError,
    ResourceNotFoundError,
)
from .locks import LockTimeout, build_locks
from .models import Reservation, ReservationStatus, new_id
from .notifications import NotificationBridge
from .store import ReservationStore

PENDING = ReservationStatus.PENDING
APPROVED = ReservationStatus.APPROVED
REJECTED = ReservationStatus.REJECTED
CANCELLED = ReservationStatus.CANCELLED

UNKNOWN_ACCOMMODATION = "Unknown Accommodation"
DATES_UNAVAILABLE = "The selected dates overlap with an existing approved reservation"


class ReservationService:
    """
    Reservation lifecycle engine.

    Every mutating operation re-reads the record and runs its check-and-write
    under the accommodation's exclusive lock, inside a single transaction.
    Notifications go out after commit and never affect the result.

    State machine:
      (new) -> PENDING | APPROVED (automatic approval mode)
      PENDING -> APPROVED (host), cascading overlapping PENDING -> REJECTED
      PENDING -> REJECTED (host)
      PENDING -> soft-deleted (guest withdraws)
      APPROVED -> CANCELLED (guest, before the deadline)
    """

    def __init__(
        self,
        session_factory=SessionLocal,
        locks=None,
        accommodations=accommodation_client,
        notifier: NotificationBridge | None = None,
        today=date.today,
        retries: int = CONTENTION_RETRIES,
    ):
        self.session_factory = session_factory
        self.locks = locks if locks is not None else build_locks()
        self.accommodations = accommodations
        self.notifier = notifier if notifier is not None else NotificationBridge()
        self.today = today
        self.retries = max(1, retries)

    # ---------- plumbing ----------

    async def _locked(self, accommodation_id: str, work):
        """
        Run work(store) holding the accommodation lock, in one transaction.

        Lock timeouts and exclusion-constraint violations are contention and are
        retried; business errors raised by work propagate immediately.
        """
        for attempt in range(1, self.retries + 1):
            try:
                async with self.locks.hold(accommodation_id):
                    async with self.session_factory() as db:
                        async with db.begin():
                            return await work(ReservationStore(db))
            except (LockTimeout, IntegrityError) as e:
                print(
                    f"[reservation-service] contention on accommodation {accommodation_id} "
                    f"(attempt {attempt}/{self.retries}): {e.__class__.__name__}"
                )

        raise ConflictError(
            "The accommodation is busy with concurrent requests, please retry",
            retryable=True,
        )

    async def _read(self, work):
        async with self.session_factory() as db:
            return await work(ReservationStore(db))

    async def _find_or_raise(self, reservation_id: str) -> Reservation:
        reservation = await self._read(lambda store: store.get(reservation_id))
        if reservation is None:
            raise NotFoundError(f"Reservation not found with id: {reservation_id}")
        return reservation

    async def _relock(self, store: ReservationStore, reservation_id: str) -> Reservation:
        reservation = await store.get(reservation_id, for_update=True)
        if reservation is None:
            raise NotFoundError(f"Reservation not found with id: {reservation_id}")
        return reservation

    async def _accommodation_name(self, reservation: Reservation) -> str:
        try:
            info = await self.accommodations.validate(
                reservation.accommodation_id,
                reservation.start_date,
                reservation.end_date,
                reservation.guest_count,
            )
        except Exception as e:
            print(f"[reservation-service] accommodation lookup failed for {reservation.accommodation_id}: {e}")
            return UNKNOWN_ACCOMMODATION
        if info.valid and info.accommodation_name:
            return info.accommodation_name
        return UNKNOWN_ACCOMMODATION

    # ---------- commands ----------

    async def create(
        self,
        accommodation_id: str,
        start_date: date,
        end_date: date,
        guest_count: int,
        guest_id: str,
    ) -> Reservation:
        if end_date <= start_date:
            raise InvalidRequestError("End date must be after start date")
        if guest_count < 1:
            raise InvalidRequestError("Guest count must be at least 1")

        validation = await self.accommodations.validate(accommodation_id, start_date, end_date, guest_count)
        if not validation.valid:
            message = validation.error_message or "Accommodation cannot be reserved for these dates"
            if validation.error_code == ACCOMMODATION_NOT_FOUND:
                raise ResourceNotFoundError(message)
            raise InvalidRequestError(message)
        if not validation.host_id or validation.total_price is None:
            raise InvalidRequestError("Accommodation service returned an incomplete validation result")

        status = APPROVED if validation.is_auto_approval else PENDING

        async def work(store: ReservationStore) -> Reservation:
            if await store.find_overlapping(accommodation_id, start_date, end_date, APPROVED):
                raise ConflictError(DATES_UNAVAILABLE)
            return await store.insert(
                Reservation(
                    id=new_id(),
                    accommodation_id=accommodation_id,
                    guest_id=guest_id,
                    host_id=validation.host_id,
                    start_date=start_date,
                    end_date=end_date,
                    guest_count=guest_count,
                    total_price=validation.total_price,
                    status=status.value,
                    is_deleted=False,
                )
            )

        reservation = await self._locked(accommodation_id, work)

        if status is APPROVED:
            print(f"[reservation-service] auto-approved reservation {reservation.id} (AUTOMATIC approval mode)")
        print(
            f"[reservation-service] created reservation {reservation.id} for guest {guest_id} "
            f"at accommodation {accommodation_id} status={reservation.status}"
        )

        await self.notifier.reservation_created(reservation, validation.accommodation_name)
        return reservation

    async def approve(self, reservation_id: str, host_id: str) -> Reservation:
        current = await self._find_or_raise(reservation_id)

        async def work(store: ReservationStore):
            reservation = await self._relock(store, reservation_id)
            if reservation.status != PENDING.value:
                raise InvalidStateError(
                    f"Only pending reservations can be approved. Current status: {reservation.status}"
                )
            if reservation.host_id != host_id:
                raise ForbiddenError("You can only approve reservations for your own accommodations")

            # an auto-approved booking may already hold these dates
            if await store.find_overlapping(
                reservation.accommodation_id,
                reservation.start_date,
                reservation.end_date,
                APPROVED,
                exclude_id=reservation.id,
            ):
                raise ConflictError(DATES_UNAVAILABLE)

            competing = await store.find_overlapping(
                reservation.accommodation_id,
                reservation.start_date,
                reservation.end_date,
                PENDING,
                exclude_id=reservation.id,
                for_update=True,
            )
            await store.transition([reservation], APPROVED)
            await store.transition(competing, REJECTED)
            return reservation, competing

        reservation, rejected = await self._locked(current.accommodation_id, work)

        print(f"[reservation-service] host {host_id} approved reservation {reservation.id}")
        for r in rejected:
            print(f"[reservation-service] auto-rejected overlapping reservation {r.id} (approved {reservation.id})")

        await self.notifier.reservation_decision(reservation, approved=True)
        for r in rejected:
            await self.notifier.reservation_decision(r, approved=False)
        return reservation

    async def reject(self, reservation_id: str, host_id: str) -> Reservation:
        current = await self._find_or_raise(reservation_id)

        async def work(store: ReservationStore) -> Reservation:
            reservation = await self._relock(store, reservation_id)
            if reservation.status != PENDING.value:
                raise InvalidStateError(
                    f"Only pending reservations can be rejected. Current status: {reservation.status}"
                )
            if reservation.host_id != host_id:
                raise ForbiddenError("You can only reject reservations for your own accommodations")
            await store.transition([reservation], REJECTED)
            return reservation

        reservation = await self._locked(current.accommodation_id, work)
        print(f"[reservation-service] host {host_id} rejected reservation {reservation.id}")

        await self.notifier.reservation_decision(reservation, approved=False)
        return reservation

    async def withdraw(self, reservation_id: str, guest_id: str) -> None:
        current = await self._find_or_raise(reservation_id)

        async def work(store: ReservationStore) -> None:
            reservation = await self._relock(store, reservation_id)
            if reservation.guest_id != guest_id:
                raise ForbiddenError("You can only delete your own reservation requests")
            if reservation.status != PENDING.value:
                raise InvalidStateError(
                    f"Only pending reservation requests can be deleted. Current status: {reservation.status}"
                )
            await store.soft_delete(reservation)

        await self._locked(current.accommodation_id, work)
        print(f"[reservation-service] guest {guest_id} deleted reservation request {reservation_id}")

    async def cancel(self, reservation_id: str, guest_id: str) -> Reservation:
        current = await self._find_or_raise(reservation_id)

        async def work(store: ReservationStore) -> Reservation:
            reservation = await self._relock(store, reservation_id)
            if reservation.guest_id != guest_id:
                raise ForbiddenError("You can only cancel your own reservations")
            if reservation.status != APPROVED.value:
                raise InvalidStateError(
                    "Only approved reservations can be cancelled. Use delete for pending requests. "
                    f"Current status: {reservation.status}"
                )
            # deadline is the day before check-in, and today must be strictly before it
            deadline = reservation.start_date - timedelta(days=1)
            if not self.today() < deadline:
                raise InvalidStateError("Reservations can only be cancelled at least 1 day before the start date")
            await store.transition([reservation], CANCELLED)
            return reservation

        reservation = await self._locked(current.accommodation_id, work)
        print(f"[reservation-service] guest {guest_id} cancelled reservation {reservation.id}")

        name = await self._accommodation_name(reservation)
        await self.notifier.reservation_cancelled(reservation, name)
        return reservation

    # ---------- queries ----------

    async def get(self, reservation_id: str, user_id: str) -> Reservation:
        reservation = await self._find_or_raise(reservation_id)
        if user_id not in (reservation.guest_id, reservation.host_id):
            raise ForbiddenError("You do not have access to this reservation")
        return reservation

    async def list_by_guest(self, guest_id: str) -> list[Reservation]:
        return await self._read(lambda store: store.list_by_guest(guest_id))

    async def list_by_host(self, host_id: str) -> list[Reservation]:
        return await self._read(lambda store: store.list_by_host(host_id))

    async def list_by_host_with_guest_info(self, host_id: str) -> list[tuple[Reservation, int]]:
        """Host's reservations, each paired with how many times that guest has cancelled."""

        async def work(store: ReservationStore):
            reservations = await store.list_by_host(host_id)
            counts = await store.count_cancellations_by_guest(r.guest_id for r in reservations)
            return [(r, counts.get(r.guest_id, 0)) for r in reservations]

        return await self._read(work)

    async def count_guest_cancellations(self, guest_id: str) -> int:
        return await self._read(lambda store: store.count_by_guest_and_status(guest_id, CANCELLED))

    async def has_approved_overlap(self, accommodation_id: str, start_date: date, end_date: date) -> bool:
        if end_date <= start_date:
            raise InvalidRequestError("End date must be after start date")
        found = await self._read(
            lambda store: store.find_overlapping(accommodation_id, start_date, end_date, APPROVED)
        )
        return bool(found)

    async def guest_deletion_check(self, guest_id: str) -> dict:
        today = self.today()
        active = await self._read(lambda store: store.count_active_for_guest(guest_id, today))
        return _deletion_check(active, f"Guest has {active} active reservation(s)")

    async def host_deletion_check(self, host_id: str) -> dict:
        today = self.today()
        active = await self._read(lambda store: store.count_active_for_host(host_id, today))
        return _deletion_check(active, f"Host has {active} active reservation(s) on their accommodations")


def _deletion_check(active: int, reason: str) -> dict:
    return {
        "can_be_deleted": active == 0,
        "active_reservation_count": active,
        "reason": reason if active else "",
    }
