from datetime import date
from typing import Iterable

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Reservation, ReservationStatus, utcnow


def overlaps(a_start: date, a_end: date, b_start: date, b_end: date) -> bool:
    """Half-open ranges: a checkout equal to the other's check-in does not overlap."""
    return a_start < b_end and a_end > b_start


def _live():
    return Reservation.is_deleted.is_(False)


class ReservationStore:
    """
    Query primitives over the reservations table.

    Bound to one AsyncSession; the caller owns the transaction. Soft-deleted rows
    are never returned.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def insert(self, reservation: Reservation) -> Reservation:
        now = utcnow()
        reservation.created_at = reservation.created_at or now
        reservation.updated_at = now
        self.session.add(reservation)
        await self.session.flush()
        return reservation

    async def get(self, reservation_id: str, for_update: bool = False) -> Reservation | None:
        stmt = select(Reservation).where(Reservation.id == reservation_id, _live())
        if for_update:
            stmt = stmt.with_for_update()
        res = await self.session.execute(stmt)
        return res.scalar_one_or_none()

    async def list_by_guest(self, guest_id: str) -> list[Reservation]:
        res = await self.session.execute(
            select(Reservation)
            .where(Reservation.guest_id == guest_id, _live())
            .order_by(Reservation.start_date, Reservation.created_at)
        )
        return list(res.scalars().all())

    async def list_by_host(self, host_id: str) -> list[Reservation]:
        res = await self.session.execute(
            select(Reservation)
            .where(Reservation.host_id == host_id, _live())
            .order_by(Reservation.start_date, Reservation.created_at)
        )
        return list(res.scalars().all())

    async def find_overlapping(
        self,
        accommodation_id: str,
        start_date: date,
        end_date: date,
        status: ReservationStatus,
        exclude_id: str | None = None,
        for_update: bool = False,
    ) -> list[Reservation]:
        # same predicate as overlaps(), pushed down to SQL
        stmt = select(Reservation).where(
            Reservation.accommodation_id == accommodation_id,
            Reservation.status == status.value,
            Reservation.start_date < end_date,
            Reservation.end_date > start_date,
            _live(),
        )
        if exclude_id is not None:
            stmt = stmt.where(Reservation.id != exclude_id)
        if for_update:
            stmt = stmt.with_for_update()
        res = await self.session.execute(stmt.order_by(Reservation.start_date))
        return list(res.scalars().all())

    async def count_by_guest_and_status(self, guest_id: str, status: ReservationStatus) -> int:
        res = await self.session.execute(
            select(func.count())
            .select_from(Reservation)
            .where(Reservation.guest_id == guest_id, Reservation.status == status.value, _live())
        )
        return int(res.scalar_one())

    async def count_cancellations_by_guest(self, guest_ids: Iterable[str]) -> dict[str, int]:
        guest_ids = list(set(guest_ids))
        if not guest_ids:
            return {}
        res = await self.session.execute(
            select(Reservation.guest_id, func.count())
            .where(
                Reservation.guest_id.in_(guest_ids),
                Reservation.status == ReservationStatus.CANCELLED.value,
                _live(),
            )
            .group_by(Reservation.guest_id)
        )
        counts = {gid: 0 for gid in guest_ids}
        for gid, n in res.all():
            counts[gid] = int(n)
        return counts

    async def count_active_for_guest(self, guest_id: str, today: date) -> int:
        return await self._count_active(Reservation.guest_id == guest_id, today)

    async def count_active_for_host(self, host_id: str, today: date) -> int:
        return await self._count_active(Reservation.host_id == host_id, today)

    async def _count_active(self, owner_clause, today: date) -> int:
        res = await self.session.execute(
            select(func.count())
            .select_from(Reservation)
            .where(
                owner_clause,
                Reservation.status == ReservationStatus.APPROVED.value,
                Reservation.end_date >= today,
                _live(),
            )
        )
        return int(res.scalar_one())

    async def transition(self, reservations: Iterable[Reservation], status: ReservationStatus) -> None:
        """Move every given record to `status` and flush them together."""
        for r in reservations:
            r.status = status.value
            r.touch()
        await self.session.flush()

    async def soft_delete(self, reservation: Reservation) -> None:
        reservation.is_deleted = True
        reservation.touch()
        await self.session.flush()
