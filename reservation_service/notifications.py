from .clients import UserSummary, user_client
from .config import (
    RESERVATION_CANCELLED_ROUTING_KEY,
    RESERVATION_CREATED_ROUTING_KEY,
    RESERVATION_DECISION_ROUTING_KEY,
)
from .models import Reservation
from .rabbitmq import publisher as event_publisher

APPROVED = "APPROVED"
DECLINED = "DECLINED"


class NotificationBridge:
    """
    Turns committed lifecycle transitions into notification events.

    Called only after the state change is committed. Never raises: a missing host
    or guest skips that one notification, any other failure is logged and dropped.
    Returns True when an event was handed to the publisher.
    """

    def __init__(self, publisher=event_publisher, users=user_client):
        self.publisher = publisher
        self.users = users

    async def _summaries(self, reservation: Reservation) -> tuple[UserSummary, UserSummary] | None:
        host = await self.users.get_summary(reservation.host_id)
        if not host.found:
            print(f"[reservation-service] host not found for reservation {reservation.id}, skipping notification")
            return None
        guest = await self.users.get_summary(reservation.guest_id)
        if not guest.found:
            print(f"[reservation-service] guest not found for reservation {reservation.id}, skipping notification")
            return None
        return host, guest

    async def _send(self, routing_key: str, reservation: Reservation, data: dict) -> bool:
        published = await self.publisher.publish_event(routing_key, data)
        if published:
            print(f"[reservation-service] published {routing_key} reservation_id={reservation.id}")
        return published

    async def reservation_created(self, reservation: Reservation, accommodation_name: str | None) -> bool:
        try:
            summaries = await self._summaries(reservation)
            if not summaries:
                return False
            host, guest = summaries
            return await self._send(
                RESERVATION_CREATED_ROUTING_KEY,
                reservation,
                {
                    "reservation_id": reservation.id,
                    "host_id": reservation.host_id,
                    "host_email": host.email,
                    "guest_name": guest.full_name,
                    "accommodation_name": accommodation_name,
                    "start_date": reservation.start_date.isoformat(),
                    "end_date": reservation.end_date.isoformat(),
                    "total_price": str(reservation.total_price),
                    "status": reservation.status,
                },
            )
        except Exception as e:
            print(f"[reservation-service] reservation.created notification failed for {reservation.id}: {e}")
            return False

    async def reservation_cancelled(self, reservation: Reservation, accommodation_name: str) -> bool:
        try:
            summaries = await self._summaries(reservation)
            if not summaries:
                return False
            host, guest = summaries
            return await self._send(
                RESERVATION_CANCELLED_ROUTING_KEY,
                reservation,
                {
                    "reservation_id": reservation.id,
                    "host_id": reservation.host_id,
                    "host_email": host.email,
                    "guest_name": guest.full_name,
                    "accommodation_name": accommodation_name,
                    "start_date": reservation.start_date.isoformat(),
                    "end_date": reservation.end_date.isoformat(),
                    "reason": "Guest cancelled the reservation",
                },
            )
        except Exception as e:
            print(f"[reservation-service] reservation.cancelled notification failed for {reservation.id}: {e}")
            return False

    async def reservation_decision(self, reservation: Reservation, approved: bool) -> bool:
        try:
            summaries = await self._summaries(reservation)
            if not summaries:
                return False
            host, guest = summaries
            return await self._send(
                RESERVATION_DECISION_ROUTING_KEY,
                reservation,
                {
                    "reservation_id": reservation.id,
                    "user_id": reservation.guest_id,
                    "user_email": guest.email,
                    "host_name": host.full_name,
                    "accommodation_id": reservation.accommodation_id,
                    "status": APPROVED if approved else DECLINED,
                    "check_in": reservation.start_date.isoformat(),
                    "check_out": reservation.end_date.isoformat(),
                },
            )
        except Exception as e:
            print(f"[reservation-service] reservation.decision notification failed for {reservation.id}: {e}")
            return False
