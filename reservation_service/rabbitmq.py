import asyncio
import json
import uuid
from datetime import datetime, timezone

import aio_pika

from .config import NOTIFICATION_EXCHANGE, RABBIT_URL


def build_event(event_type: str, data: dict) -> dict:
    return {
        "event_id": str(uuid.uuid4()),
        "event_type": event_type,
        "occurred_at": datetime.now(timezone.utc).isoformat(),
        "data": data,
    }


def to_json(event: dict) -> bytes:
    # dates and Decimals go out as strings
    return json.dumps(event, separators=(",", ":"), ensure_ascii=False, default=str).encode("utf-8")


class EventPublisher:
    """
    Publishes reservation events to the notification topic exchange, using the
    event type as routing key.

    Disabled when RABBIT_URL is unset. publish_event never raises; it returns
    False when the event was not handed to the broker.
    """

    def __init__(self, url: str | None = RABBIT_URL, exchange_name: str = NOTIFICATION_EXCHANGE):
        self.url = url
        self.exchange_name = exchange_name
        self.enabled = bool(url)
        self._connection: aio_pika.abc.AbstractRobustConnection | None = None
        self._exchange: aio_pika.abc.AbstractExchange | None = None
        self._connect_lock = asyncio.Lock()

    @property
    def connected(self) -> bool:
        return (
            self._exchange is not None
            and self._connection is not None
            and not self._connection.is_closed
        )

    async def connect(self) -> None:
        if not self.enabled:
            return

        async with self._connect_lock:
            if self.connected:
                return
            try:
                self._connection = await aio_pika.connect_robust(self.url)
                channel = await self._connection.channel()
                self._exchange = await channel.declare_exchange(
                    self.exchange_name,
                    aio_pika.ExchangeType.TOPIC,
                    durable=True,
                )
            except Exception:
                self._connection = None
                self._exchange = None
                raise
            print(f"[reservation-service] connected to exchange {self.exchange_name}")

    async def publish_event(self, event_type: str, data: dict) -> bool:
        if not self.enabled:
            return False

        event = build_event(event_type, data)
        try:
            await self.connect()
            await self._exchange.publish(
                aio_pika.Message(
                    body=to_json(event),
                    content_type="application/json",
                    message_id=event["event_id"],
                    delivery_mode=aio_pika.DeliveryMode.PERSISTENT,
                ),
                routing_key=event_type,
            )
        except Exception as e:
            print(f"[reservation-service] RabbitMQ publish failed ({event_type}): {e}")
            return False
        return True

    async def close(self) -> None:
        try:
            if self._connection is not None and not self._connection.is_closed:
                await self._connection.close()
        finally:
            self._connection = None
            self._exchange = None


publisher = EventPublisher()
