"""
Booking Notifications
Version: 1.0

Lifecycle events leave the reservation core through a NotificationSink.
The core calls the sink after its transaction commits and does not catch
sink errors. The HTTP layer wraps the real sink in SafeNotifier, which
logs and drops delivery failures so they never reach the client.
NO DEPENDENCIES on other services except metrics/logging.
"""

import json
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Optional, Protocol

from schemas import BookingEvent
from services.logging_config import get_logger
from services.metrics import NOTIFICATIONS_TOTAL

logger = get_logger(__name__)


class NotificationSink(Protocol):
    async def notify(self, event: BookingEvent, payload: Dict[str, Any]) -> None:
        ...


def _json_default(value: Any) -> Any:
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if hasattr(value, "value"):
        return value.value
    raise TypeError(f"Cannot serialise {type(value).__name__}")


class RedisNotificationSink:
    """Appends booking events to a Redis stream for the notification service."""

    def __init__(self, redis_client, stream: str = "booking_events", maxlen: int = 10000):
        """
        Args:
            redis_client: Redis async client
            stream: Stream key
            maxlen: Approximate stream length cap
        """
        self.redis = redis_client
        self.stream = stream
        self.maxlen = maxlen

    async def notify(self, event: BookingEvent, payload: Dict[str, Any]) -> None:
        entry = {
            "event": event.value,
            "booking_id": str(payload.get("booking_id", "")),
            "payload": json.dumps(payload, default=_json_default),
        }
        entry_id = await self.redis.xadd(self.stream, entry, maxlen=self.maxlen, approximate=True)
        logger.debug("Booking event published", event=event.value, entry_id=entry_id)


class SafeNotifier:
    """
    Caller-side wrapper that makes notification best-effort.

    Failures are logged and counted, never raised.
    """

    def __init__(self, sink: Optional[NotificationSink]):
        self.sink = sink

    async def notify(self, event: BookingEvent, payload: Dict[str, Any]) -> None:
        if self.sink is None:
            NOTIFICATIONS_TOTAL.labels(event=event.value, status="skipped").inc()
            return
        try:
            await self.sink.notify(event, payload)
            NOTIFICATIONS_TOTAL.labels(event=event.value, status="sent").inc()
        except Exception as e:
            NOTIFICATIONS_TOTAL.labels(event=event.value, status="failed").inc()
            logger.warning(
                "Booking notification failed",
                event=event.value,
                booking_id=payload.get("booking_id"),
                error=str(e)
            )


def booking_payload(booking, **extra: Any) -> Dict[str, Any]:
    """Event payload describing a booking."""
    payload = {
        "booking_id": booking.id,
        "booking_number": booking.booking_number,
        "user_id": booking.user_id,
        "vehicle_id": booking.vehicle_id,
        "driver_id": booking.driver_id,
        "status": booking.status.value,
        "payment_status": booking.payment_status.value,
        "total_price": booking.total_price,
    }
    payload.update(extra)
    return payload
