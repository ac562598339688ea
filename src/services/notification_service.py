"""Order event fan-out to customers and the admin dashboard.

Events are delivered at most once. Each subscriber has a bounded queue;
when it is full, new events for that subscriber are dropped. Publishing
never raises into the request that changed the order.
"""

import asyncio
import logging
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from src.core.config import get_settings
from src.models.order import OrderStatus, customer_channel, order_number
from src.schemas.common import utc_now
from src.services.email_service import EmailService

logger = logging.getLogger(__name__)

ADMIN_CHANNEL = "admin"

ORDER_CREATED = "order.created"
ORDER_STATUS_CHANGED = "order.status_changed"
ORDER_PAID = "order.paid"


@dataclass(eq=False)
class Subscription:
    """A listener's queue and the channels it receives events for."""

    channels: frozenset[str]
    queue: asyncio.Queue = field(repr=False)

    async def get(self) -> dict[str, Any]:
        return await self.queue.get()


class NotificationHub:
    """In-process publish/subscribe keyed by channel name."""

    def __init__(self, queue_size: int = 100) -> None:
        self.queue_size = queue_size
        self._subscribers: dict[str, set[Subscription]] = defaultdict(set)

    def subscribe(self, channels: Iterable[str]) -> Subscription:
        subscription = Subscription(channels=frozenset(channels), queue=asyncio.Queue(maxsize=self.queue_size))
        for channel in subscription.channels:
            self._subscribers[channel].add(subscription)
        logger.debug("Subscribed to %s", sorted(subscription.channels))
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        for channel in subscription.channels:
            subscribers = self._subscribers.get(channel)
            if subscribers is None:
                continue
            subscribers.discard(subscription)
            if not subscribers:
                del self._subscribers[channel]

    def subscriber_count(self, channel: str) -> int:
        return len(self._subscribers.get(channel, ()))

    def publish(self, channels: Iterable[str], event: dict[str, Any]) -> int:
        """Queue an event for every subscriber of the given channels.

        A subscriber listening on several of the channels gets the event once.

        Returns:
            int: Number of subscribers the event was queued for.
        """
        targets: set[Subscription] = set()
        for channel in channels:
            targets.update(self._subscribers.get(channel, ()))

        delivered = 0
        for subscription in targets:
            try:
                subscription.queue.put_nowait(event)
                delivered += 1
            except asyncio.QueueFull:
                logger.warning(
                    "Dropping %s event for order %s: subscriber queue is full",
                    event.get("event"),
                    event.get("order_id"),
                )
        return delivered


def build_event(event: str, order: dict[str, Any]) -> dict[str, Any]:
    """Notification payload for an order event."""
    status = order.get("status")
    if status is not None:
        status = OrderStatus(status).value
    return {
        "event": event,
        "order_id": str(order["id"]),
        "order_number": order_number(order["id"]),
        "status": status,
        "is_paid": bool(order.get("is_paid")),
        "timestamp": utc_now().isoformat(),
    }


class OrderStatusNotifier:
    """Pushes order events to the hub and emails the customer."""

    def __init__(self, hub: NotificationHub, email_service: EmailService | None = None) -> None:
        self.hub = hub
        self._email_service = email_service

    @property
    def email_service(self) -> EmailService:
        if self._email_service is None:
            self._email_service = EmailService()
        return self._email_service

    def _publish(self, event_name: str, order: dict[str, Any]) -> None:
        try:
            event = build_event(event_name, order)
            channels = [ADMIN_CHANNEL]
            channel = customer_channel(order)
            if channel:
                channels.append(channel)
            delivered = self.hub.publish(channels, event)
            logger.info("Published %s for order %s to %d listener(s)", event_name, event["order_id"], delivered)
        except Exception:
            logger.exception("Failed to publish %s for order %s", event_name, order.get("id"))

    async def _email(self, order: dict[str, Any], confirmation: bool) -> None:
        to_email = (order.get("shipping_address") or {}).get("email")
        if not to_email:
            return
        try:
            if confirmation:
                await self.email_service.send_order_confirmation_email(to_email, order)
            else:
                await self.email_service.send_order_status_email(to_email, order)
        except Exception:
            logger.exception("Failed to email customer about order %s", order.get("id"))

    async def order_created(self, order: dict[str, Any]) -> None:
        self._publish(ORDER_CREATED, order)
        await self._email(order, confirmation=True)

    async def status_changed(self, order: dict[str, Any]) -> None:
        self._publish(ORDER_STATUS_CHANGED, order)
        await self._email(order, confirmation=False)

    async def order_paid(self, order: dict[str, Any]) -> None:
        self._publish(ORDER_PAID, order)


_hub: NotificationHub | None = None


def get_notification_hub() -> NotificationHub:
    """Get or create the global notification hub."""
    global _hub
    if _hub is None:
        _hub = NotificationHub(queue_size=get_settings().notification_queue_size)
    return _hub


def get_order_notifier() -> OrderStatusNotifier:
    return OrderStatusNotifier(get_notification_hub())
