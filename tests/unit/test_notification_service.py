"""Unit tests for order event notifications."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.api.routes.notifications import _forward_events, stop_forwarder
from src.services.notification_service import (
    ADMIN_CHANNEL,
    ORDER_CREATED,
    ORDER_PAID,
    ORDER_STATUS_CHANGED,
    NotificationHub,
    OrderStatusNotifier,
    build_event,
    get_notification_hub,
)

ORDER_ID = "660e8400-e29b-41d4-a716-446655440abc"


@pytest.fixture
def hub() -> NotificationHub:
    return NotificationHub(queue_size=2)


@pytest.fixture
def email_service() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def notifier(hub: NotificationHub, email_service: AsyncMock) -> OrderStatusNotifier:
    return OrderStatusNotifier(hub, email_service=email_service)


class TestNotificationHub:
    """Tests for NotificationHub."""

    @pytest.mark.asyncio
    async def test_delivers_to_channel_subscribers(self, hub: NotificationHub) -> None:
        """Test that subscribers receive events for their channels only."""
        admin = hub.subscribe([ADMIN_CHANNEL])
        customer = hub.subscribe(["user-1"])

        delivered = hub.publish([ADMIN_CHANNEL], {"event": "x"})

        assert delivered == 1
        assert await admin.get() == {"event": "x"}
        assert customer.queue.empty()

    def test_subscriber_on_two_channels_gets_event_once(self, hub: NotificationHub) -> None:
        """Test that overlapping channels do not duplicate an event."""
        subscription = hub.subscribe([ADMIN_CHANNEL, "user-1"])

        assert hub.publish([ADMIN_CHANNEL, "user-1"], {"event": "x"}) == 1
        assert subscription.queue.qsize() == 1

    def test_full_queue_drops_new_events(self, hub: NotificationHub) -> None:
        """Test that a slow subscriber loses events instead of blocking publishers."""
        subscription = hub.subscribe(["user-1"])

        results = [hub.publish(["user-1"], {"event": str(n)}) for n in range(3)]

        assert results == [1, 1, 0]
        assert subscription.queue.get_nowait() == {"event": "0"}

    def test_unsubscribe_removes_channel(self, hub: NotificationHub) -> None:
        """Test that unsubscribed listeners no longer count."""
        subscription = hub.subscribe(["user-1"])
        hub.unsubscribe(subscription)

        assert hub.subscriber_count("user-1") == 0
        assert hub.publish(["user-1"], {"event": "x"}) == 0

    def test_global_hub_is_shared(self) -> None:
        """Test that get_notification_hub returns one instance."""
        assert get_notification_hub() is get_notification_hub()


class TestBuildEvent:
    """Tests for build_event."""

    def test_payload_fields(self) -> None:
        """Test the event payload and order number."""
        event = build_event(ORDER_STATUS_CHANGED, {"id": ORDER_ID, "status": "cancelled", "is_paid": False})

        assert event["event"] == ORDER_STATUS_CHANGED
        assert event["order_id"] == ORDER_ID
        assert event["order_number"] == "440ABC"
        assert event["status"] == "canceled"
        assert event["is_paid"] is False
        assert "timestamp" in event


class TestOrderStatusNotifier:
    """Tests for OrderStatusNotifier."""

    @pytest.mark.asyncio
    async def test_order_created_reaches_admin_and_customer(
        self,
        hub: NotificationHub,
        notifier: OrderStatusNotifier,
        email_service: AsyncMock,
    ) -> None:
        """Test that a new order is pushed and confirmed by email."""
        admin = hub.subscribe([ADMIN_CHANNEL])
        guest = hub.subscribe(["session-abc"])
        order = {
            "id": ORDER_ID,
            "session_id": "abc",
            "status": "pending",
            "shipping_address": {"email": "asha@example.com"},
        }

        await notifier.order_created(order)

        assert (await admin.get())["event"] == ORDER_CREATED
        assert (await guest.get())["event"] == ORDER_CREATED
        email_service.send_order_confirmation_email.assert_awaited_once_with("asha@example.com", order)

    @pytest.mark.asyncio
    async def test_status_change_emails_customer(
        self,
        notifier: OrderStatusNotifier,
        email_service: AsyncMock,
    ) -> None:
        """Test that a status change sends the status email."""
        order = {"id": ORDER_ID, "user_id": "u1", "status": "shipped", "shipping_address": {"email": "a@example.com"}}

        await notifier.status_changed(order)

        email_service.send_order_status_email.assert_awaited_once_with("a@example.com", order)

    @pytest.mark.asyncio
    async def test_no_email_without_address(
        self,
        notifier: OrderStatusNotifier,
        email_service: AsyncMock,
    ) -> None:
        """Test that orders without an email only publish."""
        await notifier.status_changed({"id": ORDER_ID, "user_id": "u1", "status": "shipped", "shipping_address": {}})

        email_service.send_order_status_email.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_order_paid_does_not_email(
        self,
        hub: NotificationHub,
        notifier: OrderStatusNotifier,
        email_service: AsyncMock,
    ) -> None:
        """Test that payment events are pushed only."""
        customer = hub.subscribe(["user-u1"])

        await notifier.order_paid({"id": ORDER_ID, "user_id": "u1", "status": "pending", "is_paid": True})

        event = await customer.get()
        assert event["event"] == ORDER_PAID
        assert event["is_paid"] is True
        email_service.send_order_confirmation_email.assert_not_awaited()
        email_service.send_order_status_email.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failures_never_raise(self, email_service: AsyncMock) -> None:
        """Test that hub and email failures are logged and swallowed."""
        hub = MagicMock()
        hub.publish.side_effect = RuntimeError("hub down")
        email_service.send_order_status_email.side_effect = RuntimeError("smtp down")
        notifier = OrderStatusNotifier(hub, email_service=email_service)

        await notifier.status_changed(
            {"id": ORDER_ID, "user_id": "u1", "status": "delivered", "shipping_address": {"email": "a@example.com"}}
        )

        hub.publish.assert_called_once()


class TestEventForwarding:
    """Tests for the WebSocket event forwarder."""

    @pytest.mark.asyncio
    async def test_stop_collects_send_error(self, hub: NotificationHub) -> None:
        """Test that a send failure after disconnect is collected when stopping."""
        websocket = MagicMock()
        websocket.send_json = AsyncMock(side_effect=RuntimeError("websocket is closed"))
        subscription = hub.subscribe([ADMIN_CHANNEL])
        hub.publish([ADMIN_CHANNEL], {"event": ORDER_CREATED, "order_id": ORDER_ID})

        forwarder = asyncio.create_task(_forward_events(websocket, subscription))
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        assert forwarder.done()

        await stop_forwarder(forwarder)

        websocket.send_json.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_stop_cancels_idle_forwarder(self, hub: NotificationHub) -> None:
        """Test that a forwarder waiting for events is cancelled."""
        websocket = MagicMock()
        websocket.send_json = AsyncMock()
        forwarder = asyncio.create_task(_forward_events(websocket, hub.subscribe([ADMIN_CHANNEL])))
        await asyncio.sleep(0)

        await stop_forwarder(forwarder)

        assert forwarder.cancelled()
        websocket.send_json.assert_not_awaited()
