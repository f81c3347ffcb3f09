"""Tests for the order application service."""

import asyncio
from typing import Any
from unittest.mock import AsyncMock, patch

import pytest

from giftflare.application.notification_service import NotificationDispatcher
from giftflare.application.order_service import OrderService
from giftflare.domain import (
    Channel,
    ConflictError,
    DeliveryType,
    IllegalTransitionError,
    NotificationChannelError,
    OrderNotFoundError,
    OrderStatus,
    ValidationError,
)
from giftflare.infrastructure.notification_clients import SmsClient
from giftflare.infrastructure.order_store import InMemoryOrderStore


class SlowReadStore(InMemoryOrderStore):
    """Yields to the event loop after every read so transitions interleave."""

    async def get(self, order_id: str):
        order = await super().get(order_id)
        await asyncio.sleep(0)
        return order


class FailingSmsClient(SmsClient):
    """SMS provider that always fails."""

    def __init__(self) -> None:
        self.calls = 0

    async def send(self, to: str, template_id: str, payload: dict[str, Any]) -> None:
        self.calls += 1
        raise NotificationChannelError("sms", "provider down", 503)


@pytest.fixture
def create(order_service: OrderService, make_item, address):
    """Create a standard order for buyer-1."""

    async def _create(**kwargs):
        return await order_service.create_order(
            buyer_id=kwargs.pop("buyer_id", "buyer-1"),
            items=kwargs.pop("items", [make_item()]),
            delivery_type=kwargs.pop("delivery_type", DeliveryType.STANDARD),
            delivery_address=kwargs.pop("delivery_address", address),
            **kwargs,
        )

    return _create


class TestCreateOrder:
    """Tests for order creation."""

    async def test_create_order_is_pending_and_notifies_once(
        self, create, email_client, sms_client
    ) -> None:
        """A new order is pending and the confirmation goes out once per channel."""
        order = await create()

        assert order.status == OrderStatus.PENDING
        assert len(email_client.sent) == 1
        assert len(sms_client.sent) == 1
        to, template_id, payload = email_client.sent[0]
        assert to == "asha@example.com"
        assert template_id == "order_confirmation"
        assert payload["order_id"] == order.id

    async def test_create_order_persists(self, create, order_service: OrderService) -> None:
        """The created order can be read back."""
        order = await create(payment_reference="pay_123")

        stored = await order_service.get_order(order.id)
        assert stored.id == order.id
        assert stored.payment_reference == "pay_123"

    async def test_invalid_cart_writes_nothing(
        self, create, store: InMemoryOrderStore, email_client
    ) -> None:
        """Validation happens before any write or notification."""
        with pytest.raises(ValidationError):
            await create(items=[])

        _, total = await store.list_all()
        assert total == 0
        assert email_client.sent == []

    async def test_instant_outside_active_city_rejected(
        self, create, make_item, address_without_phone
    ) -> None:
        """Instant delivery is limited to the configured cities."""
        with pytest.raises(ValidationError):
            await create(
                items=[make_item(instant=True)],
                delivery_type=DeliveryType.INSTANT,
                delivery_address=address_without_phone,
            )


class TestQueries:
    """Tests for reading orders."""

    async def test_get_missing_order(self, order_service: OrderService) -> None:
        """Unknown ids raise OrderNotFoundError."""
        with pytest.raises(OrderNotFoundError) as exc_info:
            await order_service.get_order("missing")
        assert exc_info.value.error_code == "ORDER_NOT_FOUND"

    async def test_buyer_orders_newest_first(self, create, order_service: OrderService) -> None:
        """A buyer's orders come back newest first."""
        first = await create()
        second = await create()
        await create(buyer_id="buyer-2")

        orders = await order_service.list_orders_for_buyer("buyer-1")

        assert [o.id for o in orders] == [second.id, first.id]

    async def test_unknown_buyer_has_no_orders(self, order_service: OrderService) -> None:
        """Listing for an unknown buyer is empty, not an error."""
        assert await order_service.list_orders_for_buyer("nobody") == []

    async def test_list_orders_filters_by_status(self, create, order_service: OrderService) -> None:
        """Admin listing filters by status and paginates."""
        confirmed = await create()
        await create()
        await order_service.transition(confirmed.id, OrderStatus.CONFIRMED)

        result = await order_service.list_orders(status=OrderStatus.CONFIRMED)

        assert result.total == 1
        assert result.orders[0].id == confirmed.id

        page = await order_service.list_orders(page=2, page_size=1)
        assert page.total == 2
        assert len(page.orders) == 1


class TestTransition:
    """Tests for status transitions."""

    async def test_confirm(self, create, order_service: OrderService, email_client) -> None:
        """Confirming changes status and notifies."""
        order = await create()

        result = await order_service.transition(order.id, OrderStatus.CONFIRMED, actor="payments")

        assert result.changed is True
        assert result.order.status == OrderStatus.CONFIRMED
        assert result.order.updated_at >= order.updated_at
        assert result.order.status_history[-1].actor == "payments"
        assert result.notifications is not None
        assert result.notifications.degraded is False
        assert email_client.sent[-1][1] == "payment_confirmation"

    async def test_accepts_status_names(self, create, order_service: OrderService) -> None:
        """The target may be given as a plain string."""
        order = await create()
        result = await order_service.transition(order.id, "confirmed")
        assert result.order.status == OrderStatus.CONFIRMED

    async def test_unknown_status_rejected(self, create, order_service: OrderService) -> None:
        """Unknown status names are validation errors."""
        order = await create()
        with pytest.raises(ValidationError):
            await order_service.transition(order.id, "returned")

    async def test_missing_order(self, order_service: OrderService) -> None:
        """Transitioning an unknown order raises OrderNotFoundError."""
        with pytest.raises(OrderNotFoundError):
            await order_service.transition("missing", OrderStatus.CONFIRMED)

    async def test_skip_to_shipped_is_illegal(self, create, order_service: OrderService) -> None:
        """PENDING cannot jump to SHIPPED, even with a tracking number."""
        order = await create()
        with pytest.raises(IllegalTransitionError):
            await order_service.transition(order.id, OrderStatus.SHIPPED, tracking_number="T1")

    async def test_ship_requires_tracking(self, create, order_service: OrderService) -> None:
        """Shipping without a tracking number fails and leaves the status alone."""
        order = await create()
        await order_service.transition(order.id, OrderStatus.CONFIRMED)

        for tracking in (None, "", "   "):
            with pytest.raises(ValidationError) as exc_info:
                await order_service.transition(
                    order.id, OrderStatus.SHIPPED, tracking_number=tracking
                )
            assert exc_info.value.field == "tracking_number"

        assert (await order_service.get_order(order.id)).status == OrderStatus.CONFIRMED

    async def test_tracking_only_when_shipping(self, create, order_service: OrderService) -> None:
        """A tracking number on any other transition is rejected."""
        order = await create()
        with pytest.raises(ValidationError):
            await order_service.transition(order.id, OrderStatus.CONFIRMED, tracking_number="T1")

    async def test_ship_sets_tracking(self, create, order_service: OrderService, sms_client) -> None:
        """Shipping stores the tracking number and announces it."""
        order = await create()
        await order_service.transition(order.id, OrderStatus.CONFIRMED)

        result = await order_service.transition(order.id, OrderStatus.SHIPPED, tracking_number="T1")

        assert result.order.status == OrderStatus.SHIPPED
        assert result.order.tracking_number == "T1"
        to, template_id, payload = sms_client.sent[-1]
        assert to == "+919800000001"
        assert template_id == "shipping_update"
        assert payload["tracking_number"] == "T1"

    async def test_delivered_cannot_be_cancelled(self, create, order_service: OrderService) -> None:
        """DELIVERED is terminal."""
        order = await create()
        await order_service.transition(order.id, OrderStatus.CONFIRMED)
        await order_service.transition(order.id, OrderStatus.SHIPPED, tracking_number="T1")
        await order_service.transition(order.id, OrderStatus.DELIVERED)

        with pytest.raises(IllegalTransitionError):
            await order_service.transition(order.id, OrderStatus.CANCELLED)

    async def test_cancellation_notifies(self, create, order_service: OrderService, email_client) -> None:
        """Cancelling sends the cancellation template."""
        order = await create()

        result = await order_service.transition(order.id, OrderStatus.CANCELLED, reason="Changed mind")

        assert result.order.status == OrderStatus.CANCELLED
        assert result.order.status_history[-1].reason == "Changed mind"
        assert email_client.sent[-1][1] == "order_cancellation"


class TestIdempotence:
    """Tests for replayed transitions."""

    async def test_replayed_ship_is_noop(
        self, create, order_service: OrderService, email_client, sms_client
    ) -> None:
        """Shipping twice with the same tracking number changes state once and notifies once."""
        order = await create()
        await order_service.transition(order.id, OrderStatus.CONFIRMED)
        first = await order_service.transition(order.id, OrderStatus.SHIPPED, tracking_number="T1")
        sent_before = (len(email_client.sent), len(sms_client.sent))

        second = await order_service.transition(order.id, OrderStatus.SHIPPED, tracking_number="T1")

        assert first.changed is True
        assert second.changed is False
        assert second.notifications is None
        assert second.order.status == OrderStatus.SHIPPED
        assert len(second.order.status_history) == len(first.order.status_history)
        assert (len(email_client.sent), len(sms_client.sent)) == sent_before

    async def test_replayed_ship_with_other_tracking_conflicts(
        self, create, order_service: OrderService
    ) -> None:
        """A replay must not silently keep a different tracking number."""
        order = await create()
        await order_service.transition(order.id, OrderStatus.CONFIRMED)
        await order_service.transition(order.id, OrderStatus.SHIPPED, tracking_number="T1")

        with pytest.raises(ConflictError):
            await order_service.transition(order.id, OrderStatus.SHIPPED, tracking_number="T2")

        assert (await order_service.get_order(order.id)).tracking_number == "T1"

    async def test_replayed_confirm_is_noop(self, create, order_service: OrderService) -> None:
        """Confirming a confirmed order succeeds without change."""
        order = await create()
        await order_service.transition(order.id, OrderStatus.CONFIRMED)

        result = await order_service.transition(order.id, OrderStatus.CONFIRMED)

        assert result.changed is False


class TestNotificationIsolation:
    """Notification failures never affect the transition."""

    async def test_failing_sms_does_not_block_shipping(
        self, create, store: InMemoryOrderStore, email_client, profiles
    ) -> None:
        """An always-failing SMS provider still lets the order ship."""
        failing = FailingSmsClient()
        service = OrderService(
            store=store,
            dispatcher=NotificationDispatcher(
                email_client=email_client,
                sms_client=failing,
                profiles=profiles,
                max_attempts=3,
                backoff_seconds=0,
            ),
        )
        order = await create()
        await service.transition(order.id, OrderStatus.CONFIRMED)

        result = await service.transition(order.id, OrderStatus.SHIPPED, tracking_number="T1")

        assert result.changed is True
        assert (await service.get_order(order.id)).status == OrderStatus.SHIPPED
        assert result.notifications.degraded is True
        sms = result.notifications.outcome_for(Channel.SMS)
        assert sms.status == "failed"
        assert sms.attempts == 3
        assert result.notifications.outcome_for(Channel.EMAIL).status == "sent"

    async def test_crashing_dispatcher_does_not_fail_transition(
        self, create, order_service: OrderService
    ) -> None:
        """Even an unexpected dispatcher error leaves the committed change in place."""
        order = await create()

        with patch.object(
            order_service.dispatcher, "notify", AsyncMock(side_effect=RuntimeError("boom"))
        ):
            result = await order_service.transition(order.id, OrderStatus.CONFIRMED)

        assert result.changed is True
        assert result.notifications is None
        assert (await order_service.get_order(order.id)).status == OrderStatus.CONFIRMED


class TestConcurrentTransitions:
    """Tests for racing writers on one order."""

    @pytest.fixture
    def racing_service(self, dispatcher: NotificationDispatcher) -> OrderService:
        return OrderService(store=SlowReadStore(), dispatcher=dispatcher)

    async def test_concurrent_confirms_change_once(
        self, racing_service: OrderService, make_item, address, email_client
    ) -> None:
        """Two simultaneous confirms produce exactly one state change."""
        order = await racing_service.create_order(
            "buyer-1", [make_item()], DeliveryType.STANDARD, address
        )

        results = await asyncio.gather(
            racing_service.transition(order.id, OrderStatus.CONFIRMED),
            racing_service.transition(order.id, OrderStatus.CONFIRMED),
        )

        assert sorted(r.changed for r in results) == [False, True]
        stored = await racing_service.get_order(order.id)
        assert [e.to_status for e in stored.status_history].count(OrderStatus.CONFIRMED) == 1
        # placed + one confirmation
        assert len(email_client.sent) == 2

    async def test_divergent_race_raises_conflict(
        self, racing_service: OrderService, make_item, address
    ) -> None:
        """Confirm and cancel racing on a pending order: the loser gets ConflictError."""
        order = await racing_service.create_order(
            "buyer-1", [make_item()], DeliveryType.STANDARD, address
        )

        confirm, cancel = await asyncio.gather(
            racing_service.transition(order.id, OrderStatus.CONFIRMED),
            racing_service.transition(order.id, OrderStatus.CANCELLED),
            return_exceptions=True,
        )

        assert confirm.changed is True
        assert isinstance(cancel, ConflictError)
        assert cancel.details["expected_state"] == "pending"
        assert cancel.details["actual_state"] == "confirmed"
        assert (await racing_service.get_order(order.id)).status == OrderStatus.CONFIRMED
