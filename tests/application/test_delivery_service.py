"""Tests for the delivery booking service."""

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import httpx
import pytest

from giftflare.application.delivery_service import DeliveryBookingService
from giftflare.application.order_service import OrderService
from giftflare.domain import (
    BookingFailedError,
    DeliveryType,
    IllegalTransitionError,
    OrderNotFoundError,
    OrderStatus,
)
from giftflare.infrastructure.courier_client import (
    CourierBooking,
    CourierClient,
    HttpCourierClient,
)


class SlowCourier(CourierClient):
    """Courier that takes far too long."""

    async def book(self, order):
        await asyncio.sleep(10)
        return CourierBooking("never")


@pytest.fixture
def confirmed(order_service: OrderService, make_item, address):
    """Create a confirmed order."""

    async def _confirmed(delivery_type: DeliveryType = DeliveryType.STANDARD):
        order = await order_service.create_order(
            buyer_id="buyer-1",
            items=[make_item(instant=delivery_type == DeliveryType.INSTANT)],
            delivery_type=delivery_type,
            delivery_address=address,
        )
        result = await order_service.transition(order.id, OrderStatus.CONFIRMED)
        return result.order

    return _confirmed


class TestBookDelivery:
    """Tests for booking a single order."""

    async def test_booking_ships_order(
        self, delivery_service: DeliveryBookingService, confirmed, sms_client
    ) -> None:
        """A successful booking moves the order to shipped with the tracking id."""
        order = await confirmed()

        result = await delivery_service.book_delivery(order.id)

        assert result.success is True
        assert result.tracking_id.startswith("DUNZO")
        shipped = result.transition.order
        assert shipped.status == OrderStatus.SHIPPED
        assert shipped.tracking_number == result.tracking_id
        assert shipped.estimated_delivery is not None
        assert shipped.status_history[-1].actor == "courier"
        assert sms_client.sent[-1][1] == "shipping_update"

    async def test_instant_booking_uses_instant_sms(
        self, delivery_service: DeliveryBookingService, confirmed, email_client, sms_client
    ) -> None:
        """Instant orders get the arriving-soon SMS; the email carries tracking."""
        order = await confirmed(DeliveryType.INSTANT)

        result = await delivery_service.book_delivery(order.id)

        assert sms_client.sent[-1][1] == "instant_delivery_update"
        assert email_client.sent[-1][1] == "shipping_update"
        assert email_client.sent[-1][2]["tracking_number"] == result.tracking_id

    async def test_courier_eta_is_recorded(self, order_service: OrderService, confirmed) -> None:
        """The courier's estimate lands on the order."""
        eta = datetime(2026, 3, 1, 18, 0, tzinfo=timezone.utc)
        courier = AsyncMock(spec=CourierClient)
        courier.book.return_value = CourierBooking("T-55", estimated_delivery=eta)
        service = DeliveryBookingService(order_service, courier)
        order = await confirmed()

        result = await service.book_delivery(order.id)

        assert result.transition.order.estimated_delivery == eta
        assert result.to_dict()["estimated_delivery"] == eta.isoformat()

    async def test_failed_booking_leaves_order_confirmed(
        self, order_service: OrderService, confirmed
    ) -> None:
        """A courier rejection is reported, not raised, and nothing changes."""
        courier = AsyncMock(spec=CourierClient)
        courier.book.side_effect = BookingFailedError("x", "no riders", 503)
        service = DeliveryBookingService(order_service, courier)
        order = await confirmed()

        result = await service.book_delivery(order.id)

        assert result.success is False
        assert result.error_code == "BOOKING_FAILED"
        assert "no riders" in result.error
        assert (await order_service.get_order(order.id)).status == OrderStatus.CONFIRMED

    async def test_malformed_courier_reply_leaves_order_confirmed(
        self, order_service: OrderService, confirmed
    ) -> None:
        """A courier answering 200 with an HTML page is a failed booking."""
        courier = HttpCourierClient(
            "https://courier.example.com",
            transport=httpx.MockTransport(
                lambda request: httpx.Response(200, text="<html>gateway</html>")
            ),
        )
        service = DeliveryBookingService(order_service, courier)
        order = await confirmed()

        result = await service.book_delivery(order.id)

        assert result.success is False
        assert result.error_code == "BOOKING_FAILED"
        assert "Malformed courier response" in result.error
        assert (await order_service.get_order(order.id)).status == OrderStatus.CONFIRMED

    async def test_unusable_tracking_id_leaves_order_confirmed(
        self, order_service: OrderService, confirmed
    ) -> None:
        """A courier client handing back a non-string tracking id fails the booking."""
        courier = AsyncMock(spec=CourierClient)
        courier.book.return_value = CourierBooking(12345)
        service = DeliveryBookingService(order_service, courier)
        order = await confirmed()

        result = await service.book_delivery(order.id)

        assert result.success is False
        assert result.error_code == "BOOKING_FAILED"
        assert (await order_service.get_order(order.id)).status == OrderStatus.CONFIRMED

    async def test_booking_timeout(self, order_service: OrderService, confirmed) -> None:
        """A hanging courier is cut off and the order stays confirmed."""
        service = DeliveryBookingService(order_service, SlowCourier(), timeout=0.05)
        order = await confirmed()

        result = await service.book_delivery(order.id)

        assert result.success is False
        assert result.error_code == "BOOKING_TIMEOUT"
        assert (await order_service.get_order(order.id)).status == OrderStatus.CONFIRMED

    async def test_pending_order_cannot_be_booked(
        self, delivery_service: DeliveryBookingService, order_service: OrderService, make_item, address
    ) -> None:
        """Only confirmed orders can be booked."""
        order = await order_service.create_order(
            "buyer-1", [make_item()], DeliveryType.STANDARD, address
        )

        with pytest.raises(IllegalTransitionError) as exc_info:
            await delivery_service.book_delivery(order.id)
        assert exc_info.value.current_state == "pending"

    async def test_unknown_order(self, delivery_service: DeliveryBookingService) -> None:
        """Unknown ids raise OrderNotFoundError."""
        with pytest.raises(OrderNotFoundError):
            await delivery_service.book_delivery("missing")


class TestBookConfirmedOrders:
    """Tests for the batch booking run."""

    async def test_books_every_confirmed_order(
        self, delivery_service: DeliveryBookingService, order_service: OrderService, confirmed
    ) -> None:
        """Confirmed orders across pages are all booked."""
        orders = [await confirmed() for _ in range(3)]

        results = await delivery_service.book_confirmed_orders(page_size=2)

        assert sorted(r.order_id for r in results) == sorted(o.id for o in orders)
        assert all(r.success for r in results)
        listing = await order_service.list_orders(status=OrderStatus.SHIPPED)
        assert listing.total == 3

    async def test_filters_by_delivery_type(
        self, delivery_service: DeliveryBookingService, confirmed
    ) -> None:
        """Instant-only runs skip standard orders."""
        await confirmed(DeliveryType.STANDARD)
        instant = await confirmed(DeliveryType.INSTANT)

        results = await delivery_service.book_confirmed_orders(delivery_type=DeliveryType.INSTANT)

        assert [r.order_id for r in results] == [instant.id]

    async def test_bad_reply_does_not_stop_the_batch(
        self, order_service: OrderService, confirmed
    ) -> None:
        """One unusable courier reply fails that order only."""
        replies = iter(
            [
                httpx.Response(201, json={"tracking_id": 12345}),
                httpx.Response(201, json={"tracking_id": "T-2"}),
            ]
        )
        courier = HttpCourierClient(
            "https://courier.example.com",
            transport=httpx.MockTransport(lambda request: next(replies)),
        )
        service = DeliveryBookingService(order_service, courier)
        await confirmed()
        await confirmed()

        results = await service.book_confirmed_orders()

        assert [r.success for r in results] == [False, True]
        assert results[1].tracking_id == "T-2"

    async def test_nothing_to_book(self, delivery_service: DeliveryBookingService) -> None:
        """An empty store yields no results."""
        assert await delivery_service.book_confirmed_orders() == []
