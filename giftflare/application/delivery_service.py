"""Delivery booking service.

Books a courier for a confirmed order and feeds the tracking id back
into the order state machine. A failed booking leaves the order
confirmed; whoever asked for the booking decides when to try again.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import structlog

from giftflare.application.order_service import OrderService, TransitionResult
from giftflare.domain.exceptions import (
    BookingFailedError,
    ConflictError,
    IllegalTransitionError,
    ValidationError,
)
from giftflare.domain.state_machines import OrderStatus
from giftflare.domain.value_objects import DeliveryType
from giftflare.infrastructure import metrics
from giftflare.infrastructure.config import Settings
from giftflare.infrastructure.courier_client import (
    CourierClient,
    HttpCourierClient,
    SimulatedCourierClient,
)

logger = structlog.get_logger()


@dataclass
class BookingResult:
    """Result of a courier booking."""

    order_id: str
    success: bool
    tracking_id: str | None = None
    estimated_delivery: datetime | None = None
    error: str | None = None
    error_code: str | None = None
    transition: TransitionResult | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "order_id": self.order_id,
            "success": self.success,
            "tracking_id": self.tracking_id,
            "estimated_delivery": (
                self.estimated_delivery.isoformat() if self.estimated_delivery else None
            ),
            "error": self.error,
            "error_code": self.error_code,
        }


class DeliveryBookingService:
    """Books couriers for confirmed orders."""

    def __init__(
        self,
        order_service: OrderService,
        courier: CourierClient,
        timeout: float = 15.0,
    ) -> None:
        """Initialize service.

        Args:
            order_service: Service owning order transitions.
            courier: Courier client.
            timeout: Upper bound on one booking call, in seconds.
        """
        self.order_service = order_service
        self.courier = courier
        self.timeout = timeout

    async def book_delivery(self, order_id: str) -> BookingResult:
        """Book a courier and ship the order.

        Args:
            order_id: Order identifier.

        Returns:
            BookingResult; success is False when the courier call failed
            or timed out, in which case the order is still confirmed.

        Raises:
            OrderNotFoundError: If the order does not exist.
            IllegalTransitionError: If the order is not confirmed.
            ConflictError: If the order changed while the courier was booked.
        """
        order = await self.order_service.get_order(order_id)
        if order.status != OrderStatus.CONFIRMED:
            raise IllegalTransitionError(
                entity_type="Order",
                entity_id=order_id,
                current_state=order.status.value,
                target_state=OrderStatus.SHIPPED.value,
                allowed_transitions=[s.value for s in order.status.allowed_transitions()],
            )

        log = logger.bind(order_id=order_id, delivery_type=order.delivery_type.value)
        log.info("Booking courier")

        try:
            booking = await asyncio.wait_for(self.courier.book(order), timeout=self.timeout)
        except asyncio.TimeoutError:
            metrics.courier_bookings_total.labels(outcome="timeout").inc()
            log.warning("Courier booking timed out", timeout=self.timeout)
            return BookingResult(
                order_id=order_id,
                success=False,
                error=f"Courier booking timed out after {self.timeout}s",
                error_code="BOOKING_TIMEOUT",
            )
        except BookingFailedError as e:
            metrics.courier_bookings_total.labels(outcome="failed").inc()
            log.warning("Courier booking failed", error=e.message, status_code=e.status_code)
            return BookingResult(
                order_id=order_id,
                success=False,
                error=e.message,
                error_code=e.error_code,
            )

        log.info("Courier booked", tracking_id=booking.tracking_id)

        try:
            transition = await self.order_service.transition(
                order_id,
                OrderStatus.SHIPPED,
                tracking_number=booking.tracking_id,
                actor="courier",
                reason="Courier booked",
                estimated_delivery=booking.estimated_delivery,
            )
        except ValidationError as e:
            metrics.courier_bookings_total.labels(outcome="failed").inc()
            log.warning("Courier booking unusable", error=e.message)
            return BookingResult(
                order_id=order_id,
                success=False,
                error=f"Courier booking unusable: {e.message}",
                error_code=BookingFailedError.error_code,
            )
        except (ConflictError, IllegalTransitionError):
            log.error(
                "Order changed during courier booking",
                tracking_id=booking.tracking_id,
            )
            raise

        metrics.courier_bookings_total.labels(outcome="success").inc()
        return BookingResult(
            order_id=order_id,
            success=True,
            tracking_id=booking.tracking_id,
            estimated_delivery=booking.estimated_delivery,
            transition=transition,
        )

    async def book_confirmed_orders(
        self,
        delivery_type: DeliveryType | None = None,
        page_size: int = 100,
    ) -> list[BookingResult]:
        """Book every confirmed order, one at a time.

        Args:
            delivery_type: Only book orders of this delivery type.
            page_size: Page size used while collecting order ids.

        Returns:
            One BookingResult per order attempted.
        """
        order_ids: list[str] = []
        page = 1
        while True:
            listing = await self.order_service.list_orders(
                page=page,
                page_size=page_size,
                status=OrderStatus.CONFIRMED,
                delivery_type=delivery_type,
            )
            order_ids.extend(o.id for o in listing.orders)
            if page * page_size >= listing.total:
                break
            page += 1

        results = []
        for order_id in order_ids:
            try:
                results.append(await self.book_delivery(order_id))
            except (ConflictError, IllegalTransitionError) as e:
                results.append(
                    BookingResult(
                        order_id=order_id,
                        success=False,
                        error=e.message,
                        error_code=e.error_code,
                    )
                )
        return results

    async def close(self) -> None:
        """Release the courier client."""
        await self.courier.close()


def build_delivery_service(settings: Settings, order_service: OrderService) -> DeliveryBookingService:
    """Create a DeliveryBookingService wired from settings."""
    courier: CourierClient
    if settings.courier_url:
        courier = HttpCourierClient(
            settings.courier_url,
            api_key=settings.courier_api_key,
            timeout=settings.courier_timeout_seconds,
        )
    else:
        courier = SimulatedCourierClient(
            delay_seconds=settings.simulated_courier_delay_seconds,
            prefix=settings.simulated_courier_prefix,
        )
    return DeliveryBookingService(
        order_service=order_service,
        courier=courier,
        timeout=settings.courier_timeout_seconds,
    )
