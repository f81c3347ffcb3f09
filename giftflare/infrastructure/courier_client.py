"""Courier booking clients.

A booking hands an order to a courier and gets back a tracking id and,
when the courier offers one, an estimated delivery time.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx
import structlog

from giftflare.domain.entities import Order
from giftflare.domain.exceptions import BookingFailedError
from giftflare.domain.value_objects import DeliveryType

logger = structlog.get_logger()


@dataclass(frozen=True)
class CourierBooking:
    """A confirmed courier booking."""

    tracking_id: str
    estimated_delivery: datetime | None = None


class CourierClient(ABC):
    """Books courier pickups for orders."""

    @abstractmethod
    async def book(self, order: Order) -> CourierBooking:
        """Book a delivery for an order.

        Args:
            order: Confirmed order to deliver.

        Returns:
            Booking with the tracking id.

        Raises:
            BookingFailedError: If the courier cannot take the booking.
        """

    async def close(self) -> None:
        """Release any held resources."""


def _shipment_payload(order: Order) -> dict[str, Any]:
    """Build the courier request body for an order."""
    recipient = order.friend_delivery
    address = recipient.address if recipient else order.delivery_address
    return {
        "reference": order.id,
        "service": order.delivery_type.value,
        "drop": {
            "name": recipient.name if recipient else address.name,
            "phone": (recipient.phone if recipient else None) or address.phone,
            "address": address.to_dict(),
        },
        "package_count": order.item_count,
    }


# ============================================================================
# HTTP Courier
# ============================================================================


class HttpCourierClient(CourierClient):
    """Courier partner API reached over HTTP."""

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize courier client.

        Args:
            base_url: Courier API base URL.
            api_key: Bearer token for the courier API.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport override.
        """
        self.base_url = base_url
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            headers = {}
            if self.api_key:
                headers["Authorization"] = f"Bearer {self.api_key}"
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers=headers,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def book(self, order: Order) -> CourierBooking:
        """Create a booking with the courier."""
        try:
            client = await self._get_client()
            response = await client.post("/bookings", json=_shipment_payload(order))
        except httpx.RequestError as e:
            logger.error(
                "Courier API request failed",
                order_id=order.id,
                error=str(e),
            )
            raise BookingFailedError(order.id, f"Request failed: {str(e)}") from e

        if response.status_code not in (200, 201):
            raise BookingFailedError(
                order.id,
                f"Courier rejected booking: {response.text}",
                response.status_code,
            )

        return _parse_booking(order.id, response)


def _parse_booking(order_id: str, response: httpx.Response) -> CourierBooking:
    """Read a courier booking out of a 2xx response.

    Raises:
        BookingFailedError: If the body is not a booking the order can use.
    """
    try:
        data = response.json()
    except ValueError as e:
        raise BookingFailedError(order_id, "Malformed courier response: body is not JSON") from e
    if not isinstance(data, dict):
        raise BookingFailedError(order_id, "Malformed courier response: expected a JSON object")

    tracking_id = data.get("tracking_id")
    if not tracking_id:
        raise BookingFailedError(order_id, "Courier response has no tracking_id")
    if not isinstance(tracking_id, str) or not tracking_id.strip():
        raise BookingFailedError(
            order_id, f"Malformed courier response: tracking_id {tracking_id!r} is not usable"
        )

    eta = data.get("estimated_delivery")
    estimated_delivery = None
    if eta:
        try:
            estimated_delivery = datetime.fromisoformat(eta)
        except (TypeError, ValueError) as e:
            raise BookingFailedError(
                order_id, f"Malformed courier response: bad estimated_delivery {eta!r}"
            ) from e

    return CourierBooking(tracking_id=tracking_id.strip(), estimated_delivery=estimated_delivery)


# ============================================================================
# Simulated Courier
# ============================================================================


class SimulatedCourierClient(CourierClient):
    """Stand-in courier for development.

    Waits a moment, then issues a ``<prefix><epoch-ms>`` tracking id.
    """

    def __init__(
        self,
        delay_seconds: float = 1.0,
        prefix: str = "DUNZO",
        instant_eta: timedelta = timedelta(hours=2),
        standard_eta: timedelta = timedelta(days=4),
    ) -> None:
        self.delay_seconds = delay_seconds
        self.prefix = prefix
        self.instant_eta = instant_eta
        self.standard_eta = standard_eta

    async def book(self, order: Order) -> CourierBooking:
        """Pretend to book a courier."""
        logger.info("Booking simulated courier", order_id=order.id, service=order.delivery_type.value)
        if self.delay_seconds > 0:
            await asyncio.sleep(self.delay_seconds)

        eta = self.instant_eta if order.delivery_type == DeliveryType.INSTANT else self.standard_eta
        return CourierBooking(
            tracking_id=f"{self.prefix}{int(time.time() * 1000)}",
            estimated_delivery=datetime.now(timezone.utc) + eta,
        )
