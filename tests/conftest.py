"""Shared fixtures for giftflare tests."""

from collections.abc import Callable

import pytest

from giftflare.application.delivery_service import DeliveryBookingService
from giftflare.application.notification_service import NotificationDispatcher
from giftflare.application.order_service import OrderService
from giftflare.domain.entities import OrderItem
from giftflare.domain.value_objects import Address, GiftOptions, Profile
from giftflare.infrastructure.courier_client import SimulatedCourierClient
from giftflare.infrastructure.notification_clients import LoggingEmailClient, LoggingSmsClient
from giftflare.infrastructure.order_store import InMemoryOrderStore
from giftflare.infrastructure.profile_directory import InMemoryProfileDirectory

BUYER_ID = "buyer-1"


@pytest.fixture
def make_item() -> Callable[..., OrderItem]:
    """Factory for order items with sensible defaults."""

    def _make_item(
        product_id: str = "prod-001",
        quantity: int = 1,
        unit_price_paise: int = 50000,
        instant: bool = False,
        gift: GiftOptions | None = None,
        seller_id: str = "seller-1",
    ) -> OrderItem:
        return OrderItem(
            product_id=product_id,
            seller_id=seller_id,
            title=f"Gift {product_id}",
            quantity=quantity,
            unit_price_paise=unit_price_paise,
            instant_delivery_eligible=instant,
            gift=gift or GiftOptions(),
        )

    return _make_item


@pytest.fixture
def address() -> Address:
    """Delivery address with a contact phone."""
    return Address(
        name="Asha Rao",
        line1="12 MG Road",
        city="Mumbai",
        state="MH",
        postal_code="400001",
        phone="+919800000001",
    )


@pytest.fixture
def address_without_phone() -> Address:
    """Delivery address with no phone."""
    return Address(line1="4 Park Street", city="Kolkata", postal_code="700016")


@pytest.fixture
def profiles() -> InMemoryProfileDirectory:
    """Profile directory knowing the default buyer."""
    return InMemoryProfileDirectory(
        [Profile(user_id=BUYER_ID, name="Asha Rao", email="asha@example.com", city="Mumbai")]
    )


@pytest.fixture
def email_client() -> LoggingEmailClient:
    """Email client recording sent messages."""
    return LoggingEmailClient()


@pytest.fixture
def sms_client() -> LoggingSmsClient:
    """SMS client recording sent messages."""
    return LoggingSmsClient()


@pytest.fixture
def dispatcher(
    email_client: LoggingEmailClient,
    sms_client: LoggingSmsClient,
    profiles: InMemoryProfileDirectory,
) -> NotificationDispatcher:
    """Dispatcher with no backoff delay."""
    return NotificationDispatcher(
        email_client=email_client,
        sms_client=sms_client,
        profiles=profiles,
        timeout=1.0,
        max_attempts=3,
        backoff_seconds=0,
    )


@pytest.fixture
def store() -> InMemoryOrderStore:
    """Empty in-memory order store."""
    return InMemoryOrderStore()


@pytest.fixture
def order_service(store: InMemoryOrderStore, dispatcher: NotificationDispatcher) -> OrderService:
    """Order service over the in-memory store."""
    return OrderService(
        store=store,
        dispatcher=dispatcher,
        instant_delivery_cities=["Mumbai", "Delhi", "Bangalore"],
    )


@pytest.fixture
def delivery_service(order_service: OrderService) -> DeliveryBookingService:
    """Delivery service with an instant simulated courier."""
    return DeliveryBookingService(
        order_service=order_service,
        courier=SimulatedCourierClient(delay_seconds=0),
        timeout=1.0,
    )
