"""Shared fixtures for API tests."""

from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient

from giftflare.domain import Profile
from giftflare.infrastructure.config import Settings
from giftflare.main import create_app

API_KEY = "test-api-key"


@pytest.fixture
def api_settings() -> Settings:
    """Settings for an in-memory app with an instant simulated courier."""
    return Settings(
        giftflare_api_key=API_KEY,
        order_store_backend="memory",
        simulated_courier_delay_seconds=0,
        notification_backoff_seconds=0,
        log_json=False,
    )


@pytest.fixture
def client(api_settings: Settings) -> Iterator[TestClient]:
    """Create test client without authentication."""
    with TestClient(create_app(api_settings)) as test_client:
        yield test_client


@pytest.fixture
def auth_client(api_settings: Settings) -> Iterator[TestClient]:
    """Create test client with valid API key authentication.

    The buyer profile is registered so order emails can be addressed.
    """
    app = create_app(api_settings)
    with TestClient(app, headers={"Authorization": f"Bearer {API_KEY}"}) as test_client:
        app.state.order_service.dispatcher.profiles.add(
            Profile(user_id="buyer-1", name="Asha Rao", email="asha@example.com")
        )
        yield test_client


@pytest.fixture
def order_payload() -> dict:
    """Checkout request for two lines totalling 2900 paise."""
    return {
        "buyer_id": "buyer-1",
        "items": [
            {
                "product_id": "p-1",
                "seller_id": "seller-1",
                "title": "Scented candle",
                "quantity": 1,
                "unit_price_paise": 500,
            },
            {
                "product_id": "p-2",
                "seller_id": "seller-1",
                "title": "Chocolate box",
                "quantity": 2,
                "unit_price_paise": 1200,
            },
        ],
        "delivery_type": "standard",
        "delivery_address": {
            "name": "Asha Rao",
            "line1": "12 MG Road",
            "city": "Mumbai",
            "postal_code": "400001",
            "phone": "+919800000001",
        },
    }
