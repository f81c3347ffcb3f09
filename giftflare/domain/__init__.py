"""Domain layer - order aggregate, value objects, state machine, events.

This module exports the core domain building blocks:

- **Entities**: the Order aggregate and its line items
- **Value Objects**: addresses, recipients, gift options, profiles
- **State Machine**: OrderStatus and its transition graph
- **Events**: notification events produced per transition
- **Exceptions**: domain-specific errors and invariant violations

Example usage:
    from giftflare.domain import Address, DeliveryType, Order, OrderItem

    order = Order.create(
        buyer_id="buyer-1",
        items=[
            OrderItem(
                product_id="p-1",
                seller_id="s-1",
                title="Chocolate hamper",
                quantity=2,
                unit_price_paise=120000,
            )
        ],
        delivery_type=DeliveryType.STANDARD,
        delivery_address=Address(line1="12 MG Road", city="Mumbai", postal_code="400001"),
    )
    print(order.total_paise)  # 240000
"""

from giftflare.domain.entities import (
    DEFAULT_GIFT_WRAP_SURCHARGE_PAISE,
    Order,
    OrderItem,
    StatusChange,
    StatusHistoryEntry,
)
from giftflare.domain.events import Channel, NotificationEvent, NotificationKind
from giftflare.domain.exceptions import (
    BookingFailedError,
    ConflictError,
    DomainError,
    IllegalTransitionError,
    NotFoundError,
    NotificationChannelError,
    OrderNotFoundError,
    ValidationError,
)
from giftflare.domain.state_machines import OrderStatus, validate_order_transition
from giftflare.domain.value_objects import (
    Address,
    DeliveryType,
    GiftOptions,
    Profile,
    Recipient,
)

__all__ = [
    # Entities
    "DEFAULT_GIFT_WRAP_SURCHARGE_PAISE",
    "Order",
    "OrderItem",
    "StatusChange",
    "StatusHistoryEntry",
    # Value Objects
    "Address",
    "DeliveryType",
    "GiftOptions",
    "Profile",
    "Recipient",
    # State Machine
    "OrderStatus",
    "validate_order_transition",
    # Events
    "Channel",
    "NotificationEvent",
    "NotificationKind",
    # Exceptions
    "BookingFailedError",
    "ConflictError",
    "DomainError",
    "IllegalTransitionError",
    "NotFoundError",
    "NotificationChannelError",
    "OrderNotFoundError",
    "ValidationError",
]
