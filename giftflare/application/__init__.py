"""Application layer module.

Contains application services (use cases) that orchestrate
domain logic and infrastructure.
"""

from giftflare.application.delivery_service import (
    BookingResult,
    DeliveryBookingService,
    build_delivery_service,
)
from giftflare.application.notification_service import (
    ChannelOutcome,
    DispatchReport,
    NotificationDispatcher,
)
from giftflare.application.order_service import (
    ListOrdersResult,
    OrderService,
    TransitionResult,
    build_order_service,
)

__all__ = [
    "BookingResult",
    "DeliveryBookingService",
    "build_delivery_service",
    "ChannelOutcome",
    "DispatchReport",
    "NotificationDispatcher",
    "ListOrdersResult",
    "OrderService",
    "TransitionResult",
    "build_order_service",
]
