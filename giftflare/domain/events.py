"""Notification events.

A notification event is the (channel, template, recipient, payload)
tuple produced once per status transition per channel. Events are not
persisted; they live only for the duration of a dispatch.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from giftflare.domain.state_machines import OrderStatus


class Channel(str, Enum):
    """Outbound notification media."""

    EMAIL = "email"
    SMS = "sms"


class NotificationKind(str, Enum):
    """Which lifecycle moment a notification announces.

    PLACED is sent once when the order is created; the others mirror
    the status the order just entered.
    """

    PLACED = "placed"
    CONFIRMED = "confirmed"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

    @classmethod
    def for_status(cls, status: OrderStatus) -> "NotificationKind | None":
        """Get the notification kind announcing entry into a status.

        Args:
            status: Status the order just entered.

        Returns:
            Matching kind, or None for PENDING (covered by PLACED).
        """
        return _KIND_BY_STATUS.get(status)


_KIND_BY_STATUS: dict[OrderStatus, NotificationKind] = {
    OrderStatus.CONFIRMED: NotificationKind.CONFIRMED,
    OrderStatus.SHIPPED: NotificationKind.SHIPPED,
    OrderStatus.DELIVERED: NotificationKind.DELIVERED,
    OrderStatus.CANCELLED: NotificationKind.CANCELLED,
}


@dataclass(frozen=True)
class NotificationEvent:
    """One outbound message for one channel.

    Attributes:
        channel: Channel the message goes out on.
        template_id: Provider template identifier.
        recipient: Email address or phone number.
        payload: Template variables.
        order_id: Order the message is about.
        kind: Lifecycle moment being announced.
    """

    channel: Channel
    template_id: str
    recipient: str
    payload: dict[str, Any]
    order_id: str
    kind: NotificationKind
    event_id: UUID = field(default_factory=uuid4)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        """Convert event to dictionary for logging and serialization."""
        return {
            "event_id": str(self.event_id),
            "channel": self.channel.value,
            "template_id": self.template_id,
            "recipient": self.recipient,
            "order_id": self.order_id,
            "kind": self.kind.value,
            "created_at": self.created_at.isoformat(),
            "payload": self.payload,
        }
