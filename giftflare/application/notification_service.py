"""Notification dispatcher.

Fans one lifecycle notification out to the email and SMS channels:
- Channels are sent concurrently and never affect each other
- Each attempt has a timeout; failed attempts are retried with
  exponential backoff up to a fixed number of attempts
- Every outcome (sent, failed, skipped) is logged, counted and reported
  back to the caller in a DispatchReport; nothing is raised
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any

import structlog

from giftflare.domain.entities import Order
from giftflare.domain.events import Channel, NotificationEvent, NotificationKind
from giftflare.domain.value_objects import DeliveryType
from giftflare.infrastructure import metrics
from giftflare.infrastructure.notification_clients import (
    ChannelClient,
    EmailClient,
    SmsClient,
)
from giftflare.infrastructure.profile_directory import ProfileDirectory

logger = structlog.get_logger()


# ============================================================================
# Templates
# ============================================================================


_TEMPLATES: dict[NotificationKind, str] = {
    NotificationKind.PLACED: "order_confirmation",
    NotificationKind.CONFIRMED: "payment_confirmation",
    NotificationKind.SHIPPED: "shipping_update",
    NotificationKind.DELIVERED: "delivery_confirmation",
    NotificationKind.CANCELLED: "order_cancellation",
}

INSTANT_DELIVERY_TEMPLATE = "instant_delivery_update"


def select_template(kind: NotificationKind, delivery_type: DeliveryType, channel: Channel) -> str:
    """Pick the provider template for a notification on one channel.

    Shipped instant orders get the "arriving soon" SMS. The email keeps
    the regular shipping update so it still carries the tracking number.
    """
    if (
        kind == NotificationKind.SHIPPED
        and delivery_type == DeliveryType.INSTANT
        and channel == Channel.SMS
    ):
        return INSTANT_DELIVERY_TEMPLATE
    return _TEMPLATES[kind]


def build_payload(order: Order, customer_name: str | None = None) -> dict[str, Any]:
    """Template variables shared by every channel."""
    payload: dict[str, Any] = {
        "order_id": order.id,
        "status": order.status.value,
        "delivery_type": order.delivery_type.value,
        "item_count": order.item_count,
        "items": [{"title": i.title, "quantity": i.quantity} for i in order.items],
        "total_paise": order.total_paise,
        "total_display": f"₹{order.total_paise / 100:,.2f}",
        "currency": order.currency,
    }
    if customer_name:
        payload["customer_name"] = customer_name
    if order.tracking_number:
        payload["tracking_number"] = order.tracking_number
    if order.estimated_delivery:
        payload["estimated_delivery"] = order.estimated_delivery.isoformat()
    if order.friend_delivery:
        payload["recipient_name"] = order.friend_delivery.name
    return payload


# ============================================================================
# Dispatch Report
# ============================================================================


SENT = "sent"
FAILED = "failed"
SKIPPED = "skipped"


@dataclass
class ChannelOutcome:
    """What happened on one channel."""

    channel: Channel
    status: str
    template_id: str | None = None
    recipient: str | None = None
    attempts: int = 0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "channel": self.channel.value,
            "status": self.status,
            "template_id": self.template_id,
            "recipient": self.recipient,
            "attempts": self.attempts,
            "error": self.error,
        }


@dataclass
class DispatchReport:
    """Outcome of one notification across all channels."""

    order_id: str
    kind: NotificationKind
    outcomes: list[ChannelOutcome] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        """True when at least one channel failed."""
        return any(o.status == FAILED for o in self.outcomes)

    def outcome_for(self, channel: Channel) -> ChannelOutcome | None:
        """Get the outcome for a channel, if it was attempted."""
        for outcome in self.outcomes:
            if outcome.channel == channel:
                return outcome
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "kind": self.kind.value,
            "degraded": self.degraded,
            "outcomes": [o.to_dict() for o in self.outcomes],
        }


# ============================================================================
# Dispatcher
# ============================================================================


class NotificationDispatcher:
    """Sends lifecycle notifications over email and SMS.

    Email goes to the buyer's profile address; SMS goes to the phone on
    the delivery address and is skipped when there is none.
    """

    def __init__(
        self,
        email_client: EmailClient,
        sms_client: SmsClient,
        profiles: ProfileDirectory,
        timeout: float = 10.0,
        max_attempts: int = 3,
        backoff_seconds: float = 0.5,
        notify_on_cancellation: bool = True,
    ) -> None:
        """Initialize dispatcher.

        Args:
            email_client: Email channel client.
            sms_client: SMS channel client.
            profiles: Profile directory for buyer email lookup.
            timeout: Per-attempt timeout in seconds.
            max_attempts: Attempts per channel before giving up.
            backoff_seconds: Base delay; attempt n waits base * 2**(n-1).
            notify_on_cancellation: Whether cancellations are announced.
        """
        self.email_client = email_client
        self.sms_client = sms_client
        self.profiles = profiles
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)
        self.backoff_seconds = backoff_seconds
        self.notify_on_cancellation = notify_on_cancellation

    async def notify(self, order: Order, kind: NotificationKind) -> DispatchReport:
        """Send one notification on every channel.

        Args:
            order: Order in its post-transition state.
            kind: Lifecycle moment being announced.

        Returns:
            DispatchReport with one outcome per channel.
        """
        report = DispatchReport(order_id=order.id, kind=kind)

        if kind == NotificationKind.CANCELLED and not self.notify_on_cancellation:
            logger.info("Cancellation notifications disabled", order_id=order.id)
            return report

        templates = {
            channel: select_template(kind, order.delivery_type, channel)
            for channel in (Channel.EMAIL, Channel.SMS)
        }
        results = await asyncio.gather(
            self._notify_email(order, kind, templates[Channel.EMAIL]),
            self._notify_sms(order, kind, templates[Channel.SMS]),
            return_exceptions=True,
        )

        for channel, result in zip(templates, results):
            if isinstance(result, BaseException):
                logger.error(
                    "Notification channel crashed",
                    order_id=order.id,
                    channel=channel.value,
                    error=str(result),
                )
                result = ChannelOutcome(
                    channel=channel,
                    status=FAILED,
                    template_id=templates[channel],
                    error=str(result),
                )
                metrics.notifications_total.labels(
                    channel=channel.value, template_id=templates[channel], outcome=FAILED
                ).inc()
            report.outcomes.append(result)

        logger.info(
            "Notification dispatched",
            order_id=order.id,
            kind=kind.value,
            templates={c.value: t for c, t in templates.items()},
            degraded=report.degraded,
            outcomes={o.channel.value: o.status for o in report.outcomes},
        )
        return report

    async def _notify_email(
        self, order: Order, kind: NotificationKind, template_id: str
    ) -> ChannelOutcome:
        """Resolve the buyer's email and send."""
        try:
            profile = await asyncio.wait_for(
                self.profiles.get_profile(order.buyer_id), timeout=self.timeout
            )
        except Exception as e:
            logger.warning(
                "Profile lookup failed",
                order_id=order.id,
                buyer_id=order.buyer_id,
                error=str(e) or type(e).__name__,
            )
            metrics.notifications_total.labels(
                channel=Channel.EMAIL.value, template_id=template_id, outcome=FAILED
            ).inc()
            return ChannelOutcome(
                channel=Channel.EMAIL,
                status=FAILED,
                template_id=template_id,
                error=f"Profile lookup failed: {str(e) or type(e).__name__}",
            )

        event = NotificationEvent(
            channel=Channel.EMAIL,
            template_id=template_id,
            recipient=profile.email,
            payload=build_payload(order, customer_name=profile.name),
            order_id=order.id,
            kind=kind,
        )
        return await self._deliver(self.email_client, event)

    async def _notify_sms(
        self, order: Order, kind: NotificationKind, template_id: str
    ) -> ChannelOutcome:
        """Send to the delivery phone, or skip when there is none."""
        phone = order.contact_phone
        if not phone:
            logger.info("SMS skipped, no phone on delivery address", order_id=order.id)
            metrics.notifications_total.labels(
                channel=Channel.SMS.value, template_id=template_id, outcome=SKIPPED
            ).inc()
            return ChannelOutcome(channel=Channel.SMS, status=SKIPPED, template_id=template_id)

        event = NotificationEvent(
            channel=Channel.SMS,
            template_id=template_id,
            recipient=phone,
            payload=build_payload(order, customer_name=order.delivery_address.name),
            order_id=order.id,
            kind=kind,
        )
        return await self._deliver(self.sms_client, event)

    async def _deliver(self, client: ChannelClient, event: NotificationEvent) -> ChannelOutcome:
        """Send an event with per-attempt timeout and bounded retry."""
        last_error = ""
        for attempt in range(1, self.max_attempts + 1):
            try:
                await asyncio.wait_for(
                    client.send(event.recipient, event.template_id, event.payload),
                    timeout=self.timeout,
                )
            except Exception as e:
                last_error = str(e) or type(e).__name__
                metrics.notification_attempts_failed_total.labels(
                    channel=event.channel.value
                ).inc()
                logger.warning(
                    "Notification attempt failed",
                    order_id=event.order_id,
                    channel=event.channel.value,
                    template_id=event.template_id,
                    attempt=attempt,
                    max_attempts=self.max_attempts,
                    error=last_error,
                )
                if attempt < self.max_attempts:
                    await asyncio.sleep(self.backoff_seconds * 2 ** (attempt - 1))
                continue

            metrics.notifications_total.labels(
                channel=event.channel.value, template_id=event.template_id, outcome=SENT
            ).inc()
            return ChannelOutcome(
                channel=event.channel,
                status=SENT,
                template_id=event.template_id,
                recipient=event.recipient,
                attempts=attempt,
            )

        logger.error(
            "Notification failed",
            attempts=self.max_attempts,
            error=last_error,
            notification=event.to_dict(),
        )
        metrics.notifications_total.labels(
            channel=event.channel.value, template_id=event.template_id, outcome=FAILED
        ).inc()
        return ChannelOutcome(
            channel=event.channel,
            status=FAILED,
            template_id=event.template_id,
            recipient=event.recipient,
            attempts=self.max_attempts,
            error=last_error,
        )
