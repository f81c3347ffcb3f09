"""Order application service.

Orchestrates the order lifecycle:
- Creating orders from checked-out carts
- Moving orders through the status state machine
- Triggering one notification per committed transition
"""

from collections.abc import Collection
from dataclasses import dataclass, field
from datetime import datetime

import structlog

from giftflare.application.notification_service import DispatchReport, NotificationDispatcher
from giftflare.domain.entities import (
    DEFAULT_GIFT_WRAP_SURCHARGE_PAISE,
    Order,
    OrderItem,
    StatusChange,
)
from giftflare.domain.events import NotificationKind
from giftflare.domain.exceptions import ConflictError, OrderNotFoundError, ValidationError
from giftflare.domain.state_machines import OrderStatus, validate_order_transition
from giftflare.domain.value_objects import Address, DeliveryType, Recipient
from giftflare.infrastructure import metrics
from giftflare.infrastructure.config import Settings
from giftflare.infrastructure.database import create_engine, create_session_factory
from giftflare.infrastructure.notification_clients import (
    EmailClient,
    HttpEmailClient,
    HttpSmsClient,
    LoggingEmailClient,
    LoggingSmsClient,
    SmsClient,
)
from giftflare.infrastructure.order_store import (
    InMemoryOrderStore,
    OrderStore,
    SqlAlchemyOrderStore,
)
from giftflare.infrastructure.profile_directory import (
    HttpProfileDirectory,
    InMemoryProfileDirectory,
    ProfileDirectory,
)

logger = structlog.get_logger()


# ============================================================================
# Service Result Types
# ============================================================================


@dataclass
class TransitionResult:
    """Result of a status transition.

    ``changed`` is False for an idempotent replay; replays carry no
    notification report.
    """

    order: Order
    changed: bool
    notifications: DispatchReport | None = None


@dataclass
class ListOrdersResult:
    """Result of listing orders."""

    orders: list[Order] = field(default_factory=list)
    total: int = 0
    page: int = 1
    page_size: int = 20


# ============================================================================
# Order Service
# ============================================================================


class OrderService:
    """Application service for managing orders.

    All status changes go through transition(), which writes a
    compare-and-set update conditioned on the status it read and then
    dispatches notifications exactly once for the committed change.
    """

    def __init__(
        self,
        store: OrderStore,
        dispatcher: NotificationDispatcher,
        gift_wrap_surcharge_paise: int = DEFAULT_GIFT_WRAP_SURCHARGE_PAISE,
        instant_delivery_cities: Collection[str] | None = None,
    ) -> None:
        """Initialize service.

        Args:
            store: Order persistence.
            dispatcher: Notification dispatcher.
            gift_wrap_surcharge_paise: Surcharge per gift-wrapped line.
            instant_delivery_cities: Cities offering instant delivery;
                None accepts any city.
        """
        self.store = store
        self.dispatcher = dispatcher
        self.gift_wrap_surcharge_paise = gift_wrap_surcharge_paise
        self.instant_delivery_cities = instant_delivery_cities

    async def create_order(
        self,
        buyer_id: str,
        items: list[OrderItem],
        delivery_type: DeliveryType,
        delivery_address: Address,
        friend_delivery: Recipient | None = None,
        payment_reference: str | None = None,
    ) -> Order:
        """Create a pending order and send the order confirmation.

        Args:
            buyer_id: Purchasing account.
            items: Line item snapshots from the cart.
            delivery_type: Standard or instant.
            delivery_address: Shipping address.
            friend_delivery: Alternate recipient.
            payment_reference: External payment-capture id.

        Returns:
            The stored order in PENDING status.

        Raises:
            ValidationError: If the cart or delivery details are invalid.
        """
        order = Order.create(
            buyer_id=buyer_id,
            items=items,
            delivery_type=delivery_type,
            delivery_address=delivery_address,
            friend_delivery=friend_delivery,
            payment_reference=payment_reference,
            gift_wrap_surcharge_paise=self.gift_wrap_surcharge_paise,
            instant_delivery_cities=self.instant_delivery_cities,
        )
        order = await self.store.insert(order)

        metrics.orders_created_total.labels(delivery_type=order.delivery_type.value).inc()
        logger.info(
            "Order created",
            order_id=order.id,
            buyer_id=buyer_id,
            delivery_type=order.delivery_type.value,
            item_count=order.item_count,
            total_paise=order.total_paise,
        )

        await self._dispatch(order, NotificationKind.PLACED)
        return order

    async def get_order(self, order_id: str) -> Order:
        """Get an order by ID.

        Raises:
            OrderNotFoundError: If the order does not exist.
        """
        order = await self.store.get(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    async def list_orders_for_buyer(self, buyer_id: str) -> list[Order]:
        """List a buyer's orders, newest first."""
        return await self.store.list_for_buyer(buyer_id)

    async def list_orders(
        self,
        page: int = 1,
        page_size: int = 20,
        status: OrderStatus | None = None,
        delivery_type: DeliveryType | None = None,
    ) -> ListOrdersResult:
        """List orders with pagination and filtering.

        Args:
            page: Page number (1-based).
            page_size: Items per page.
            status: Filter by status.
            delivery_type: Filter by delivery type.

        Returns:
            ListOrdersResult with paginated orders.
        """
        orders, total = await self.store.list_all(
            page=page,
            page_size=page_size,
            status=status,
            delivery_type=delivery_type,
        )
        return ListOrdersResult(orders=orders, total=total, page=page, page_size=page_size)

    async def transition(
        self,
        order_id: str,
        target_status: OrderStatus | str,
        tracking_number: str | None = None,
        actor: str = "system",
        reason: str | None = None,
        estimated_delivery: datetime | None = None,
    ) -> TransitionResult:
        """Move an order to a new status.

        Args:
            order_id: Order identifier.
            target_status: Status to move to.
            tracking_number: Courier tracking number; required for
                SHIPPED and rejected for any other target.
            actor: Who initiated the transition.
            reason: Free-text reason for the audit trail.
            estimated_delivery: Courier ETA; only accepted with SHIPPED.

        Returns:
            TransitionResult with the post-transition order.

        Raises:
            ValidationError: If the target or tracking details are invalid.
            OrderNotFoundError: If the order does not exist.
            IllegalTransitionError: If the target is not reachable.
            ConflictError: If a concurrent update moved the order elsewhere,
                or a replayed ship carries a different tracking number.
        """
        target = _coerce_status(target_status)
        if tracking_number is not None:
            if not isinstance(tracking_number, str):
                raise ValidationError("tracking_number must be a string", field="tracking_number")
            tracking_number = tracking_number.strip()
        if not target.requires_tracking_number():
            if tracking_number:
                raise ValidationError(
                    f"tracking_number is only accepted when shipping, not for '{target.value}'",
                    field="tracking_number",
                )
            if estimated_delivery is not None:
                raise ValidationError(
                    f"estimated_delivery is only accepted when shipping, not for '{target.value}'",
                    field="estimated_delivery",
                )

        order = await self.get_order(order_id)

        if order.status == target:
            return self._replay(order, target, tracking_number)

        validate_order_transition(order.id, order.status, target)

        if target.requires_tracking_number() and not tracking_number:
            raise ValidationError(
                "A tracking number is required to ship an order",
                field="tracking_number",
                order_id=order_id,
            )

        change = StatusChange(
            order_id=order.id,
            from_status=order.status,
            to_status=target,
            tracking_number=tracking_number or None,
            estimated_delivery=estimated_delivery,
            actor=actor,
            reason=reason,
        )
        updated = await self.store.apply_status_change(change)

        if updated is None:
            return await self._resolve_lost_race(change)

        metrics.order_transitions_total.labels(
            from_status=change.from_status.value, to_status=target.value
        ).inc()
        logger.info(
            "Order status changed",
            order_id=order_id,
            from_status=change.from_status.value,
            to_status=target.value,
            tracking_number=updated.tracking_number,
            actor=actor,
        )

        kind = NotificationKind.for_status(target)
        report = await self._dispatch(updated, kind) if kind else None
        return TransitionResult(order=updated, changed=True, notifications=report)

    async def close(self) -> None:
        """Release the store and channel clients."""
        await self.dispatcher.email_client.close()
        await self.dispatcher.sms_client.close()
        await self.dispatcher.profiles.close()
        await self.store.close()

    def _replay(
        self, order: Order, target: OrderStatus, tracking_number: str | None
    ) -> TransitionResult:
        """Handle a transition to the status the order is already in."""
        if (
            target == OrderStatus.SHIPPED
            and tracking_number
            and tracking_number != order.tracking_number
        ):
            raise ConflictError(
                order.id,
                expected_state=target.value,
                actual_state=order.status.value,
                message=(
                    f"Order {order.id} already shipped with tracking number "
                    f"{order.tracking_number}"
                ),
            )
        logger.info(
            "Transition replay ignored",
            order_id=order.id,
            status=order.status.value,
        )
        return TransitionResult(order=order, changed=False)

    async def _resolve_lost_race(self, change: StatusChange) -> TransitionResult:
        """Re-read after a conditional update matched no row."""
        current = await self.store.get(change.order_id)
        if current is None:
            raise OrderNotFoundError(change.order_id)

        if current.status == change.to_status:
            return self._replay(current, change.to_status, change.tracking_number)

        metrics.order_transition_conflicts_total.labels(
            target_status=change.to_status.value
        ).inc()
        logger.warning(
            "Order changed concurrently",
            order_id=change.order_id,
            expected_status=change.from_status.value,
            actual_status=current.status.value,
            target_status=change.to_status.value,
        )
        raise ConflictError(
            change.order_id,
            expected_state=change.from_status.value,
            actual_state=current.status.value,
        )

    async def _dispatch(self, order: Order, kind: NotificationKind) -> DispatchReport | None:
        """Run the dispatcher without letting it fail the caller."""
        try:
            return await self.dispatcher.notify(order, kind)
        except Exception as e:
            logger.error(
                "Notification dispatch failed",
                order_id=order.id,
                kind=kind.value,
                error=str(e),
            )
            return None


def _coerce_status(value: OrderStatus | str) -> OrderStatus:
    """Parse a status name."""
    try:
        return OrderStatus(value)
    except ValueError as e:
        raise ValidationError(
            f"Unknown order status: {value}",
            field="target_status",
            allowed=[s.value for s in OrderStatus],
        ) from e


# ============================================================================
# Wiring
# ============================================================================


def build_order_store(settings: Settings) -> OrderStore:
    """Create the configured order store."""
    if settings.order_store_backend == "sql":
        engine = create_engine(settings.database_url, echo=settings.debug)
        return SqlAlchemyOrderStore(create_session_factory(engine), engine=engine)
    if settings.order_store_backend != "memory":
        raise ValueError(f"Unknown order store backend: {settings.order_store_backend}")
    return InMemoryOrderStore()


def build_dispatcher(settings: Settings) -> NotificationDispatcher:
    """Create the dispatcher with provider or logging clients."""
    email_client: EmailClient
    sms_client: SmsClient
    profiles: ProfileDirectory

    if settings.email_provider_url:
        email_client = HttpEmailClient(
            settings.email_provider_url,
            api_key=settings.email_provider_api_key,
            timeout=settings.notification_timeout_seconds,
        )
    else:
        email_client = LoggingEmailClient()

    if settings.sms_provider_url:
        sms_client = HttpSmsClient(
            settings.sms_provider_url,
            api_key=settings.sms_provider_api_key,
            timeout=settings.notification_timeout_seconds,
        )
    else:
        sms_client = LoggingSmsClient()

    if settings.profile_directory_url:
        profiles = HttpProfileDirectory(
            settings.profile_directory_url,
            timeout=settings.profile_timeout_seconds,
        )
    else:
        profiles = InMemoryProfileDirectory()

    return NotificationDispatcher(
        email_client=email_client,
        sms_client=sms_client,
        profiles=profiles,
        timeout=settings.notification_timeout_seconds,
        max_attempts=settings.notification_max_attempts,
        backoff_seconds=settings.notification_backoff_seconds,
        notify_on_cancellation=settings.notify_on_cancellation,
    )


def build_order_service(settings: Settings) -> OrderService:
    """Create an OrderService wired from settings."""
    return OrderService(
        store=build_order_store(settings),
        dispatcher=build_dispatcher(settings),
        gift_wrap_surcharge_paise=settings.gift_wrap_surcharge_paise,
        instant_delivery_cities=settings.instant_delivery_cities,
    )
