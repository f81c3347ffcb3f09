"""Order aggregate and its parts.

Orders are created once by checkout and afterwards change only through
status transitions. Totals are computed here from the line item
snapshots and are never accepted from the caller.
"""

from collections.abc import Collection
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from giftflare.domain.exceptions import ValidationError
from giftflare.domain.state_machines import OrderStatus, validate_order_transition
from giftflare.domain.value_objects import Address, DeliveryType, GiftOptions, Recipient

# ₹50 per gift-wrapped line
DEFAULT_GIFT_WRAP_SURCHARGE_PAISE = 5000


# ============================================================================
# Order Item
# ============================================================================


@dataclass(frozen=True)
class OrderItem:
    """A line item in an order.

    Order items are immutable snapshots of cart lines at the time
    of order creation; the unit price is never re-read from the catalog.

    Attributes:
        product_id: Product identifier.
        seller_id: Seller fulfilling the product.
        title: Product title at time of order.
        quantity: Ordered quantity.
        unit_price_paise: Price per unit at time of order.
        instant_delivery_eligible: Catalog flag captured at checkout.
        gift: Gift options for this line.
    """

    product_id: str
    seller_id: str
    title: str
    quantity: int
    unit_price_paise: int
    instant_delivery_eligible: bool = False
    gift: GiftOptions = field(default_factory=GiftOptions)

    def __post_init__(self) -> None:
        """Validate quantity and price."""
        if self.quantity < 1:
            raise ValidationError(
                f"Invalid quantity {self.quantity} for product {self.product_id}: "
                "quantity must be at least 1",
                field="items.quantity",
                product_id=self.product_id,
            )
        if self.unit_price_paise <= 0:
            raise ValidationError(
                f"Invalid unit price {self.unit_price_paise} for product "
                f"{self.product_id}: price must be positive",
                field="items.unit_price_paise",
                product_id=self.product_id,
            )

    @property
    def line_total_paise(self) -> int:
        """Calculate line total (without packaging)."""
        return self.unit_price_paise * self.quantity

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-compatible dictionary."""
        return {
            "product_id": self.product_id,
            "seller_id": self.seller_id,
            "title": self.title,
            "quantity": self.quantity,
            "unit_price_paise": self.unit_price_paise,
            "instant_delivery_eligible": self.instant_delivery_eligible,
            "gift": self.gift.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OrderItem":
        """Create from a dictionary produced by to_dict()."""
        return cls(
            product_id=data["product_id"],
            seller_id=data["seller_id"],
            title=data["title"],
            quantity=data["quantity"],
            unit_price_paise=data["unit_price_paise"],
            instant_delivery_eligible=data.get("instant_delivery_eligible", False),
            gift=GiftOptions.from_dict(data.get("gift") or {}),
        )


# ============================================================================
# Status History
# ============================================================================


@dataclass(frozen=True)
class StatusHistoryEntry:
    """One row of the order audit trail."""

    from_status: OrderStatus | None
    to_status: OrderStatus
    actor: str = "system"
    reason: str | None = None
    metadata: dict[str, Any] | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class StatusChange:
    """A requested status change, conditioned on the prior status.

    Stores apply it only if the order is still in ``from_status``;
    this is the compare-and-set that keeps one writer per order.
    """

    order_id: str
    from_status: OrderStatus
    to_status: OrderStatus
    tracking_number: str | None = None
    estimated_delivery: datetime | None = None
    actor: str = "system"
    reason: str | None = None
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def history_entry(self) -> StatusHistoryEntry:
        """Build the audit row recorded with this change."""
        metadata: dict[str, Any] = {}
        if self.tracking_number:
            metadata["tracking_number"] = self.tracking_number
        if self.estimated_delivery:
            metadata["estimated_delivery"] = self.estimated_delivery.isoformat()
        return StatusHistoryEntry(
            from_status=self.from_status,
            to_status=self.to_status,
            actor=self.actor,
            reason=self.reason,
            metadata=metadata or None,
            created_at=self.occurred_at,
        )


# ============================================================================
# Order Aggregate Root
# ============================================================================


@dataclass(kw_only=True)
class Order:
    """Order aggregate root.

    Attributes:
        id: Unique order identifier.
        buyer_id: Purchasing account.
        items: Order line items.
        delivery_type: Standard or instant.
        delivery_address: Where the order ships, with contact phone.
        subtotal_paise: Sum of line totals.
        packaging_paise: Gift-wrap surcharges.
        total_paise: subtotal_paise + packaging_paise.
        status: Current order status.
        friend_delivery: Alternate recipient, if any line asks for one.
        tracking_number: Courier tracking number, set when shipped.
        estimated_delivery: Courier ETA, when the booking returned one.
        payment_reference: External payment-capture id.
        status_history: Audit trail of transitions.
    """

    id: str
    buyer_id: str
    items: list[OrderItem]
    delivery_type: DeliveryType
    delivery_address: Address
    subtotal_paise: int
    packaging_paise: int
    total_paise: int
    currency: str = "INR"
    status: OrderStatus = OrderStatus.PENDING
    friend_delivery: Recipient | None = None
    tracking_number: str | None = None
    estimated_delivery: datetime | None = None
    payment_reference: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    status_history: list[StatusHistoryEntry] = field(default_factory=list)

    @classmethod
    def create(
        cls,
        buyer_id: str,
        items: list[OrderItem],
        delivery_type: DeliveryType,
        delivery_address: Address,
        friend_delivery: Recipient | None = None,
        payment_reference: str | None = None,
        gift_wrap_surcharge_paise: int = DEFAULT_GIFT_WRAP_SURCHARGE_PAISE,
        instant_delivery_cities: Collection[str] | None = None,
    ) -> "Order":
        """Create a pending order from checked-out cart lines.

        Args:
            buyer_id: Purchasing account.
            items: Line item snapshots.
            delivery_type: Requested delivery type.
            delivery_address: Shipping address.
            friend_delivery: Alternate recipient; defaults to the first
                line recipient that asks for friend delivery.
            payment_reference: External payment-capture id.
            gift_wrap_surcharge_paise: Surcharge per gift-wrapped line.
            instant_delivery_cities: Cities where instant delivery runs;
                None skips the city check.

        Returns:
            New Order in PENDING status.

        Raises:
            ValidationError: If the order cannot be created as requested.
        """
        if not buyer_id or not buyer_id.strip():
            raise ValidationError("Buyer id cannot be empty", field="buyer_id")
        if not items:
            raise ValidationError("Cannot create an order from an empty cart", field="items")

        friend_delivery = _resolve_friend_delivery(items, friend_delivery)

        if delivery_type == DeliveryType.INSTANT:
            _check_instant_eligibility(items, delivery_address, instant_delivery_cities)

        subtotal = sum(item.line_total_paise for item in items)
        packaging = gift_wrap_surcharge_paise * sum(1 for item in items if item.gift.gift_wrap)
        now = datetime.now(timezone.utc)

        return cls(
            id=str(uuid4()),
            buyer_id=buyer_id,
            items=list(items),
            delivery_type=delivery_type,
            delivery_address=delivery_address,
            friend_delivery=friend_delivery,
            payment_reference=payment_reference,
            subtotal_paise=subtotal,
            packaging_paise=packaging,
            total_paise=subtotal + packaging,
            created_at=now,
            updated_at=now,
            status_history=[
                StatusHistoryEntry(
                    from_status=None,
                    to_status=OrderStatus.PENDING,
                    actor="checkout",
                    reason="Order placed",
                    created_at=now,
                )
            ],
        )

    # -------------------------------------------------------------------------
    # Query Methods
    # -------------------------------------------------------------------------

    @property
    def item_count(self) -> int:
        """Get total number of units."""
        return sum(item.quantity for item in self.items)

    @property
    def contact_phone(self) -> str | None:
        """Phone number the SMS channel sends to."""
        return self.delivery_address.phone or None

    # -------------------------------------------------------------------------
    # State Transitions
    # -------------------------------------------------------------------------

    def apply(self, change: StatusChange) -> None:
        """Apply a status change to this order in place.

        Stores call this only after checking that the order is still in
        ``change.from_status``.

        Args:
            change: The change to apply.

        Raises:
            IllegalTransitionError: If the change is not a legal edge.
        """
        validate_order_transition(self.id, self.status, change.to_status)
        self.status = change.to_status
        self.updated_at = change.occurred_at
        if change.tracking_number is not None:
            self.tracking_number = change.tracking_number
        if change.estimated_delivery is not None:
            self.estimated_delivery = change.estimated_delivery
        self.status_history.append(change.history_entry())


def _resolve_friend_delivery(
    items: list[OrderItem],
    friend_delivery: Recipient | None,
) -> Recipient | None:
    """Work out the order-level alternate recipient."""
    requesting = [item for item in items if item.gift.deliver_to_friend]
    if not requesting:
        if friend_delivery is not None:
            raise ValidationError(
                "friend_delivery given but no item asks for delivery to a friend",
                field="friend_delivery",
            )
        return None
    if friend_delivery is not None:
        return friend_delivery
    for item in requesting:
        if item.gift.recipient is not None:
            return item.gift.recipient
    raise ValidationError(
        "Items ask for delivery to a friend but no recipient details were given",
        field="friend_delivery",
    )


def _check_instant_eligibility(
    items: list[OrderItem],
    delivery_address: Address,
    instant_delivery_cities: Collection[str] | None,
) -> None:
    """Raise unless every line and the delivery city allow instant delivery."""
    ineligible = [item.product_id for item in items if not item.instant_delivery_eligible]
    if ineligible:
        raise ValidationError(
            "Instant delivery is not available for some items",
            field="delivery_type",
            ineligible_products=ineligible,
        )
    if instant_delivery_cities is not None:
        active = {city.strip().lower() for city in instant_delivery_cities}
        if delivery_address.city.strip().lower() not in active:
            raise ValidationError(
                f"Instant delivery is not available in {delivery_address.city}",
                field="delivery_type",
                city=delivery_address.city,
            )
