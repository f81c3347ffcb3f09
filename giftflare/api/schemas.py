"""API schemas for the Giftflare orders service.

Pydantic models for request/response validation and serialization.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


# ============================================================================
# Common Schemas
# ============================================================================


class Currency(str, Enum):
    """Supported currencies."""

    INR = "INR"


class PriceSchema(BaseModel):
    """Price representation."""

    amount: int = Field(..., description="Amount in smallest currency unit (paise)")
    currency: Currency = Field(default=Currency.INR, description="Currency code")


class ErrorDetail(BaseModel):
    """Detailed error information."""

    field: str | None = Field(default=None, description="Field that caused the error")
    message: str = Field(..., description="Error message")


class ErrorResponse(BaseModel):
    """Standard error response.

    All API errors follow this format for consistency.
    """

    error_code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")
    details: list[ErrorDetail] | dict[str, Any] = Field(
        default_factory=list, description="Additional error details"
    )
    request_id: str | None = Field(
        default=None, description="Request ID for correlation"
    )


class PaginatedResponse(BaseModel):
    """Base paginated response."""

    total: int = Field(..., description="Total number of items")
    page: int = Field(..., description="Current page number")
    page_size: int = Field(..., description="Items per page")
    has_more: bool = Field(..., description="Whether there are more pages")


# ============================================================================
# Order Schemas
# ============================================================================


class OrderStatusEnum(str, Enum):
    """Order lifecycle status."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class DeliveryTypeEnum(str, Enum):
    """How the order is fulfilled."""

    STANDARD = "standard"
    INSTANT = "instant"


class AddressSchema(BaseModel):
    """Postal address with contact phone."""

    name: str | None = Field(default=None, description="Addressee name")
    line1: str = Field(..., description="Address line 1")
    line2: str | None = Field(default=None, description="Address line 2")
    city: str = Field(..., description="City")
    state: str | None = Field(default=None, description="State")
    postal_code: str = Field(..., description="PIN code")
    country: str = Field(default="IN", description="Country code (ISO 3166-1 alpha-2)")
    phone: str | None = Field(default=None, description="Contact phone; SMS goes here")


class RecipientSchema(BaseModel):
    """Friend receiving a gift."""

    name: str = Field(..., description="Recipient name")
    address: AddressSchema = Field(..., description="Recipient address")
    phone: str | None = Field(default=None, description="Recipient phone")
    email: str | None = Field(default=None, description="Recipient email")


class GiftOptionsSchema(BaseModel):
    """Per-line gift options."""

    gift_wrap: bool = Field(default=False, description="Gift-wrap this line")
    note: str | None = Field(default=None, description="Personal note")
    deliver_to_friend: bool = Field(default=False, description="Ship this line to a friend")
    recipient: RecipientSchema | None = Field(
        default=None, description="Friend details when deliver_to_friend is set"
    )


class OrderItemRequest(BaseModel):
    """Cart line submitted at checkout."""

    product_id: str = Field(..., description="Product ID")
    seller_id: str = Field(..., description="Seller ID")
    title: str = Field(..., description="Product title")
    quantity: int = Field(..., ge=1, description="Quantity ordered")
    unit_price_paise: int = Field(..., gt=0, description="Unit price in paise")
    instant_delivery_eligible: bool = Field(
        default=False, description="Whether the product can be delivered instantly"
    )
    gift: GiftOptionsSchema = Field(
        default_factory=GiftOptionsSchema, description="Gift options"
    )


class OrderCreateRequest(BaseModel):
    """Request to create an order from a checked-out cart."""

    buyer_id: str = Field(..., min_length=1, description="Purchasing account")
    items: list[OrderItemRequest] = Field(..., description="Cart lines")
    delivery_type: DeliveryTypeEnum = Field(
        default=DeliveryTypeEnum.STANDARD, description="Standard or instant delivery"
    )
    delivery_address: AddressSchema = Field(..., description="Shipping address")
    friend_delivery: RecipientSchema | None = Field(
        default=None, description="Alternate recipient for friend-delivery lines"
    )
    payment_reference: str | None = Field(
        default=None, description="External payment-capture id"
    )


class OrderItemSchema(BaseModel):
    """Item in an order."""

    product_id: str = Field(..., description="Product ID")
    seller_id: str = Field(..., description="Seller ID")
    title: str = Field(..., description="Product title")
    quantity: int = Field(..., ge=1, description="Quantity ordered")
    unit_price: PriceSchema = Field(..., description="Unit price at time of order")
    line_total: PriceSchema = Field(..., description="Line total")
    instant_delivery_eligible: bool = Field(..., description="Instant delivery flag")
    gift: GiftOptionsSchema = Field(..., description="Gift options")


class OrderStatusHistorySchema(BaseModel):
    """Status history entry for audit trail."""

    from_status: str | None = Field(default=None, description="Previous status")
    to_status: str = Field(..., description="New status")
    reason: str | None = Field(default=None, description="Reason for transition")
    actor: str | None = Field(default=None, description="Who initiated transition")
    metadata: dict[str, Any] | None = Field(default=None, description="Additional data")
    created_at: datetime = Field(..., description="When transition occurred")


class OrderResponse(BaseModel):
    """Order details response."""

    id: str = Field(..., description="Order ID")
    buyer_id: str = Field(..., description="Purchasing account")
    status: OrderStatusEnum = Field(..., description="Current order status")
    delivery_type: DeliveryTypeEnum = Field(..., description="Delivery type")
    delivery_address: AddressSchema = Field(..., description="Shipping address")
    friend_delivery: RecipientSchema | None = Field(
        default=None, description="Alternate recipient"
    )
    items: list[OrderItemSchema] = Field(..., description="Order items")
    subtotal: PriceSchema = Field(..., description="Subtotal")
    packaging: PriceSchema = Field(..., description="Gift-wrap surcharges")
    total: PriceSchema = Field(..., description="Order total")
    tracking_number: str | None = Field(
        default=None, description="Courier tracking number"
    )
    estimated_delivery: datetime | None = Field(
        default=None, description="Courier ETA"
    )
    payment_reference: str | None = Field(
        default=None, description="External payment-capture id"
    )
    status_history: list[OrderStatusHistorySchema] = Field(
        default_factory=list, description="Status change history"
    )
    created_at: datetime = Field(..., description="When order was created")
    updated_at: datetime = Field(..., description="When order status last changed")


class OrderSummarySchema(BaseModel):
    """Order summary for listings."""

    id: str = Field(..., description="Order ID")
    buyer_id: str = Field(..., description="Purchasing account")
    status: OrderStatusEnum = Field(..., description="Current status")
    delivery_type: DeliveryTypeEnum = Field(..., description="Delivery type")
    total: PriceSchema = Field(..., description="Order total")
    item_count: int = Field(..., description="Number of units")
    tracking_number: str | None = Field(default=None, description="Tracking number")
    created_at: datetime = Field(..., description="When created")


class OrdersListResponse(PaginatedResponse):
    """Paginated list of orders."""

    items: list[OrderSummarySchema] = Field(..., description="List of orders")


class BuyerOrdersResponse(BaseModel):
    """All orders of one buyer, newest first."""

    buyer_id: str = Field(..., description="Purchasing account")
    items: list[OrderResponse] = Field(..., description="Orders")
    total: int = Field(..., description="Number of orders")


# ============================================================================
# Transition Schemas
# ============================================================================


class TransitionRequest(BaseModel):
    """Request to move an order to a new status."""

    target_status: OrderStatusEnum = Field(..., description="Status to move to")
    tracking_number: str | None = Field(
        default=None, description="Tracking number (required when shipping)"
    )
    actor: str = Field(default="admin", description="Who initiated the transition")
    reason: str | None = Field(default=None, description="Reason for the audit trail")


class ChannelOutcomeSchema(BaseModel):
    """Outcome of one notification channel."""

    channel: str = Field(..., description="email or sms")
    status: str = Field(..., description="sent, failed or skipped")
    template_id: str | None = Field(default=None, description="Provider template")
    recipient: str | None = Field(default=None, description="Address or phone")
    attempts: int = Field(default=0, description="Send attempts made")
    error: str | None = Field(default=None, description="Last error, if failed")


class NotificationReportSchema(BaseModel):
    """Notification outcome for a transition."""

    kind: str = Field(..., description="Lifecycle moment announced")
    degraded: bool = Field(..., description="Whether any channel failed")
    outcomes: list[ChannelOutcomeSchema] = Field(
        default_factory=list, description="Per-channel outcomes"
    )


class TransitionResponse(BaseModel):
    """Result of a transition."""

    order: OrderResponse = Field(..., description="Order after the transition")
    changed: bool = Field(..., description="False when the order was already in the target status")
    notifications: NotificationReportSchema | None = Field(
        default=None, description="Notification outcome; absent on replay"
    )


class BookingResponse(BaseModel):
    """Result of a successful courier booking."""

    order_id: str = Field(..., description="Order ID")
    success: bool = Field(..., description="Whether the courier accepted the booking")
    tracking_id: str | None = Field(default=None, description="Courier tracking id")
    estimated_delivery: datetime | None = Field(default=None, description="Courier ETA")
    order: OrderResponse | None = Field(default=None, description="Order after shipping")
    notifications: NotificationReportSchema | None = Field(
        default=None, description="Shipping notification outcome"
    )
