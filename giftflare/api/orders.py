"""Order API endpoints.

Provides endpoints for order lifecycle management:
- POST /orders - create an order from a checked-out cart
- GET /orders - list orders (paginated, admin)
- GET /orders/{id} - order details and status
- POST /orders/{id}/transition - move an order to a new status
- POST /orders/{id}/book-delivery - book a courier and ship
"""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from giftflare.api.schemas import (
    AddressSchema,
    BookingResponse,
    DeliveryTypeEnum,
    ErrorResponse,
    GiftOptionsSchema,
    NotificationReportSchema,
    OrderCreateRequest,
    OrderItemSchema,
    OrderResponse,
    OrdersListResponse,
    OrderStatusEnum,
    OrderStatusHistorySchema,
    OrderSummarySchema,
    PriceSchema,
    RecipientSchema,
    TransitionRequest,
    TransitionResponse,
)
from giftflare.application.delivery_service import DeliveryBookingService
from giftflare.application.notification_service import DispatchReport
from giftflare.application.order_service import OrderService
from giftflare.domain.entities import Order, OrderItem
from giftflare.domain.state_machines import OrderStatus
from giftflare.domain.value_objects import (
    Address,
    DeliveryType,
    GiftOptions,
    Recipient,
)

router = APIRouter(prefix="/orders", tags=["Orders"])


# ============================================================================
# Dependencies
# ============================================================================


def get_service(request: Request) -> OrderService:
    """Get the application's order service."""
    return request.app.state.order_service


def get_delivery_service(request: Request) -> DeliveryBookingService:
    """Get the application's delivery booking service."""
    return request.app.state.delivery_service


# ============================================================================
# Converters
# ============================================================================


def address_from_schema(schema: AddressSchema) -> Address:
    """Convert AddressSchema to Address."""
    return Address(
        line1=schema.line1,
        city=schema.city,
        postal_code=schema.postal_code,
        country=schema.country,
        name=schema.name,
        line2=schema.line2,
        state=schema.state,
        phone=schema.phone,
    )


def recipient_from_schema(schema: RecipientSchema | None) -> Recipient | None:
    """Convert RecipientSchema to Recipient."""
    if schema is None:
        return None
    return Recipient(
        name=schema.name,
        address=address_from_schema(schema.address),
        phone=schema.phone,
        email=schema.email,
    )


def items_from_request(request: OrderCreateRequest) -> list[OrderItem]:
    """Convert request lines to OrderItem snapshots."""
    return [
        OrderItem(
            product_id=line.product_id,
            seller_id=line.seller_id,
            title=line.title,
            quantity=line.quantity,
            unit_price_paise=line.unit_price_paise,
            instant_delivery_eligible=line.instant_delivery_eligible,
            gift=GiftOptions(
                gift_wrap=line.gift.gift_wrap,
                note=line.gift.note,
                deliver_to_friend=line.gift.deliver_to_friend,
                recipient=recipient_from_schema(line.gift.recipient),
            ),
        )
        for line in request.items
    ]


def order_to_response(order: Order) -> OrderResponse:
    """Convert Order to OrderResponse."""
    items = [
        OrderItemSchema(
            product_id=item.product_id,
            seller_id=item.seller_id,
            title=item.title,
            quantity=item.quantity,
            unit_price=PriceSchema(amount=item.unit_price_paise),
            line_total=PriceSchema(amount=item.line_total_paise),
            instant_delivery_eligible=item.instant_delivery_eligible,
            gift=GiftOptionsSchema.model_validate(item.gift.to_dict()),
        )
        for item in order.items
    ]

    status_history = [
        OrderStatusHistorySchema(
            from_status=entry.from_status.value if entry.from_status else None,
            to_status=entry.to_status.value,
            reason=entry.reason,
            actor=entry.actor,
            metadata=entry.metadata,
            created_at=entry.created_at,
        )
        for entry in order.status_history
    ]

    return OrderResponse(
        id=order.id,
        buyer_id=order.buyer_id,
        status=OrderStatusEnum(order.status.value),
        delivery_type=DeliveryTypeEnum(order.delivery_type.value),
        delivery_address=AddressSchema.model_validate(order.delivery_address.to_dict()),
        friend_delivery=(
            RecipientSchema.model_validate(order.friend_delivery.to_dict())
            if order.friend_delivery
            else None
        ),
        items=items,
        subtotal=PriceSchema(amount=order.subtotal_paise),
        packaging=PriceSchema(amount=order.packaging_paise),
        total=PriceSchema(amount=order.total_paise),
        tracking_number=order.tracking_number,
        estimated_delivery=order.estimated_delivery,
        payment_reference=order.payment_reference,
        status_history=status_history,
        created_at=order.created_at,
        updated_at=order.updated_at,
    )


def order_to_summary(order: Order) -> OrderSummarySchema:
    """Convert Order to OrderSummarySchema."""
    return OrderSummarySchema(
        id=order.id,
        buyer_id=order.buyer_id,
        status=OrderStatusEnum(order.status.value),
        delivery_type=DeliveryTypeEnum(order.delivery_type.value),
        total=PriceSchema(amount=order.total_paise),
        item_count=order.item_count,
        tracking_number=order.tracking_number,
        created_at=order.created_at,
    )


def report_to_schema(report: DispatchReport | None) -> NotificationReportSchema | None:
    """Convert DispatchReport to NotificationReportSchema."""
    if report is None:
        return None
    return NotificationReportSchema.model_validate(report.to_dict())


# ============================================================================
# Endpoints
# ============================================================================


@router.post(
    "",
    response_model=OrderResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        401: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
    },
    summary="Create order",
    description="Create a pending order from a checked-out cart.",
)
async def create_order(
    request: OrderCreateRequest,
    service: Annotated[OrderService, Depends(get_service)],
) -> OrderResponse:
    """Create an order.

    Totals are computed server-side from the submitted lines; the
    order confirmation goes out before the response is returned.

    Args:
        request: Cart contents and delivery details.
        service: Order service.

    Returns:
        The created order.
    """
    order = await service.create_order(
        buyer_id=request.buyer_id,
        items=items_from_request(request),
        delivery_type=DeliveryType(request.delivery_type.value),
        delivery_address=address_from_schema(request.delivery_address),
        friend_delivery=recipient_from_schema(request.friend_delivery),
        payment_reference=request.payment_reference,
    )
    return order_to_response(order)


@router.get(
    "",
    response_model=OrdersListResponse,
    responses={401: {"model": ErrorResponse}},
    summary="List orders",
    description="Get a paginated list of orders with optional filtering.",
)
async def list_orders(
    service: Annotated[OrderService, Depends(get_service)],
    page: int = Query(default=1, ge=1, description="Page number"),
    page_size: int = Query(default=20, ge=1, le=100, description="Items per page"),
    status: OrderStatusEnum | None = Query(default=None, description="Filter by status"),
    delivery_type: DeliveryTypeEnum | None = Query(
        default=None, description="Filter by delivery type"
    ),
) -> OrdersListResponse:
    """List orders with pagination and filtering.

    Args:
        service: Order service.
        page: Page number (1-based).
        page_size: Items per page.
        status: Filter by order status.
        delivery_type: Filter by delivery type.

    Returns:
        Paginated list of orders.
    """
    result = await service.list_orders(
        page=page,
        page_size=page_size,
        status=OrderStatus(status.value) if status else None,
        delivery_type=DeliveryType(delivery_type.value) if delivery_type else None,
    )

    return OrdersListResponse(
        items=[order_to_summary(order) for order in result.orders],
        total=result.total,
        page=result.page,
        page_size=result.page_size,
        has_more=(result.page * result.page_size) < result.total,
    )


@router.get(
    "/{order_id}",
    response_model=OrderResponse,
    responses={
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
    summary="Get order details",
    description="Get detailed information about a specific order.",
)
async def get_order(
    order_id: str,
    service: Annotated[OrderService, Depends(get_service)],
) -> OrderResponse:
    """Get an order by ID.

    Returns full order details including items, addresses,
    tracking info, and status history.
    """
    order = await service.get_order(order_id)
    return order_to_response(order)


@router.post(
    "/{order_id}/transition",
    response_model=TransitionResponse,
    responses={
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
    },
    summary="Transition order",
    description="Move an order to a new status. Shipping requires a tracking number; "
    "repeating the current status is a no-op.",
)
async def transition_order(
    order_id: str,
    request: TransitionRequest,
    service: Annotated[OrderService, Depends(get_service)],
) -> TransitionResponse:
    """Transition an order.

    Args:
        order_id: Order identifier.
        request: Target status and tracking details.
        service: Order service.

    Returns:
        Order after the transition, with the notification outcome.
    """
    result = await service.transition(
        order_id,
        OrderStatus(request.target_status.value),
        tracking_number=request.tracking_number,
        actor=request.actor,
        reason=request.reason,
    )
    return TransitionResponse(
        order=order_to_response(result.order),
        changed=result.changed,
        notifications=report_to_schema(result.notifications),
    )


@router.post(
    "/{order_id}/book-delivery",
    response_model=BookingResponse,
    responses={
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
    summary="Book delivery",
    description="Book a courier for a confirmed order and mark it shipped.",
)
async def book_delivery(
    order_id: str,
    service: Annotated[DeliveryBookingService, Depends(get_delivery_service)],
) -> BookingResponse:
    """Book a courier for an order.

    Args:
        order_id: Order identifier.
        service: Delivery booking service.

    Returns:
        Booking details and the shipped order.

    Raises:
        HTTPException: 502 if the courier booking failed; the order
            stays confirmed.
    """
    result = await service.book_delivery(order_id)

    if not result.success:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={
                "error_code": result.error_code or "BOOKING_FAILED",
                "message": result.error or "Courier booking failed",
                "details": {"order_id": order_id},
            },
        )

    transition = result.transition
    return BookingResponse(
        order_id=order_id,
        success=True,
        tracking_id=result.tracking_id,
        estimated_delivery=result.estimated_delivery,
        order=order_to_response(transition.order) if transition else None,
        notifications=report_to_schema(transition.notifications) if transition else None,
    )
