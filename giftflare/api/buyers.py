"""Buyer API endpoints.

- GET /buyers/{buyer_id}/orders - a buyer's order history
"""

from typing import Annotated

from fastapi import APIRouter, Depends

from giftflare.api.orders import get_service, order_to_response
from giftflare.api.schemas import BuyerOrdersResponse, ErrorResponse
from giftflare.application.order_service import OrderService

router = APIRouter(prefix="/buyers", tags=["Buyers"])


@router.get(
    "/{buyer_id}/orders",
    response_model=BuyerOrdersResponse,
    responses={401: {"model": ErrorResponse}},
    summary="List buyer orders",
    description="Get all orders placed by a buyer, newest first.",
)
async def list_buyer_orders(
    buyer_id: str,
    service: Annotated[OrderService, Depends(get_service)],
) -> BuyerOrdersResponse:
    """List a buyer's orders.

    An unknown buyer simply has no orders.
    """
    orders = await service.list_orders_for_buyer(buyer_id)
    return BuyerOrdersResponse(
        buyer_id=buyer_id,
        items=[order_to_response(order) for order in orders],
        total=len(orders),
    )
