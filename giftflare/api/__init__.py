"""API layer module.

Contains FastAPI routers and request/response schemas.
"""

from giftflare.api.buyers import router as buyers_router
from giftflare.api.health import router as health_router
from giftflare.api.orders import router as orders_router

__all__ = [
    "buyers_router",
    "health_router",
    "orders_router",
]
