"""Order persistence.

Two stores share one contract: an in-memory store for development and
tests, and an async SQLAlchemy store for production. Both apply status
changes as a compare-and-set on the order's current status and report
a lost race by returning None instead of overwriting.
"""

import asyncio
import copy
from abc import ABC, abstractmethod
from datetime import datetime, timezone

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from giftflare.domain.entities import Order, OrderItem, StatusChange, StatusHistoryEntry
from giftflare.domain.state_machines import OrderStatus
from giftflare.domain.value_objects import Address, DeliveryType, Recipient
from giftflare.infrastructure.database import create_tables
from giftflare.infrastructure.models import (
    OrderItemModel,
    OrderModel,
    OrderStatusHistoryModel,
)

logger = structlog.get_logger()


class OrderStore(ABC):
    """Persistence contract for the Order aggregate."""

    @abstractmethod
    async def insert(self, order: Order) -> Order:
        """Persist a new order and return the stored copy."""

    @abstractmethod
    async def get(self, order_id: str) -> Order | None:
        """Get an order by id, or None if it does not exist."""

    @abstractmethod
    async def list_for_buyer(self, buyer_id: str) -> list[Order]:
        """List a buyer's orders, newest first."""

    @abstractmethod
    async def list_all(
        self,
        page: int = 1,
        page_size: int = 20,
        status: OrderStatus | None = None,
        delivery_type: DeliveryType | None = None,
    ) -> tuple[list[Order], int]:
        """List orders with pagination and filtering, newest first.

        Returns:
            Tuple of (orders on the requested page, total matching).
        """

    @abstractmethod
    async def apply_status_change(self, change: StatusChange) -> Order | None:
        """Apply a status change if the order is still in change.from_status.

        Status, updated_at, tracking number, ETA and the history row are
        written together or not at all.

        Returns:
            The post-update order, or None when no row matched (the order
            is missing or its status moved on).
        """

    async def initialize(self) -> None:
        """Prepare the backing storage."""

    async def close(self) -> None:
        """Release any held resources."""


# ============================================================================
# In-Memory Store
# ============================================================================


class InMemoryOrderStore(OrderStore):
    """In-memory order store.

    Hands out deep copies so callers can never mutate stored state
    outside a status change.
    """

    def __init__(self) -> None:
        self._orders: dict[str, Order] = {}
        self._sequence: dict[str, int] = {}
        self._lock = asyncio.Lock()

    async def insert(self, order: Order) -> Order:
        """Save a new order."""
        async with self._lock:
            self._orders[order.id] = copy.deepcopy(order)
            self._sequence[order.id] = len(self._sequence)
        return copy.deepcopy(order)

    async def get(self, order_id: str) -> Order | None:
        """Get order by ID."""
        order = self._orders.get(order_id)
        return copy.deepcopy(order) if order else None

    async def list_for_buyer(self, buyer_id: str) -> list[Order]:
        """List a buyer's orders, newest first."""
        orders = [o for o in self._orders.values() if o.buyer_id == buyer_id]
        return [copy.deepcopy(o) for o in self._newest_first(orders)]

    async def list_all(
        self,
        page: int = 1,
        page_size: int = 20,
        status: OrderStatus | None = None,
        delivery_type: DeliveryType | None = None,
    ) -> tuple[list[Order], int]:
        """List orders with pagination and filtering."""
        orders = list(self._orders.values())

        # Apply filters
        if status:
            orders = [o for o in orders if o.status == status]
        if delivery_type:
            orders = [o for o in orders if o.delivery_type == delivery_type]

        orders = self._newest_first(orders)

        total = len(orders)
        start = (page - 1) * page_size
        end = start + page_size
        return [copy.deepcopy(o) for o in orders[start:end]], total

    async def apply_status_change(self, change: StatusChange) -> Order | None:
        """Compare-and-set the order status."""
        async with self._lock:
            stored = self._orders.get(change.order_id)
            if stored is None or stored.status != change.from_status:
                return None
            updated = copy.deepcopy(stored)
            updated.apply(change)
            self._orders[change.order_id] = updated
            return copy.deepcopy(updated)

    def _newest_first(self, orders: list[Order]) -> list[Order]:
        return sorted(
            orders,
            key=lambda o: (o.created_at, self._sequence.get(o.id, 0)),
            reverse=True,
        )


# ============================================================================
# SQLAlchemy Store
# ============================================================================


class SqlAlchemyOrderStore(OrderStore):
    """Async SQLAlchemy order store.

    Status changes run as ``UPDATE orders ... WHERE id = :id AND
    status = :expected`` inside a transaction; zero affected rows means
    another writer got there first.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        engine: AsyncEngine | None = None,
    ) -> None:
        """Initialize store.

        Args:
            session_factory: Factory producing async sessions.
            engine: Engine to dispose on close(), if the store owns it.
        """
        self._session_factory = session_factory
        self._engine = engine

    async def insert(self, order: Order) -> Order:
        """Persist a new order with its items and initial history."""
        async with self._session_factory() as session, session.begin():
            session.add(_to_model(order))
        logger.debug("Order row inserted", order_id=order.id)
        return copy.deepcopy(order)

    async def get(self, order_id: str) -> Order | None:
        """Get order by ID."""
        async with self._session_factory() as session:
            return await self._load(session, order_id)

    async def list_for_buyer(self, buyer_id: str) -> list[Order]:
        """List a buyer's orders, newest first."""
        async with self._session_factory() as session:
            result = await session.execute(
                self._select()
                .where(OrderModel.buyer_id == buyer_id)
                .order_by(OrderModel.created_at.desc(), OrderModel.id)
            )
            return [_to_entity(model) for model in result.scalars().all()]

    async def list_all(
        self,
        page: int = 1,
        page_size: int = 20,
        status: OrderStatus | None = None,
        delivery_type: DeliveryType | None = None,
    ) -> tuple[list[Order], int]:
        """List orders with pagination and filtering."""
        conditions = []
        if status:
            conditions.append(OrderModel.status == status.value)
        if delivery_type:
            conditions.append(OrderModel.delivery_type == delivery_type.value)

        async with self._session_factory() as session:
            total = await session.scalar(
                select(func.count()).select_from(OrderModel).where(*conditions)
            )
            result = await session.execute(
                self._select()
                .where(*conditions)
                .order_by(OrderModel.created_at.desc(), OrderModel.id)
                .offset((page - 1) * page_size)
                .limit(page_size)
            )
            orders = [_to_entity(model) for model in result.scalars().all()]
        return orders, total or 0

    async def apply_status_change(self, change: StatusChange) -> Order | None:
        """Conditionally update status and append history in one transaction."""
        values: dict[str, object] = {
            "status": change.to_status.value,
            "updated_at": change.occurred_at,
        }
        if change.tracking_number is not None:
            values["tracking_number"] = change.tracking_number
        if change.estimated_delivery is not None:
            values["estimated_delivery"] = change.estimated_delivery

        async with self._session_factory() as session, session.begin():
            result = await session.execute(
                update(OrderModel)
                .where(
                    OrderModel.id == change.order_id,
                    OrderModel.status == change.from_status.value,
                )
                .values(**values)
            )
            if result.rowcount == 0:
                return None

            sequence = await session.scalar(
                select(func.count())
                .select_from(OrderStatusHistoryModel)
                .where(OrderStatusHistoryModel.order_id == change.order_id)
            )
            entry = change.history_entry()
            session.add(
                OrderStatusHistoryModel(
                    order_id=change.order_id,
                    sequence=sequence or 0,
                    from_status=entry.from_status.value if entry.from_status else None,
                    to_status=entry.to_status.value,
                    reason=entry.reason,
                    actor=entry.actor,
                    metadata_=entry.metadata,
                    created_at=entry.created_at,
                )
            )
            await session.flush()
            return await self._load(session, change.order_id)

    async def initialize(self) -> None:
        """Create tables if they don't exist."""
        if self._engine is not None:
            await create_tables(self._engine)
            logger.info("Order tables ready")

    async def close(self) -> None:
        """Dispose the engine if this store owns it."""
        if self._engine is not None:
            await self._engine.dispose()

    @staticmethod
    def _select():
        return select(OrderModel).options(
            selectinload(OrderModel.items),
            selectinload(OrderModel.status_history),
        )

    async def _load(self, session: AsyncSession, order_id: str) -> Order | None:
        result = await session.execute(
            self._select()
            .where(OrderModel.id == order_id)
            .execution_options(populate_existing=True)
        )
        model = result.scalar_one_or_none()
        return _to_entity(model) if model else None


# ============================================================================
# Converters
# ============================================================================


def _aware(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes (SQLite drops the zone)."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_model(order: Order) -> OrderModel:
    """Convert an Order into ORM rows."""
    return OrderModel(
        id=order.id,
        buyer_id=order.buyer_id,
        status=order.status.value,
        delivery_type=order.delivery_type.value,
        delivery_address=order.delivery_address.to_dict(),
        friend_delivery=order.friend_delivery.to_dict() if order.friend_delivery else None,
        subtotal_paise=order.subtotal_paise,
        packaging_paise=order.packaging_paise,
        total_paise=order.total_paise,
        currency=order.currency,
        tracking_number=order.tracking_number,
        estimated_delivery=order.estimated_delivery,
        payment_reference=order.payment_reference,
        created_at=order.created_at,
        updated_at=order.updated_at,
        items=[
            OrderItemModel(
                position=position,
                product_id=item.product_id,
                seller_id=item.seller_id,
                title=item.title,
                quantity=item.quantity,
                unit_price_paise=item.unit_price_paise,
                instant_delivery_eligible=item.instant_delivery_eligible,
                gift=item.gift.to_dict(),
            )
            for position, item in enumerate(order.items)
        ],
        status_history=[
            OrderStatusHistoryModel(
                sequence=sequence,
                from_status=entry.from_status.value if entry.from_status else None,
                to_status=entry.to_status.value,
                reason=entry.reason,
                actor=entry.actor,
                metadata_=entry.metadata,
                created_at=entry.created_at,
            )
            for sequence, entry in enumerate(order.status_history)
        ],
    )


def _to_entity(model: OrderModel) -> Order:
    """Convert ORM rows back into an Order."""
    return Order(
        id=model.id,
        buyer_id=model.buyer_id,
        status=OrderStatus(model.status),
        delivery_type=DeliveryType(model.delivery_type),
        delivery_address=Address.from_dict(model.delivery_address),
        friend_delivery=(
            Recipient.from_dict(model.friend_delivery) if model.friend_delivery else None
        ),
        subtotal_paise=model.subtotal_paise,
        packaging_paise=model.packaging_paise,
        total_paise=model.total_paise,
        currency=model.currency,
        tracking_number=model.tracking_number,
        estimated_delivery=_aware(model.estimated_delivery),
        payment_reference=model.payment_reference,
        created_at=_aware(model.created_at),
        updated_at=_aware(model.updated_at),
        items=[OrderItem.from_dict(item.to_dict()) for item in model.items],
        status_history=[
            StatusHistoryEntry(
                from_status=OrderStatus(row.from_status) if row.from_status else None,
                to_status=OrderStatus(row.to_status),
                actor=row.actor or "system",
                reason=row.reason,
                metadata=row.metadata_,
                created_at=_aware(row.created_at),
            )
            for row in model.status_history
        ],
    )
