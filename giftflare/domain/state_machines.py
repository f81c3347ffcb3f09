"""Order status graph.

pending -> confirmed -> shipped -> delivered, with cancelled reachable
from every non-terminal status. Self loops are not edges: repeating the
current status is handled as a replay by the order service, never here.
"""

from enum import Enum

from giftflare.domain.exceptions import IllegalTransitionError


class OrderStatus(str, Enum):
    """Where an order is in its lifecycle."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

    def can_transition_to(self, target: "OrderStatus") -> bool:
        """Whether ``self -> target`` is an edge of the graph."""
        return target in _EDGES[self]

    def allowed_transitions(self) -> list["OrderStatus"]:
        """Targets reachable in one step, in lifecycle order."""
        return [status for status in OrderStatus if status in _EDGES[self]]

    def is_cancellable(self) -> bool:
        return OrderStatus.CANCELLED in _EDGES[self]

    def is_terminal(self) -> bool:
        return not _EDGES[self]

    def requires_tracking_number(self) -> bool:
        """Entering SHIPPED needs a courier tracking number."""
        return self is OrderStatus.SHIPPED


_EDGES: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}


def validate_order_transition(
    order_id: str,
    current_status: OrderStatus,
    target_status: OrderStatus,
) -> None:
    """Raise unless ``current_status -> target_status`` is an edge.

    Args:
        order_id: Order identifier, for the error details.
        current_status: Status the order is in.
        target_status: Requested status.

    Raises:
        IllegalTransitionError: For any pair outside the graph.
    """
    if current_status.can_transition_to(target_status):
        return
    raise IllegalTransitionError(
        entity_type="Order",
        entity_id=order_id,
        current_state=current_status.value,
        target_state=target_status.value,
        allowed_transitions=[s.value for s in current_status.allowed_transitions()],
    )
