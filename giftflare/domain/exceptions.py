"""Domain exceptions.

All domain-level errors that represent business rule violations.
Validation, lookup, transition and concurrency errors fail the primary
operation; notification and booking errors are side-effect failures that
are logged and reported, never raised to the caller of a transition.
"""

from typing import Any


class DomainError(Exception):
    """Base class for all domain exceptions.

    All domain errors should inherit from this class to allow
    catching domain-specific errors at the application layer.
    """

    error_code = "DOMAIN_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize domain error.

        Args:
            message: Human-readable error message.
            details: Optional dictionary with additional error context.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


# ============================================================================
# Input Errors
# ============================================================================


class ValidationError(DomainError):
    """Raised when input is malformed.

    Empty carts, non-positive prices or quantities, a missing tracking
    number on the ship transition and ineligible instant delivery all
    end up here. Always raised before any write.
    """

    error_code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None, **details: Any) -> None:
        """Initialize validation error.

        Args:
            message: Human-readable error message.
            field: Name of the offending field, if any.
            **details: Additional error context.
        """
        if field is not None:
            details["field"] = field
        super().__init__(message, details=details)
        self.field = field


class NotFoundError(DomainError):
    """Raised when a referenced entity does not exist."""

    error_code = "NOT_FOUND"


class OrderNotFoundError(NotFoundError):
    """Raised when an order id does not resolve to a stored order."""

    error_code = "ORDER_NOT_FOUND"

    def __init__(self, order_id: str) -> None:
        """Initialize order not found error.

        Args:
            order_id: The missing order id.
        """
        super().__init__(f"Order not found: {order_id}", details={"order_id": order_id})
        self.order_id = order_id


# ============================================================================
# State Machine Errors
# ============================================================================


class IllegalTransitionError(DomainError):
    """Raised when an invalid state transition is attempted.

    This error indicates that the requested status is not reachable
    from the current status of the entity.
    """

    error_code = "ILLEGAL_TRANSITION"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        current_state: str,
        target_state: str,
        allowed_transitions: list[str] | None = None,
    ) -> None:
        """Initialize illegal transition error.

        Args:
            entity_type: Type of entity (e.g., "Order").
            entity_id: ID of the entity.
            current_state: Current state of the entity.
            target_state: Attempted target state.
            allowed_transitions: List of allowed target states from current state.
        """
        allowed = allowed_transitions or []
        message = (
            f"Cannot transition {entity_type}({entity_id}) "
            f"from '{current_state}' to '{target_state}'. "
            f"Allowed transitions: {allowed}"
        )
        super().__init__(
            message,
            details={
                "entity_type": entity_type,
                "entity_id": entity_id,
                "current_state": current_state,
                "target_state": target_state,
                "allowed_transitions": allowed,
            },
        )
        self.current_state = current_state
        self.target_state = target_state


class ConflictError(DomainError):
    """Raised when a concurrent update won the race for an order.

    The caller should re-read the order and retry the transition;
    the service never retries on its own.
    """

    error_code = "CONFLICT"

    def __init__(
        self,
        order_id: str,
        expected_state: str,
        actual_state: str,
        message: str | None = None,
    ) -> None:
        """Initialize conflict error.

        Args:
            order_id: ID of the contended order.
            expected_state: Status the update was conditioned on.
            actual_state: Status found after the update failed.
            message: Optional override for the default message.
        """
        super().__init__(
            message
            or (
                f"Order {order_id} changed concurrently: expected '{expected_state}', "
                f"found '{actual_state}'"
            ),
            details={
                "order_id": order_id,
                "expected_state": expected_state,
                "actual_state": actual_state,
            },
        )


# ============================================================================
# Side-Effect Errors
# ============================================================================


class NotificationChannelError(DomainError):
    """Raised by a channel client when a single send fails.

    Internal only: the dispatcher catches it, logs it and records the
    failure in its report.
    """

    error_code = "NOTIFICATION_CHANNEL_ERROR"

    def __init__(self, channel: str, message: str, status_code: int | None = None) -> None:
        """Initialize channel error.

        Args:
            channel: Channel name ("email" or "sms").
            message: What went wrong.
            status_code: Provider HTTP status, when there was a response.
        """
        super().__init__(
            f"[{channel}] {message}",
            details={"channel": channel, "status_code": status_code},
        )
        self.channel = channel
        self.status_code = status_code


class BookingFailedError(DomainError):
    """Raised by a courier client when a booking cannot be made."""

    error_code = "BOOKING_FAILED"

    def __init__(self, order_id: str, message: str, status_code: int | None = None) -> None:
        """Initialize booking failure.

        Args:
            order_id: Order the booking was for.
            message: What went wrong.
            status_code: Courier HTTP status, when there was a response.
        """
        super().__init__(
            f"Courier booking failed for order {order_id}: {message}",
            details={"order_id": order_id, "status_code": status_code},
        )
        self.order_id = order_id
        self.status_code = status_code
