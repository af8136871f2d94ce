"""
Order delivery lifecycle: Preparing -> OnRoute -> Delivered.
Strictly linear, one step at a time, Delivered is terminal.
"""
from enum import Enum


class OrderStatus(str, Enum):
    PREPARING = "Preparing"
    ON_ROUTE = "OnRoute"
    DELIVERED = "Delivered"


LIFECYCLE: tuple[OrderStatus, ...] = (
    OrderStatus.PREPARING,
    OrderStatus.ON_ROUTE,
    OrderStatus.DELIVERED,
)

# Current status -> allowed next status
VALID_TRANSITIONS: dict[OrderStatus, list[OrderStatus]] = {
    OrderStatus.PREPARING: [OrderStatus.ON_ROUTE],
    OrderStatus.ON_ROUTE: [OrderStatus.DELIVERED],
    OrderStatus.DELIVERED: [],  # terminal
}


def is_valid_next(current: OrderStatus, requested: OrderStatus) -> bool:
    """True if requested is the immediate successor of current."""
    allowed = VALID_TRANSITIONS.get(current, [])
    return requested in allowed


def next_status(current: OrderStatus) -> OrderStatus | None:
    allowed = VALID_TRANSITIONS.get(current, [])
    return allowed[0] if allowed else None


def is_terminal(status: OrderStatus) -> bool:
    return not VALID_TRANSITIONS.get(status)


def describe_sequence() -> str:
    return " → ".join(s.value for s in LIFECYCLE)
