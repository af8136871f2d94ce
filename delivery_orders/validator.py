import logging
import uuid

from delivery_orders.models import ErrorKind, ValidationVerdict
from delivery_orders.order_state import OrderStatus, describe_sequence, is_valid_next
from delivery_orders.store import CorruptOrderError, OrderStore

logger = logging.getLogger(__name__)


class TransitionValidator:
    """Read-only check of a requested transition against the stored order. Safe to call as a dry run."""

    def __init__(self, store: OrderStore):
        self._store = store

    async def validate(self, order_id: uuid.UUID, new_status: OrderStatus) -> ValidationVerdict:
        try:
            order = await self._store.fetch(order_id)
        except CorruptOrderError:
            logger.error("Order %s has an unreadable status in storage", order_id)
            return ValidationVerdict(
                is_valid=False,
                reason="Invalid current order status",
                requested_status=new_status,
                error=ErrorKind.CORRUPT_STATE,
            )

        if order is None:
            return ValidationVerdict(
                is_valid=False,
                reason="Order not found",
                requested_status=new_status,
                error=ErrorKind.NOT_FOUND,
            )

        if not is_valid_next(order.status, new_status):
            return ValidationVerdict(
                is_valid=False,
                reason=(
                    f"Cannot transition from {order.status.value} to {new_status.value}. "
                    f"Status must follow the sequence: {describe_sequence()}"
                ),
                current_status=order.status,
                requested_status=new_status,
                error=ErrorKind.INVALID_TRANSITION,
            )

        return ValidationVerdict(
            is_valid=True,
            current_status=order.status,
            requested_status=new_status,
        )
