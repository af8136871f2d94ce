"""
Order status update workflow for delivery agents.

update_status() runs, short-circuiting on the first failure:
  authorization -> transition validation -> re-fetch -> mutate -> conditional persist -> audit ping
Every outcome comes back as an UpdateResult; faults never reach the caller.
The persist is conditional on the status seen during validation, so a request
that lost a race with another update fails with a conflict instead of
overwriting it. The optional timeout only covers the steps before the commit.
"""
import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Callable

from delivery_orders.audit import LocationAuditSink, NoopLocationSink
from delivery_orders.metrics import order_status_updates_total, order_transitions_rejected_total
from delivery_orders.models import (
    ErrorKind,
    LocationPing,
    Order,
    TransitionRequest,
    UpdateResult,
    ValidationVerdict,
)
from delivery_orders.order_state import OrderStatus
from delivery_orders.store import OrderStore, PersistOutcome
from delivery_orders.validator import TransitionValidator

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class OrderStatusService:
    def __init__(
        self,
        store: OrderStore,
        validator: TransitionValidator | None = None,
        clock: Clock = utc_now,
        audit_sink: LocationAuditSink | None = None,
    ):
        self._store = store
        self._validator = validator or TransitionValidator(store)
        self._clock = clock
        self._audit_sink = audit_sink or NoopLocationSink()

    async def update_status(self, request: TransitionRequest, timeout: float | None = None) -> UpdateResult:
        """
        `timeout` bounds the steps before the commit only. Once persist() has
        been called the update runs to completion, so a committed transition is
        always reported as a success.
        """
        try:
            result = await self._update_status(request, timeout)
        except Exception as e:
            logger.exception("Status update for order %s failed unexpectedly", request.order_id)
            result = self._failure(request.order_id, f"An error occurred: {e}", ErrorKind.UNEXPECTED_FAILURE)
        order_status_updates_total.labels(outcome=result.error.value if result.error else "success").inc()
        return result

    async def _update_status(self, request: TransitionRequest, timeout: float | None) -> UpdateResult:
        try:
            prepared = await asyncio.wait_for(self._prepare(request), timeout)
        except asyncio.TimeoutError:
            logger.warning("Status update for order %s timed out before commit", request.order_id)
            return self._failure(
                request.order_id,
                "Status update timed out before it completed",
                ErrorKind.TIMEOUT,
            )
        if isinstance(prepared, UpdateResult):
            return prepared
        updated, expected_status = prepared
        return await self._commit(request, updated, expected_status)

    async def _prepare(self, request: TransitionRequest) -> UpdateResult | tuple[Order, OrderStatus]:
        """Authorization, validation and re-fetch. Returns a failure, or the order to write and the status it must still have."""
        order_id = request.order_id

        if not await self._store.is_assigned_to(order_id, request.agent_id):
            logger.warning("Agent %s is not assigned to order %s", request.agent_id, order_id)
            return self._failure(
                order_id,
                "Delivery man is not authorized to update this order",
                ErrorKind.UNAUTHORIZED,
            )

        verdict = await self._validator.validate(order_id, request.new_status)
        if not verdict.is_valid:
            if verdict.error == ErrorKind.INVALID_TRANSITION:
                order_transitions_rejected_total.labels(
                    current_status=verdict.current_status.value,
                    requested_status=request.new_status.value,
                ).inc()
            logger.warning("Rejected update of order %s: %s", order_id, verdict.reason)
            return self._failure(order_id, verdict.reason, verdict.error, current_status=verdict.current_status)

        order = await self._store.fetch(order_id)
        if order is None:
            return self._failure(order_id, "Order not found", ErrorKind.NOT_FOUND)
        if order.status != verdict.current_status:
            return self._conflict(order_id, verdict.current_status)

        now = self._clock()
        updated = Order.model_validate({
            **order.model_dump(),
            "status": request.new_status,
            "delivered_at": now if request.new_status == OrderStatus.DELIVERED else order.delivered_at,
        })
        return updated, verdict.current_status

    async def _commit(self, request: TransitionRequest, updated: Order, expected_status: OrderStatus) -> UpdateResult:
        order_id = request.order_id
        outcome = await self._store.persist(updated, expected_status=expected_status)
        if outcome == PersistOutcome.CONFLICT:
            return self._conflict(order_id, expected_status)
        if outcome == PersistOutcome.NOT_FOUND:
            return self._failure(order_id, "Order not found", ErrorKind.NOT_FOUND)
        if outcome != PersistOutcome.COMMITTED:
            return self._failure(order_id, "Failed to update order status", ErrorKind.PERSISTENCE_FAILURE)

        logger.info(
            "Order %s moved %s -> %s by agent %s",
            order_id, expected_status.value, request.new_status.value, request.agent_id,
        )
        if request.has_location:
            await self._record_location(request, self._clock())

        return UpdateResult(
            success=True,
            message=f"Order status successfully updated to {request.new_status.value}",
            order_id=order_id,
            current_status=request.new_status,
            updated_at=self._clock(),
        )

    async def _record_location(self, request: TransitionRequest, recorded_at: datetime) -> None:
        # The transition is already committed; a failed ping must not turn it into a failure.
        ping = LocationPing(
            order_id=request.order_id,
            agent_id=request.agent_id,
            latitude=request.latitude,
            longitude=request.longitude,
            recorded_at=recorded_at,
        )
        try:
            await self._audit_sink.record(ping)
        except Exception:
            logger.exception("Failed to record location ping for order %s", request.order_id)

    async def validate_transition(self, order_id: uuid.UUID, new_status: OrderStatus) -> ValidationVerdict:
        return await self._validator.validate(order_id, new_status)

    async def is_agent_authorized(self, order_id: uuid.UUID, agent_id: str) -> bool:
        return await self._store.is_assigned_to(order_id, agent_id)

    async def list_agent_orders(self, agent_id: str) -> list[Order]:
        return await self._store.list_by_agent(agent_id)

    def _conflict(self, order_id: uuid.UUID, expected: OrderStatus) -> UpdateResult:
        return self._failure(
            order_id,
            f"Order status changed from {expected.value} while updating; retry the request",
            ErrorKind.CONFLICT,
        )

    def _failure(
        self,
        order_id: uuid.UUID,
        message: str,
        error: ErrorKind,
        current_status: OrderStatus | None = None,
    ) -> UpdateResult:
        return UpdateResult(
            success=False,
            message=message,
            order_id=order_id,
            current_status=current_status,
            updated_at=self._clock(),
            error=error,
        )
