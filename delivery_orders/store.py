"""
Order store contract. The store is the only writer of order records.
persist() is conditional on the status the caller validated against, so two
requests racing on the same order cannot both commit.
"""
import abc
import asyncio
import uuid
from enum import Enum

from pydantic import ValidationError

from delivery_orders.models import Order
from delivery_orders.order_state import OrderStatus


class CorruptOrderError(ValueError):
    """Raised when a stored record does not parse as a valid Order."""
    def __init__(self, order_id: uuid.UUID, detail: str = ""):
        self.order_id = order_id
        super().__init__(f"Stored order {order_id} is invalid: {detail}")


class DuplicateOrderError(Exception):
    """Raised when creating an order whose id already exists."""


class PersistOutcome(str, Enum):
    COMMITTED = "committed"
    CONFLICT = "conflict"  # stored status no longer equals expected_status
    NOT_FOUND = "not_found"
    FAILED = "failed"


def parse_order(order_id: uuid.UUID, row: dict) -> Order:
    try:
        return Order.model_validate(row)
    except ValidationError as e:
        raise CorruptOrderError(order_id, str(e)) from e


class OrderStore(abc.ABC):
    @abc.abstractmethod
    async def fetch(self, order_id: uuid.UUID) -> Order | None: ...

    @abc.abstractmethod
    async def is_assigned_to(self, order_id: uuid.UUID, agent_id: str) -> bool: ...

    @abc.abstractmethod
    async def persist(self, order: Order, expected_status: OrderStatus) -> PersistOutcome: ...

    @abc.abstractmethod
    async def list_by_agent(self, agent_id: str) -> list[Order]: ...

    @abc.abstractmethod
    async def create(self, order: Order) -> None: ...

    @abc.abstractmethod
    async def assign(self, order_id: uuid.UUID, agent_id: str) -> bool: ...


class InMemoryOrderStore(OrderStore):
    """
    Dict-backed store for tests and ORDER_STORE_BACKEND=memory.
    Rows are kept as plain dicts and parsed on read, like a database row would be.
    `latency` (seconds) is awaited on every read to widen race windows in tests.
    """

    def __init__(self, orders: list[Order] | None = None, latency: float = 0.0):
        self._rows: dict[uuid.UUID, dict] = {}
        self._locks: dict[uuid.UUID, asyncio.Lock] = {}
        self._latency = latency
        for order in orders or []:
            self._insert(order)

    def _insert(self, order: Order) -> None:
        # One lock per stored row; rows are never deleted
        self._rows[order.order_id] = order.model_dump()
        self._locks[order.order_id] = asyncio.Lock()

    async def _pause(self) -> None:
        if self._latency:
            await asyncio.sleep(self._latency)

    async def fetch(self, order_id: uuid.UUID) -> Order | None:
        await self._pause()
        row = self._rows.get(order_id)
        if row is None:
            return None
        return parse_order(order_id, row)

    async def is_assigned_to(self, order_id: uuid.UUID, agent_id: str) -> bool:
        await self._pause()
        row = self._rows.get(order_id)
        return row is not None and row.get("assigned_agent_id") == agent_id

    async def persist(self, order: Order, expected_status: OrderStatus) -> PersistOutcome:
        lock = self._locks.get(order.order_id)
        if lock is None:
            return PersistOutcome.NOT_FOUND
        async with lock:
            await self._pause()
            row = self._rows[order.order_id]
            if row.get("status") != expected_status:
                return PersistOutcome.CONFLICT
            self._rows[order.order_id] = order.model_dump()
            return PersistOutcome.COMMITTED

    async def list_by_agent(self, agent_id: str) -> list[Order]:
        await self._pause()
        orders = [
            parse_order(order_id, row)
            for order_id, row in self._rows.items()
            if row.get("assigned_agent_id") == agent_id
        ]
        return sorted(orders, key=lambda o: o.created_at, reverse=True)

    async def create(self, order: Order) -> None:
        if order.order_id in self._rows:
            raise DuplicateOrderError(str(order.order_id))
        self._insert(order)

    async def assign(self, order_id: uuid.UUID, agent_id: str) -> bool:
        lock = self._locks.get(order_id)
        if lock is None:
            return False
        async with lock:
            self._rows[order_id]["assigned_agent_id"] = agent_id
            return True
