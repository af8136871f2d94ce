"""
Async Postgres order store.
Status is a closed text set enforced by a CHECK constraint, so a stored value
always round-trips to OrderStatus. persist() locks the order row, compares the
stored status with the one the caller validated against, then updates status
and delivered_at together in the same transaction.
"""
import logging
import uuid

import asyncpg
from asyncpg.exceptions import UniqueViolationError

from delivery_orders.config import settings
from delivery_orders.models import Order
from delivery_orders.order_state import LIFECYCLE, OrderStatus
from delivery_orders.store import DuplicateOrderError, OrderStore, PersistOutcome, parse_order

logger = logging.getLogger(__name__)

_pool: asyncpg.Pool | None = None

ORDER_COLUMNS = "order_id, status, assigned_agent_id, delivered_at, created_at"


class StaleStatusError(Exception):
    """Raised inside the persist transaction when the stored status moved. Transaction rolls back."""
    def __init__(self, current_status: str | None = None):
        self.current_status = current_status
        super().__init__(current_status)


async def get_pool() -> asyncpg.Pool:
    global _pool
    if _pool is None:
        _pool = await asyncpg.create_pool(
            settings.database_url,
            min_size=settings.db_pool_min_size,
            max_size=settings.db_pool_max_size,
            command_timeout=settings.db_command_timeout,
        )
    return _pool


async def close_pool() -> None:
    global _pool
    if _pool is not None:
        await _pool.close()
        _pool = None


async def init_schema(pool: asyncpg.Pool) -> None:
    allowed = ", ".join(f"'{s.value}'" for s in LIFECYCLE)
    async with pool.acquire() as conn:
        await conn.execute(f"""
            CREATE TABLE IF NOT EXISTS orders (
                order_id UUID PRIMARY KEY,
                status VARCHAR(20) NOT NULL DEFAULT '{OrderStatus.PREPARING.value}'
                    CHECK (status IN ({allowed})),
                assigned_agent_id VARCHAR(255),
                delivered_at TIMESTAMPTZ,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                CONSTRAINT orders_delivered_at_matches_status
                    CHECK ((status = '{OrderStatus.DELIVERED.value}') = (delivered_at IS NOT NULL))
            );
        """)
        await conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_orders_assigned_agent
            ON orders(assigned_agent_id, created_at DESC);
        """)


def _to_order(row: asyncpg.Record) -> Order:
    return parse_order(row["order_id"], dict(row))


class PostgresOrderStore(OrderStore):
    def __init__(self, pool: asyncpg.Pool):
        self._pool = pool

    async def fetch(self, order_id: uuid.UUID) -> Order | None:
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {ORDER_COLUMNS} FROM orders WHERE order_id = $1;",
                order_id,
            )
        return _to_order(row) if row is not None else None

    async def is_assigned_to(self, order_id: uuid.UUID, agent_id: str) -> bool:
        async with self._pool.acquire() as conn:
            found = await conn.fetchval(
                "SELECT 1 FROM orders WHERE order_id = $1 AND assigned_agent_id = $2;",
                order_id,
                agent_id,
            )
        return found is not None

    async def persist(self, order: Order, expected_status: OrderStatus) -> PersistOutcome:
        """
        Single transaction:
        - SELECT status FOR UPDATE (serializes writers on this order).
        - Missing row -> not_found; status != expected_status -> conflict (rolled back).
        - UPDATE status and delivered_at together.
        """
        async with self._pool.acquire() as conn:
            try:
                async with conn.transaction():
                    row = await conn.fetchrow(
                        "SELECT status FROM orders WHERE order_id = $1 FOR UPDATE;",
                        order.order_id,
                    )
                    if row is None:
                        return PersistOutcome.NOT_FOUND
                    if row["status"] != expected_status.value:
                        raise StaleStatusError(current_status=row["status"])
                    await conn.execute(
                        """
                        UPDATE orders SET status = $1, delivered_at = $2, updated_at = NOW()
                        WHERE order_id = $3;
                        """,
                        order.status.value,
                        order.delivered_at,
                        order.order_id,
                    )
            except StaleStatusError as e:
                logger.warning(
                    "Order %s moved to %s before commit (expected %s)",
                    order.order_id, e.current_status, expected_status.value,
                )
                return PersistOutcome.CONFLICT
            except asyncpg.PostgresError:
                logger.exception("Failed to persist order %s", order.order_id)
                return PersistOutcome.FAILED
        return PersistOutcome.COMMITTED

    async def list_by_agent(self, agent_id: str) -> list[Order]:
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(
                f"""
                SELECT {ORDER_COLUMNS} FROM orders
                WHERE assigned_agent_id = $1
                ORDER BY created_at DESC;
                """,
                agent_id,
            )
        return [_to_order(r) for r in rows]

    async def create(self, order: Order) -> None:
        async with self._pool.acquire() as conn:
            try:
                await conn.execute(
                    """
                    INSERT INTO orders (order_id, status, assigned_agent_id, delivered_at, created_at, updated_at)
                    VALUES ($1, $2, $3, $4, $5, NOW());
                    """,
                    order.order_id,
                    order.status.value,
                    order.assigned_agent_id,
                    order.delivered_at,
                    order.created_at,
                )
            except UniqueViolationError:
                raise DuplicateOrderError(str(order.order_id))

    async def assign(self, order_id: uuid.UUID, agent_id: str) -> bool:
        async with self._pool.acquire() as conn:
            result = await conn.execute(
                "UPDATE orders SET assigned_agent_id = $1, updated_at = NOW() WHERE order_id = $2;",
                agent_id,
                order_id,
            )
        # asyncpg returns the command tag, e.g. "UPDATE 1"
        return result.split()[-1] != "0"
