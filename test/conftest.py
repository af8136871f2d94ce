"""
Shared fixtures: three orders (one per status) assigned to the same agent, an
in-memory store holding them, a controllable clock and a service wired to both.
"""
from datetime import datetime, timedelta, timezone

import pytest

from delivery_orders.models import Order
from delivery_orders.order_state import OrderStatus
from delivery_orders.service import OrderStatusService
from delivery_orders.store import InMemoryOrderStore

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class FixedClock:
    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def agent_id() -> str:
    return "agent-1"


@pytest.fixture
def other_agent_id() -> str:
    return "agent-2"


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(T0 + timedelta(hours=1))


@pytest.fixture
def preparing_order(agent_id) -> Order:
    return Order(status=OrderStatus.PREPARING, assigned_agent_id=agent_id, created_at=T0)


@pytest.fixture
def on_route_order(agent_id) -> Order:
    return Order(status=OrderStatus.ON_ROUTE, assigned_agent_id=agent_id, created_at=T0 + timedelta(minutes=5))


@pytest.fixture
def delivered_order(agent_id) -> Order:
    return Order(
        status=OrderStatus.DELIVERED,
        assigned_agent_id=agent_id,
        delivered_at=T0 + timedelta(minutes=30),
        created_at=T0 - timedelta(days=1),
    )


@pytest.fixture
def orders(preparing_order, on_route_order, delivered_order) -> list[Order]:
    return [preparing_order, on_route_order, delivered_order]


@pytest.fixture
def store(orders) -> InMemoryOrderStore:
    return InMemoryOrderStore(orders)


@pytest.fixture
def service(store, clock) -> OrderStatusService:
    return OrderStatusService(store, clock=clock)
