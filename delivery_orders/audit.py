"""
Optional sink for the agent location carried on a status update.
The order record itself never stores location.
"""
import abc
import logging

from delivery_orders.metrics import agent_location_pings_total
from delivery_orders.models import LocationPing
from delivery_orders.queue import push_location

logger = logging.getLogger(__name__)


class LocationAuditSink(abc.ABC):
    @abc.abstractmethod
    async def record(self, ping: LocationPing) -> None: ...


class NoopLocationSink(LocationAuditSink):
    async def record(self, ping: LocationPing) -> None:
        return None


class QueueLocationSink(LocationAuditSink):
    """Publishes pings to the audit queue (SQS or Redis, see queue.py)."""

    async def record(self, ping: LocationPing) -> None:
        backend = await push_location(ping.model_dump(mode="json"))
        agent_location_pings_total.labels(backend=backend).inc()
        logger.debug("Location ping for order %s sent via %s", ping.order_id, backend)
