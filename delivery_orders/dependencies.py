"""
FastAPI dependencies. The store is a process-wide singleton chosen by ORDER_STORE_BACKEND.
"""
from fastapi import Depends

from delivery_orders.audit import LocationAuditSink, NoopLocationSink, QueueLocationSink
from delivery_orders.config import settings
from delivery_orders.db import PostgresOrderStore, get_pool
from delivery_orders.service import OrderStatusService
from delivery_orders.store import InMemoryOrderStore, OrderStore

_store: OrderStore | None = None


async def get_order_store() -> OrderStore:
    global _store
    if _store is None:
        if settings.order_store_backend == "memory":
            _store = InMemoryOrderStore()
        else:
            _store = PostgresOrderStore(await get_pool())
    return _store


def reset_order_store() -> None:
    global _store
    _store = None


def get_location_sink() -> LocationAuditSink:
    if settings.location_audit_enabled:
        return QueueLocationSink()
    return NoopLocationSink()


def get_order_status_service(
    store: OrderStore = Depends(get_order_store),
    audit_sink: LocationAuditSink = Depends(get_location_sink),
) -> OrderStatusService:
    return OrderStatusService(store, audit_sink=audit_sink)
