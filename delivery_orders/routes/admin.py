import uuid

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from delivery_orders.dependencies import get_order_store
from delivery_orders.models import Order
from delivery_orders.store import DuplicateOrderError, OrderStore

router = APIRouter(prefix="/admin", tags=["admin"])


class CreateOrderBody(BaseModel):
    order_id: uuid.UUID | None = Field(default=None, description="Generated when omitted")
    assigned_agent_id: str | None = Field(default=None, min_length=1)


class AssignOrderBody(BaseModel):
    agent_id: str = Field(..., min_length=1)


@router.post("/orders")
async def create_order(
    body: CreateOrderBody,
    store: OrderStore = Depends(get_order_store),
) -> JSONResponse:
    """
    Seed an order in Preparing, optionally already assigned to an agent.
    Stands in for the order-placement flow when running the service alone.
    """
    fields = {"assigned_agent_id": body.assigned_agent_id}
    if body.order_id is not None:
        fields["order_id"] = body.order_id
    order = Order(**fields)
    try:
        await store.create(order)
    except DuplicateOrderError:
        return JSONResponse(
            status_code=409,
            content={"detail": f"Order {order.order_id} already exists"},
        )
    return JSONResponse(status_code=201, content=order.model_dump(mode="json"))


@router.put("/orders/{order_id}/assignment")
async def assign_order(
    order_id: uuid.UUID,
    body: AssignOrderBody,
    store: OrderStore = Depends(get_order_store),
) -> JSONResponse:
    assigned = await store.assign(order_id, body.agent_id)
    if not assigned:
        return JSONResponse(status_code=404, content={"detail": "Order not found"})
    return JSONResponse(
        status_code=200,
        content={"order_id": str(order_id), "assigned_agent_id": body.agent_id},
    )
