import logging
import uuid

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from delivery_orders.config import settings
from delivery_orders.dependencies import get_order_status_service
from delivery_orders.models import TransitionRequest
from delivery_orders.order_state import OrderStatus
from delivery_orders.service import OrderStatusService
from delivery_orders.store import CorruptOrderError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/orders", tags=["orders"])


def _agent_id_required() -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": "Delivery man ID is required"})


@router.put("/update-status")
async def update_status(
    body: TransitionRequest,
    service: OrderStatusService = Depends(get_order_status_service),
) -> JSONResponse:
    """
    Move an order to its next status on behalf of the assigned delivery agent.
    200 with the result on success, 400 with the result on any failure.
    """
    result = await service.update_status(body, timeout=settings.status_update_timeout_seconds)
    return JSONResponse(
        status_code=200 if result.success else 400,
        content=result.model_dump(mode="json"),
    )


@router.get("/{order_id}/validate-status-transition")
async def validate_status_transition(
    order_id: uuid.UUID,
    new_status: OrderStatus = Query(..., description="Candidate next status"),
    service: OrderStatusService = Depends(get_order_status_service),
) -> JSONResponse:
    """Dry run: would this transition be accepted right now? Never writes."""
    verdict = await service.validate_transition(order_id, new_status)
    return JSONResponse(
        status_code=200 if verdict.is_valid else 400,
        content=verdict.model_dump(mode="json"),
    )


@router.get("/delivery-man/{agent_id}")
async def list_agent_orders(
    agent_id: str,
    service: OrderStatusService = Depends(get_order_status_service),
) -> JSONResponse:
    """Orders assigned to the agent, most recent first."""
    if not agent_id.strip():
        return _agent_id_required()
    try:
        orders = await service.list_agent_orders(agent_id)
    except CorruptOrderError as e:
        logger.error("Unreadable order %s in listing for agent %s", e.order_id, agent_id)
        return JSONResponse(
            status_code=500,
            content={"detail": "Stored order data is invalid", "order_id": str(e.order_id)},
        )
    return JSONResponse(
        status_code=200,
        content=[o.model_dump(mode="json") for o in orders],
    )


@router.get("/{order_id}/check-authorization/{agent_id}")
async def check_authorization(
    order_id: uuid.UUID,
    agent_id: str,
    service: OrderStatusService = Depends(get_order_status_service),
) -> JSONResponse:
    if not agent_id.strip():
        return _agent_id_required()
    is_authorized = await service.is_agent_authorized(order_id, agent_id)
    return JSONResponse(status_code=200, content={"is_authorized": is_authorized})
