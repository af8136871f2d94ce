"""
Value objects shared by the store, the validator, the service and the HTTP layer.
"""
import uuid
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field, model_validator

from delivery_orders.order_state import OrderStatus


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"
    INVALID_TRANSITION = "invalid_transition"
    CORRUPT_STATE = "corrupt_state"
    CONFLICT = "conflict"
    PERSISTENCE_FAILURE = "persistence_failure"
    UNEXPECTED_FAILURE = "unexpected_failure"
    TIMEOUT = "timeout"


class Order(BaseModel):
    order_id: uuid.UUID = Field(default_factory=uuid.uuid4)
    status: OrderStatus = OrderStatus.PREPARING
    assigned_agent_id: str | None = None
    delivered_at: datetime | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @model_validator(mode="after")
    def _delivered_at_matches_status(self) -> "Order":
        delivered = self.status == OrderStatus.DELIVERED
        if delivered != (self.delivered_at is not None):
            raise ValueError("delivered_at must be set if and only if status is Delivered")
        return self


class TransitionRequest(BaseModel):
    order_id: uuid.UUID = Field(..., description="Order to move to the next status")
    new_status: OrderStatus = Field(..., description="Requested status")
    agent_id: str = Field(..., min_length=1, description="Delivery agent making the request")
    latitude: float | None = Field(default=None, description="Agent latitude, audit only")
    longitude: float | None = Field(default=None, description="Agent longitude, audit only")

    @property
    def has_location(self) -> bool:
        return self.latitude is not None and self.longitude is not None


class ValidationVerdict(BaseModel):
    is_valid: bool
    reason: str | None = None
    current_status: OrderStatus | None = None
    requested_status: OrderStatus
    error: ErrorKind | None = None


class UpdateResult(BaseModel):
    success: bool
    message: str
    order_id: uuid.UUID
    current_status: OrderStatus | None = None
    updated_at: datetime
    error: ErrorKind | None = None


class LocationPing(BaseModel):
    order_id: uuid.UUID
    agent_id: str
    latitude: float
    longitude: float
    recorded_at: datetime
