"""
Pydantic Schemas for Request/Response Validation

Wire shapes for the order hub and the HTTP API. Field names are
snake_case in Python and camelCase on the wire.

Author: Khalil Bannouri
Version: 4.0.0
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Any, List, Literal, Optional
from datetime import datetime
from enum import Enum


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase field names."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# =============================================================================
# ENUMS
# =============================================================================

class HubTarget(str, Enum):
    """Operations a client may invoke on the hub."""
    ON_LOAD = "OnLoad"
    CREATE_ORDER = "CreateOrder"
    COMPLETE_ORDER = "CompleteOrder"


class ClientSignal(str, Enum):
    """Signals the hub pushes to clients."""
    RECEIVE_ORDERS = "ReceiveOrders"
    ERROR = "Error"


# =============================================================================
# MUTATION REQUESTS
# =============================================================================

class CreateOrderRequest(CamelModel):
    """Create a new order. No bounds are enforced on any field."""
    kind: Literal["create"] = "create"
    title: Optional[str] = Field(None, examples=["Burger"])
    description: Optional[str] = Field(None, examples=["No onions"])
    quantity: int = Field(0, examples=[2])


class CompleteOrderRequest(CamelModel):
    """Mark an existing order as completed."""
    kind: Literal["complete"] = "complete"
    order_id: str = Field(..., examples=["3f2b8c1e-7a4d-4a43-9a0e-1f6f0a2d9c11"])


# =============================================================================
# PROJECTIONS
# =============================================================================

class OrderView(CamelModel):
    """Read-only projection of an order sent to clients."""
    id: str
    title: Optional[str] = None
    description: Optional[str] = None
    quantity: int
    status: str


# =============================================================================
# HUB FRAMES
# =============================================================================

class HubMessage(BaseModel):
    """
    A single JSON text frame on the hub socket.

    Client to server: {"type": "invocation", "target": "CreateOrder", "arguments": [...]}
    Server to client: {"type": "invocation", "target": "ReceiveOrders", "arguments": ["[...]"]}
    """
    type: Literal["invocation"] = "invocation"
    target: str
    arguments: List[Any] = Field(default_factory=list)


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

class OrderListResponse(CamelModel):
    """Response for listing every order."""
    total: int
    orders: List[OrderView]


class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    detail: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    order_store: str
    receipt_archive: str
    backplane: str
    connections: int
    timestamp: datetime
