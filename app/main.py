"""
FastAPI Application Entry Point

Restaurant Order Broadcast Service
Clients create and complete orders; every connected client receives the
updated order list in real time.

Endpoints:
    - WS   /orderHub: Real-time hub (OnLoad, CreateOrder, CompleteOrder)
    - GET  /api/orders: List orders
    - GET  /api/orders/{order_id}: Get one order
    - POST /api/orders: Create order and broadcast
    - POST /api/orders/{order_id}/complete: Complete order and broadcast
    - GET  /health: System health check

Author: Khalil Bannouri
Version: 4.0.0
"""

import logging
from datetime import datetime
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Depends, Request, WebSocket
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

# Internal imports
from app.core.config import get_settings, setup_logging
from app.core.exceptions import (
    ConcurrencyConflictError,
    InvalidInvocationError,
    OrderNotFoundError,
    OrderServiceError,
    ReceiptConflictError,
)
from app.schemas import (
    CompleteOrderRequest,
    CreateOrderRequest,
    ErrorResponse,
    HealthResponse,
    OrderListResponse,
    OrderView,
)
from app.services.hub import OrderHub, get_order_hub, project

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    # Startup
    logger.info("=" * 60)
    logger.info(f"🚀 Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Debug: {settings.debug}")
    logger.info("=" * 60)

    hub = get_order_hub()

    await hub.reconciler.store.init()
    logger.info(f"✅ Order Store: {hub.reconciler.store.provider_name}")
    if hub.reconciler.archive is not None:
        logger.info(f"✅ Receipt Archive: {hub.reconciler.archive.provider_name}")

    await hub.backplane.start()
    logger.info(f"✅ Backplane: {hub.backplane.provider_name}")

    missing = settings.validate_production_config()
    if missing:
        logger.warning(f"⚠️ Production config left at local defaults: {missing}")

    logger.info("=" * 60)
    logger.info(f"✅ Application ready! Hub at {settings.hub_path}")
    logger.info("=" * 60)

    yield  # Application runs

    # Shutdown
    logger.info("Shutting down...")
    try:
        await hub.backplane.stop()
    finally:
        await hub.reconciler.store.close()
    logger.info("✅ Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "Real-time restaurant order broadcast service. Clients create and "
        "complete orders over a WebSocket hub and receive the full order "
        "list after every change."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def to_http_error(error: OrderServiceError) -> HTTPException:
    """Map the order service error taxonomy to HTTP status codes."""
    if isinstance(error, OrderNotFoundError):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, (ReceiptConflictError, ConcurrencyConflictError)):
        return HTTPException(status_code=409, detail=str(error))
    if isinstance(error, InvalidInvocationError):
        return HTTPException(status_code=400, detail=str(error))
    return HTTPException(status_code=500, detail=str(error))


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """API root with navigation links."""
    return {
        "message": f"🍔 Welcome to {settings.app_name}",
        "version": settings.app_version,
        "environment": settings.env_mode.value,
        "documentation": "/docs",
        "hub": settings.hub_path,
        "orders": "/api/orders",
        "health": "/health",
    }


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="System Health Check",
)
async def health_check(hub: OrderHub = Depends(get_order_hub)) -> HealthResponse:
    """Verify all system components are operational."""
    store_status = "healthy" if await hub.reconciler.store.health_check() else "unhealthy"

    archive_status = "disabled"
    if hub.reconciler.archive is not None:
        archive_status = "healthy" if await hub.reconciler.archive.health_check() else "unhealthy"

    backplane_status = "healthy" if await hub.backplane.health_check() else "unhealthy"

    overall = "operational" if all(
        s in ("healthy", "disabled") for s in [store_status, archive_status, backplane_status]
    ) else "degraded"

    return HealthResponse(
        status=overall,
        order_store=store_status,
        receipt_archive=archive_status,
        backplane=backplane_status,
        connections=hub.connections.count,
        timestamp=datetime.now(),
    )


# =============================================================================
# REAL-TIME HUB
# =============================================================================

@app.websocket(settings.hub_path)
async def order_hub_socket(
    websocket: WebSocket,
    hub: OrderHub = Depends(get_order_hub),
) -> None:
    """
    Order hub endpoint.

    Each frame is one invocation, as UTF-8 JSON in a text or binary frame:
        {"type": "invocation", "target": "CreateOrder", "arguments": ["Burger", "No onions", 2]}

    Frames from one client run in order; clients run concurrently.
    """
    connection_id = await hub.connections.connect(websocket)

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                logger.debug(f"Client {connection_id} closed the socket")
                break

            frame = message.get("text")
            if frame is None:
                frame = message.get("bytes") or b""
            await hub.dispatch(connection_id, frame)
    finally:
        hub.connections.disconnect(connection_id)


# =============================================================================
# ORDER API ENDPOINTS
# =============================================================================

@app.get(
    "/api/orders",
    response_model=OrderListResponse,
    tags=["Orders"],
    summary="List Orders",
)
async def list_orders(hub: OrderHub = Depends(get_order_hub)) -> OrderListResponse:
    """Retrieve every order, projected the same way the hub broadcasts them."""
    try:
        views = await hub.feed.list_views()
    except OrderServiceError as e:
        raise to_http_error(e)

    return OrderListResponse(total=len(views), orders=views)


@app.get(
    "/api/orders/{order_id}",
    response_model=OrderView,
    responses={404: {"model": ErrorResponse}},
    tags=["Orders"],
)
async def get_order(
    order_id: str,
    hub: OrderHub = Depends(get_order_hub),
) -> OrderView:
    """Get a specific order by ID."""
    try:
        return await hub.feed.get_view(order_id)
    except OrderServiceError as e:
        raise to_http_error(e)


@app.post(
    "/api/orders",
    response_model=OrderView,
    responses={500: {"model": ErrorResponse}},
    tags=["Orders"],
    summary="Create Order (Direct API)",
)
async def create_order(
    order_data: CreateOrderRequest,
    hub: OrderHub = Depends(get_order_hub),
) -> OrderView:
    """
    Create a new order and broadcast the updated list to hub clients.
    """
    logger.info(f"Creating order via API: {order_data.title!r} x{order_data.quantity}")

    try:
        order = await hub.apply(order_data)
    except OrderServiceError as e:
        raise to_http_error(e)

    return project(order)


@app.post(
    "/api/orders/{order_id}/complete",
    response_model=OrderView,
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
    tags=["Orders"],
    summary="Complete Order (Direct API)",
)
async def complete_order(
    order_id: str,
    hub: OrderHub = Depends(get_order_hub),
) -> OrderView:
    """
    Mark an order completed, archive its receipt and broadcast the updated list.
    """
    logger.info(f"Completing order via API: {order_id}")

    try:
        order = await hub.apply(CompleteOrderRequest(order_id=order_id))
    except OrderServiceError as e:
        raise to_http_error(e)

    return project(order)


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler."""
    logger.exception(f"Unhandled exception: {exc}")

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal Server Error",
            "detail": str(exc) if settings.debug else "An unexpected error occurred",
        },
    )
