"""
Order Hub (Broadcast Gateway)

Real-time channel between clients and the order reconciler.

Clients invoke:
    - OnLoad()
    - CreateOrder(title, description, quantity)
    - CompleteOrder(orderId)

The hub pushes:
    - ReceiveOrders(json) to every connected client after each successful
      operation, carrying the full order list as a JSON array string
    - Error(message) to the invoking client only when an operation fails;
      nothing is broadcast in that case

Pushes are best effort: no acknowledgement, no retry, no ordering between
concurrent broadcasts. A connection that fails a send is dropped.

Author: Khalil Bannouri
Version: 4.0.0
"""

import asyncio
import json
import logging
import uuid
from functools import lru_cache
from typing import Any, Optional, Union

from pydantic import ValidationError
from fastapi import WebSocket

from app.core.config import get_settings
from app.core.exceptions import InvalidInvocationError, OrderServiceError
from app.schemas import (
    ClientSignal,
    CompleteOrderRequest,
    CreateOrderRequest,
    HubMessage,
    HubTarget,
    OrderView,
)
from app.services.backplane import BaseBackplane, get_backplane, reset_backplane
from app.services.reconciler import OrderReconciler
from app.services.receipts import get_receipt_archive
from app.services.store import get_order_store
from app.services.store.base import BaseOrderStore, StoredOrder

logger = logging.getLogger(__name__)

MutationRequest = Union[CreateOrderRequest, CompleteOrderRequest]


def signal(target: ClientSignal, *arguments: Any) -> dict[str, Any]:
    """Build a server-to-client frame."""
    return HubMessage(target=target.value, arguments=list(arguments)).model_dump()


def _build(model, **fields):
    """Validate hub arguments into a request model."""
    try:
        return model(**fields)
    except ValidationError as e:
        error = e.errors()[0]
        field = ".".join(str(part) for part in error["loc"])
        raise InvalidInvocationError(f"Invalid argument '{field}': {error['msg']}") from e


def project(order: StoredOrder) -> OrderView:
    """Project a stored order to the view sent to clients."""
    return OrderView(
        id=order.id,
        title=order.title,
        description=order.description,
        quantity=order.quantity,
        status=order.status.value,
    )


# =============================================================================
# ORDER FEED
# =============================================================================

class OrderFeed:
    """
    The "list orders" capability behind every broadcast.

    Currently a full scan of the store; incremental diffs can replace it
    without touching the reconciler.
    """

    def __init__(self, store: BaseOrderStore, partition_key: str):
        self.store = store
        self.partition_key = partition_key

    async def list_views(self) -> list[OrderView]:
        return [project(order) async for order in self.store.scan_all()]

    async def get_view(self, order_id: str) -> OrderView:
        """Project a single order; raises OrderNotFoundError."""
        return project(await self.store.get_by_id(order_id, self.partition_key))

    async def snapshot_json(self) -> str:
        """Serialize the full order list as a camelCase JSON array."""
        views = await self.list_views()
        return json.dumps([view.model_dump(by_alias=True) for view in views])


# =============================================================================
# CONNECTIONS
# =============================================================================

class ConnectionManager:
    """Tracks the WebSocket clients connected to this process."""

    def __init__(self):
        self._connections: dict[str, WebSocket] = {}
        self._send_locks: dict[str, asyncio.Lock] = {}

    @property
    def count(self) -> int:
        return len(self._connections)

    def connection_ids(self) -> list[str]:
        return list(self._connections)

    async def connect(self, websocket: WebSocket) -> str:
        """
        Register the socket under a new connection id and accept it.

        Broadcasts started after this call include the new client; they
        wait on the send lock until the handshake is done.
        """
        connection_id = uuid.uuid4().hex
        self.register(connection_id, websocket)

        try:
            async with self._send_locks[connection_id]:
                await websocket.accept()
        except Exception:
            self.disconnect(connection_id)
            raise
        return connection_id

    def register(self, connection_id: str, websocket: WebSocket) -> None:
        self._connections[connection_id] = websocket
        self._send_locks[connection_id] = asyncio.Lock()
        logger.info(f"Client {connection_id} connected ({self.count} total)")

    def disconnect(self, connection_id: str) -> None:
        if self._connections.pop(connection_id, None) is not None:
            self._send_locks.pop(connection_id, None)
            logger.info(f"Client {connection_id} disconnected ({self.count} total)")

    async def send(self, connection_id: str, message: dict[str, Any]) -> bool:
        """
        Push a frame to one client.

        Returns:
            False if the client is gone or the send failed
        """
        websocket = self._connections.get(connection_id)
        lock = self._send_locks.get(connection_id)
        if websocket is None or lock is None:
            return False

        try:
            async with lock:
                await websocket.send_json(message)
            return True
        except Exception as e:
            logger.warning(f"Dropping client {connection_id} after failed send: {e}")
            self.disconnect(connection_id)
            return False

    async def broadcast(self, message: dict[str, Any]) -> None:
        """Push a frame to every client connected to this process."""
        connection_ids = self.connection_ids()
        if not connection_ids:
            return

        results = await asyncio.gather(
            *(self.send(connection_id, message) for connection_id in connection_ids)
        )
        logger.debug(
            f"Broadcast {message.get('target')} to "
            f"{sum(results)}/{len(connection_ids)} clients"
        )


# =============================================================================
# HUB
# =============================================================================

class OrderHub:
    """
    Stateless per-call handler for hub invocations.

    Args:
        reconciler: Applies mutations to the store
        feed: Produces the order list for broadcasts
        connections: Clients connected to this process
        backplane: Fans broadcasts out to every process
        strict_complete: When False, CompleteOrder uses the id-keyed upsert
            and creates an order for an unknown id
    """

    def __init__(
        self,
        reconciler: OrderReconciler,
        feed: OrderFeed,
        connections: ConnectionManager,
        backplane: BaseBackplane,
        strict_complete: bool = True,
    ):
        self.reconciler = reconciler
        self.feed = feed
        self.connections = connections
        self.backplane = backplane
        self.strict_complete = strict_complete

    # ------------------------------------------------------------------
    # Hub methods
    # ------------------------------------------------------------------

    async def on_load(self, caller: str) -> None:
        try:
            await self.broadcast_orders()
        except Exception as e:
            await self.send_error(caller, e)

    async def create_order(
        self,
        caller: str,
        title: Optional[str],
        description: Optional[str],
        quantity: int,
    ) -> None:
        try:
            request = _build(
                CreateOrderRequest,
                title=title,
                description=description,
                quantity=quantity,
            )
            await self.apply(request)
        except Exception as e:
            await self.send_error(caller, e)

    async def complete_order(self, caller: str, order_id: str) -> None:
        try:
            await self.apply(_build(CompleteOrderRequest, order_id=order_id))
        except Exception as e:
            await self.send_error(caller, e)

    # ------------------------------------------------------------------
    # Shared by the socket and the HTTP API
    # ------------------------------------------------------------------

    async def apply(self, request: MutationRequest) -> StoredOrder:
        """Apply a mutation and broadcast the new order list. Errors propagate."""
        if isinstance(request, CreateOrderRequest):
            order = await self.reconciler.create(request)
        elif self.strict_complete:
            order = await self.reconciler.complete(request)
        else:
            candidate = StoredOrder(
                id=request.order_id,
                partition_key=self.reconciler.partition_key,
            )
            order = await self.reconciler.reconcile(candidate)

        await self.broadcast_orders()
        return order

    async def broadcast_orders(self) -> None:
        payload = await self.feed.snapshot_json()
        await self.backplane.publish(signal(ClientSignal.RECEIVE_ORDERS, payload))

    async def send_error(self, caller: str, error: Exception) -> None:
        if isinstance(error, OrderServiceError):
            logger.warning(f"Hub call from {caller} failed: {error}")
        else:
            logger.exception(f"Unexpected hub error for {caller}: {error}")

        await self.connections.send(caller, signal(ClientSignal.ERROR, str(error)))

    # ------------------------------------------------------------------
    # Frame dispatch
    # ------------------------------------------------------------------

    async def dispatch(self, caller: str, raw: Union[str, bytes]) -> None:
        """Parse one client frame (text, or UTF-8 bytes) and run the named hub method."""
        try:
            target, arguments = self._parse(raw)
        except InvalidInvocationError as e:
            await self.send_error(caller, e)
            return

        if target == HubTarget.ON_LOAD:
            await self.on_load(caller)
        elif target == HubTarget.CREATE_ORDER:
            await self.create_order(caller, *arguments)
        elif target == HubTarget.COMPLETE_ORDER:
            await self.complete_order(caller, *arguments)
        else:
            await self.send_error(
                caller,
                InvalidInvocationError(f"Hub method '{target.value}' is not handled."),
            )

    @staticmethod
    def _parse(raw: Union[str, bytes]) -> tuple[HubTarget, list[Any]]:
        try:
            message = HubMessage.model_validate_json(raw)
        except ValidationError as e:
            raise InvalidInvocationError(f"Invalid hub message: {e.errors()[0]['msg']}") from e

        try:
            target = HubTarget(message.target)
        except ValueError:
            raise InvalidInvocationError(f"Unknown hub method '{message.target}'.")

        expected = {
            HubTarget.ON_LOAD: 0,
            HubTarget.CREATE_ORDER: 3,
            HubTarget.COMPLETE_ORDER: 1,
        }[target]
        if len(message.arguments) != expected:
            raise InvalidInvocationError(
                f"{target.value} expects {expected} argument(s), "
                f"got {len(message.arguments)}."
            )

        return target, message.arguments


# =============================================================================
# SHARED HANDLES
# =============================================================================

@lru_cache()
def get_connection_manager() -> ConnectionManager:
    """Process-wide connection registry."""
    return ConnectionManager()


@lru_cache()
def get_order_hub() -> OrderHub:
    """Process-wide hub wired to the shared store, archive and backplane."""
    settings = get_settings()
    store = get_order_store()

    return OrderHub(
        reconciler=OrderReconciler(
            store=store,
            archive=get_receipt_archive(),
            partition_key=settings.partition_key,
        ),
        feed=OrderFeed(store, settings.partition_key),
        connections=get_connection_manager(),
        backplane=get_backplane(),
        strict_complete=settings.strict_complete,
    )


def reset_order_hub() -> None:
    """Clear the cached hub, connection registry and backplane."""
    get_order_hub.cache_clear()
    get_connection_manager.cache_clear()
    reset_backplane()
