"""
Order Reconciler

Applies a single order mutation to the order store and archives a receipt
when an order is completed.

Two entry points exist:

    - create() / complete() take explicit, tagged requests. complete()
      reports an unknown id as OrderNotFoundError.
    - reconcile() is the id-keyed upsert: if the candidate's id is found
      the order is completed, otherwise the candidate is inserted as a new
      order. An unknown id therefore creates an order.

On the complete path the store record is replaced before the receipt is
written. A receipt conflict fails the mutation but does not roll the
replace back.

Author: Khalil Bannouri
Version: 4.0.0
"""

import logging
from typing import Optional

from app.core.exceptions import OrderNotFoundError, ReceiptConflictError
from app.models import OrderStatus
from app.schemas import CompleteOrderRequest, CreateOrderRequest
from app.services.receipts.base import BaseReceiptArchive, receipt_key, render_receipt
from app.services.store.base import BaseOrderStore, StoredOrder

logger = logging.getLogger(__name__)


class OrderReconciler:
    """
    Reconciles order mutations against stored state.

    Stateless apart from its collaborators, so one instance can serve
    every connection concurrently.

    Args:
        store: Order store
        archive: Receipt archive; when None, completion skips archival
        partition_key: Partition every order is stored under
    """

    def __init__(
        self,
        store: BaseOrderStore,
        archive: Optional[BaseReceiptArchive],
        partition_key: str,
    ):
        self.store = store
        self.archive = archive
        self.partition_key = partition_key

    async def create(self, request: CreateOrderRequest) -> StoredOrder:
        """Insert a new order with a generated id and status CREATED."""
        order = StoredOrder(
            partition_key=self.partition_key,
            title=request.title,
            description=request.description,
            quantity=request.quantity,
        )
        created = await self.store.create(order)
        logger.info(f"Order {created.id} created (quantity={created.quantity})")
        return created

    async def complete(self, request: CompleteOrderRequest) -> StoredOrder:
        """
        Mark an existing order COMPLETED and archive its receipt.

        Raises:
            OrderNotFoundError: No order with this id
            ConcurrencyConflictError: Another writer replaced the order first
            ReceiptConflictError: A receipt for this order already exists
        """
        existing = await self.store.get_by_id(request.order_id, self.partition_key)
        return await self._complete_existing(existing)

    async def reconcile(self, candidate: StoredOrder) -> StoredOrder:
        """
        Upsert a candidate order keyed by its id.

        Found: complete the stored order. Not found: insert the candidate
        as given. Any other store failure propagates.
        """
        try:
            existing = await self.store.get_by_id(candidate.id, candidate.partition_key)
        except OrderNotFoundError:
            created = await self.store.create(candidate)
            logger.info(f"Order {created.id} created by upsert")
            return created

        return await self._complete_existing(existing)

    async def _complete_existing(self, existing: StoredOrder) -> StoredOrder:
        # Only forward transition supported
        completed = existing.copy(status=OrderStatus.COMPLETED)

        stored = await self.store.replace(
            completed,
            existing.id,
            existing.partition_key,
            expected_version=existing.version,
        )
        logger.info(f"Order {stored.id} completed (v{stored.version})")

        await self._archive_receipt(stored)
        return stored

    async def _archive_receipt(self, order: StoredOrder) -> None:
        if self.archive is None:
            return

        key = receipt_key(order.id)
        if await self.archive.exists(key):
            logger.warning(f"Receipt {key} already archived, refusing to overwrite")
            raise ReceiptConflictError(key)

        await self.archive.write(key, render_receipt(order))
        logger.info(f"Receipt {key} written")
