"""Stock reconciliation after a confirmed payment."""

import logging

from .domain import (
    CartSnapshot,
    FailureCause,
    InventoryPort,
    PaymentIntent,
    PaymentStatus,
    ReconciliationResult,
)

logger = logging.getLogger(__name__)


class StockReconciler:
    """Commit snapshot quantities against live inventory.

    Lines are processed one at a time in snapshot order. A failed line never
    stops the loop: every line gets its own decrement attempt and its own
    entry in the result. Nothing is retried.
    """

    def __init__(self, inventory: InventoryPort):
        self.inventory = inventory

    def reconcile(self, snapshot: CartSnapshot, intent: PaymentIntent) -> ReconciliationResult:
        """Decrement stock for every line of ``snapshot``.

        Args:
            snapshot: The cart snapshot taken when checkout began.
            intent: The payment intent; it must already be CONFIRMED.

        Returns:
            ReconciliationResult: decremented and failed partitions.

        Raises:
            RuntimeError: If the intent is not CONFIRMED.
        """
        if intent.status is not PaymentStatus.CONFIRMED:
            raise RuntimeError(f"reconcile requires a CONFIRMED intent, got {intent.status.value}")

        result = ReconciliationResult()
        for line in snapshot:
            if line.quantity <= 0:
                continue
            cause = self._decrement(line.product_id, line.quantity)
            if cause is None:
                result.decremented_lines.append(line.product_id)
            else:
                result.failed_lines[line.product_id] = cause

        if not result.ok:
            logger.warning(
                "stock reconciliation failed",
                extra={"payment_reference": intent.external_reference, "reconciliation": result.as_log_dict()},
            )
        return result

    def _decrement(self, product_id: int, quantity: int) -> FailureCause | None:
        try:
            affected = self.inventory.decrement_stock(product_id, quantity)
        except Exception:
            logger.exception("decrement_stock failed for product %s", product_id)
            return FailureCause.INVENTORY_UNAVAILABLE
        if affected:
            return None

        # affected_rows == 0: either not enough stock or the product is gone
        try:
            product = self.inventory.get_product(product_id)
        except Exception:
            logger.exception("get_product failed for product %s", product_id)
            return FailureCause.INSUFFICIENT_STOCK
        return FailureCause.PRODUCT_MISSING if product is None else FailureCause.INSUFFICIENT_STOCK

    def compensate(self, snapshot: CartSnapshot, result: ReconciliationResult) -> ReconciliationResult:
        """Give back the stock taken by a reconciliation that failed.

        Decremented lines are restocked in reverse order. A restock failure
        is logged and the remaining lines are still restocked.
        """
        quantities = {line.product_id: line.quantity for line in snapshot}
        for product_id in reversed(result.decremented_lines):
            try:
                self.inventory.restock(product_id, quantities[product_id])
            except Exception:
                logger.exception("restock failed for product %s", product_id)
                continue
            result.compensated_lines.append(product_id)
        return result
