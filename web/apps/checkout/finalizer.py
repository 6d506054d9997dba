"""Turn a reconciled checkout into an immutable order."""

import logging
import time
from datetime import datetime, timezone
from typing import Protocol

from .domain import (
    CartSnapshot,
    DeliveryDetails,
    FailureCause,
    Order,
    PaymentProvider,
    ReconciliationResult,
    compute_total,
)
from .errors import DataIntegrityError, StockReconciliationError, ValidationError
from .session import CheckoutSession

logger = logging.getLogger(__name__)


class OrderLog(Protocol):
    """Durable, append-only store for finalized orders."""

    def create(self, order: Order) -> object:
        raise NotImplementedError()


def validate_delivery(delivery: DeliveryDetails) -> None:
    """Raise ``ValidationError`` if any required delivery field is blank."""
    missing = delivery.missing_fields()
    if missing:
        raise ValidationError(missing, submitted=delivery.to_dict())


class OrderFinalizer:
    """Build the order, record it, then clear the cart.

    The steps run in a fixed order: validate, check reconciliation, write to the
    durable log (when configured), append to the session history and only
    then clear the live cart.
    """

    def __init__(self, order_log: OrderLog | None = None):
        self.order_log = order_log

    def finalize(
        self,
        session: CheckoutSession,
        snapshot: CartSnapshot,
        delivery: DeliveryDetails,
        payment_method: PaymentProvider,
        result: ReconciliationResult,
        payment_reference: str | None = None,
    ) -> Order:
        """Create the order for a fully reconciled checkout.

        Raises:
            ValidationError: Delivery details are incomplete.
            DataIntegrityError: A line failed because its product is missing.
            StockReconciliationError: Any other line failure.
        """
        validate_delivery(delivery)

        if result.failed_lines:
            if FailureCause.PRODUCT_MISSING in result.failed_lines.values():
                raise DataIntegrityError(result)
            raise StockReconciliationError(result)

        order = Order(
            id=self._next_id(session),
            full_name=delivery.full_name.strip(),
            address=delivery.address.strip(),
            contact=delivery.contact.strip(),
            payment_method=payment_method,
            lines=snapshot.lines,
            total=compute_total(snapshot),
            created_at=datetime.now(timezone.utc),
            payment_reference=payment_reference,
        )
        # a failed durable write leaves the session untouched
        if self.order_log is not None:
            self.order_log.create(order)
        session.append_order(order)
        session.clear_cart()

        logger.info("order finalized", extra={"order_id": order.id, "total": str(order.total)})
        return order

    @staticmethod
    def _next_id(session: CheckoutSession) -> int:
        # millisecond timestamp, strictly increasing within one history
        return max(int(time.time() * 1000), session.last_order_id() + 1)
