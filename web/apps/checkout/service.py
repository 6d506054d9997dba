"""Domain service that orchestrates checkout, payment and fulfillment.

The service is wired with an inventory port and one gateway per payment
provider. It owns no state: the per-user ``CheckoutSession`` is passed to each
call explicitly, which keeps the flow testable without a web server.
"""

import logging
from decimal import Decimal
from typing import Mapping

from .domain import (
    InventoryPort,
    Order,
    PaymentGatewayPort,
    PaymentIntent,
    PaymentProvider,
    CartSnapshot,
    DeliveryDetails,
    compute_total,
    snapshot_cart,
)
from .errors import (
    GatewayUnavailableError,
    NoPendingPaymentError,
    PaymentAlreadySettledError,
    PaymentNotConfirmedError,
    PaymentPendingError,
    ProductNotFoundError,
)
from .finalizer import OrderFinalizer, OrderLog, validate_delivery
from .reconciliation import StockReconciler
from .session import CheckoutSession

logger = logging.getLogger(__name__)


class CheckoutService:
    """Orchestrates cart → payment intent → confirmation → stock → order.

    Args:
        inventory: InventoryPort used for product lookups and stock changes.
        gateways: Mapping from provider to its PaymentGatewayPort.
        compensate: When True, stock taken by a reconciliation that partially
            failed is given back before the error is raised.
        order_log: Optional durable order store used by the finalizer.
    """

    def __init__(
        self,
        inventory: InventoryPort,
        gateways: Mapping[PaymentProvider, PaymentGatewayPort],
        compensate: bool = True,
        order_log: OrderLog | None = None,
    ):
        self.inventory = inventory
        self.gateways = dict(gateways)
        self.compensate = compensate
        self.reconciler = StockReconciler(inventory)
        self.finalizer = OrderFinalizer(order_log)

    def gateway(self, provider: PaymentProvider) -> PaymentGatewayPort:
        try:
            return self.gateways[provider]
        except KeyError:
            raise GatewayUnavailableError(provider.value, "No gateway configured") from None

    # ---- cart ----
    def add_to_cart(self, session: CheckoutSession, product_id: int, quantity: int = 1) -> None:
        """Add a product to the cart, replacing the quantity if present.

        Raises:
            ProductNotFoundError: If the inventory does not know the product.
        """
        product = self.inventory.get_product(product_id)
        if product is None:
            raise ProductNotFoundError("Product not found")
        session.add_item(product, quantity if quantity and quantity > 0 else 1)

    def summary(self, session: CheckoutSession) -> tuple[CartSnapshot, Decimal]:
        """Return the snapshot and total shown on the checkout page."""
        snapshot = snapshot_cart(session.cart)
        return snapshot, compute_total(snapshot)

    # ---- payment ----
    def begin(
        self, session: CheckoutSession, delivery: DeliveryDetails, provider: PaymentProvider
    ) -> PaymentIntent:
        """Start a checkout: snapshot, price, and open a payment intent.

        The delivery details and the intent (with its snapshot) are stored in
        the session. Inventory is not touched.

        Raises:
            EmptyCartError: The cart is empty; no gateway is called.
            ValidationError: Delivery details are incomplete.
            GatewayUnavailableError: The provider could not create the intent.
        """
        snapshot = snapshot_cart(session.cart)
        validate_delivery(delivery)
        session.delivery = delivery

        total = compute_total(snapshot)
        intent = self.gateway(provider).create_intent(total)
        session.set_payment(intent, snapshot)
        logger.info(
            "payment intent created",
            extra={"provider": provider.value, "amount": str(total), "payment_reference": intent.external_reference},
        )
        return intent

    def confirm(
        self, session: CheckoutSession, provider: PaymentProvider, reference: str | None = None
    ) -> Order:
        """Confirm the pending payment and fulfil the order.

        The gateway is asked to confirm only while the intent is PENDING, so a
        repeated call never reaches the reconciler a second time.

        Args:
            session: The caller's checkout session.
            provider: Provider the caller claims to have paid with.
            reference: Provider reference echoed by the client, checked
                against the pending intent when given.

        Returns:
            Order: The finalized order.

        Raises:
            NoPendingPaymentError: No intent for this provider/reference.
            PaymentAlreadySettledError: The intent is already terminal.
            GatewayUnavailableError: The provider could not be reached. A
                QR status query leaves the intent PENDING, a card capture
                fails it.
            PaymentPendingError: The provider has not recorded the payment
                yet; the intent stays PENDING.
            PaymentNotConfirmedError: The provider did not report completion.
            StockReconciliationError: A line could not be decremented.
            ValidationError: Delivery details are incomplete.
        """
        pending = session.payment()
        if pending is None:
            raise NoPendingPaymentError("No payment in progress")
        intent, snapshot = pending
        if intent.provider is not provider or (reference and reference != intent.external_reference):
            raise NoPendingPaymentError("Payment reference does not match")
        if intent.status.is_terminal:
            raise PaymentAlreadySettledError(f"Payment already {intent.status.value}")

        gateway = self.gateway(provider)
        try:
            paid = gateway.confirm(intent)
        except PaymentPendingError:
            logger.info("payment not settled yet", extra={"payment_reference": intent.external_reference})
            raise
        except GatewayUnavailableError:
            # a lost status query can be repeated, a lost capture cannot
            if not getattr(gateway, "confirm_is_query", False):
                intent.mark_failed()
                session.save_intent(intent)
            raise
        if not paid:
            intent.mark_failed()
            session.save_intent(intent)
            raise PaymentNotConfirmedError(provider.value, "Payment was not completed")

        intent.mark_confirmed()
        session.save_intent(intent)

        delivery = session.delivery
        validate_delivery(delivery)

        result = self.reconciler.reconcile(snapshot, intent)
        if not result.ok:
            if self.compensate:
                self.reconciler.compensate(snapshot, result)
            logger.error(
                "payment confirmed but stock reconciliation failed",
                extra={"payment_reference": intent.external_reference, "reconciliation": result.as_log_dict()},
            )

        return self.finalizer.finalize(
            session, snapshot, delivery, provider, result, payment_reference=intent.external_reference
        )
