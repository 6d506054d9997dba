"""Explicit session-state handle for the checkout flow.

``CheckoutSession`` wraps any mutable mapping (a Django session in views, a
plain dict in tests) and exposes the cart, delivery details, order history
and the pending payment as typed values. Everything is stored in
JSON-serializable form so Django's session serializer can handle it.
"""

from typing import MutableMapping

from .domain import CartLine, CartSnapshot, DeliveryDetails, Order, PaymentIntent, Product

CART_KEY = "cart"
DELIVERY_KEY = "delivery"
ORDERS_KEY = "orders"
PAYMENT_KEY = "payment"


class CheckoutSession:
    """Typed view over the per-user shopping state."""

    def __init__(self, store: MutableMapping):
        self.store = store

    def _touch(self):
        # Django only saves the session when it notices a change
        if hasattr(self.store, "modified"):
            self.store.modified = True

    # ---- cart ----
    @property
    def cart(self) -> list[CartLine]:
        return [CartLine.from_dict(d) for d in self.store.get(CART_KEY) or []]

    def _save_cart(self, lines: list[CartLine]):
        self.store[CART_KEY] = [line.to_dict() for line in lines]
        self._touch()

    def add_item(self, product: Product, quantity: int) -> None:
        """Add a product; an existing line gets its quantity replaced."""
        lines = self.cart
        for i, line in enumerate(lines):
            if line.product_id == product.id:
                lines[i] = CartLine(line.product_id, line.unit_price, quantity, line.name)
                break
        else:
            lines.append(CartLine(product.id, product.price, quantity, product.name))
        self._save_cart(lines)

    def update_quantity(self, product_id: int, quantity: int) -> bool:
        """Set a new quantity for a line. Non-positive quantities are ignored."""
        if quantity <= 0:
            return False
        lines = self.cart
        for i, line in enumerate(lines):
            if line.product_id == product_id:
                lines[i] = CartLine(line.product_id, line.unit_price, quantity, line.name)
                self._save_cart(lines)
                return True
        return False

    def remove_item(self, product_id: int) -> None:
        self._save_cart([line for line in self.cart if line.product_id != product_id])

    def clear_cart(self) -> None:
        self._save_cart([])

    # ---- delivery ----
    @property
    def delivery(self) -> DeliveryDetails:
        return DeliveryDetails.from_dict(self.store.get(DELIVERY_KEY))

    @delivery.setter
    def delivery(self, value: DeliveryDetails):
        self.store[DELIVERY_KEY] = value.to_dict()
        self._touch()

    # ---- order history ----
    @property
    def orders(self) -> list[Order]:
        return [Order.from_dict(d) for d in self.store.get(ORDERS_KEY) or []]

    def append_order(self, order: Order) -> None:
        history = list(self.store.get(ORDERS_KEY) or [])
        history.append(order.to_dict())
        self.store[ORDERS_KEY] = history
        self._touch()

    def last_order_id(self) -> int:
        history = self.store.get(ORDERS_KEY) or []
        return max((int(o["id"]) for o in history), default=0)

    # ---- pending payment ----
    def set_payment(self, intent: PaymentIntent, snapshot: CartSnapshot) -> None:
        self.store[PAYMENT_KEY] = {"intent": intent.to_dict(), "snapshot": snapshot.to_list()}
        self._touch()

    def save_intent(self, intent: PaymentIntent) -> None:
        """Persist a status change of the current intent."""
        payment = dict(self.store.get(PAYMENT_KEY) or {})
        payment["intent"] = intent.to_dict()
        self.store[PAYMENT_KEY] = payment
        self._touch()

    def payment(self) -> tuple[PaymentIntent, CartSnapshot] | None:
        payment = self.store.get(PAYMENT_KEY)
        if not payment:
            return None
        return PaymentIntent.from_dict(payment["intent"]), CartSnapshot.from_list(payment["snapshot"])
