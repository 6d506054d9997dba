"""In-process stub adapters for the checkout ports.

These stubs implement ``InventoryPort`` and ``PaymentGatewayPort`` without any
network calls. They are intended for unit tests and local development where
deterministic behavior is useful and external services are not required.
"""

import base64
import threading
import uuid
from decimal import Decimal
from io import BytesIO
from typing import Iterable, Optional

import qrcode

from .domain import InventoryPort, PaymentGatewayPort, PaymentIntent, PaymentProvider, Product
from .errors import PaymentPendingError


class InventoryStub(InventoryPort):
    """In-memory catalog with an atomic conditional decrement.

    A lock serializes stock changes so two checkouts racing for the last unit
    behave like the inventory service's conditional UPDATE: exactly one of
    them sees one affected row.
    """

    DEFAULT_PRODUCTS = (
        Product(id=1, name="Apples", price=Decimal("1.50"), quantity=50),
        Product(id=2, name="Bananas", price=Decimal("0.80"), quantity=75),
        Product(id=3, name="Milk", price=Decimal("3.50"), quantity=20),
        Product(id=4, name="Bread", price=Decimal("1.80"), quantity=30),
    )

    def __init__(self, products: Optional[Iterable[Product]] = None):
        self._lock = threading.Lock()
        self._products = {p.id: p for p in (products if products is not None else self.DEFAULT_PRODUCTS)}
        self.decrement_calls: list[tuple[int, int]] = []

    def get_product(self, product_id: int) -> Product | None:
        return self._products.get(product_id)

    def list_products(self) -> list[Product]:
        return list(self._products.values())

    def stock(self, product_id: int) -> int:
        return self._products[product_id].quantity

    def decrement_stock(self, product_id: int, quantity: int) -> int:
        """Decrement iff the current stock covers ``quantity``; return rows changed."""
        with self._lock:
            self.decrement_calls.append((product_id, quantity))
            p = self._products.get(product_id)
            if p is None or p.quantity < quantity:
                return 0
            self._products[product_id] = Product(p.id, p.name, p.price, p.quantity - quantity, p.image)
            return 1

    def restock(self, product_id: int, quantity: int) -> int:
        with self._lock:
            p = self._products.get(product_id)
            if p is None:
                return 0
            self._products[product_id] = Product(p.id, p.name, p.price, p.quantity + quantity, p.image)
            return 1


def qr_data_url(data: str, box_size: int = 10, border: int = 4) -> str:
    """Render ``data`` as a QR code and return it as a PNG data URL."""
    qr = qrcode.QRCode(
        version=1,
        error_correction=qrcode.constants.ERROR_CORRECT_L,
        box_size=box_size,
        border=border,
    )
    qr.add_data(data)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")

    buffered = BytesIO()
    img.save(buffered, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buffered.getvalue()).decode("utf-8")


class QrGatewayStub(PaymentGatewayPort):
    """Simulated QR push-payment gateway.

    Generates a QR image for a fake payment URL and treats every confirmation
    as paid. Only for local development and tests: it never verifies anything
    with a provider. ``pending`` simulates a payment the provider has not
    recorded yet.
    """

    provider = PaymentProvider.QR
    confirm_is_query = True

    def __init__(self, paid: bool = True, pending: bool = False):
        self.paid = paid
        self.pending = pending
        self.confirm_calls = 0

    def create_intent(self, amount: Decimal) -> PaymentIntent:
        ref = f"stub-qr-{uuid.uuid4()}"
        url = f"https://netqr.example.com/pay?amount={amount:.2f}&orderId={ref}"
        return PaymentIntent(
            provider=self.provider,
            amount=amount,
            external_reference=ref,
            renderable_payload=qr_data_url(url),
        )

    def confirm(self, intent: PaymentIntent) -> bool:
        self.confirm_calls += 1
        if self.pending:
            raise PaymentPendingError(self.provider.value, "Payment not received yet")
        return self.paid


class CardGatewayStub(PaymentGatewayPort):
    """Simulated order/capture gateway.

    ``capture_status`` is what the fake provider returns on capture; only
    ``COMPLETED`` confirms the payment.
    """

    provider = PaymentProvider.CARD

    def __init__(self, capture_status: str = "COMPLETED"):
        self.capture_status = capture_status
        self.confirm_calls = 0

    def create_intent(self, amount: Decimal) -> PaymentIntent:
        return PaymentIntent(provider=self.provider, amount=amount, external_reference=uuid.uuid4().hex.upper()[:17])

    def confirm(self, intent: PaymentIntent) -> bool:
        self.confirm_calls += 1
        return self.capture_status == "COMPLETED"
