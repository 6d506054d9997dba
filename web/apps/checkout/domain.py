"""Domain models, ports and pure pricing helpers for checkout.

This module contains the value objects that flow through a checkout (cart
lines, snapshots, payment intents, reconciliation results and orders), the
protocol definitions (ports) for the inventory and payment collaborators, and
the two pure operations that need no collaborator at all: taking a cart
snapshot and computing its total.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Iterable, Protocol, Tuple

from .errors import EmptyCartError

CENTS = Decimal("0.01")


# ---- Enums ----
class PaymentProvider(str, Enum):
    """Supported payment providers.

    ``QR`` is the push-payment provider that shows a scannable code, ``CARD``
    is the order/capture provider (card or wallet).
    """

    QR = "QR"
    CARD = "CARD"


class PaymentStatus(str, Enum):
    """Lifecycle of a payment intent. CONFIRMED and FAILED are terminal."""

    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self is not PaymentStatus.PENDING


class FailureCause(str, Enum):
    """Why a single cart line could not be decremented."""

    INSUFFICIENT_STOCK = "INSUFFICIENT_STOCK"
    PRODUCT_MISSING = "PRODUCT_MISSING"
    INVENTORY_UNAVAILABLE = "INVENTORY_UNAVAILABLE"


# ---- Entities / DTOs ----
@dataclass(frozen=True)
class Product:
    """A catalog product as returned by the inventory collaborator."""

    id: int
    name: str
    price: Decimal
    quantity: int
    image: str | None = None


@dataclass(frozen=True)
class CartLine:
    """A single line of a cart or snapshot.

    Attributes:
        product_id: Identifier of the product in the inventory.
        unit_price: Price per unit, non-negative.
        quantity: Units requested. Lines with quantity <= 0 are never
            decremented.
        name: Product name kept for display only.
    """

    product_id: int
    unit_price: Decimal
    quantity: int
    name: str = ""

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "unit_price": str(self.unit_price),
            "quantity": self.quantity,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CartLine":
        return cls(
            product_id=int(data["product_id"]),
            unit_price=Decimal(str(data["unit_price"])),
            quantity=int(data["quantity"]),
            name=data.get("name") or "",
        )


@dataclass(frozen=True)
class CartSnapshot:
    """Immutable, ordered copy of the cart taken when checkout begins."""

    lines: Tuple[CartLine, ...]

    def __iter__(self):
        return iter(self.lines)

    def __len__(self) -> int:
        return len(self.lines)

    def to_list(self) -> list[dict]:
        return [line.to_dict() for line in self.lines]

    @classmethod
    def from_list(cls, data: Iterable[dict]) -> "CartSnapshot":
        return cls(lines=tuple(CartLine.from_dict(d) for d in data))


@dataclass(frozen=True)
class DeliveryDetails:
    full_name: str = ""
    address: str = ""
    contact: str = ""

    REQUIRED = ("full_name", "address", "contact")

    def missing_fields(self) -> list[str]:
        """Return the names of required fields that are empty or blank."""
        return [name for name in self.REQUIRED if not str(getattr(self, name) or "").strip()]

    def to_dict(self) -> dict:
        return {"full_name": self.full_name, "address": self.address, "contact": self.contact}

    @classmethod
    def from_dict(cls, data: dict | None) -> "DeliveryDetails":
        data = data or {}
        return cls(
            full_name=data.get("full_name") or "",
            address=data.get("address") or "",
            contact=data.get("contact") or "",
        )


class InvalidTransition(RuntimeError):
    """Raised when a terminal payment intent is asked to change state."""


@dataclass
class PaymentIntent:
    """One attempt to collect payment for a given amount.

    Attributes:
        provider: Which gateway created the intent.
        amount: Amount in major units, two decimals.
        external_reference: Opaque reference returned by the provider (the
            QR retrieval reference or the card provider order id).
        status: Current ``PaymentStatus``; starts PENDING.
        renderable_payload: Something the caller can show to the user, e.g.
            a QR image data URL. Not persisted in the session.
    """

    provider: PaymentProvider
    amount: Decimal
    external_reference: str
    status: PaymentStatus = PaymentStatus.PENDING
    renderable_payload: str | None = None

    def mark_confirmed(self) -> None:
        self._transition(PaymentStatus.CONFIRMED)

    def mark_failed(self) -> None:
        self._transition(PaymentStatus.FAILED)

    def _transition(self, target: PaymentStatus) -> None:
        if self.status.is_terminal:
            raise InvalidTransition(f"{self.status.value} -> {target.value}")
        self.status = target

    def to_dict(self) -> dict:
        return {
            "provider": self.provider.value,
            "amount": str(self.amount),
            "external_reference": self.external_reference,
            "status": self.status.value,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PaymentIntent":
        return cls(
            provider=PaymentProvider(data["provider"]),
            amount=Decimal(str(data["amount"])),
            external_reference=data["external_reference"],
            status=PaymentStatus(data.get("status", PaymentStatus.PENDING.value)),
        )


@dataclass
class ReconciliationResult:
    """Outcome of decrementing stock for every line of a snapshot.

    ``decremented_lines`` keeps the order in which decrements succeeded,
    ``failed_lines`` maps product id to the ``FailureCause`` in the order
    failures happened.
    """

    decremented_lines: list[int] = field(default_factory=list)
    failed_lines: dict[int, FailureCause] = field(default_factory=dict)
    compensated_lines: list[int] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed_lines

    def as_log_dict(self) -> dict:
        return {
            "decremented": list(self.decremented_lines),
            "failed": {str(pid): cause.value for pid, cause in self.failed_lines.items()},
            "compensated": list(self.compensated_lines),
        }


@dataclass(frozen=True)
class Order:
    """Immutable record of a completed purchase."""

    id: int
    full_name: str
    address: str
    contact: str
    payment_method: PaymentProvider
    lines: Tuple[CartLine, ...]
    total: Decimal
    created_at: datetime
    payment_reference: str | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "full_name": self.full_name,
            "address": self.address,
            "contact": self.contact,
            "payment_method": self.payment_method.value,
            "lines": [line.to_dict() for line in self.lines],
            "total": str(self.total),
            "created_at": self.created_at.isoformat(),
            "payment_reference": self.payment_reference,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Order":
        return cls(
            id=int(data["id"]),
            full_name=data["full_name"],
            address=data["address"],
            contact=data["contact"],
            payment_method=PaymentProvider(data["payment_method"]),
            lines=tuple(CartLine.from_dict(d) for d in data["lines"]),
            total=Decimal(str(data["total"])),
            created_at=datetime.fromisoformat(data["created_at"]),
            payment_reference=data.get("payment_reference"),
        )


# ---- Ports (DIP) ----
class InventoryPort(Protocol):
    """Port describing the inventory operations used by checkout.

    ``decrement_stock`` must be atomic against concurrent callers: it
    decrements only when the current stock covers the requested quantity and
    reports how many rows it changed (0 or 1).
    """

    def get_product(self, product_id: int) -> Product | None:
        raise NotImplementedError()

    def list_products(self) -> list[Product]:
        raise NotImplementedError()

    def decrement_stock(self, product_id: int, quantity: int) -> int:
        raise NotImplementedError()

    def restock(self, product_id: int, quantity: int) -> int:
        raise NotImplementedError()


class PaymentGatewayPort(Protocol):
    """Port describing a payment provider.

    Implementers create an intent for an amount and later confirm it against
    the provider. ``confirm`` returns True only when the provider reports a
    completed payment, False on an explicit failure, raises
    ``PaymentPendingError`` while the provider has not settled it yet and
    ``GatewayUnavailableError`` when the provider cannot be reached.

    ``confirm_is_query`` is True when ``confirm`` only reads the provider's
    status (QR); an unreachable provider then leaves the intent PENDING. A
    capture (card) is an action, so losing it fails the intent.
    """

    provider: PaymentProvider
    confirm_is_query: bool = False

    def create_intent(self, amount: Decimal) -> PaymentIntent:
        raise NotImplementedError()

    def confirm(self, intent: PaymentIntent) -> bool:
        raise NotImplementedError()


# ---- Pure operations ----
def snapshot_cart(lines: Iterable[CartLine]) -> CartSnapshot:
    """Take an immutable copy of the cart.

    Raises:
        EmptyCartError: If the cart has no lines.
    """
    snapshot = CartSnapshot(lines=tuple(lines))
    if not snapshot.lines:
        raise EmptyCartError("Your cart is empty")
    return snapshot


def line_subtotal(line: CartLine) -> Decimal:
    return line.unit_price * line.quantity


def compute_total(snapshot: Iterable[CartLine]) -> Decimal:
    """Sum line subtotals and round once, half-up, to two decimals."""
    total = sum((line_subtotal(line) for line in snapshot), Decimal("0"))
    return total.quantize(CENTS, rounding=ROUND_HALF_UP)
