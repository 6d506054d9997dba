"""Service provider helpers for wiring CheckoutService with ports.

This module exposes a small factory, ``get_checkout_service``, that returns a
configured ``CheckoutService``. When ``settings.USE_HTTP_ADAPTERS`` is truthy
the service talks to the inventory service and the real payment providers
over HTTP. Otherwise it is wired with in-process stubs suitable for tests and
local development; the stub inventory is shared by the whole process so stock
changes persist between requests.
"""

from django.conf import settings

from .adapters import CardGatewayStub, InventoryStub, QrGatewayStub
from .domain import PaymentProvider
from .http_adapters import CardOrderGateway, HttpInventoryClient, NetsQrGateway
from .repository import OrderRepository
from .service import CheckoutService

_stub_inventory = InventoryStub()


def reset_stub_inventory() -> InventoryStub:
    """Replace the shared stub inventory with a fresh one and return it."""
    global _stub_inventory
    _stub_inventory = InventoryStub()
    return _stub_inventory


def get_checkout_service(user_id=None) -> CheckoutService:
    """Return a configured CheckoutService.

    Args:
        user_id: When given, finalized orders are also written to the
            durable order log for that user.

    Returns:
        CheckoutService: A service instance with the appropriate ports.
    """
    order_log = OrderRepository(user_id) if user_id is not None else None
    compensate = getattr(settings, "STOCK_COMPENSATE_ON_FAILURE", True)

    if getattr(settings, "USE_HTTP_ADAPTERS", True):
        return CheckoutService(
            inventory=HttpInventoryClient(),
            gateways={PaymentProvider.QR: NetsQrGateway(), PaymentProvider.CARD: CardOrderGateway()},
            compensate=compensate,
            order_log=order_log,
        )

    return CheckoutService(
        inventory=_stub_inventory,
        gateways={PaymentProvider.QR: QrGatewayStub(), PaymentProvider.CARD: CardGatewayStub()},
        compensate=compensate,
        order_log=order_log,
    )
