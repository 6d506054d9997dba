from decimal import Decimal

from apps.checkout.domain import CartLine, CartSnapshot, PaymentIntent, PaymentProvider, PaymentStatus, Product
from apps.checkout.session import CheckoutSession

APPLES = Product(id=1, name="Apples", price=Decimal("1.50"), quantity=10)
MILK = Product(id=3, name="Milk", price=Decimal("3.50"), quantity=5)


def test_add_item_appends_then_replaces_quantity():
    s = CheckoutSession({})
    s.add_item(APPLES, 2)
    s.add_item(MILK, 1)
    s.add_item(APPLES, 5)
    assert [(line.product_id, line.quantity) for line in s.cart] == [(1, 5), (3, 1)]
    assert s.cart[0].unit_price == Decimal("1.50")
    assert s.cart[0].name == "Apples"


def test_update_quantity_ignores_non_positive():
    s = CheckoutSession({})
    s.add_item(APPLES, 2)
    assert s.update_quantity(1, 0) is False
    assert s.update_quantity(1, -3) is False
    assert s.cart[0].quantity == 2
    assert s.update_quantity(1, 4) is True
    assert s.cart[0].quantity == 4


def test_remove_and_clear():
    s = CheckoutSession({})
    s.add_item(APPLES, 2)
    s.add_item(MILK, 1)
    s.remove_item(1)
    assert [line.product_id for line in s.cart] == [3]
    s.clear_cart()
    assert s.cart == []


def test_store_holds_only_json_friendly_values():
    store = {}
    s = CheckoutSession(store)
    s.add_item(APPLES, 2)
    intent = PaymentIntent(PaymentProvider.QR, Decimal("3.00"), "ref-1", renderable_payload="data:image/png;base64,xx")
    s.set_payment(intent, CartSnapshot((CartLine(1, Decimal("1.50"), 2),)))
    assert store["cart"] == [{"product_id": 1, "name": "Apples", "unit_price": "1.50", "quantity": 2}]
    assert store["payment"]["intent"] == {
        "provider": "QR",
        "amount": "3.00",
        "external_reference": "ref-1",
        "status": "PENDING",
    }


def test_save_intent_persists_status():
    s = CheckoutSession({})
    intent = PaymentIntent(PaymentProvider.CARD, Decimal("9.99"), "ORDER-1")
    s.set_payment(intent, CartSnapshot((CartLine(1, Decimal("9.99"), 1),)))
    intent.mark_confirmed()
    s.save_intent(intent)
    stored, snapshot = s.payment()
    assert stored.status is PaymentStatus.CONFIRMED
    assert snapshot.lines[0].unit_price == Decimal("9.99")


class FakeDjangoSession(dict):
    modified = False


def test_marks_django_session_modified():
    store = FakeDjangoSession()
    CheckoutSession(store).add_item(APPLES, 1)
    assert store.modified is True
