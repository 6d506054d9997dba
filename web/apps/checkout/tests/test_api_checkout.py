"""API tests for checkout, payment confirmation and order history.

These tests exercise the full HTTP flow against the stub adapters: begin a
checkout, confirm with the QR or card provider, and read the resulting
order. Failure paths check status codes, error codes and redirect hints.
"""
import pytest
from django.db import connection
from django.test import Client

from apps.checkout import adapters
from apps.checkout.errors import PaymentPendingError

pytestmark = pytest.mark.django_db

CHECKOUT_URL = "/api/checkout/"
QR_CONFIRM_URL = "/api/payments/qr/confirm/"
CAPTURE_URL = "/api/payments/card/capture/"

DELIVERY = {"fullName": "Tan Ah Kow", "address": "1 Orchard Rd", "contact": "91234567"}


def post(client, url, payload):
    return client.post(url, data=payload, content_type="application/json")


def fill_cart(client, pid=1, qty=2):
    r = post(client, "/api/cart/items/", {"productId": pid, "quantity": qty})
    assert r.status_code == 201


def begin(client, method="NETQR", **overrides):
    return post(client, CHECKOUT_URL, {**DELIVERY, "paymentMethod": method, **overrides})


def test_qr_checkout_end_to_end(shopper):
    fill_cart(shopper, 1, 2)

    r = begin(shopper, "NETQR")
    assert r.status_code == 201
    intent = r.json()
    assert intent["provider"] == "QR"
    assert intent["amount"] == "3.00"
    assert intent["status"] == "PENDING"
    assert intent["qr_code_url"].startswith("data:image/png;base64,")

    r = post(shopper, QR_CONFIRM_URL, {"txnRetrievalRef": intent["reference"]})
    assert r.status_code == 201
    order = r.json()
    assert order["total"] == "3.00"
    assert order["payment_method"] == "QR"
    assert order["full_name"] == "Tan Ah Kow"
    assert order["redirect"] == "/payment/qr/success"

    assert shopper.get("/api/cart/").json()["items"] == []
    history = shopper.get("/api/orders/").json()
    assert history["count"] == 1
    assert history["results"][0]["id"] == order["id"]
    assert shopper.get(f"/api/orders/{order['id']}/").json()["total"] == "3.00"
    assert shopper.get("/api/products/1/").json()["quantity"] == 48


def test_order_is_persisted(shopper):
    fill_cart(shopper, 3, 1)
    ref = begin(shopper).json()["reference"]
    order = post(shopper, QR_CONFIRM_URL, {"txnRetrievalRef": ref}).json()

    with connection.cursor() as cur:
        cur.execute("select total, payment_method, payment_reference from orders where order_number = %s", [order["id"]])
        row = cur.fetchone()
    assert row is not None
    total, method, reference = row
    assert str(total) in ("3.50", "3.5")
    assert method == "QR"
    assert reference == ref


def test_card_checkout_end_to_end(shopper):
    fill_cart(shopper, 2, 5)
    intent = begin(shopper, "PayPal").json()
    assert intent["provider"] == "CARD"
    assert "qr_code_url" not in intent

    r = post(shopper, CAPTURE_URL, {"orderId": intent["reference"]})
    assert r.status_code == 201
    assert r.json()["total"] == "4.00"
    assert r.json()["redirect"] == "/payment/card/success"


def test_card_capture_not_completed(shopper, monkeypatch):
    monkeypatch.setattr(adapters.CardGatewayStub, "confirm", lambda self, intent: False)
    fill_cart(shopper, 1, 1)
    ref = begin(shopper, "CARD").json()["reference"]

    r = post(shopper, CAPTURE_URL, {"orderId": ref})
    assert r.status_code == 402
    body = r.json()
    assert body["detail"] == "PAYMENT_NOT_CONFIRMED"
    assert body["provider"] == "CARD"
    assert body["redirect"] == "/payment/card/fail"
    assert len(shopper.get("/api/cart/").json()["items"]) == 1
    assert shopper.get("/api/products/1/").json()["quantity"] == 50


def test_qr_payment_pending_can_be_confirmed_again(shopper, monkeypatch):
    calls = []
    original = adapters.QrGatewayStub.confirm

    def pending_once(self, intent):
        calls.append(intent.external_reference)
        if len(calls) == 1:
            raise PaymentPendingError("QR", "Payment not received yet")
        return original(self, intent)

    monkeypatch.setattr(adapters.QrGatewayStub, "confirm", pending_once)
    fill_cart(shopper, 1, 2)
    ref = begin(shopper).json()["reference"]

    r = post(shopper, QR_CONFIRM_URL, {"txnRetrievalRef": ref})
    assert r.status_code == 402
    body = r.json()
    assert body["detail"] == "PAYMENT_PENDING"
    assert body["provider"] == "QR"
    assert "redirect" not in body
    assert shopper.get("/api/products/1/").json()["quantity"] == 50

    r = post(shopper, QR_CONFIRM_URL, {"txnRetrievalRef": ref})
    assert r.status_code == 201
    assert calls == [ref, ref]
    assert shopper.get("/api/orders/").json()["count"] == 1


def test_empty_cart_redirects_to_cart(shopper):
    r = begin(shopper)
    assert r.status_code == 400
    assert r.json()["detail"] == "EMPTY_CART"
    assert r.json()["redirect"] == "/cart"
    assert shopper.get(CHECKOUT_URL).json()["detail"] == "EMPTY_CART"


def test_checkout_summary(shopper):
    fill_cart(shopper, 1, 3)
    body = shopper.get(CHECKOUT_URL).json()
    assert body["total"] == "4.50"
    assert body["items"][0]["subtotal"] == "4.50"


def test_blank_delivery_field_echoes_form(shopper):
    fill_cart(shopper)
    r = begin(shopper, fullName="   ")
    assert r.status_code == 400
    body = r.json()
    assert body["detail"] == "VALIDATION_ERROR"
    assert body["fields"] == ["full_name"]
    assert body["form"]["address"] == "1 Orchard Rd"
    assert body["redirect"] == "/checkout"


def test_missing_payment_method_echoes_form(shopper):
    fill_cart(shopper)
    r = post(shopper, CHECKOUT_URL, {**DELIVERY, "contact": ""})
    assert r.status_code == 400
    body = r.json()
    assert body["detail"] == "VALIDATION_ERROR"
    assert body["fields"] == ["contact", "payment_method"]
    assert body["form"]["full_name"] == "Tan Ah Kow"
    assert body["form"]["payment_method"] == ""
    assert body["redirect"] == "/checkout"


def test_blank_payment_method_is_a_validation_error(shopper):
    fill_cart(shopper)
    r = begin(shopper, "  ")
    assert r.status_code == 400
    assert r.json()["detail"] == "VALIDATION_ERROR"
    assert r.json()["fields"] == ["payment_method"]


def test_malformed_delivery_field_is_a_validation_error(shopper):
    fill_cart(shopper)
    r = begin(shopper, address=["1 Orchard Rd"])
    assert r.status_code == 400
    body = r.json()
    assert body["detail"] == "VALIDATION_ERROR"
    assert body["fields"] == ["address"]
    assert body["form"]["full_name"] == "Tan Ah Kow"
    assert body["redirect"] == "/checkout"


def test_unknown_payment_method(shopper):
    fill_cart(shopper)
    r = begin(shopper, "BITCOIN")
    assert r.status_code == 400
    assert r.json()["detail"] == "INVALID_PAYMENT_METHOD"
    assert r.json()["form"]["payment_method"] == "BITCOIN"
    assert r.json()["redirect"] == "/checkout"


def test_insufficient_stock_keeps_cart(shopper):
    fill_cart(shopper, 3, 21)
    ref = begin(shopper).json()["reference"]

    r = post(shopper, QR_CONFIRM_URL, {"txnRetrievalRef": ref})
    assert r.status_code == 409
    body = r.json()
    assert body["detail"] == "STOCK_RECONCILIATION_FAILED"
    assert body["redirect"] == "/cart"
    assert body["message"] == "Stock update failed. Please try again."
    assert shopper.get("/api/cart/").json()["items"][0]["quantity"] == 21
    assert shopper.get("/api/orders/").json()["count"] == 0


def test_confirm_twice_is_rejected(shopper):
    fill_cart(shopper)
    ref = begin(shopper).json()["reference"]
    assert post(shopper, QR_CONFIRM_URL, {"txnRetrievalRef": ref}).status_code == 201

    r = post(shopper, QR_CONFIRM_URL, {"txnRetrievalRef": ref})
    assert r.status_code == 409
    assert r.json()["detail"] == "PAYMENT_ALREADY_SETTLED"
    assert shopper.get("/api/orders/").json()["count"] == 1
    assert shopper.get("/api/products/1/").json()["quantity"] == 48


def test_confirm_without_checkout(shopper):
    r = post(shopper, QR_CONFIRM_URL, {})
    assert r.status_code == 409
    assert r.json()["detail"] == "NO_PENDING_PAYMENT"


def test_unknown_order(shopper):
    assert shopper.get("/api/orders/12345/").status_code == 404


def test_order_history_survives_new_session(shopper):
    fill_cart(shopper)
    ref = begin(shopper).json()["reference"]
    order = post(shopper, QR_CONFIRM_URL, {"txnRetrievalRef": ref}).json()

    shopper.logout()
    assert shopper.login(username="shopper", password="secret123")
    history = shopper.get("/api/orders/").json()
    assert history["count"] == 1
    assert history["results"][0]["id"] == order["id"]
    assert shopper.get(f"/api/orders/{order['id']}/").json()["payment_reference"] == ref


def test_orders_are_private_to_their_user(shopper, django_user_model):
    fill_cart(shopper)
    ref = begin(shopper).json()["reference"]
    order = post(shopper, QR_CONFIRM_URL, {"txnRetrievalRef": ref}).json()

    other = Client()
    other.force_login(django_user_model.objects.create_user(username="other", password="secret123"))
    assert other.get("/api/orders/").json()["count"] == 0
    assert other.get(f"/api/orders/{order['id']}/").status_code == 404


def test_payment_endpoints_require_login(client):
    assert post(client, QR_CONFIRM_URL, {}).status_code == 403
    assert post(client, CHECKOUT_URL, {**DELIVERY, "paymentMethod": "QR"}).status_code == 403
