"""API tests for the catalog and cart endpoints.

They run against the in-process stub inventory (products 1-4) wired by
``apps.checkout.providers`` when ``USE_HTTP_ADAPTERS`` is off.
"""
import pytest

pytestmark = pytest.mark.django_db

CART_URL = "/api/cart/"
ITEMS_URL = "/api/cart/items/"


def add(client, pid, qty=None):
    payload = {"productId": pid}
    if qty is not None:
        payload["quantity"] = qty
    return client.post(ITEMS_URL, data=payload, content_type="application/json")


def test_requires_login(client):
    assert client.get(CART_URL).status_code == 403
    assert add(client, 1).status_code == 403


def test_list_products(shopper):
    r = shopper.get("/api/products/")
    assert r.status_code == 200
    assert [p["id"] for p in r.json()] == [1, 2, 3, 4]
    assert r.json()[0]["price"] == "1.50"


def test_product_detail_and_missing(shopper):
    assert shopper.get("/api/products/3/").json()["name"] == "Milk"
    r = shopper.get("/api/products/99/")
    assert r.status_code == 404
    assert r.json()["detail"] == "PRODUCT_NOT_FOUND"


def test_add_items_and_show_totals(shopper):
    r = add(shopper, 1, 2)
    assert r.status_code == 201
    add(shopper, 3, 1)
    body = shopper.get(CART_URL).json()
    assert [(i["product_id"], i["quantity"], i["subtotal"]) for i in body["items"]] == [(1, 2, "3.00"), (3, 1, "3.50")]
    assert body["total"] == "6.50"


def test_adding_again_replaces_quantity(shopper):
    add(shopper, 1, 2)
    body = add(shopper, 1, 5).json()
    assert [(i["product_id"], i["quantity"]) for i in body["items"]] == [(1, 5)]


def test_invalid_quantity_defaults_to_one(shopper):
    body = add(shopper, 2, "lots").json()
    assert body["items"][0]["quantity"] == 1


def test_add_unknown_product(shopper):
    r = add(shopper, 99, 1)
    assert r.status_code == 404
    assert r.json()["redirect"] == "/shopping"


def test_add_rejects_bad_product_id(shopper):
    assert add(shopper, 0).status_code == 400


def test_update_quantity_only_when_positive(shopper):
    add(shopper, 1, 2)
    url = f"{ITEMS_URL}1/"
    body = shopper.patch(url, data={"quantity": 0}, content_type="application/json").json()
    assert body["items"][0]["quantity"] == 2
    body = shopper.patch(url, data={"quantity": 4}, content_type="application/json").json()
    assert body["items"][0]["quantity"] == 4
    assert body["total"] == "6.00"


def test_remove_item(shopper):
    add(shopper, 1, 2)
    add(shopper, 2, 1)
    body = shopper.delete(f"{ITEMS_URL}1/").json()
    assert [i["product_id"] for i in body["items"]] == [2]


def test_health_is_public(client):
    r = client.get("/api/health/")
    assert r.status_code == 200
    body = r.json()
    assert body["ok"] is True
    assert body["components"]["adapters"] == {"mode": "stub"}


def test_request_id_is_echoed(shopper):
    r = shopper.get(CART_URL, HTTP_X_REQUEST_ID="abc-123")
    assert r["X-Request-ID"] == "abc-123"
