"""API tests for the inventory service.

They run the FastAPI app against a throwaway sqlite file and check the
catalog reads and the conditional stock updates the checkout relies on.
"""
import threading
from decimal import Decimal

import repo


def test_health(api):
    assert api.get("/health").json() == {"ok": True}


def test_list_products(api, seeded):
    r = api.get("/products")
    assert r.status_code == 200
    body = r.json()
    assert [p["name"] for p in body] == ["P1", "P2"]
    assert body[1]["image"] == "p2.png"


def test_get_product(api, seeded):
    r = api.get(f"/products/{seeded['p1']}")
    assert r.status_code == 200
    body = r.json()
    assert body["quantity"] == 5
    assert float(body["price"]) == 10.0


def test_get_missing_product(api, seeded):
    r = api.get("/products/999")
    assert r.status_code == 404
    assert r.json()["detail"] == "NOT_FOUND"


def test_decrement_when_stock_covers_quantity(api, seeded):
    r = api.post(f"/products/{seeded['p1']}/decrement", json={"quantity": 2})
    assert r.json() == {"affected_rows": 1}
    assert api.get(f"/products/{seeded['p1']}").json()["quantity"] == 3


def test_decrement_never_goes_negative(api, seeded):
    r = api.post(f"/products/{seeded['p1']}/decrement", json={"quantity": 6})
    assert r.json() == {"affected_rows": 0}
    assert api.get(f"/products/{seeded['p1']}").json()["quantity"] == 5


def test_decrement_unknown_product(api, seeded):
    assert api.post("/products/999/decrement", json={"quantity": 1}).json() == {"affected_rows": 0}


def test_quantity_must_be_positive(api, seeded):
    assert api.post(f"/products/{seeded['p1']}/decrement", json={"quantity": 0}).status_code == 422


def test_restock(api, seeded):
    r = api.post(f"/products/{seeded['p2']}/restock", json={"quantity": 4})
    assert r.json() == {"affected_rows": 1}
    assert api.get(f"/products/{seeded['p2']}").json()["quantity"] == 4


def test_request_id_is_echoed(api):
    assert api.get("/health", headers={"X-Request-ID": "rid-9"}).headers["X-Request-ID"] == "rid-9"


def test_concurrent_decrements_sell_last_unit_once(seeded):
    pid = repo.InventoryRepo().add("Last one", Decimal("2.00"), 1)
    barrier = threading.Barrier(2)
    results = []

    def buy():
        barrier.wait()
        results.append(repo.InventoryRepo().decrement(pid, 1))

    threads = [threading.Thread(target=buy) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(results) == [0, 1]
    assert repo.InventoryRepo().get(pid).quantity == 0
