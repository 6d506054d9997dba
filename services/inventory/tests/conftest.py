import os
import tempfile
from decimal import Decimal

import pytest

# repo reads DATABASE_URL at import time
_DB_DIR = tempfile.mkdtemp(prefix="inventory-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'inventory.db')}"

from fastapi.testclient import TestClient  # noqa: E402

import repo  # noqa: E402
from main import app  # noqa: E402


@pytest.fixture
def seeded():
    """Fresh products table holding P1 (10.00, qty 5) and P2 (1.50, qty 0)."""
    repo.Base.metadata.drop_all(repo.engine)
    repo.init_db()
    r = repo.InventoryRepo()
    return {"p1": r.add("P1", Decimal("10.00"), 5), "p2": r.add("P2", Decimal("1.50"), 0, "p2.png")}


@pytest.fixture
def api():
    # no context manager: skip the startup wait for a database server
    return TestClient(app)
