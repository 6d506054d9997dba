"""Inventory service API built with FastAPI.

This module exposes the product catalog and the two stock operations the
shop's checkout uses. Validation is performed with Pydantic models, while
persistence and the atomic conditional decrement live in the SQLAlchemy
repository ``repo.InventoryRepo``.
"""

import logging
import time
import uuid
from decimal import Decimal
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel, ConfigDict, Field
from pythonjsonlogger import jsonlogger
from sqlalchemy import text

from repo import InventoryRepo, engine, init_db

app = FastAPI(title="Inventory Service")

logger = logging.getLogger("inventory")
if not logger.handlers:
    h = logging.StreamHandler()
    h.setFormatter(jsonlogger.JsonFormatter("%(asctime)s %(levelname)s %(name)s %(message)s %(request_id)s"))
    logger.addHandler(h)
    logger.setLevel(logging.INFO)


@app.on_event("startup")
def _startup_db():
    # short wait until the database accepts connections
    deadline = time.time() + 30
    while True:
        try:
            with engine.connect() as conn:
                conn.execute(text("select 1"))
            break
        except Exception:
            if time.time() > deadline:
                raise
            time.sleep(1)
    init_db()


class ProductOut(BaseModel):
    """A catalog product with its current stock."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    price: Decimal
    quantity: int
    image: Optional[str] = None


class StockChange(BaseModel):
    """Request body for decrement/restock.

    Attributes:
        quantity: Positive number of units.
    """

    quantity: int = Field(gt=0)


class StockChangeResult(BaseModel):
    """Rows changed by a stock update: 1 on success, 0 otherwise."""

    affected_rows: int


@app.get("/health")
def health():
    return {"ok": True}


@app.get("/products", response_model=List[ProductOut])
def list_products():
    return [ProductOut.model_validate(p) for p in InventoryRepo().list()]


@app.get("/products/{product_id}", response_model=ProductOut)
def get_product(product_id: int):
    p = InventoryRepo().get(product_id)
    if p is None:
        raise HTTPException(status_code=404, detail="NOT_FOUND")
    return ProductOut.model_validate(p)


@app.post("/products/{product_id}/decrement", response_model=StockChangeResult)
def decrement(product_id: int, req: StockChange, request: Request):
    """Decrement stock iff the current quantity covers the request.

    The update is a single conditional statement, so concurrent callers
    cannot oversell. ``affected_rows == 0`` means insufficient stock or an
    unknown product; callers tell them apart with ``GET /products/{id}``.
    """
    affected = InventoryRepo().decrement(product_id, req.quantity)
    if not affected:
        logger.info(
            "decrement rejected",
            extra={"request_id": request.state.request_id, "product_id": product_id, "quantity": req.quantity},
        )
    return StockChangeResult(affected_rows=affected)


@app.post("/products/{product_id}/restock", response_model=StockChangeResult)
def restock(product_id: int, req: StockChange, request: Request):
    affected = InventoryRepo().restock(product_id, req.quantity)
    logger.info(
        "restock",
        extra={"request_id": request.state.request_id, "product_id": product_id, "quantity": req.quantity},
    )
    return StockChangeResult(affected_rows=affected)


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = rid
    try:
        response = await call_next(request)
    finally:
        logger.info("request handled", extra={"request_id": rid, "path": request.url.path, "method": request.method})
    response.headers["X-Request-ID"] = rid
    return response
