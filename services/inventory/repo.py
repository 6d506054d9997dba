"""SQLAlchemy repository for the product catalog and its stock.

This module provides database persistence for products using SQLAlchemy and
PostgreSQL. Besides plain lookups it implements the two stock changes the
checkout relies on:

- ``decrement`` is a single conditional UPDATE
  (``quantity = quantity - :q WHERE id = :id AND quantity >= :q``), so two
  concurrent checkouts can never oversell: the row lock taken by the UPDATE
  serializes them and the loser sees zero affected rows.
- ``restock`` gives stock back when a checkout is compensated.

Connection parameters come from ``DATABASE_URL`` or the ``DB_*`` env vars.
"""

import os
from contextlib import contextmanager
from decimal import Decimal

from sqlalchemy import Integer, Numeric, String, create_engine, select, update
from sqlalchemy.orm import DeclarativeBase, Session, mapped_column

DB_HOST = os.getenv("DB_HOST", "inventory-db")
DB_PORT = os.getenv("DB_PORT", "5432")
DB_NAME = os.getenv("DB_NAME", "inventory")
DB_USER = os.getenv("DB_USER", "inventory_user")
DB_PASSWORD = os.getenv("DB_PASSWORD", "inventory-pass")

DATABASE_URL = os.getenv(
    "DATABASE_URL", f"postgresql+psycopg://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}"
)
# sqlite (local runs, tests) needs connections shareable across worker threads
_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, pool_pre_ping=True, connect_args=_connect_args)


class Base(DeclarativeBase):
    pass


class Product(Base):
    """SQLAlchemy model for a catalog product.

    Attributes:
        id: Integer primary key.
        name: Display name (legacy column ``productName``).
        price: Unit price with two decimals.
        quantity: Units in stock, never negative.
        image: Optional image file name.
    """

    __tablename__ = "products"
    id = mapped_column(Integer, primary_key=True, autoincrement=True)
    name = mapped_column("productName", String(255), nullable=False)
    price = mapped_column(Numeric(10, 2), nullable=False, default=0)
    quantity = mapped_column(Integer, nullable=False, default=0)
    image = mapped_column(String(255), nullable=True)


def init_db() -> None:
    Base.metadata.create_all(engine)


@contextmanager
def get_session():
    """Yield a SQLAlchemy session that is closed on exit."""
    with Session(engine) as s:
        yield s


class InventoryRepo:
    """Repository for product lookups and stock changes."""

    def list(self) -> list[Product]:
        with get_session() as s:
            return list(s.scalars(select(Product).order_by(Product.id)))

    def get(self, product_id: int) -> Product | None:
        with get_session() as s:
            return s.get(Product, product_id)

    def add(self, name: str, price: Decimal, quantity: int, image: str | None = None) -> int:
        """Insert a product and return its id."""
        with get_session() as s:
            p = Product(name=name, price=price, quantity=quantity, image=image)
            s.add(p)
            s.commit()
            return p.id

    def decrement(self, product_id: int, quantity: int) -> int:
        """Decrement stock iff it covers ``quantity``.

        Returns:
            int: Number of rows changed; 0 when stock is insufficient or the
            product does not exist.
        """
        stmt = (
            update(Product)
            .where(Product.id == product_id, Product.quantity >= quantity)
            .values(quantity=Product.quantity - quantity)
        )
        with get_session() as s:
            res = s.execute(stmt)
            s.commit()
            return res.rowcount

    def restock(self, product_id: int, quantity: int) -> int:
        stmt = update(Product).where(Product.id == product_id).values(quantity=Product.quantity + quantity)
        with get_session() as s:
            res = s.execute(stmt)
            s.commit()
            return res.rowcount
