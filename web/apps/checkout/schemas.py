"""Pydantic schemas for the cart, checkout and payment endpoints.

Request schemas normalize what browsers and the old form posts send (camel
case names, the ``NETQR`` / ``PayPal`` payment labels, quantities as
strings). Blank delivery fields are accepted here and rejected by the
checkout core, so a failed submission can be echoed back unchanged.
"""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .domain import PaymentProvider

PAYMENT_METHOD_ALIASES = {
    "QR": PaymentProvider.QR,
    "NETQR": PaymentProvider.QR,
    "NETS": PaymentProvider.QR,
    "CARD": PaymentProvider.CARD,
    "PAYPAL": PaymentProvider.CARD,
}


class AddToCartIn(BaseModel):
    """Input schema for adding a product to the cart.

    Attributes:
        product_id: Inventory product id.
        quantity: Units wanted. Missing or unparsable values become 1.
    """

    model_config = ConfigDict(populate_by_name=True)

    product_id: int = Field(gt=0, alias="productId")
    quantity: int = 1

    @field_validator("quantity", mode="before")
    @classmethod
    def default_quantity(cls, v):
        try:
            q = int(v)
        except (TypeError, ValueError):
            return 1
        return q if q > 0 else 1


class UpdateCartIn(BaseModel):
    quantity: int


class CheckoutIn(BaseModel):
    """Delivery details and payment method submitted at checkout.

    A missing or blank payment method validates to ``None`` so the view can
    report it together with the blank delivery fields.
    """

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    full_name: str = Field(default="", alias="fullName")
    address: str = ""
    contact: str = ""
    payment_method: Optional[PaymentProvider] = Field(default=None, alias="paymentMethod")

    @field_validator("payment_method", mode="before")
    @classmethod
    def normalize_payment_method(cls, v):
        """Map the accepted labels to a ``PaymentProvider``.

        Raises:
            ValueError: When the label is not a supported payment method.
        """
        key = str(v or "").strip().upper()
        if not key:
            return None
        if key not in PAYMENT_METHOD_ALIASES:
            raise ValueError("Invalid payment method")
        return PAYMENT_METHOD_ALIASES[key]

    @classmethod
    def field_name(cls, loc: str) -> str:
        """Return the field name for an error location given by alias."""
        for name, info in cls.model_fields.items():
            if loc in (name, info.alias):
                return name
        return loc


class QrConfirmIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    txn_retrieval_ref: Optional[str] = Field(default=None, alias="txnRetrievalRef")


class CaptureIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    order_id: str = Field(min_length=1, alias="orderId")


class CartLineOut(BaseModel):
    product_id: int
    name: str
    unit_price: Decimal
    quantity: int
    subtotal: Decimal


class OrderReadDTO(BaseModel):
    """Read model for an order, as returned by the API."""

    id: int
    full_name: str
    address: str
    contact: str
    payment_method: PaymentProvider
    lines: list[dict]
    total: Decimal
    created_at: str
    payment_reference: Optional[str] = None
