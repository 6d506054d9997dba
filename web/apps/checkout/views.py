"""HTTP views for the shop's cart, checkout and payment flow.

Views are kept intentionally small: they validate requests (via Pydantic),
wrap the Django session in a ``CheckoutSession``, delegate to the
``CheckoutService`` returned by ``providers.get_checkout_service()`` and turn
the result, or the typed checkout error, into a JSON response.

Every error body carries a ``detail`` code and, where the old pages used to
redirect, a ``redirect`` hint the front end follows:

- EMPTY_CART → 400, back to the cart
- VALIDATION_ERROR → 400, back to the checkout form with the submitted values
- GATEWAY_UNAVAILABLE → 503, payment failure page naming the provider
- PAYMENT_NOT_CONFIRMED → 402, payment failure page
- PAYMENT_PENDING → 402, no redirect; the client may confirm again
- STOCK_RECONCILIATION_FAILED / DATA_INTEGRITY → 409, back to the cart with a
  generic message (the failing lines are only logged)
"""

import logging

from pydantic import ValidationError as SchemaError
from rest_framework import status
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from . import providers
from .domain import DeliveryDetails, Order, PaymentIntent, PaymentProvider, compute_total, line_subtotal
from .errors import (
    CheckoutError,
    DataIntegrityError,
    EmptyCartError,
    GatewayUnavailableError,
    NoPendingPaymentError,
    PaymentAlreadySettledError,
    PaymentNotConfirmedError,
    PaymentPendingError,
    ProductNotFoundError,
    StockReconciliationError,
    ValidationError,
)
from .repository import OrderRepository
from .schemas import AddToCartIn, CaptureIn, CartLineOut, CheckoutIn, OrderReadDTO, QrConfirmIn, UpdateCartIn
from .session import CheckoutSession

logger = logging.getLogger(__name__)

CART_URL = "/cart"
CHECKOUT_URL = "/checkout"
SHOPPING_URL = "/shopping"

ERROR_STATUS = {
    EmptyCartError: (status.HTTP_400_BAD_REQUEST, CART_URL),
    ValidationError: (status.HTTP_400_BAD_REQUEST, CHECKOUT_URL),
    ProductNotFoundError: (status.HTTP_404_NOT_FOUND, SHOPPING_URL),
    GatewayUnavailableError: (status.HTTP_503_SERVICE_UNAVAILABLE, None),
    PaymentNotConfirmedError: (status.HTTP_402_PAYMENT_REQUIRED, None),
    PaymentPendingError: (status.HTTP_402_PAYMENT_REQUIRED, None),
    DataIntegrityError: (status.HTTP_409_CONFLICT, CART_URL),
    StockReconciliationError: (status.HTTP_409_CONFLICT, CART_URL),
    PaymentAlreadySettledError: (status.HTTP_409_CONFLICT, None),
    NoPendingPaymentError: (status.HTTP_409_CONFLICT, CHECKOUT_URL),
}


def _failure_url(provider: str) -> str:
    return f"/payment/{provider.lower()}/fail"


def error_response(exc: CheckoutError) -> Response:
    """Map a checkout error to its JSON response."""
    code, redirect = ERROR_STATUS.get(type(exc), (status.HTTP_400_BAD_REQUEST, None))
    body = {"detail": str(exc), "message": exc.message}
    if isinstance(exc, ValidationError):
        body["fields"] = exc.fields
        body["form"] = exc.submitted
    if isinstance(exc, (GatewayUnavailableError, PaymentNotConfirmedError)):
        body["provider"] = exc.provider
        # pending payments can be confirmed again from the same page
        if not isinstance(exc, PaymentPendingError):
            redirect = _failure_url(exc.provider)
    if isinstance(exc, StockReconciliationError):
        body["message"] = "Stock update failed. Please try again."
    if redirect:
        body["redirect"] = redirect
    return Response(body, status=code)


def submitted_form(data) -> dict:
    """Echo a checkout submission back with field names instead of aliases."""
    if hasattr(data, "dict"):
        data = data.dict()
    if not isinstance(data, dict):
        return {}
    return {CheckoutIn.field_name(key): value for key, value in data.items()}


def checkout_form_error(exc: SchemaError, data) -> Response:
    """Turn a rejected checkout submission into an error response.

    An unrecognised payment label is INVALID_PAYMENT_METHOD, anything else is
    a VALIDATION_ERROR naming the offending fields.
    """
    form = submitted_form(data)
    fields = []
    for err in exc.errors():
        name = CheckoutIn.field_name(str(err["loc"][0])) if err["loc"] else "__all__"
        if name not in fields:
            fields.append(name)
    if "payment_method" in fields:
        body = {"detail": "INVALID_PAYMENT_METHOD", "message": "Invalid payment method", "form": form, "redirect": CHECKOUT_URL}
        return Response(body, status=status.HTTP_400_BAD_REQUEST)
    return error_response(ValidationError(fields, submitted=form))


def upstream_unavailable() -> Response:
    return Response({"detail": "UPSTREAM_UNAVAILABLE"}, status=status.HTTP_503_SERVICE_UNAVAILABLE)


def cart_payload(lines) -> dict:
    items = [
        CartLineOut(
            product_id=line.product_id,
            name=line.name,
            unit_price=line.unit_price,
            quantity=line.quantity,
            subtotal=line_subtotal(line),
        ).model_dump(mode="json")
        for line in lines
    ]
    return {"items": items, "total": str(compute_total(lines))}


def order_payload(order: Order) -> dict:
    return OrderReadDTO.model_validate(order.to_dict()).model_dump(mode="json")


def intent_payload(intent: PaymentIntent) -> dict:
    body = {
        "provider": intent.provider.value,
        "amount": f"{intent.amount:.2f}",
        "reference": intent.external_reference,
        "status": intent.status.value,
    }
    if intent.renderable_payload:
        body["qr_code_url"] = intent.renderable_payload
    return body


def _session(request) -> CheckoutSession:
    return CheckoutSession(request.session)


def _service(request):
    return providers.get_checkout_service(user_id=request.user.pk)


# ---------------- Catalog ---------------- #

class ProductListView(APIView):
    def get(self, request):
        try:
            products = _service(request).inventory.list_products()
        except Exception:
            logger.exception("product listing failed")
            return upstream_unavailable()
        return Response(
            [{"id": p.id, "name": p.name, "price": str(p.price), "quantity": p.quantity, "image": p.image} for p in products]
        )


class ProductDetailView(APIView):
    def get(self, request, pid: int):
        try:
            p = _service(request).inventory.get_product(pid)
        except Exception:
            logger.exception("product lookup failed")
            return upstream_unavailable()
        if p is None:
            return error_response(ProductNotFoundError("Product not found"))
        return Response({"id": p.id, "name": p.name, "price": str(p.price), "quantity": p.quantity, "image": p.image})


# ---------------- Cart ---------------- #

class CartView(APIView):
    """Show the cart with per-line subtotals and the rounded total."""

    def get(self, request):
        return Response(cart_payload(_session(request).cart))


class CartItemsView(APIView):
    def post(self, request):
        """Add a product to the cart (an existing line gets the new quantity)."""
        try:
            dto = AddToCartIn.model_validate(request.data)
        except SchemaError as e:
            return Response({"detail": str(e)}, status=status.HTTP_400_BAD_REQUEST)

        session = _session(request)
        try:
            _service(request).add_to_cart(session, dto.product_id, dto.quantity)
        except CheckoutError as e:
            return error_response(e)
        except Exception:
            logger.exception("add to cart failed")
            return upstream_unavailable()
        return Response(cart_payload(session.cart), status=status.HTTP_201_CREATED)


class CartItemView(APIView):
    def patch(self, request, pid: int):
        try:
            dto = UpdateCartIn.model_validate(request.data)
        except SchemaError as e:
            return Response({"detail": str(e)}, status=status.HTTP_400_BAD_REQUEST)
        session = _session(request)
        session.update_quantity(pid, dto.quantity)
        return Response(cart_payload(session.cart))

    def delete(self, request, pid: int):
        session = _session(request)
        session.remove_item(pid)
        return Response(cart_payload(session.cart))


# ---------------- Checkout ---------------- #

class CheckoutView(APIView):
    """Checkout summary (GET) and payment start (POST)."""

    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "checkout"

    def get(self, request):
        try:
            snapshot, total = _service(request).summary(_session(request))
        except CheckoutError as e:
            return error_response(e)
        body = cart_payload(snapshot)
        body["total"] = str(total)
        body["delivery"] = _session(request).delivery.to_dict()
        return Response(body)

    def post(self, request):
        """Store delivery details and open a payment intent.

        Returns:
            Response: 201 with the intent (reference, amount, QR image for
            the QR provider) on success, or an error response.
        """
        try:
            dto = CheckoutIn.model_validate(request.data)
        except SchemaError as e:
            return checkout_form_error(e, request.data)

        delivery = DeliveryDetails(full_name=dto.full_name, address=dto.address, contact=dto.contact)
        session = _session(request)
        service = _service(request)
        try:
            if dto.payment_method is None:
                service.summary(session)
                raise ValidationError(
                    delivery.missing_fields() + ["payment_method"],
                    submitted={**delivery.to_dict(), "payment_method": ""},
                )
            intent = service.begin(session, delivery, dto.payment_method)
        except CheckoutError as e:
            return error_response(e)
        return Response(intent_payload(intent), status=status.HTTP_201_CREATED)


# ---------------- Payment confirmation ---------------- #

class _ConfirmMixin:
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "payments"

    def _confirm(self, request, provider: PaymentProvider, reference: str | None) -> Response:
        try:
            order = _service(request).confirm(_session(request), provider, reference)
        except CheckoutError as e:
            return error_response(e)
        body = order_payload(order)
        body["redirect"] = f"/payment/{provider.value.lower()}/success"
        return Response(body, status=status.HTTP_201_CREATED)


class QrConfirmView(_ConfirmMixin, APIView):
    """Called by the payment page once the user says they scanned and paid.

    The request only triggers a status query against the QR provider; it is
    not taken as proof of payment.
    """

    def post(self, request):
        try:
            dto = QrConfirmIn.model_validate(request.data)
        except SchemaError as e:
            return Response({"detail": str(e)}, status=status.HTTP_400_BAD_REQUEST)
        return self._confirm(request, PaymentProvider.QR, dto.txn_retrieval_ref)


class CardCaptureView(_ConfirmMixin, APIView):
    def post(self, request):
        try:
            dto = CaptureIn.model_validate(request.data)
        except SchemaError as e:
            return Response({"detail": str(e)}, status=status.HTTP_400_BAD_REQUEST)
        return self._confirm(request, PaymentProvider.CARD, dto.order_id)


# ---------------- Orders ---------------- #

class OrderHistoryView(APIView):
    """Orders of the signed-in user, newest first, read from the orders table."""

    def get(self, request):
        orders = OrderRepository(request.user.pk).list()
        return Response({"count": len(orders), "results": [order_payload(o) for o in orders]})


class OrderDetailView(APIView):
    def get(self, request, oid: int):
        order = OrderRepository(request.user.pk).get(oid)
        if order is not None:
            return Response(order_payload(order))
        return Response({"detail": "NOT_FOUND"}, status=status.HTTP_404_NOT_FOUND)
