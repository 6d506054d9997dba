"""HTTP adapter clients with retries, circuit breakers, and context headers.

This module implements concrete HTTP clients for the checkout ports using
``httpx``. It adds:

- Request correlation: propagates ``X-Request-ID`` from a ContextVar set by
    the gateway middleware.
- Circuit breaker per downstream service (inventory, QR provider, card
    provider) to avoid hammering unhealthy dependencies, with HALF_OPEN
    trying again after a timeout.
- Retry with exponential backoff for transport errors and 5xx, applied only
    to idempotent reads (product lookups and the QR status query). Stock
    changes, intent creation and captures are sent once.
- Amount formatting per provider: the QR provider takes major units as a
    two-decimal string, the card provider takes integer minor units.
"""

import logging
import threading
import time
from decimal import Decimal
from typing import Optional

import httpx
from django.conf import settings
from django.utils.module_loading import import_string

from .domain import InventoryPort, PaymentGatewayPort, PaymentIntent, PaymentProvider, Product
from .errors import GatewayUnavailableError, PaymentPendingError

REQUEST_ID_CTX = import_string("gateway.middleware.REQUEST_ID_CTX")

logger = logging.getLogger(__name__)

QR_REQUEST_PATH = "/api/v1/common/payments/nets-qr/request"
QR_QUERY_PATH = "/api/v1/common/payments/nets-qr/query"
QR_OK_RESPONSE_CODE = "00"
QR_OK_TXN_STATUS = 1
QR_FAILED_TXN_STATUS = 2
CARD_COMPLETED_STATUS = "COMPLETED"


# ---------------- Circuit Breaker ---------------- #

CLOSED, OPEN, HALF_OPEN = "CLOSED", "OPEN", "HALF_OPEN"


class CircuitOpenError(RuntimeError):
    """Raised instead of calling a downstream whose breaker is open."""


class CircuitBreaker:
    """Per-downstream circuit breaker.

    ``fail_threshold`` consecutive failures open the circuit. After
    ``reset_timeout`` seconds it turns HALF_OPEN and lets exactly one trial call
    through: a successful trial closes it, a failed one opens it again.
    Safe to share between gunicorn threads.
    """

    def __init__(self, name: str, fail_threshold: int, reset_timeout: float):
        self.name = name
        self.fail_threshold = fail_threshold
        self.reset_timeout = reset_timeout
        self._lock = threading.RLock()
        self._failures = 0
        self._state = CLOSED
        self._opened_at = 0.0
        self._trial_in_flight = False

    @property
    def state(self) -> str:
        with self._lock:
            if self._state == OPEN and time.monotonic() - self._opened_at >= self.reset_timeout:
                self._state = HALF_OPEN
                self._trial_in_flight = False
            return self._state

    def before_call(self) -> str:
        """Admit a call or refuse it; returns the state the call runs under.

        Raises:
            CircuitOpenError: The circuit is OPEN, or HALF_OPEN with its trial call
                already taken.
        """
        with self._lock:
            current = self.state
            if current == OPEN:
                raise CircuitOpenError(f"{self.name}: CIRCUIT_OPEN")
            if current == HALF_OPEN:
                if self._trial_in_flight:
                    raise CircuitOpenError(f"{self.name}: CIRCUIT_HALF_OPEN_BUSY")
                self._trial_in_flight = True
            return current

    def on_success(self):
        with self._lock:
            self._state = CLOSED
            self._failures = 0
            self._trial_in_flight = False

    def on_failure(self):
        with self._lock:
            self._failures += 1
            if self._state == HALF_OPEN or (self._state == CLOSED and self._failures >= self.fail_threshold):
                self._state = OPEN
                self._opened_at = time.monotonic()
            self._trial_in_flight = False

    def on_finish(self):
        # release a trial call that ended without on_success/on_failure
        with self._lock:
            if self._state == HALF_OPEN:
                self._trial_in_flight = False


def _breaker(name: str) -> CircuitBreaker:
    return CircuitBreaker(
        name,
        getattr(settings, "HTTP_CIRCUIT_FAIL_THRESHOLD", 5),
        getattr(settings, "HTTP_CIRCUIT_RESET_TIMEOUT", 30.0),
    )


# one breaker per downstream
_inventory_cb = _breaker("inventory")
_qr_cb = _breaker("nets-qr")
_card_cb = _breaker("card")


# ---------------- Helpers ---------------- #

def _request_headers(extra: Optional[dict] = None) -> dict:
    """Build base headers including X-Request-ID and any extras."""
    headers: dict[str, str] = {}
    rid = REQUEST_ID_CTX.get()
    if rid and rid != "-":
        headers["X-Request-ID"] = rid
    if extra:
        headers.update(extra)
    return headers


def _retry_policy():
    """Return retry configuration as (max_retries, backoff_base_seconds)."""
    return (
        getattr(settings, "HTTP_RETRY_MAX", 3),
        getattr(settings, "HTTP_RETRY_BACKOFF_BASE", 0.15),
    )


def _should_retry(resp: Optional[httpx.Response], exc: Optional[Exception]) -> bool:
    """Retry only on transport errors or HTTP 5xx."""
    if exc is not None:
        return True
    if resp is not None and 500 <= resp.status_code < 600:
        return True
    return False


def _timeout(override: float | None) -> float:
    return override or getattr(settings, "HTTP_TIMEOUT_SECS", 5.0)


def _send(
    breaker: CircuitBreaker,
    method: str,
    url: str,
    *,
    timeout: float,
    retry: bool = False,
    json: Optional[dict] = None,
    headers: Optional[dict] = None,
    auth=None,
) -> httpx.Response:
    """Send one request through ``breaker``.

    Responses below 500 are returned to the caller for business mapping and
    count as breaker successes. Transport errors and 5xx are retried (only
    when ``retry`` is set) with exponential backoff, then raised.

    Raises:
        CircuitOpenError: The breaker refused the call.
        httpx.RequestError: Transport error after the last attempt.
        httpx.HTTPStatusError: 5xx after the last attempt.
    """
    max_retries, backoff = _retry_policy() if retry else (1, 0.0)
    max_retries = max(1, max_retries)
    tries = 0

    state = breaker.before_call()
    hdrs = _request_headers({"X-Circuit-State": state, "X-Retry-Count": "0", **(headers or {})})
    kwargs = {"headers": hdrs}
    if json is not None:
        kwargs["json"] = json
    if auth is not None:
        kwargs["auth"] = auth

    try:
        with httpx.Client(timeout=timeout) as client:
            while True:
                resp = None
                exc = None
                try:
                    resp = getattr(client, method)(url, **kwargs)
                    if not _should_retry(resp, None):
                        breaker.on_success()
                        return resp
                except httpx.RequestError as e:
                    exc = e

                tries += 1
                hdrs["X-Retry-Count"] = str(tries)

                if tries >= max_retries:
                    breaker.on_failure()
                    if exc:
                        raise exc
                    resp.raise_for_status()
                    return resp

                sleep_s = backoff * (2 ** (tries - 1))
                cap = getattr(settings, "HTTP_RETRY_MAX_SLEEP", 0.5)
                time.sleep(min(sleep_s, cap))
    finally:
        breaker.on_finish()


def _product_from_json(data: dict) -> Product:
    return Product(
        id=int(data["id"]),
        name=data.get("name") or "",
        price=Decimal(str(data["price"])),
        quantity=int(data.get("quantity") or 0),
        image=data.get("image"),
    )


# ---------------- Inventory Adapter ---------------- #

class HttpInventoryClient(InventoryPort):
    """HTTP client for the inventory service."""

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = (base_url or settings.INVENTORY_BASE_URL).rstrip("/")
        self.timeout = _timeout(timeout)

    def get_product(self, product_id: int) -> Product | None:
        """Look up one product; 404 maps to None.

        Raises:
            httpx.HTTPError: For transport errors or non-404 error responses.
            CircuitOpenError: When the inventory breaker is open.
        """
        resp = _send(_inventory_cb, "get", f"{self.base_url}/products/{product_id}", timeout=self.timeout, retry=True)
        if resp.status_code == 404:
            return None
        resp.raise_for_status()
        return _product_from_json(resp.json())

    def list_products(self) -> list[Product]:
        resp = _send(_inventory_cb, "get", f"{self.base_url}/products", timeout=self.timeout, retry=True)
        resp.raise_for_status()
        return [_product_from_json(p) for p in resp.json()]

    def decrement_stock(self, product_id: int, quantity: int) -> int:
        """Ask the inventory to decrement iff stock covers ``quantity``.

        Returns:
            int: ``affected_rows`` reported by the service; 0 means
            insufficient stock or missing product.
        """
        return self._change(product_id, "decrement", quantity)

    def restock(self, product_id: int, quantity: int) -> int:
        return self._change(product_id, "restock", quantity)

    def _change(self, product_id: int, action: str, quantity: int) -> int:
        resp = _send(
            _inventory_cb,
            "post",
            f"{self.base_url}/products/{product_id}/{action}",
            timeout=self.timeout,
            json={"quantity": quantity},
        )
        if resp.status_code == 404:
            return 0
        resp.raise_for_status()
        return int(resp.json().get("affected_rows", 0))


# ---------------- QR push-payment Adapter ---------------- #

class NetsQrGateway(PaymentGatewayPort):
    """NETS QR gateway.

    ``create_intent`` requests a QR code for the amount; ``confirm`` asks the
    provider, server to server, whether the transaction identified by the
    retrieval reference has been paid. A client saying "I have paid" only
    triggers this query, and a transaction the provider still reports as
    pending can be queried again.
    """

    provider = PaymentProvider.QR
    confirm_is_query = True

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        project_id: str | None = None,
        timeout: float | None = None,
    ):
        self.base_url = (base_url or settings.NETS_API_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.NETS_API_KEY
        self.project_id = project_id if project_id is not None else settings.NETS_PROJECT_ID
        self.timeout = _timeout(timeout)

    def _headers(self) -> dict:
        return {"api-key": self.api_key, "project-id": self.project_id}

    def create_intent(self, amount: Decimal) -> PaymentIntent:
        body = {
            "txn_id": getattr(settings, "NETS_TXN_ID", ""),
            "amt_in_dollars": f"{amount:.2f}",
            "notify_mobile": 0,
        }
        try:
            resp = _send(_qr_cb, "post", self.base_url + QR_REQUEST_PATH, timeout=self.timeout, json=body, headers=self._headers())
            resp.raise_for_status()
            data = (resp.json().get("result") or {}).get("data") or {}
        except (httpx.HTTPError, CircuitOpenError, ValueError) as e:
            logger.warning("NETS QR request failed: %s", e)
            raise GatewayUnavailableError(self.provider.value, "NETS QR generation failed") from e

        if (
            data.get("response_code") == QR_OK_RESPONSE_CODE
            and data.get("txn_status") == QR_OK_TXN_STATUS
            and data.get("qr_code")
            and data.get("txn_retrieval_ref")
        ):
            return PaymentIntent(
                provider=self.provider,
                amount=amount,
                external_reference=data["txn_retrieval_ref"],
                renderable_payload=f"data:image/png;base64,{data['qr_code']}",
            )

        logger.warning("NETS QR generation rejected", extra={"response_code": data.get("response_code")})
        raise GatewayUnavailableError(self.provider.value, "NETS QR generation failed")

    def confirm(self, intent: PaymentIntent) -> bool:
        body = {"txn_retrieval_ref": intent.external_reference, "frontend_timeout_status": 0}
        try:
            resp = _send(
                _qr_cb, "post", self.base_url + QR_QUERY_PATH,
                timeout=self.timeout, retry=True, json=body, headers=self._headers(),
            )
            resp.raise_for_status()
            data = (resp.json().get("result") or {}).get("data") or {}
        except (httpx.HTTPError, CircuitOpenError, ValueError) as e:
            logger.warning("NETS QR query failed: %s", e)
            raise GatewayUnavailableError(self.provider.value, "NETS QR status unavailable") from e
        if data.get("response_code") != QR_OK_RESPONSE_CODE:
            return False
        txn_status = data.get("txn_status")
        if txn_status == QR_OK_TXN_STATUS:
            return True
        if txn_status == QR_FAILED_TXN_STATUS:
            return False
        # not scanned or still processing
        raise PaymentPendingError(self.provider.value, "Payment not received yet")


# ---------------- Card / order Adapter ---------------- #

class CardOrderGateway(PaymentGatewayPort):
    """Order/capture card provider.

    The amount is sent in minor units. A capture only confirms the payment
    when the provider's ``status`` is ``COMPLETED``.
    """

    provider = PaymentProvider.CARD

    def __init__(
        self,
        base_url: str | None = None,
        client_id: str | None = None,
        client_secret: str | None = None,
        currency: str | None = None,
        timeout: float | None = None,
    ):
        self.base_url = (base_url or settings.CARD_API_URL).rstrip("/")
        self.auth = (
            client_id if client_id is not None else settings.CARD_CLIENT_ID,
            client_secret if client_secret is not None else settings.CARD_CLIENT_SECRET,
        )
        self.currency = currency or getattr(settings, "CHECKOUT_CURRENCY", "SGD")
        self.timeout = _timeout(timeout)

    def create_intent(self, amount: Decimal) -> PaymentIntent:
        body = {
            "intent": "CAPTURE",
            "amount_cents": int((amount * 100).to_integral_value()),
            "currency": self.currency,
        }
        try:
            resp = _send(_card_cb, "post", f"{self.base_url}/v2/checkout/orders", timeout=self.timeout, json=body, auth=self.auth)
            resp.raise_for_status()
            order_id = resp.json()["id"]
        except (httpx.HTTPError, CircuitOpenError, ValueError, KeyError) as e:
            logger.warning("card order create failed: %s", e)
            raise GatewayUnavailableError(self.provider.value, "Error creating card order") from e
        return PaymentIntent(provider=self.provider, amount=amount, external_reference=str(order_id))

    def confirm(self, intent: PaymentIntent) -> bool:
        url = f"{self.base_url}/v2/checkout/orders/{intent.external_reference}/capture"
        try:
            resp = _send(_card_cb, "post", url, timeout=self.timeout, json={}, auth=self.auth)
        except (httpx.HTTPError, CircuitOpenError) as e:
            logger.warning("card capture failed: %s", e)
            raise GatewayUnavailableError(self.provider.value, "Card capture unavailable") from e
        if resp.status_code >= 400:
            # declined or unprocessable capture is a business outcome
            logger.info("card capture rejected", extra={"status_code": resp.status_code})
            return False
        try:
            status = resp.json().get("status")
        except ValueError:
            return False
        return status == CARD_COMPLETED_STATUS
