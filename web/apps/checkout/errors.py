"""Error taxonomy for the checkout flow.

Every error raised by the checkout core derives from ``CheckoutError``, a
``ValueError`` whose string value is a short upper-case code (for example
``EMPTY_CART``). Views map these codes to HTTP responses; the core never
catches its own errors and never retries.
"""


class CheckoutError(ValueError):
    """Base class for all recoverable checkout errors."""

    code = "CHECKOUT_ERROR"

    def __init__(self, message: str | None = None):
        super().__init__(self.code)
        self.message = message or self.code

    def __str__(self) -> str:
        return self.code


class EmptyCartError(CheckoutError):
    """The cart has no lines; checkout must not start."""

    code = "EMPTY_CART"


class ValidationError(CheckoutError):
    """Delivery details are incomplete.

    Attributes:
        fields: Names of the missing or blank fields.
        submitted: The values the caller submitted, echoed back so a form can
            be re-rendered with them.
    """

    code = "VALIDATION_ERROR"

    def __init__(self, fields: list[str], submitted: dict | None = None):
        super().__init__("Please fill all fields")
        self.fields = list(fields)
        self.submitted = dict(submitted or {})


class GatewayUnavailableError(CheckoutError):
    """The payment provider could not be reached or answered unsuccessfully."""

    code = "GATEWAY_UNAVAILABLE"

    def __init__(self, provider: str, message: str | None = None):
        super().__init__(message)
        self.provider = provider


class PaymentNotConfirmedError(CheckoutError):
    """The provider answered, but the payment is not in a completed state."""

    code = "PAYMENT_NOT_CONFIRMED"

    def __init__(self, provider: str, message: str | None = None):
        super().__init__(message)
        self.provider = provider


class PaymentPendingError(PaymentNotConfirmedError):
    """The provider has not recorded the payment yet; the intent stays PENDING
    and the caller may ask again."""

    code = "PAYMENT_PENDING"


class PaymentAlreadySettledError(CheckoutError):
    """``confirm`` was called on an intent that is already CONFIRMED or FAILED."""

    code = "PAYMENT_ALREADY_SETTLED"


class NoPendingPaymentError(CheckoutError):
    """There is no pending payment in the session matching the request."""

    code = "NO_PENDING_PAYMENT"


class ProductNotFoundError(CheckoutError):
    code = "PRODUCT_NOT_FOUND"


class StockReconciliationError(CheckoutError):
    """One or more cart lines could not be decremented.

    Attributes:
        result: The ``ReconciliationResult`` that caused the failure. It is
            kept for operator logging; end users only see a generic message.
    """

    code = "STOCK_RECONCILIATION_FAILED"

    def __init__(self, result, message: str | None = None):
        super().__init__(message or "Stock update failed. Please try again.")
        self.result = result


class DataIntegrityError(StockReconciliationError):
    """A product referenced by the cart no longer exists."""

    code = "DATA_INTEGRITY"
