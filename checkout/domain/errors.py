"""Exceptions raised by the checkout service.

Each error carries the HTTP status the API layer answers with.
"""


class CheckoutError(Exception):
    """Base exception for all checkout errors."""

    status_code = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(CheckoutError):
    """Bad input from the caller: cart, promotion code, region, transition."""


class ZoneNotFoundError(ValidationError):
    """Raised when no active shipping zone covers a region."""

    def __init__(self, region: str):
        self.region = region
        super().__init__(f"No shipping zone covers region: {region}")


class VariantNotFoundError(ValidationError):
    status_code = 404

    def __init__(self, variant_id: int):
        self.variant_id = variant_id
        super().__init__(f"Product variant not found: {variant_id}")


class InsufficientStockError(ValidationError):
    status_code = 409


class InvalidTransitionError(ValidationError):
    status_code = 409

    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot move order from {current} to {requested}")


class OrderNotFoundError(CheckoutError):
    status_code = 404

    def __init__(self, order_id):
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")


class GatewayError(CheckoutError):
    """The payment provider rejected a call or answered with malformed data."""

    status_code = 502


class PaymentInitializationError(GatewayError):
    """The provider refused to open a transaction (``status: false``)."""


class GatewayTimeout(GatewayError):
    """The provider did not answer in time; the outcome is unknown."""

    status_code = 504


class SignatureError(CheckoutError):
    """Webhook authentication failed."""

    status_code = 401


class ReconciliationConflict(CheckoutError):
    """A payment event that cannot be applied to any order state."""

    status_code = 409


class OrderNotFoundForReference(ReconciliationConflict):
    status_code = 404

    def __init__(self, reference: str):
        self.reference = reference
        super().__init__(f"No order matches payment reference: {reference}")
