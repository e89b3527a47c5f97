"""
Unified base exception classes for the checkout pipeline.

Every service-layer failure carries a human-readable message and the
status code a calling controller should answer with.
"""


class ServiceError(Exception):
    """Base exception for all service-layer errors."""

    def __init__(self, message: str, status_code: int = 400):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class CheckoutServiceError(ServiceError):
    """Base exception for checkout pricing, shipping and order errors."""


class InvalidCartError(CheckoutServiceError):
    """Empty cart, unknown product, bad variation or insufficient stock at quote time."""

    def __init__(self, message: str):
        super().__init__(message, 400)


class ShippingUnavailableError(CheckoutServiceError):
    """Destination is not served, or no shipping option can be offered."""

    def __init__(self, message: str, status_code: int = 422):
        super().__init__(message, status_code)


class ShippingAddressRequiredError(ShippingUnavailableError):
    def __init__(self, message: str = "Shipping address is required to fetch rates"):
        super().__init__(message, 400)


class ShippingOptionExpiredError(CheckoutServiceError):
    """A previously quoted option no longer resolves; the buyer must re-quote."""

    def __init__(self, message: str = "Selected shipping option is no longer available. Please refresh rates."):
        super().__init__(message, 409)


class ShippingSelectionRequiredError(CheckoutServiceError):
    def __init__(self):
        super().__init__("Please select a shipping option", 400)


class CouponRejectedError(CheckoutServiceError):
    """Raised by checkout (not by the coupon engine) when the buyer's coupon is invalid."""

    def __init__(self, message: str):
        super().__init__(message, 400)


class OrderNotFoundError(CheckoutServiceError):
    def __init__(self, order_id: int):
        super().__init__(f"Order {order_id} not found", 404)


class StockCommitError(CheckoutServiceError):
    """Stock could not be decremented at payment commit (the order was oversold)."""

    def __init__(self, product_id: int, requested: int):
        self.product_id = product_id
        self.requested = requested
        super().__init__(f"Insufficient stock to commit {requested} unit(s) of product {product_id}", 409)
