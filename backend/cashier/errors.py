# Overview: Checkout error taxonomy shared by services, routes and the CLI.

"""
Error taxonomy

Client input (400, fix locally then retry):
- InvalidQuantity, InvalidDiscount, EmptyCart, InvalidPaymentMethod

Business rule rejections (409, adjust the cart or request):
- InsufficientStock, DuplicateTransaction, InvalidStatusTransition,
  ReceiptNotAvailable

Transient (503, safe to retry with the same idempotency key):
- CommitFailed

Every error raised after storage was touched is raised only once the unit of
work has been rolled back.
"""

from __future__ import annotations


class CheckoutError(Exception):
    """Base class for checkout errors. Carries a JSON-safe details dict."""

    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": str(self), "details": self.details}


class ValidationError(CheckoutError):
    """400-level input problem."""


class InvalidQuantity(ValidationError):
    pass


class InvalidDiscount(ValidationError):
    pass


class EmptyCart(ValidationError):
    pass


class InvalidPaymentMethod(ValidationError):
    pass


class NotFound(CheckoutError):
    status_code = 404


class UnknownProduct(NotFound):
    """Product missing, inactive, or owned by another store."""

    def __init__(self, product_id: int, reason: str = "product not found"):
        super().__init__(reason, details={"product_id": product_id})
        self.product_id = product_id


class InsufficientStock(CheckoutError):
    """
    Raised when requested quantities exceed available stock.

    `shortfalls` lists every short product; `product_id` and `available`
    describe the first one for callers that only handle a single line.
    """

    status_code = 409

    def __init__(self, shortfalls):
        shortfalls = list(shortfalls)
        if not shortfalls:
            raise ValueError("InsufficientStock requires at least one shortfall")
        first = shortfalls[0]
        super().__init__(
            f"Insufficient stock for product {first.product_id} (available {first.available})",
            details={"items": [s.to_dict() for s in shortfalls]},
        )
        self.shortfalls = shortfalls
        self.product_id = first.product_id
        self.available = first.available


class DuplicateTransaction(CheckoutError):
    status_code = 409


class InvalidStatusTransition(CheckoutError):
    status_code = 409


class ReceiptNotAvailable(CheckoutError):
    status_code = 409


class CommitFailed(CheckoutError):
    """Storage or concurrency failure. Outcome may be unknown; retry with the same key."""

    status_code = 503

    def __init__(self, message: str = "Checkout could not be committed, please try again",
                 *, idempotency_key: str | None = None, retryable: bool = True,
                 details: dict | None = None):
        payload = {"retryable": retryable, "idempotency_key": idempotency_key}
        payload.update(details or {})
        super().__init__(message, details=payload)
        self.idempotency_key = idempotency_key
        self.retryable = retryable
