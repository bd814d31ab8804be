# Overview: Error taxonomy shared by services and routes.

"""
Order core errors.

Every business failure carries a stable machine-readable `code`, a human
message, optional `details`, and the HTTP status routes should answer with.
Services raise these inside a transaction; the transaction helper rolls back
and re-raises, so nothing partial is ever committed.

LOCK_TIMEOUT is the only retryable condition.
"""

from __future__ import annotations

from flask import jsonify


class OrderCoreError(Exception):
    """Base class for order core failures."""

    code = "ORDER_CORE_ERROR"
    http_status = 400
    retryable = False

    def __init__(self, message: str, details: dict | None = None, *, code: str | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if code:
            self.code = code

    def to_dict(self) -> dict:
        payload = {"error": self.message, "code": self.code}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(OrderCoreError):
    code = "INVALID_REQUEST"
    http_status = 400


class NotFoundError(OrderCoreError):
    code = "NOT_FOUND"
    http_status = 404


class InsufficientStockError(OrderCoreError):
    code = "INSUFFICIENT_STOCK"
    http_status = 409


class InsufficientPointsError(OrderCoreError):
    code = "INSUFFICIENT_POINTS"
    http_status = 409


class InvalidCouponError(OrderCoreError):
    code = "INVALID_COUPON"
    http_status = 409


class InvalidPaymentMethodError(OrderCoreError):
    code = "INVALID_PAYMENT_METHOD"
    http_status = 400


class InvalidStatusError(OrderCoreError):
    code = "INVALID_STATUS"
    http_status = 409


class InvalidItemStatusTransitionError(OrderCoreError):
    code = "INVALID_ITEM_STATUS_TRANSITION"
    http_status = 409


class OrderNotCancellableError(OrderCoreError):
    code = "ORDER_NOT_CANCELLABLE"
    http_status = 409


class ReturnNotAllowedError(OrderCoreError):
    """Return requested on an undelivered order or outside the return window."""
    code = "RETURN_NOT_ALLOWED"
    http_status = 409


class DuplicateError(OrderCoreError):
    code = "DUPLICATE"
    http_status = 409


class LockTimeoutError(OrderCoreError):
    code = "LOCK_TIMEOUT"
    http_status = 503
    retryable = True


def error_response(e: OrderCoreError):
    """JSON body and status for a business error raised inside a route."""
    return jsonify(e.to_dict()), e.http_status
