# Overview: Service-layer stock counter with row locking and an append-only movement log.

"""
Stock Ledger

WHY: Product stock is the most contended resource in the order core. Every
change goes through this module so that the lock order, the non-negative
invariant and the movement log are enforced in one place.

INVARIANTS:
- Stock never goes negative (checked under lock, backed by a CHECK).
- Every movement appends exactly one InventoryHistory row
  (OUT for orders, IN for cancellations and returns, ADJUST for corrections).
- When several products are touched, rows are locked one at a time in
  ascending product id. This is the deadlock-avoidance contract: two orders
  with overlapping products always request the shared rows in the same order.

The decrease/increase helpers expect the caller to already hold the product
lock (via lock_products) inside an open transaction.
"""

from __future__ import annotations

from typing import Iterable

from ..extensions import db
from ..models import Product, InventoryHistory
from ..errors import InsufficientStockError, NotFoundError, ValidationError
from ..signals import emit_product_stock_changed
from ..time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry


CHANGE_IN = "IN"
CHANGE_OUT = "OUT"
CHANGE_ADJUST = "ADJUST"


def _lock_product(product_id: int) -> Product | None:
    return lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()


def lock_products(product_ids: Iterable[int]) -> list[Product]:
    """
    Lock each distinct product row in ascending id order.

    Returns products in acquisition order. Raises NotFoundError on the first
    unknown id (earlier locks are released by the caller's rollback).
    """
    locked = []
    for product_id in sorted(set(product_ids)):
        product = _lock_product(product_id)
        if product is None:
            raise NotFoundError(f"Product {product_id} not found", {"product_id": product_id})
        locked.append(product)
    return locked


def _append_history(
    product: Product,
    change_type: str,
    change_amount: int,
    before: int,
    reason: str,
    order_id: int | None,
    user_id: int | None,
) -> InventoryHistory:
    record = InventoryHistory(
        product_id=product.id,
        change_type=change_type,
        change_amount=change_amount,
        before_quantity=before,
        after_quantity=product.stock_quantity,
        reason=reason,
        order_id=order_id,
        created_by_user_id=user_id,
        created_at=utcnow(),
    )
    db.session.add(record)
    return record


def decrease_stock(
    product: Product,
    quantity: int,
    *,
    reason: str,
    order_id: int | None = None,
    user_id: int | None = None,
) -> InventoryHistory:
    """Consume stock for an order. Caller must hold the product lock."""
    if quantity <= 0:
        raise ValidationError("Quantity must be positive", {"quantity": quantity}, code="INVALID_QUANTITY")
    before = product.stock_quantity
    if before < quantity:
        raise InsufficientStockError(
            f"Insufficient stock for product {product.id}",
            {"product_id": product.id, "requested": quantity, "available": before},
        )
    product.stock_quantity = before - quantity
    product.sales_count = (product.sales_count or 0) + quantity
    return _append_history(product, CHANGE_OUT, -quantity, before, reason, order_id, user_id)


def increase_stock(
    product: Product,
    quantity: int,
    *,
    reason: str,
    order_id: int | None = None,
    user_id: int | None = None,
    rollback_sales: bool = True,
) -> InventoryHistory:
    """Restore stock (cancel, return). Caller must hold the product lock."""
    if quantity <= 0:
        raise ValidationError("Quantity must be positive", {"quantity": quantity}, code="INVALID_QUANTITY")
    before = product.stock_quantity
    product.stock_quantity = before + quantity
    if rollback_sales:
        product.sales_count = max(0, (product.sales_count or 0) - quantity)
    return _append_history(product, CHANGE_IN, quantity, before, reason, order_id, user_id)


def adjust_stock(product_id: int, delta: int, reason: str, user_id: int | None = None) -> InventoryHistory:
    """
    Manual stock correction in its own transaction.

    A negative delta larger than current stock fails INSUFFICIENT_STOCK
    rather than clamping, so the log always records what actually happened.
    """
    if delta == 0:
        raise ValidationError("Adjustment delta must be non-zero", code="INVALID_QUANTITY")
    if not reason or not reason.strip():
        raise ValidationError("Adjustment reason is required")

    def _op():
        (product,) = lock_products([product_id])
        before = product.stock_quantity
        if before + delta < 0:
            raise InsufficientStockError(
                f"Adjustment would make stock negative for product {product_id}",
                {"product_id": product_id, "available": before, "delta": delta},
            )
        product.stock_quantity = before + delta
        return _append_history(product, CHANGE_ADJUST, delta, before, reason.strip(), None, user_id)

    record = run_with_retry(_op)
    emit_product_stock_changed([product_id])
    return record


def get_history(product_id: int, limit: int = 100) -> list[InventoryHistory]:
    return (
        db.session.query(InventoryHistory)
        .filter_by(product_id=product_id)
        .order_by(InventoryHistory.created_at.desc(), InventoryHistory.id.desc())
        .limit(limit)
        .all()
    )
