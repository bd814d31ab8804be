# Overview: Service-layer partial cancellation and the return request/approve/reject workflow.

"""
Partial Cancellation & Returns Service

WHY: Shoppers cancel part of an order before it ships, and return part of
it after delivery. Both release units of one order item, refund a
proportional share of the money and of the redeemed points (each refunded
in its own currency), and put stock back.

LIFECYCLE:
1. Partial cancel (PENDING/PAID order, NORMAL item): immediate, no admin
   step. When every unit of every item is released the order is finalized
   exactly like a full cancellation.
2. Return request (DELIVERED order, within RETURN_WINDOW_DAYS): records
   pending_return_quantity only. Nothing is refunded before inspection.
3. Approve (admin): restock, refund, claw back settled reward points,
   pending -> returned, item RETURNED.
4. Reject (admin): pending released back to remaining, item
   RETURN_REJECTED; the shopper may request again.

INVARIANTS:
- quantity = cancelled + returned + pending + remaining, all >= 0
- order.refunded_amount <= payment_amount, order.refunded_points <= used_points
- every entry point locks the order row first, so two operations on the
  same order (cancel vs approve, double approve, racing partial cancels)
  serialize instead of double-applying.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from flask import current_app

from ..models import Order, OrderItem, OrderItemStatus, OrderStatus
from ..errors import (
    InvalidItemStatusTransitionError,
    NotFoundError,
    OrderNotCancellableError,
    ReturnNotAllowedError,
    ValidationError,
)
from ..signals import emit_product_stock_changed
from ..time_utils import utcnow
from . import point_ledger, stock_ledger, tier_service
from .concurrency import run_with_retry
from .order_cancellation_service import finalize_cancellation, lock_order, lock_order_user
from .order_state import can_transition_item, is_cancellable, transition_item
from .refund_calculator import calculate_refund_amount


@dataclass
class ReleaseResult:
    """Outcome of releasing units of one order item."""
    order: Order
    item: OrderItem
    quantity: int
    refund_amount: int = 0
    refunded_points: int = 0
    clawed_back_points: int = 0

    def to_dict(self) -> dict:
        return {
            "order_id": self.order.id,
            "order_item_id": self.item.id,
            "quantity": self.quantity,
            "refund_amount": self.refund_amount,
            "refunded_points": self.refunded_points,
            "clawed_back_points": self.clawed_back_points,
            "item": self.item.to_dict(),
            "order_status": self.order.status,
        }


# =============================================================================
# ITEM MUTATIONS
# =============================================================================

def _find_item(order: Order, order_item_id: int) -> OrderItem:
    for item in order.items:
        if item.id == order_item_id:
            return item
    raise NotFoundError(
        f"Order item {order_item_id} not found on order {order.id}",
        {"order_id": order.id, "order_item_id": order_item_id},
    )


def _require_transition(item: OrderItem, target: OrderItemStatus) -> None:
    if not can_transition_item(item.status, target):
        raise InvalidItemStatusTransitionError(
            f"Order item {item.id} cannot move from {item.status} to {target.value}",
            {"order_item_id": item.id, "from": item.status, "to": target.value},
        )


def _check_quantity(item: OrderItem, quantity: int) -> None:
    if quantity < 1 or quantity > item.remaining_quantity:
        raise ValidationError(
            f"Quantity must be between 1 and {item.remaining_quantity}",
            {"order_item_id": item.id, "quantity": quantity, "remaining_quantity": item.remaining_quantity},
            code="INVALID_QUANTITY",
        )


def apply_partial_cancel(item: OrderItem, quantity: int, refund_amount: int, now: datetime) -> None:
    _require_transition(item, OrderItemStatus.CANCELLED)
    _check_quantity(item, quantity)
    item.cancelled_quantity += quantity
    item.cancelled_amount += refund_amount
    if item.remaining_quantity == 0:
        transition_item(item, OrderItemStatus.CANCELLED, now)


def apply_return_request(item: OrderItem, quantity: int, reason: str, now: datetime) -> None:
    _require_transition(item, OrderItemStatus.RETURN_REQUESTED)
    _check_quantity(item, quantity)
    item.pending_return_quantity = quantity
    item.return_reason = reason
    item.reject_reason = None
    item.rejected_at = None
    transition_item(item, OrderItemStatus.RETURN_REQUESTED, now)


def apply_return_approval(item: OrderItem, refund_amount: int, now: datetime) -> int:
    _require_transition(item, OrderItemStatus.RETURN_APPROVED)
    quantity = item.pending_return_quantity
    item.returned_quantity += quantity
    item.returned_amount += refund_amount
    item.pending_return_quantity = 0
    transition_item(item, OrderItemStatus.RETURN_APPROVED, now)
    transition_item(item, OrderItemStatus.RETURNED, now)
    return quantity


def apply_return_rejection(item: OrderItem, reason: str, now: datetime) -> None:
    _require_transition(item, OrderItemStatus.RETURN_REJECTED)
    item.pending_return_quantity = 0
    item.reject_reason = reason
    transition_item(item, OrderItemStatus.RETURN_REJECTED, now)


# =============================================================================
# PARTIAL CANCELLATION
# =============================================================================

def partial_cancel(user_id: int, order_id: int, order_item_id: int, quantity: int) -> ReleaseResult:
    """
    Cancel `quantity` units of one item before shipment.

    Raises:
        NotFoundError, OrderNotCancellableError, InvalidItemStatusTransitionError,
        ValidationError (INVALID_QUANTITY), LockTimeoutError
    """
    def _op():
        now = utcnow()
        order = lock_order(order_id, user_id=user_id)
        if not is_cancellable(order):
            raise OrderNotCancellableError(
                f"Order {order.order_number} cannot be cancelled in status {order.status}",
                {"order_id": order.id, "status": order.status},
            )
        item = _find_item(order, order_item_id)
        _require_transition(item, OrderItemStatus.CANCELLED)
        _check_quantity(item, quantity)

        (product,) = stock_ledger.lock_products([item.product_id])
        user = lock_order_user(order)

        stock_ledger.increase_stock(
            product,
            quantity,
            reason="PARTIAL_CANCEL",
            order_id=order.id,
            user_id=user_id,
        )

        refund_amount = calculate_refund_amount(order, item, quantity)
        point_refund = point_ledger.calculate_proportional_point_refund(order, item, quantity)
        refunded_points = point_ledger.refund_points(
            user, order, point_refund, f"Partial cancel on order {order.order_number}"
        )
        order.refunded_amount += refund_amount
        user.add_total_spent(-(refund_amount + refunded_points))

        apply_partial_cancel(item, quantity, refund_amount, now)

        if all(i.remaining_quantity == 0 for i in order.items):
            finalize_cancellation(order, user, now, f"Order {order.order_number} cancelled")
        else:
            tier_service.refresh_user_tier(user, f"Partial cancel on order {order.order_number}")

        return ReleaseResult(
            order=order,
            item=item,
            quantity=quantity,
            refund_amount=refund_amount,
            refunded_points=refunded_points,
        )

    result = run_with_retry(_op)
    emit_product_stock_changed([result.item.product_id])
    return result


# =============================================================================
# RETURNS
# =============================================================================

def _check_return_window(order: Order, now: datetime) -> None:
    if order.status != OrderStatus.DELIVERED.value or order.delivered_at is None:
        raise ReturnNotAllowedError(
            "Returns are only accepted for delivered orders",
            {"order_id": order.id, "status": order.status},
        )
    window_days = int(current_app.config.get("RETURN_WINDOW_DAYS", 14))
    deadline = order.delivered_at + timedelta(days=window_days)
    if now > deadline:
        raise ReturnNotAllowedError(
            f"Return period of {window_days} days has expired",
            {"order_id": order.id, "delivered_at": order.delivered_at.isoformat()},
            code="RETURN_PERIOD_EXPIRED",
        )


def request_return(user_id: int, order_id: int, order_item_id: int, quantity: int, reason: str) -> OrderItem:
    """Record a return request. Stock, refunds and points are untouched."""
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("return_reason is required", {"field": "return_reason"})

    def _op():
        now = utcnow()
        order = lock_order(order_id, user_id=user_id)
        _check_return_window(order, now)
        item = _find_item(order, order_item_id)
        apply_return_request(item, quantity, reason, now)
        return item

    return run_with_retry(_op)


def approve_return(order_id: int, order_item_id: int, admin_user_id: int | None = None) -> ReleaseResult:
    """
    Approve a pending return: restock, refund, and settle points.

    Raises:
        NotFoundError, InvalidItemStatusTransitionError, LockTimeoutError
    """
    def _op():
        now = utcnow()
        order = lock_order(order_id)
        item = _find_item(order, order_item_id)
        _require_transition(item, OrderItemStatus.RETURN_APPROVED)
        quantity = item.pending_return_quantity

        (product,) = stock_ledger.lock_products([item.product_id])
        user = lock_order_user(order)

        stock_ledger.increase_stock(
            product,
            quantity,
            reason="RETURN",
            order_id=order.id,
            user_id=admin_user_id,
        )

        refund_amount = calculate_refund_amount(order, item, quantity)
        point_refund = point_ledger.calculate_proportional_point_refund(order, item, quantity)
        refunded_points = point_ledger.refund_points(
            user, order, point_refund, f"Return on order {order.order_number}"
        )
        order.refunded_amount += refund_amount
        user.add_total_spent(-(refund_amount + refunded_points))
        clawed_back = point_ledger.claw_back_points(order, user, refund_amount + refunded_points)

        apply_return_approval(item, refund_amount, now)
        tier_service.refresh_user_tier(user, f"Return approved on order {order.order_number}")

        return ReleaseResult(
            order=order,
            item=item,
            quantity=quantity,
            refund_amount=refund_amount,
            refunded_points=refunded_points,
            clawed_back_points=clawed_back,
        )

    result = run_with_retry(_op)
    emit_product_stock_changed([result.item.product_id])
    return result


def reject_return(order_id: int, order_item_id: int, reason: str) -> OrderItem:
    """Reject a pending return; the units go back to remaining_quantity."""
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("reject_reason is required", {"field": "reject_reason"})

    def _op():
        now = utcnow()
        order = lock_order(order_id)
        item = _find_item(order, order_item_id)
        apply_return_rejection(item, reason, now)
        return item

    return run_with_retry(_op)
