# Overview: Service-layer full order cancellation; reverses every side effect of creation.

"""
Order Cancellation Service

WHY: A cancellation must undo exactly what creation did, once: stock back
on the shelf, spend and redeemed points back with the user, the coupon
usable again, the tier re-resolved (a demotion is possible).

DESIGN:
- Only PENDING/PAID orders are cancellable. Anything else fails
  ORDER_NOT_CANCELLABLE before any mutation, which also makes a second
  cancel of the same order a clean no-op failure.
- The order row is locked first, then products ascending, then the user,
  then the coupon. Partial cancellation and return approval take the order
  lock first too, so they can never interleave with a cancel.
- Earned points are never clawed back here: they settle only at delivery,
  and delivered orders are not cancellable.
- Units already released by partial cancels are not restocked or refunded
  twice: only the remaining quantity and the unrefunded residual move.
"""

from __future__ import annotations

from ..extensions import db
from ..models import Order, OrderItem, OrderItemStatus, OrderStatus, User
from ..errors import NotFoundError, OrderNotCancellableError
from ..signals import emit_product_stock_changed
from ..time_utils import utcnow
from . import coupon_service, point_ledger, stock_ledger, tier_service
from .concurrency import lock_for_update, run_with_retry
from .order_state import is_cancellable, transition_item, transition_order
from .refund_calculator import refund_for_units


def lock_order(order_id: int, *, user_id: int | None = None) -> Order:
    """
    Lock the order row (first lock in the hierarchy) and load its items.

    When user_id is given the order must belong to that user; otherwise it
    is reported as not found.
    """
    order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
    if order is None or (user_id is not None and order.user_id != user_id):
        raise NotFoundError(f"Order {order_id} not found", {"order_id": order_id})
    # Items belong to the aggregate and are read inside the same transaction.
    db.session.query(OrderItem).filter_by(order_id=order.id).populate_existing().all()
    return order


def lock_order_user(order: Order) -> User:
    user = lock_for_update(db.session.query(User).filter_by(id=order.user_id)).first()
    if user is None:
        raise NotFoundError(f"User {order.user_id} not found", {"user_id": order.user_id})
    return user


def finalize_cancellation(order: Order, user: User, now, reason: str) -> None:
    """
    Close out an order whose every unit has been released.

    Refunds the unrefunded money residual (shipping and rounding included)
    up to payment_amount and the unrefunded redeemed points, takes both off
    the user's spend, releases the coupon, re-resolves the tier and marks
    the order CANCELLED.
    """
    residual = max(0, order.payment_amount - order.refunded_amount)
    order.refunded_amount += residual

    returned_points = point_ledger.refund_points(
        user,
        order,
        order.used_points - order.refunded_points,
        f"Cancelled order {order.order_number}",
    )
    if residual + returned_points > 0:
        user.add_total_spent(-(residual + returned_points))
    coupon_service.cancel_use(order.id)
    tier_service.refresh_user_tier(user, reason)
    transition_order(order, OrderStatus.CANCELLED, now)


def _cancel(order_id: int, *, user_id: int | None, actor_user_id: int | None) -> tuple[Order, list[int]]:
    restocked: list[int] = []

    def _op():
        restocked.clear()
        now = utcnow()
        order = lock_order(order_id, user_id=user_id)
        if not is_cancellable(order):
            raise OrderNotCancellableError(
                f"Order {order.order_number} cannot be cancelled in status {order.status}",
                {"order_id": order.id, "status": order.status},
            )

        live_items = [item for item in order.items if item.remaining_quantity > 0]
        products = {
            p.id: p for p in stock_ledger.lock_products(item.product_id for item in live_items)
        }
        user = lock_order_user(order)

        for item in sorted(live_items, key=lambda i: (i.product_id, i.id)):
            quantity = item.remaining_quantity
            stock_ledger.increase_stock(
                products[item.product_id],
                quantity,
                reason="ORDER_CANCEL",
                order_id=order.id,
                user_id=actor_user_id,
            )
            item.cancelled_quantity += quantity
            item.cancelled_amount += refund_for_units(order, item, quantity)
            if item.status == OrderItemStatus.NORMAL.value:
                transition_item(item, OrderItemStatus.CANCELLED, now)
            restocked.append(item.product_id)

        finalize_cancellation(order, user, now, f"Order {order.order_number} cancelled")
        return order

    order = run_with_retry(_op)
    return order, list(restocked)


def cancel_order(order_id: int, user_id: int) -> Order:
    """Cancel an order on behalf of its owner."""
    order, restocked = _cancel(order_id, user_id=user_id, actor_user_id=user_id)
    emit_product_stock_changed(restocked)
    return order


def cancel_order_as_admin(order_id: int, admin_user_id: int | None = None) -> Order:
    """Cancel any user's order (admin status update path)."""
    order, restocked = _cancel(order_id, user_id=None, actor_user_id=admin_user_id)
    emit_product_stock_changed(restocked)
    return order
