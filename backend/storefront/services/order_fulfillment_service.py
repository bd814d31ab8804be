# Overview: Service-layer admin status changes (ship, deliver) and delivery-time point settlement.

from __future__ import annotations

from ..models import Order, OrderStatus
from ..errors import InvalidStatusError
from ..time_utils import utcnow
from . import point_ledger
from .concurrency import run_with_retry
from .order_cancellation_service import cancel_order_as_admin, lock_order, lock_order_user
from .order_state import transition_order


def _transition(order_id: int, target: OrderStatus) -> Order:
    def _op():
        order = lock_order(order_id)
        transition_order(order, target, utcnow())
        return order

    return run_with_retry(_op)


def mark_shipped(order_id: int) -> Order:
    return _transition(order_id, OrderStatus.SHIPPED)


def mark_delivered(order_id: int) -> Order:
    """
    SHIPPED -> DELIVERED and credit the order's earned points.

    Settlement happens in the same transaction as the transition, so a
    delivered order always has points_settled = True.
    """
    def _op():
        order = lock_order(order_id)
        transition_order(order, OrderStatus.DELIVERED, utcnow())
        user = lock_order_user(order)
        point_ledger.settle_order_points(order, user)
        return order

    return run_with_retry(_op)


def update_order_status(order_id: int, status: str, admin_user_id: int | None = None) -> Order:
    """Admin status update; CANCELLED runs the full cancellation."""
    try:
        target = OrderStatus((status or "").strip().upper())
    except ValueError:
        raise InvalidStatusError(
            f"Unknown order status: {status}",
            {"allowed": [s.value for s in OrderStatus]},
        )

    if target == OrderStatus.CANCELLED:
        return cancel_order_as_admin(order_id, admin_user_id)
    if target == OrderStatus.DELIVERED:
        return mark_delivered(order_id)
    return _transition(order_id, target)
