# Overview: Service-layer status transition tables for orders and order items.

"""
Order and order-item state machines.

The tables below are the only definition of which status changes are legal.
can_transition_*() are pure allow/deny checks; transition_*() are the single
mutation chokepoints every service goes through, so no call site ever
assigns `.status` directly.

ITEM LIFECYCLE:
    NORMAL -> RETURN_REQUESTED -> RETURN_APPROVED -> RETURNED
    NORMAL -> CANCELLED
    RETURN_REQUESTED -> RETURN_REJECTED -> RETURN_REQUESTED (re-request)
    RETURNED, CANCELLED: terminal

Approval passes through RETURN_APPROVED and lands on RETURNED in the same
transaction, so RETURN_APPROVED is never observed at rest.

ORDER LIFECYCLE:
    PENDING -> PAID -> SHIPPED -> DELIVERED
    PENDING, PAID -> CANCELLED
"""

from __future__ import annotations

from datetime import datetime

from ..models import Order, OrderItem, OrderStatus, OrderItemStatus
from ..errors import InvalidItemStatusTransitionError, InvalidStatusError
from ..time_utils import utcnow


ITEM_TRANSITIONS: dict[OrderItemStatus, frozenset[OrderItemStatus]] = {
    OrderItemStatus.NORMAL: frozenset({OrderItemStatus.RETURN_REQUESTED, OrderItemStatus.CANCELLED}),
    OrderItemStatus.RETURN_REQUESTED: frozenset({OrderItemStatus.RETURN_APPROVED, OrderItemStatus.RETURN_REJECTED}),
    OrderItemStatus.RETURN_APPROVED: frozenset({OrderItemStatus.RETURNED}),
    OrderItemStatus.RETURN_REJECTED: frozenset({OrderItemStatus.RETURN_REQUESTED}),
    OrderItemStatus.RETURNED: frozenset(),
    OrderItemStatus.CANCELLED: frozenset(),
}

ORDER_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PAID, OrderStatus.CANCELLED}),
    OrderStatus.PAID: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

CANCELLABLE_ORDER_STATUSES = frozenset({OrderStatus.PENDING, OrderStatus.PAID})

_ORDER_TIMESTAMPS = {
    OrderStatus.PAID: "paid_at",
    OrderStatus.SHIPPED: "shipped_at",
    OrderStatus.DELIVERED: "delivered_at",
    OrderStatus.CANCELLED: "cancelled_at",
}

_ITEM_TIMESTAMPS = {
    OrderItemStatus.RETURN_REQUESTED: "return_requested_at",
    OrderItemStatus.RETURN_REJECTED: "rejected_at",
    OrderItemStatus.RETURNED: "returned_at",
    OrderItemStatus.CANCELLED: "cancelled_at",
}


def can_transition_item(source: OrderItemStatus | str, target: OrderItemStatus | str) -> bool:
    try:
        source, target = OrderItemStatus(source), OrderItemStatus(target)
    except ValueError:
        return False
    return target in ITEM_TRANSITIONS[source]


def can_transition_order(source: OrderStatus | str, target: OrderStatus | str) -> bool:
    try:
        source, target = OrderStatus(source), OrderStatus(target)
    except ValueError:
        return False
    return target in ORDER_TRANSITIONS[source]


def is_cancellable(order: Order) -> bool:
    return OrderStatus(order.status) in CANCELLABLE_ORDER_STATUSES


def transition_item(item: OrderItem, target: OrderItemStatus, now: datetime | None = None) -> None:
    if not can_transition_item(item.status, target):
        raise InvalidItemStatusTransitionError(
            f"Order item {item.id} cannot move from {item.status} to {target.value}",
            {"order_item_id": item.id, "from": item.status, "to": target.value},
        )
    item.status = target.value
    stamp = _ITEM_TIMESTAMPS.get(target)
    if stamp:
        setattr(item, stamp, now or utcnow())


def transition_order(order: Order, target: OrderStatus, now: datetime | None = None) -> None:
    if not can_transition_order(order.status, target):
        raise InvalidStatusError(
            f"Order {order.id} cannot move from {order.status} to {target.value}",
            {"order_id": order.id, "from": order.status, "to": target.value},
        )
    order.status = target.value
    stamp = _ORDER_TIMESTAMPS.get(target)
    if stamp:
        setattr(order, stamp, now or utcnow())
