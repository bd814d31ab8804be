# Overview: Read-side helpers for order detail, order history and the admin return queue.

from __future__ import annotations

from ..extensions import db
from ..models import Order, OrderItem, OrderItemStatus
from ..errors import NotFoundError, ValidationError
from ..time_utils import to_utc_z


def get_order(order_id: int, user_id: int | None = None) -> Order:
    order = db.session.get(Order, order_id)
    if order is None or (user_id is not None and order.user_id != user_id):
        raise NotFoundError(f"Order {order_id} not found", {"order_id": order_id})
    return order


def get_order_detail(order_id: int, user_id: int | None = None) -> dict:
    return get_order(order_id, user_id).to_dict()


def list_user_orders(user_id: int, *, limit: int = 50, offset: int = 0) -> list[Order]:
    return (
        db.session.query(Order)
        .filter(Order.user_id == user_id)
        .order_by(Order.ordered_at.desc(), Order.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )


def list_return_requests(status: str | None = OrderItemStatus.RETURN_REQUESTED.value) -> list[dict]:
    """Items in the return workflow, oldest request first (admin queue)."""
    statuses = [
        OrderItemStatus.RETURN_REQUESTED.value,
        OrderItemStatus.RETURN_REJECTED.value,
        OrderItemStatus.RETURNED.value,
    ]
    if status:
        status = status.strip().upper()
        if status not in statuses:
            raise ValidationError(f"Unsupported return status filter: {status}", {"allowed": statuses})
        statuses = [status]

    rows = (
        db.session.query(OrderItem, Order)
        .join(Order, Order.id == OrderItem.order_id)
        .filter(OrderItem.status.in_(statuses))
        .order_by(OrderItem.return_requested_at.asc(), OrderItem.id.asc())
        .all()
    )
    return [
        {
            "order_id": order.id,
            "order_number": order.order_number,
            "user_id": order.user_id,
            "delivered_at": to_utc_z(order.delivered_at),
            "item": item.to_dict(),
        }
        for item, order in rows
    ]
