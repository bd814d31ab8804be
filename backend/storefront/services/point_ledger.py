# Overview: Service-layer point balance movements tied to orders.

"""
Point Ledger

WHY: Points are both a tender (used_points, spent at checkout) and a reward
(earned_points_snapshot, credited later). Crediting rewards at checkout let
a shopper spend fresh points on a second order and then cancel the first,
keeping points they never paid for. Rewards are therefore only credited at
delivery, exactly once, guarded by order.points_settled.

INVARIANTS:
- refunded_points <= used_points across any number of partial operations
- points_settled flips false -> true once, only on the DELIVERED transition
- clawed_back_points <= earned_points_snapshot
- user.point_balance never goes below zero

All helpers run inside the caller's transaction and expect the caller to
hold the order and user row locks.
"""

from __future__ import annotations

from ..extensions import db
from ..models import Order, OrderItem, OrderStatus, PointHistory, User
from ..errors import InsufficientPointsError, InvalidStatusError
from ..time_utils import utcnow


def _record(user: User, order: Order | None, change_type: str, amount: int, description: str) -> PointHistory:
    entry = PointHistory(
        user_id=user.id,
        order_id=order.id if order is not None else None,
        change_type=change_type,
        amount=amount,
        balance_after=user.point_balance,
        reference_type="ORDER" if order is not None else None,
        description=description,
        created_at=utcnow(),
    )
    db.session.add(entry)
    return entry


def ensure_sufficient_points(user: User, points: int) -> None:
    if points > (user.point_balance or 0):
        raise InsufficientPointsError(
            "Not enough points",
            {"requested": points, "available": user.point_balance or 0},
        )


def redeem_points(user: User, order: Order, points: int) -> int:
    """Spend `points` as tender for `order` (USE)."""
    if points <= 0:
        return 0
    ensure_sufficient_points(user, points)
    user.point_balance -= points
    _record(user, order, "USE", points, f"Used on order {order.order_number}")
    return points


def refund_points(user: User, order: Order, points: int, description: str) -> int:
    """
    Return redeemed points to the user (REFUND).

    Capped so cumulative refunded_points never exceeds used_points.
    Returns the amount actually refunded.
    """
    available = order.used_points - order.refunded_points
    points = min(points, available)
    if points <= 0:
        return 0
    user.point_balance = (user.point_balance or 0) + points
    order.refunded_points += points
    _record(user, order, "REFUND", points, description)
    return points


def calculate_proportional_point_refund(order: Order, item: OrderItem, quantity: int) -> int:
    """
    Share of used_points attributable to `quantity` units of `item`.

    used_points * (item.subtotal / total_amount) * (quantity / item.quantity),
    floored, then capped by what is still refundable on the order.
    """
    if order.used_points <= 0 or order.total_amount <= 0 or item.quantity <= 0:
        return 0
    share = order.used_points * item.subtotal * quantity // (order.total_amount * item.quantity)
    return max(0, min(share, order.used_points - order.refunded_points))


def settle_order_points(order: Order, user: User) -> int:
    """
    Credit earned points once the order is delivered (EARN).

    Only the unrefunded share of the order earns: a pre-delivery partial
    cancel reduces what is credited. Idempotent via points_settled.
    """
    if order.points_settled:
        return 0
    if order.status != OrderStatus.DELIVERED.value:
        raise InvalidStatusError(
            "Points settle only on delivery",
            {"order_id": order.id, "status": order.status},
        )

    earned = 0
    if order.final_amount > 0:
        released = order.refunded_amount + order.refunded_points
        earned = order.earned_points_snapshot * (order.final_amount - released) // order.final_amount
    order.points_settled = True
    if earned > 0:
        user.point_balance = (user.point_balance or 0) + earned
        _record(user, order, "EARN", earned, f"Earned on order {order.order_number}")
    return earned


def settled_points(order: Order) -> int:
    """Points credited for `order` at delivery, from the EARN history."""
    total = (
        db.session.query(db.func.coalesce(db.func.sum(PointHistory.amount), 0))
        .filter(PointHistory.order_id == order.id, PointHistory.change_type == "EARN")
        .scalar()
    )
    return int(total or 0)


def claw_back_points(order: Order, user: User, released_value: int) -> int:
    """
    Take back settled reward points for a post-delivery refund (CLAWBACK).

    released_value is the money plus points given back for the returned
    units. The share is earned_points_snapshot * released_value / final_amount,
    capped by what was settled minus what was already clawed back. The user
    balance floors at zero; any shortfall is forgiven.
    Returns the amount actually deducted.
    """
    if not order.points_settled or released_value <= 0 or order.final_amount <= 0:
        return 0

    share = order.earned_points_snapshot * released_value // order.final_amount
    share = min(share, settled_points(order) - order.clawed_back_points)
    if share <= 0:
        return 0

    order.clawed_back_points += share
    deducted = min(share, user.point_balance or 0)
    if deducted > 0:
        user.point_balance -= deducted
        _record(user, order, "CLAWBACK", deducted, f"Return on order {order.order_number}")
    return deducted
