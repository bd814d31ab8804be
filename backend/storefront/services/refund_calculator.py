# Overview: Proportional refund arithmetic for released order units.

"""
Refund amounts for partial cancels and approved returns.

An order is paid partly in money (payment_amount) and partly in redeemed
points (used_points). The two are refunded separately: this module computes
the money side, point_ledger the points side.

The refundable money base is what was charged for goods: payment_amount
without shipping, i.e. final - shipping - used_points. A line's share of it
follows its share of total_amount, and a quantity's share follows its share
of the line:

    refund = (final - shipping - used) * item.subtotal * qty / (total * item.quantity)

rounded half-up to whole won, then capped so the order's running
refunded_amount never exceeds payment_amount. Shipping and rounding residue
are returned only when the whole order ends up cancelled.
"""

from __future__ import annotations

from ..models import Order, OrderItem


def refundable_base(order: Order) -> int:
    """Money charged for goods: payment_amount minus shipping."""
    return max(0, order.final_amount - order.shipping_fee - order.used_points)


def refund_for_units(order: Order, item: OrderItem, quantity: int) -> int:
    """Uncapped proportional money refund for `quantity` units of `item`."""
    if quantity <= 0 or order.total_amount <= 0 or item.quantity <= 0:
        return 0
    numerator = refundable_base(order) * item.subtotal * quantity
    denominator = order.total_amount * item.quantity
    return (2 * numerator + denominator) // (2 * denominator)


def calculate_refund_amount(order: Order, item: OrderItem, quantity: int) -> int:
    """Proportional money refund capped at what is still refundable on the order."""
    remaining = order.payment_amount - order.refunded_amount
    return max(0, min(refund_for_units(order, item, quantity), remaining))
