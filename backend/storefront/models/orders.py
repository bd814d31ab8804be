from __future__ import annotations

import enum

from ..extensions import db
from storefront.time_utils import to_utc_z


class OrderStatus(str, enum.Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class OrderItemStatus(str, enum.Enum):
    NORMAL = "NORMAL"
    RETURN_REQUESTED = "RETURN_REQUESTED"
    RETURN_APPROVED = "RETURN_APPROVED"
    RETURN_REJECTED = "RETURN_REJECTED"
    RETURNED = "RETURNED"
    CANCELLED = "CANCELLED"


class PaymentMethod(str, enum.Enum):
    CARD = "CARD"
    BANK = "BANK"
    KAKAO = "KAKAO"
    NAVER = "NAVER"
    PAYCO = "PAYCO"


def _in_clause(column: str, values: type[enum.Enum]) -> str:
    # CHECK constraints are generated from the enums so the persisted set
    # cannot drift from what the request validator accepts.
    quoted = ", ".join(f"'{member.value}'" for member in values)
    return f"{column} IN ({quoted})"


class Order(db.Model):
    """
    Order header: the aggregate root for an order and its items.

    AMOUNT INVARIANTS (all whole won, CHECK enforced):
    - discount_amount = tier_discount_amount + coupon_discount_amount
    - final_amount = total_amount - discount_amount + shipping_fee
    - refunded_amount <= final_amount - used_points (money refunds only)
    - refunded_points <= used_points

    POINTS:
    - used_points: redeemed as tender at creation (payment_amount = final - used)
    - earned_points_snapshot: computed at creation, credited only at delivery
      (points_settled flips false -> true exactly once)
    - clawed_back_points: settled points taken back by post-delivery returns
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("order_number", name="uq_orders_order_number"),
        db.CheckConstraint(_in_clause("status", OrderStatus), name="ck_orders_status"),
        db.CheckConstraint(_in_clause("payment_method", PaymentMethod), name="ck_orders_payment_method"),
        db.CheckConstraint(
            "discount_amount = tier_discount_amount + coupon_discount_amount",
            name="ck_orders_discount_sum",
        ),
        db.CheckConstraint(
            "final_amount = total_amount - discount_amount + shipping_fee",
            name="ck_orders_final_amount",
        ),
        db.CheckConstraint("refunded_amount >= 0 AND refunded_amount <= final_amount - used_points", name="ck_orders_refunded_amount"),
        db.CheckConstraint("refunded_points >= 0 AND refunded_points <= used_points", name="ck_orders_refunded_points"),
        db.CheckConstraint("used_points >= 0 AND used_points <= final_amount", name="ck_orders_used_points"),
        db.CheckConstraint(
            "clawed_back_points >= 0 AND clawed_back_points <= earned_points_snapshot",
            name="ck_orders_clawed_back_points",
        ),
        db.Index("ix_orders_user_ordered", "user_id", "ordered_at"),
        db.Index("ix_orders_status_ordered", "status", "ordered_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(64), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=OrderStatus.PENDING.value)

    total_amount = db.Column(db.Integer, nullable=False)
    tier_discount_amount = db.Column(db.Integer, nullable=False, default=0)
    coupon_discount_amount = db.Column(db.Integer, nullable=False, default=0)
    discount_amount = db.Column(db.Integer, nullable=False, default=0)
    shipping_fee = db.Column(db.Integer, nullable=False, default=0)
    final_amount = db.Column(db.Integer, nullable=False)

    point_earn_rate_snapshot_bps = db.Column(db.Integer, nullable=False, default=0)
    earned_points_snapshot = db.Column(db.Integer, nullable=False, default=0)
    used_points = db.Column(db.Integer, nullable=False, default=0)
    refunded_amount = db.Column(db.Integer, nullable=False, default=0)
    refunded_points = db.Column(db.Integer, nullable=False, default=0)
    clawed_back_points = db.Column(db.Integer, nullable=False, default=0)
    points_settled = db.Column(db.Boolean, nullable=False, default=False)

    tier_id_snapshot = db.Column(db.Integer, db.ForeignKey("user_tiers.id"), nullable=True)

    payment_method = db.Column(db.String(16), nullable=False, default=PaymentMethod.CARD.value)
    shipping_address = db.Column(db.String(500), nullable=False)
    recipient_name = db.Column(db.String(100), nullable=False)
    recipient_phone = db.Column(db.String(32), nullable=False)

    ordered_at = db.Column(db.DateTime(timezone=True), nullable=False)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    shipped_at = db.Column(db.DateTime(timezone=True), nullable=True)
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    items = db.relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )
    user = db.relationship("User")
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def payment_amount(self) -> int:
        """Amount charged to payment_method; redeemed points cover the rest."""
        return self.final_amount - self.used_points

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "user_id": self.user_id,
            "status": self.status,
            "total_amount": self.total_amount,
            "tier_discount_amount": self.tier_discount_amount,
            "coupon_discount_amount": self.coupon_discount_amount,
            "discount_amount": self.discount_amount,
            "shipping_fee": self.shipping_fee,
            "final_amount": self.final_amount,
            "payment_amount": self.payment_amount,
            "point_earn_rate_bps": self.point_earn_rate_snapshot_bps,
            "earned_points": self.earned_points_snapshot,
            "used_points": self.used_points,
            "refunded_amount": self.refunded_amount,
            "refunded_points": self.refunded_points,
            "clawed_back_points": self.clawed_back_points,
            "points_settled": self.points_settled,
            "payment_method": self.payment_method,
            "shipping_address": self.shipping_address,
            "recipient_name": self.recipient_name,
            "recipient_phone": self.recipient_phone,
            "ordered_at": to_utc_z(self.ordered_at),
            "paid_at": to_utc_z(self.paid_at),
            "shipped_at": to_utc_z(self.shipped_at),
            "delivered_at": to_utc_z(self.delivered_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class OrderItem(db.Model):
    """
    One order line.

    product_name / unit_price / discount_rate_bps are snapshots taken at
    creation and never follow later catalog changes.

    QUANTITY INVARIANT:
        quantity = cancelled_quantity + returned_quantity
                   + pending_return_quantity + remaining_quantity
    with every term >= 0. remaining_quantity is derived, never stored.
    """
    __tablename__ = "order_items"
    __table_args__ = (
        db.CheckConstraint(_in_clause("status", OrderItemStatus), name="ck_order_items_status"),
        db.CheckConstraint("quantity > 0", name="ck_order_items_quantity"),
        db.CheckConstraint(
            "cancelled_quantity >= 0 AND returned_quantity >= 0 AND pending_return_quantity >= 0",
            name="ck_order_items_counts_nonneg",
        ),
        db.CheckConstraint(
            "cancelled_quantity + returned_quantity + pending_return_quantity <= quantity",
            name="ck_order_items_counts_total",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    product_name = db.Column(db.String(255), nullable=False)
    unit_price = db.Column(db.Integer, nullable=False)
    discount_rate_bps = db.Column(db.Integer, nullable=False, default=0)
    quantity = db.Column(db.Integer, nullable=False)
    subtotal = db.Column(db.Integer, nullable=False)

    cancelled_quantity = db.Column(db.Integer, nullable=False, default=0)
    returned_quantity = db.Column(db.Integer, nullable=False, default=0)
    pending_return_quantity = db.Column(db.Integer, nullable=False, default=0)
    cancelled_amount = db.Column(db.Integer, nullable=False, default=0)
    returned_amount = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(20), nullable=False, default=OrderItemStatus.NORMAL.value)
    return_reason = db.Column(db.String(500), nullable=True)
    reject_reason = db.Column(db.String(500), nullable=True)
    return_requested_at = db.Column(db.DateTime(timezone=True), nullable=True)
    returned_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejected_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    order = db.relationship("Order", back_populates="items")

    @property
    def remaining_quantity(self) -> int:
        return (
            self.quantity
            - (self.cancelled_quantity or 0)
            - (self.returned_quantity or 0)
            - (self.pending_return_quantity or 0)
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "unit_price": self.unit_price,
            "discount_rate_bps": self.discount_rate_bps,
            "quantity": self.quantity,
            "subtotal": self.subtotal,
            "cancelled_quantity": self.cancelled_quantity,
            "returned_quantity": self.returned_quantity,
            "pending_return_quantity": self.pending_return_quantity,
            "remaining_quantity": self.remaining_quantity,
            "cancelled_amount": self.cancelled_amount,
            "returned_amount": self.returned_amount,
            "status": self.status,
            "return_reason": self.return_reason,
            "reject_reason": self.reject_reason,
            "return_requested_at": to_utc_z(self.return_requested_at),
            "returned_at": to_utc_z(self.returned_at),
            "rejected_at": to_utc_z(self.rejected_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
        }
