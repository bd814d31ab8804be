from __future__ import annotations

from ..extensions import db
from storefront.time_utils import to_utc_z


DISCOUNT_TYPE_FIXED = "FIXED"
DISCOUNT_TYPE_PERCENT = "PERCENT"


class Coupon(db.Model):
    """
    Coupon definition.

    discount_value is whole won for FIXED and basis points for PERCENT.
    used_quantity counts live redemptions: it goes up on use and back down
    when the order that used it is cancelled.
    """
    __tablename__ = "coupons"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_coupons_code"),
        db.CheckConstraint("discount_type IN ('FIXED', 'PERCENT')", name="ck_coupons_type"),
        db.CheckConstraint("discount_value >= 0", name="ck_coupons_value"),
        db.CheckConstraint("used_quantity >= 0", name="ck_coupons_used_nonneg"),
        db.CheckConstraint("used_quantity <= total_quantity", name="ck_coupons_used_within_total"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    discount_type = db.Column(db.String(16), nullable=False)
    discount_value = db.Column(db.Integer, nullable=False)
    min_order_amount = db.Column(db.Integer, nullable=False, default=0)
    max_discount = db.Column(db.Integer, nullable=True)
    total_quantity = db.Column(db.Integer, nullable=False)
    used_quantity = db.Column(db.Integer, nullable=False, default=0)
    valid_from = db.Column(db.DateTime(timezone=True), nullable=False)
    valid_until = db.Column(db.DateTime(timezone=True), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "discount_type": self.discount_type,
            "discount_value": self.discount_value,
            "min_order_amount": self.min_order_amount,
            "max_discount": self.max_discount,
            "total_quantity": self.total_quantity,
            "used_quantity": self.used_quantity,
            "valid_from": to_utc_z(self.valid_from),
            "valid_until": to_utc_z(self.valid_until),
            "is_active": self.is_active,
        }


class UserCoupon(db.Model):
    """
    A coupon issued to one user.

    INVARIANT: is_used, used_at and order_id are either all unset or all
    set. The CHECK below rejects any partial state at the database.
    """
    __tablename__ = "user_coupons"
    __table_args__ = (
        db.UniqueConstraint("user_id", "coupon_id", name="uq_user_coupons_user_coupon"),
        db.CheckConstraint(
            "(is_used = false AND used_at IS NULL AND order_id IS NULL) OR "
            "(is_used = true AND used_at IS NOT NULL AND order_id IS NOT NULL)",
            name="ck_user_coupons_used_logic",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    coupon_id = db.Column(db.Integer, db.ForeignKey("coupons.id"), nullable=False)
    is_used = db.Column(db.Boolean, nullable=False, default=False)
    used_at = db.Column(db.DateTime(timezone=True), nullable=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)
    issued_at = db.Column(db.DateTime(timezone=True), nullable=False)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=True)

    coupon = db.relationship("Coupon")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "coupon": self.coupon.to_dict() if self.coupon else None,
            "is_used": self.is_used,
            "used_at": to_utc_z(self.used_at),
            "order_id": self.order_id,
            "issued_at": to_utc_z(self.issued_at),
            "expires_at": to_utc_z(self.expires_at),
        }
