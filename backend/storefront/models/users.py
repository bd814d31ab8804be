from __future__ import annotations

from ..extensions import db
from storefront.time_utils import to_utc_z


class UserTier(db.Model):
    """
    Loyalty tier reference row (five fixed tiers, seeded by `flask system init`).

    Rates are basis points: 500 = 5.00%.
    free_shipping_threshold of 0 means shipping is always free for the tier.
    """
    __tablename__ = "user_tiers"
    __table_args__ = (
        db.UniqueConstraint("tier_level", name="uq_user_tiers_level"),
        db.CheckConstraint("min_spent >= 0", name="ck_user_tiers_min_spent"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tier_level = db.Column(db.Integer, nullable=False)
    name = db.Column(db.String(32), nullable=False)
    min_spent = db.Column(db.Integer, nullable=False, default=0)
    discount_rate_bps = db.Column(db.Integer, nullable=False, default=0)
    point_earn_rate_bps = db.Column(db.Integer, nullable=False, default=0)
    free_shipping_threshold = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tier_level": self.tier_level,
            "name": self.name,
            "min_spent": self.min_spent,
            "discount_rate_bps": self.discount_rate_bps,
            "point_earn_rate_bps": self.point_earn_rate_bps,
            "free_shipping_threshold": self.free_shipping_threshold,
        }


class User(db.Model):
    """
    Shopper account.

    The order core only writes total_spent, point_balance and tier_id.
    Both counters floor at zero after any reversal (CHECK enforced).
    """
    __tablename__ = "users"
    __table_args__ = (
        db.UniqueConstraint("username", name="uq_users_username"),
        db.CheckConstraint("total_spent >= 0", name="ck_users_total_spent"),
        db.CheckConstraint("point_balance >= 0", name="ck_users_point_balance"),
        db.CheckConstraint("role IN ('USER', 'ADMIN')", name="ck_users_role"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    role = db.Column(db.String(16), nullable=False, default="USER")
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    tier_id = db.Column(db.Integer, db.ForeignKey("user_tiers.id"), nullable=True, index=True)
    total_spent = db.Column(db.Integer, nullable=False, default=0)
    point_balance = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    tier = db.relationship("UserTier")
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_admin(self) -> bool:
        return self.role == "ADMIN"

    def add_total_spent(self, amount: int) -> None:
        self.total_spent = max(0, (self.total_spent or 0) + amount)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "role": self.role,
            "is_active": self.is_active,
            "tier": self.tier.name if self.tier else None,
            "total_spent": self.total_spent,
            "point_balance": self.point_balance,
            "created_at": to_utc_z(self.created_at),
        }


class UserTierHistory(db.Model):
    """Append-only record of every tier change and why it happened."""
    __tablename__ = "user_tier_history"
    __table_args__ = (
        db.Index("ix_user_tier_history_user", "user_id", "changed_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    from_tier_id = db.Column(db.Integer, db.ForeignKey("user_tiers.id"), nullable=True)
    to_tier_id = db.Column(db.Integer, db.ForeignKey("user_tiers.id"), nullable=False)
    reason = db.Column(db.String(255), nullable=False)
    changed_at = db.Column(db.DateTime(timezone=True), nullable=False)

    from_tier = db.relationship("UserTier", foreign_keys=[from_tier_id])
    to_tier = db.relationship("UserTier", foreign_keys=[to_tier_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "from_tier": self.from_tier.name if self.from_tier else None,
            "to_tier": self.to_tier.name if self.to_tier else None,
            "reason": self.reason,
            "changed_at": to_utc_z(self.changed_at),
        }


class PointHistory(db.Model):
    """
    Append-only ledger of point balance movements.

    CHANGE TYPES:
    - EARN: settled at delivery from the order's earned-points snapshot
    - USE: redeemed as tender at order creation
    - REFUND: redeemed points returned by a cancel or approved return
    - CLAWBACK: settled points taken back after a post-delivery return
    - ADJUST: manual correction

    amount is always positive; change_type carries the direction.
    """
    __tablename__ = "point_history"
    __table_args__ = (
        db.CheckConstraint("amount > 0", name="ck_point_history_amount"),
        db.CheckConstraint(
            "change_type IN ('EARN', 'USE', 'REFUND', 'CLAWBACK', 'ADJUST')",
            name="ck_point_history_type",
        ),
        db.Index("ix_point_history_user", "user_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)
    change_type = db.Column(db.String(16), nullable=False)
    amount = db.Column(db.Integer, nullable=False)
    balance_after = db.Column(db.Integer, nullable=False)
    reference_type = db.Column(db.String(32), nullable=True)
    description = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "order_id": self.order_id,
            "change_type": self.change_type,
            "amount": self.amount,
            "balance_after": self.balance_after,
            "reference_type": self.reference_type,
            "description": self.description,
            "created_at": to_utc_z(self.created_at),
        }
