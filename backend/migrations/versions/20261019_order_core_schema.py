"""Order core schema: tiers, users, points, catalog, cart, coupons, orders

Revision ID: 20261019_order_core
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_order_core"
down_revision = None
branch_labels = None
depends_on = None


ORDER_STATUSES = "'PENDING', 'PAID', 'SHIPPED', 'DELIVERED', 'CANCELLED'"
ITEM_STATUSES = "'NORMAL', 'RETURN_REQUESTED', 'RETURN_APPROVED', 'RETURN_REJECTED', 'RETURNED', 'CANCELLED'"
PAYMENT_METHODS = "'CARD', 'BANK', 'KAKAO', 'NAVER', 'PAYCO'"


def upgrade():
    op.create_table(
        "user_tiers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tier_level", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(32), nullable=False),
        sa.Column("min_spent", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("discount_rate_bps", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("point_earn_rate_bps", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("free_shipping_threshold", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.PrimaryKeyConstraint("id", name="pk_user_tiers"),
        sa.UniqueConstraint("tier_level", name="uq_user_tiers_level"),
        sa.CheckConstraint("min_spent >= 0", name="ck_user_tiers_min_spent"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("username", sa.String(64), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("role", sa.String(16), nullable=False, server_default="USER"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("tier_id", sa.Integer(), nullable=True),
        sa.Column("total_spent", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("point_balance", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.ForeignKeyConstraint(["tier_id"], ["user_tiers.id"], name="fk_users_tier_id_user_tiers"),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
        sa.UniqueConstraint("username", name="uq_users_username"),
        sa.CheckConstraint("total_spent >= 0", name="ck_users_total_spent"),
        sa.CheckConstraint("point_balance >= 0", name="ck_users_point_balance"),
        sa.CheckConstraint("role IN ('USER', 'ADMIN')", name="ck_users_role"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("users", schema=None) as batch_op:
        batch_op.create_index("ix_users_tier_id", ["tier_id"], unique=False)

    op.create_table(
        "user_tier_history",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("from_tier_id", sa.Integer(), nullable=True),
        sa.Column("to_tier_id", sa.Integer(), nullable=False),
        sa.Column("reason", sa.String(255), nullable=False),
        sa.Column("changed_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_user_tier_history_user_id_users"),
        sa.ForeignKeyConstraint(["from_tier_id"], ["user_tiers.id"], name="fk_user_tier_history_from_tier_id_user_tiers"),
        sa.ForeignKeyConstraint(["to_tier_id"], ["user_tiers.id"], name="fk_user_tier_history_to_tier_id_user_tiers"),
        sa.PrimaryKeyConstraint("id", name="pk_user_tier_history"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("user_tier_history", schema=None) as batch_op:
        batch_op.create_index("ix_user_tier_history_user", ["user_id", "changed_at"], unique=False)

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("price", sa.Integer(), nullable=False),
        sa.Column("stock_quantity", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("sales_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.PrimaryKeyConstraint("id", name="pk_products"),
        sa.CheckConstraint("stock_quantity >= 0", name="ck_products_stock_nonneg"),
        sa.CheckConstraint("sales_count >= 0", name="ck_products_sales_nonneg"),
        sa.CheckConstraint("price >= 0", name="ck_products_price_nonneg"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "cart_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_cart_items_user_id_users"),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], name="fk_cart_items_product_id_products"),
        sa.PrimaryKeyConstraint("id", name="pk_cart_items"),
        sa.UniqueConstraint("user_id", "product_id", name="uq_cart_items_user_product"),
        sa.CheckConstraint("quantity > 0", name="ck_cart_items_quantity"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("cart_items", schema=None) as batch_op:
        batch_op.create_index("ix_cart_items_user_id", ["user_id"], unique=False)

    op.create_table(
        "coupons",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("code", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("discount_type", sa.String(16), nullable=False),
        sa.Column("discount_value", sa.Integer(), nullable=False),
        sa.Column("min_order_amount", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("max_discount", sa.Integer(), nullable=True),
        sa.Column("total_quantity", sa.Integer(), nullable=False),
        sa.Column("used_quantity", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("valid_from", sa.DateTime(timezone=True), nullable=False),
        sa.Column("valid_until", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_coupons"),
        sa.UniqueConstraint("code", name="uq_coupons_code"),
        sa.CheckConstraint("discount_type IN ('FIXED', 'PERCENT')", name="ck_coupons_type"),
        sa.CheckConstraint("discount_value >= 0", name="ck_coupons_value"),
        sa.CheckConstraint("used_quantity >= 0", name="ck_coupons_used_nonneg"),
        sa.CheckConstraint("used_quantity <= total_quantity", name="ck_coupons_used_within_total"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_number", sa.String(64), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="PENDING"),
        sa.Column("total_amount", sa.Integer(), nullable=False),
        sa.Column("tier_discount_amount", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("coupon_discount_amount", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("discount_amount", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("shipping_fee", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("final_amount", sa.Integer(), nullable=False),
        sa.Column("point_earn_rate_snapshot_bps", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("earned_points_snapshot", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("used_points", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("refunded_amount", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("refunded_points", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("clawed_back_points", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("points_settled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("tier_id_snapshot", sa.Integer(), nullable=True),
        sa.Column("payment_method", sa.String(16), nullable=False, server_default="CARD"),
        sa.Column("shipping_address", sa.String(500), nullable=False),
        sa.Column("recipient_name", sa.String(100), nullable=False),
        sa.Column("recipient_phone", sa.String(32), nullable=False),
        sa.Column("ordered_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("shipped_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_orders_user_id_users"),
        sa.ForeignKeyConstraint(["tier_id_snapshot"], ["user_tiers.id"], name="fk_orders_tier_id_snapshot_user_tiers"),
        sa.PrimaryKeyConstraint("id", name="pk_orders"),
        sa.UniqueConstraint("order_number", name="uq_orders_order_number"),
        sa.CheckConstraint(f"status IN ({ORDER_STATUSES})", name="ck_orders_status"),
        sa.CheckConstraint(f"payment_method IN ({PAYMENT_METHODS})", name="ck_orders_payment_method"),
        sa.CheckConstraint("discount_amount = tier_discount_amount + coupon_discount_amount", name="ck_orders_discount_sum"),
        sa.CheckConstraint("final_amount = total_amount - discount_amount + shipping_fee", name="ck_orders_final_amount"),
        sa.CheckConstraint("refunded_amount >= 0 AND refunded_amount <= final_amount - used_points", name="ck_orders_refunded_amount"),
        sa.CheckConstraint("refunded_points >= 0 AND refunded_points <= used_points", name="ck_orders_refunded_points"),
        sa.CheckConstraint("used_points >= 0 AND used_points <= final_amount", name="ck_orders_used_points"),
        sa.CheckConstraint(
            "clawed_back_points >= 0 AND clawed_back_points <= earned_points_snapshot",
            name="ck_orders_clawed_back_points",
        ),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("orders", schema=None) as batch_op:
        batch_op.create_index("ix_orders_user_ordered", ["user_id", "ordered_at"], unique=False)
        batch_op.create_index("ix_orders_status_ordered", ["status", "ordered_at"], unique=False)

    op.create_table(
        "order_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("product_name", sa.String(255), nullable=False),
        sa.Column("unit_price", sa.Integer(), nullable=False),
        sa.Column("discount_rate_bps", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("subtotal", sa.Integer(), nullable=False),
        sa.Column("cancelled_quantity", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("returned_quantity", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("pending_return_quantity", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("cancelled_amount", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("returned_amount", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("status", sa.String(20), nullable=False, server_default="NORMAL"),
        sa.Column("return_reason", sa.String(500), nullable=True),
        sa.Column("reject_reason", sa.String(500), nullable=True),
        sa.Column("return_requested_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("returned_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"], name="fk_order_items_order_id_orders"),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], name="fk_order_items_product_id_products"),
        sa.PrimaryKeyConstraint("id", name="pk_order_items"),
        sa.CheckConstraint(f"status IN ({ITEM_STATUSES})", name="ck_order_items_status"),
        sa.CheckConstraint("quantity > 0", name="ck_order_items_quantity"),
        sa.CheckConstraint(
            "cancelled_quantity >= 0 AND returned_quantity >= 0 AND pending_return_quantity >= 0",
            name="ck_order_items_counts_nonneg",
        ),
        sa.CheckConstraint(
            "cancelled_quantity + returned_quantity + pending_return_quantity <= quantity",
            name="ck_order_items_counts_total",
        ),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("order_items", schema=None) as batch_op:
        batch_op.create_index("ix_order_items_order_id", ["order_id"], unique=False)
        batch_op.create_index("ix_order_items_product_id", ["product_id"], unique=False)

    op.create_table(
        "user_coupons",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("coupon_id", sa.Integer(), nullable=False),
        sa.Column("is_used", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("order_id", sa.Integer(), nullable=True),
        sa.Column("issued_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_user_coupons_user_id_users"),
        sa.ForeignKeyConstraint(["coupon_id"], ["coupons.id"], name="fk_user_coupons_coupon_id_coupons"),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"], name="fk_user_coupons_order_id_orders"),
        sa.PrimaryKeyConstraint("id", name="pk_user_coupons"),
        sa.UniqueConstraint("user_id", "coupon_id", name="uq_user_coupons_user_coupon"),
        sa.CheckConstraint(
            "(is_used = false AND used_at IS NULL AND order_id IS NULL) OR "
            "(is_used = true AND used_at IS NOT NULL AND order_id IS NOT NULL)",
            name="ck_user_coupons_used_logic",
        ),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("user_coupons", schema=None) as batch_op:
        batch_op.create_index("ix_user_coupons_user_id", ["user_id"], unique=False)
        batch_op.create_index("ix_user_coupons_order_id", ["order_id"], unique=False)

    op.create_table(
        "inventory_history",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("change_type", sa.String(16), nullable=False),
        sa.Column("change_amount", sa.Integer(), nullable=False),
        sa.Column("before_quantity", sa.Integer(), nullable=False),
        sa.Column("after_quantity", sa.Integer(), nullable=False),
        sa.Column("reason", sa.String(255), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=True),
        sa.Column("created_by_user_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], name="fk_inventory_history_product_id_products"),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"], name="fk_inventory_history_order_id_orders"),
        sa.ForeignKeyConstraint(["created_by_user_id"], ["users.id"], name="fk_inventory_history_created_by_user_id_users"),
        sa.PrimaryKeyConstraint("id", name="pk_inventory_history"),
        sa.CheckConstraint("change_type IN ('IN', 'OUT', 'ADJUST')", name="ck_inventory_history_type"),
        sa.CheckConstraint("after_quantity >= 0", name="ck_inventory_history_after"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("inventory_history", schema=None) as batch_op:
        batch_op.create_index("ix_inventory_history_product", ["product_id", "created_at"], unique=False)
        batch_op.create_index("ix_inventory_history_order_id", ["order_id"], unique=False)

    op.create_table(
        "point_history",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=True),
        sa.Column("change_type", sa.String(16), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("balance_after", sa.Integer(), nullable=False),
        sa.Column("reference_type", sa.String(32), nullable=True),
        sa.Column("description", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_point_history_user_id_users"),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"], name="fk_point_history_order_id_orders"),
        sa.PrimaryKeyConstraint("id", name="pk_point_history"),
        sa.CheckConstraint("amount > 0", name="ck_point_history_amount"),
        sa.CheckConstraint(
            "change_type IN ('EARN', 'USE', 'REFUND', 'CLAWBACK', 'ADJUST')",
            name="ck_point_history_type",
        ),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("point_history", schema=None) as batch_op:
        batch_op.create_index("ix_point_history_user", ["user_id", "created_at"], unique=False)
        batch_op.create_index("ix_point_history_order_id", ["order_id"], unique=False)


def downgrade():
    op.drop_table("point_history")
    op.drop_table("inventory_history")
    op.drop_table("user_coupons")
    op.drop_table("order_items")
    op.drop_table("orders")
    op.drop_table("coupons")
    op.drop_table("cart_items")
    op.drop_table("products")
    op.drop_table("user_tier_history")
    op.drop_table("users")
    op.drop_table("user_tiers")
