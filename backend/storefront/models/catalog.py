from __future__ import annotations

from ..extensions import db
from storefront.time_utils import to_utc_z


class Product(db.Model):
    """
    Catalog product with its single stock counter.

    stock_quantity and sales_count are mutated only through the stock
    ledger service, which also writes an InventoryHistory row per movement.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("stock_quantity >= 0", name="ck_products_stock_nonneg"),
        db.CheckConstraint("sales_count >= 0", name="ck_products_sales_nonneg"),
        db.CheckConstraint("price >= 0", name="ck_products_price_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    price = db.Column(db.Integer, nullable=False)
    stock_quantity = db.Column(db.Integer, nullable=False, default=0)
    sales_count = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "price": self.price,
            "stock_quantity": self.stock_quantity,
            "sales_count": self.sales_count,
            "is_active": self.is_active,
        }


class InventoryHistory(db.Model):
    """
    Append-only stock movement log.

    IN: stock restored (cancel, approved return)
    OUT: stock consumed by an order
    ADJUST: manual correction
    change_amount is signed; after_quantity = before_quantity + change_amount.
    """
    __tablename__ = "inventory_history"
    __table_args__ = (
        db.CheckConstraint("change_type IN ('IN', 'OUT', 'ADJUST')", name="ck_inventory_history_type"),
        db.CheckConstraint("after_quantity >= 0", name="ck_inventory_history_after"),
        db.Index("ix_inventory_history_product", "product_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    change_type = db.Column(db.String(16), nullable=False)
    change_amount = db.Column(db.Integer, nullable=False)
    before_quantity = db.Column(db.Integer, nullable=False)
    after_quantity = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(255), nullable=False)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "change_type": self.change_type,
            "change_amount": self.change_amount,
            "before_quantity": self.before_quantity,
            "after_quantity": self.after_quantity,
            "reason": self.reason,
            "order_id": self.order_id,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }


class CartItem(db.Model):
    """One product line in a user's cart; order creation consumes these rows."""
    __tablename__ = "cart_items"
    __table_args__ = (
        db.UniqueConstraint("user_id", "product_id", name="uq_cart_items_user_product"),
        db.CheckConstraint("quantity > 0", name="ck_cart_items_quantity"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "unit_price": self.product.price if self.product else None,
            "quantity": self.quantity,
        }
