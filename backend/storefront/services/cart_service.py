# Overview: Service-layer cart primitives (add/update/remove) read by order creation.

"""
Cart primitives.

Every mutation locks the owning user row first, which serializes a single
user's cart writes (no lost updates, no duplicate (user, product) rows from
two concurrent adds). Stock is only advisory here; order creation re-checks
it under the product lock.
"""

from __future__ import annotations

from ..extensions import db
from ..models import CartItem, Product
from ..errors import NotFoundError, ValidationError
from .concurrency import lock_for_update, run_with_retry
from .order_creation_service import lock_user


def get_cart(user_id: int) -> list[CartItem]:
    return (
        db.session.query(CartItem)
        .filter_by(user_id=user_id)
        .order_by(CartItem.id)
        .all()
    )


def add_item(user_id: int, product_id: int, quantity: int) -> CartItem:
    """Add a product, merging into the existing row for the same product."""
    if quantity < 1:
        raise ValidationError("Quantity must be at least 1", code="INVALID_QUANTITY")

    def _op():
        lock_user(user_id)
        product = db.session.get(Product, product_id)
        if product is None or not product.is_active:
            raise NotFoundError(f"Product {product_id} not found", {"product_id": product_id})

        item = db.session.query(CartItem).filter_by(user_id=user_id, product_id=product_id).first()
        if item is None:
            item = CartItem(user_id=user_id, product_id=product_id, quantity=quantity)
            db.session.add(item)
        else:
            item.quantity += quantity
        db.session.flush()
        return item

    return run_with_retry(_op)


def update_quantity(user_id: int, cart_item_id: int, quantity: int) -> CartItem:
    if quantity < 1:
        raise ValidationError("Quantity must be at least 1", code="INVALID_QUANTITY")

    def _op():
        lock_user(user_id)
        item = lock_for_update(db.session.query(CartItem).filter_by(id=cart_item_id, user_id=user_id)).first()
        if item is None:
            raise NotFoundError(f"Cart item {cart_item_id} not found", {"cart_item_id": cart_item_id})
        item.quantity = quantity
        return item

    return run_with_retry(_op)


def remove_item(user_id: int, cart_item_id: int) -> None:
    def _op():
        lock_user(user_id)
        item = db.session.query(CartItem).filter_by(id=cart_item_id, user_id=user_id).first()
        if item is None:
            raise NotFoundError(f"Cart item {cart_item_id} not found", {"cart_item_id": cart_item_id})
        db.session.delete(item)

    run_with_retry(_op)
