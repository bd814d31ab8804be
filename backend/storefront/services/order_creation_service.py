# Overview: Service-layer order creation; turns a cart into one atomic, priced order.

"""
Order Creation Service

WHY: Creating an order touches every contended resource at once: product
stock, the user's spend and points, and coupon usage. Either all of it
happens or none of it does.

DESIGN:
- One transaction per order (run_with_retry -> run_in_transaction).
- Locks: products in ascending id, then the user, then the user coupon.
- Stock is re-checked under lock; the cart may have changed since the
  shopper last looked at it.
- Prices, names and the tier discount rate are snapshotted onto the items.
- Shipping is always recomputed here; nothing the client sends about fees
  is consulted.
- Earned points are only a snapshot on the order. They are credited at
  delivery (see point_ledger.settle_order_points).

PRICING (whole won, integer arithmetic):
    tier_discount   = total * tier.discount_rate_bps // 10000
    coupon_discount = coupon price against (total - tier_discount)
    discount        = tier_discount + coupon_discount
    shipping_fee    = 0 if tier ships free or (total - discount) >= threshold
                      else SHIPPING_FEE_BASE
    final           = total - discount + shipping_fee
    earned_points   = final * tier.point_earn_rate_bps // 10000
    used_points     = min(requested, total - discount), tender not discount
"""

from __future__ import annotations

import uuid

from flask import current_app

from ..extensions import db
from ..models import CartItem, Order, OrderItem, OrderStatus, User
from ..errors import NotFoundError, ValidationError
from ..signals import emit_product_stock_changed
from ..time_utils import utcnow
from ..validation import OrderCreateRequest
from . import coupon_service, point_ledger, stock_ledger, tier_service
from .concurrency import lock_for_update, run_with_retry
from .order_state import transition_order
from .shipping import calculate_shipping_fee


def generate_order_number(now=None) -> str:
    """yyyyMMddHHmmssfff-<12 upper hex>; unique by construction, sortable by time."""
    now = now or utcnow()
    return f"{now.strftime('%Y%m%d%H%M%S')}{now.microsecond // 1000:03d}-{uuid.uuid4().hex[:12].upper()}"


def lock_user(user_id: int) -> User:
    user = lock_for_update(db.session.query(User).filter_by(id=user_id)).first()
    if user is None or not user.is_active:
        raise NotFoundError(f"User {user_id} not found", {"user_id": user_id})
    return user


def _load_cart(user_id: int, cart_item_ids: tuple[int, ...] | None) -> list[CartItem]:
    query = db.session.query(CartItem).filter(CartItem.user_id == user_id)
    if cart_item_ids is not None:
        query = query.filter(CartItem.id.in_(cart_item_ids))
    cart_items = query.order_by(CartItem.product_id).all()

    if cart_item_ids is not None:
        missing = set(cart_item_ids) - {c.id for c in cart_items}
        if missing:
            raise NotFoundError("Selected cart items not found", {"cart_item_ids": sorted(missing)})
    if not cart_items:
        raise ValidationError("Cart is empty", code="EMPTY_CART")
    return cart_items


def create_order(user_id: int, request: OrderCreateRequest) -> Order:
    """
    Create a PAID order from the user's cart (selected items or the whole cart).

    Raises:
        ValidationError (EMPTY_CART), NotFoundError, InsufficientStockError,
        InvalidCouponError, InsufficientPointsError, LockTimeoutError
    """
    shipping_fee_base = int(current_app.config.get("SHIPPING_FEE_BASE", 3000))

    def _op():
        now = utcnow()
        cart_items = _load_cart(user_id, request.cart_item_ids)

        # Lock order: products ascending, then user, then coupon.
        products = {p.id: p for p in stock_ledger.lock_products(c.product_id for c in cart_items)}
        user = lock_user(user_id)
        if user.tier_id is None:
            tier_service.refresh_user_tier(user, "Initial tier assignment")
        benefit = tier_service.benefits_for(user.tier)

        order_items = []
        movements = []
        total_amount = 0
        for cart_item in cart_items:
            product = products[cart_item.product_id]
            if not product.is_active:
                raise ValidationError(
                    f"Product {product.id} is not available",
                    {"product_id": product.id},
                    code="PRODUCT_UNAVAILABLE",
                )
            movements.append(stock_ledger.decrease_stock(
                product,
                cart_item.quantity,
                reason="ORDER",
                user_id=user.id,
            ))
            subtotal = product.price * cart_item.quantity
            total_amount += subtotal
            order_items.append(OrderItem(
                product_id=product.id,
                product_name=product.name,
                unit_price=product.price,
                discount_rate_bps=benefit.discount_rate_bps,
                quantity=cart_item.quantity,
                subtotal=subtotal,
            ))

        tier_discount = total_amount * benefit.discount_rate_bps // 10000

        user_coupon = None
        coupon_discount = 0
        if request.user_coupon_id is not None:
            user_coupon = coupon_service.lock_user_coupon(request.user_coupon_id)
            coupon_base = total_amount - tier_discount
            coupon_service.validate(user_coupon, coupon_base, user_id=user.id, now=now)
            coupon_discount = coupon_service.calculate_discount(user_coupon.coupon, coupon_base)

        discount_amount = tier_discount + coupon_discount
        amount_after_discount = total_amount - discount_amount

        used_points = min(request.use_points, amount_after_discount)
        point_ledger.ensure_sufficient_points(user, used_points)

        shipping_fee = calculate_shipping_fee(benefit, amount_after_discount, shipping_fee_base)
        final_amount = amount_after_discount + shipping_fee
        earned_points = final_amount * benefit.point_earn_rate_bps // 10000

        order = Order(
            order_number=generate_order_number(now),
            user_id=user.id,
            status=OrderStatus.PENDING.value,
            total_amount=total_amount,
            tier_discount_amount=tier_discount,
            coupon_discount_amount=coupon_discount,
            discount_amount=discount_amount,
            shipping_fee=shipping_fee,
            final_amount=final_amount,
            point_earn_rate_snapshot_bps=benefit.point_earn_rate_bps,
            earned_points_snapshot=earned_points,
            used_points=used_points,
            points_settled=False,
            tier_id_snapshot=user.tier_id,
            payment_method=request.payment_method.value,
            shipping_address=request.shipping_address,
            recipient_name=request.recipient_name,
            recipient_phone=request.recipient_phone,
            ordered_at=now,
        )
        order.items = order_items
        # No external payment step: the order is paid as it is created.
        transition_order(order, OrderStatus.PAID, now)
        db.session.add(order)
        db.session.flush()

        for movement in movements:
            movement.order_id = order.id
        if user_coupon is not None:
            coupon_service.use(user_coupon, order.id, now)
        point_ledger.redeem_points(user, order, used_points)

        user.add_total_spent(final_amount)
        tier_service.refresh_user_tier(user, f"Order {order.order_number} placed")

        for cart_item in cart_items:
            db.session.delete(cart_item)

        return order

    order = run_with_retry(_op)
    emit_product_stock_changed(item.product_id for item in order.items)
    return order
