"""
Full order cancellation tests.

Verifies every side effect of creation is reversed exactly once:
stock, redeemed points, cumulative spend, coupon usage and tier.
"""

import pytest

from storefront.extensions import db
from storefront.errors import NotFoundError, OrderNotCancellableError
from storefront.models import Coupon, InventoryHistory, PointHistory
from storefront.services import order_cancellation_service, order_fulfillment_service


def test_cancel_restores_everything(app, make_user, make_product, place_order):
    user = make_user(point_balance=1000)
    product = make_product(price=10000, stock=10)
    order = place_order(user, [(product, 6)], use_points=500)

    assert order.final_amount == 60000
    assert user.point_balance == 500
    assert product.stock_quantity == 4

    cancelled = order_cancellation_service.cancel_order(order.id, user.id)

    assert cancelled.status == "CANCELLED"
    assert cancelled.cancelled_at is not None
    assert cancelled.payment_amount == 59500
    assert cancelled.refunded_amount == 59500
    assert cancelled.refunded_points == 500
    assert user.point_balance == 1000
    assert user.total_spent == 0
    assert product.stock_quantity == 10
    assert product.sales_count == 0

    item = cancelled.items[0]
    assert item.status == "CANCELLED"
    assert item.cancelled_quantity == 6
    assert item.remaining_quantity == 0

    restock = db.session.query(InventoryHistory).filter_by(change_type="IN").one()
    assert restock.order_id == order.id
    assert restock.change_amount == 6


def test_second_cancel_fails_without_side_effects(app, make_user, make_product, place_order):
    user = make_user(point_balance=1000)
    product = make_product(price=10000, stock=10)
    order = place_order(user, [(product, 6)], use_points=500)
    order_cancellation_service.cancel_order(order.id, user.id)

    with pytest.raises(OrderNotCancellableError) as exc:
        order_cancellation_service.cancel_order(order.id, user.id)

    assert exc.value.code == "ORDER_NOT_CANCELLABLE"
    assert product.stock_quantity == 10
    assert user.point_balance == 1000
    assert db.session.query(InventoryHistory).filter_by(change_type="IN").count() == 1
    assert db.session.query(PointHistory).filter_by(change_type="REFUND").count() == 1


def test_cancel_demotes_tier(app, make_user, make_product, place_order):
    user = make_user(total_spent=480000)
    product = make_product(price=20000, stock=5)

    order = place_order(user, [(product, 1)])
    assert order.final_amount == 23000
    assert user.tier.name == "SILVER"

    order_cancellation_service.cancel_order(order.id, user.id)

    assert user.total_spent == 480000
    assert user.tier.name == "WELCOME"


def test_cancel_releases_coupon(app, make_user, make_product, make_coupon, give_coupon, place_order):
    user = make_user()
    product = make_product(price=10000, stock=5)
    user_coupon = give_coupon(user, make_coupon())
    order = place_order(user, [(product, 1)], user_coupon_id=user_coupon.id)

    order_cancellation_service.cancel_order(order.id, user.id)

    assert user_coupon.is_used is False
    assert user_coupon.used_at is None
    assert user_coupon.order_id is None
    assert db.session.get(Coupon, user_coupon.coupon_id).used_quantity == 0


def test_shipped_order_not_cancellable(app, make_user, make_product, place_order):
    user = make_user()
    product = make_product(stock=5)
    order = place_order(user, [(product, 2)])
    order_fulfillment_service.mark_shipped(order.id)

    with pytest.raises(OrderNotCancellableError):
        order_cancellation_service.cancel_order(order.id, user.id)
    assert product.stock_quantity == 3


def test_cannot_cancel_someone_elses_order(app, make_user, make_product, place_order):
    owner = make_user()
    stranger = make_user()
    order = place_order(owner, [(make_product(stock=5), 1)])

    with pytest.raises(NotFoundError):
        order_cancellation_service.cancel_order(order.id, stranger.id)


def test_admin_status_update_cancels(app, make_user, make_product, place_order):
    user = make_user()
    admin = make_user(role="ADMIN")
    product = make_product(stock=5)
    order = place_order(user, [(product, 2)])

    cancelled = order_fulfillment_service.update_order_status(order.id, "cancelled", admin.id)

    assert cancelled.status == "CANCELLED"
    assert product.stock_quantity == 5
    restock = db.session.query(InventoryHistory).filter_by(change_type="IN").one()
    assert restock.created_by_user_id == admin.id
