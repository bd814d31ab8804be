"""
Order creation tests.

Verifies:
- Pricing: tier discount, coupon on the tier-discounted amount, server-side shipping
- Stock is consumed under lock and logged; shortages roll everything back
- Points are tender at checkout; earned points are only a snapshot
- Cumulative spend and live tier promotion
"""

import pytest

from storefront.extensions import db
from storefront.errors import (
    InsufficientPointsError,
    InsufficientStockError,
    InvalidCouponError,
    InvalidPaymentMethodError,
    ValidationError,
)
from storefront.models import CartItem, Coupon, InventoryHistory, PointHistory, UserTierHistory
from storefront.services import order_creation_service, stock_ledger
from storefront.validation import OrderCreateRequest, parse_order_create_request


def order_request(**overrides):
    fields = {
        "shipping_address": "1 Main St, Seoul",
        "recipient_name": "Kim Minji",
        "recipient_phone": "010-1234-5678",
    }
    fields.update(overrides)
    return OrderCreateRequest(**fields)


# =============================================================================
# PRICING AND STOCK
# =============================================================================


class TestOrderPricing:

    def test_welcome_order_consumes_stock(self, app, make_user, make_product, place_order):
        user = make_user()
        product = make_product(price=10000, stock=5)

        order = place_order(user, [(product, 5)])

        assert order.status == "PAID"
        assert order.paid_at is not None
        assert order.total_amount == 50000
        assert order.discount_amount == 0
        assert order.shipping_fee == 0
        assert order.final_amount == 50000
        assert order.earned_points_snapshot == 500
        assert order.points_settled is False
        assert order.payment_method == "CARD"
        assert product.stock_quantity == 0
        assert product.sales_count == 5

        movement = db.session.query(InventoryHistory).one()
        assert movement.change_type == "OUT"
        assert movement.order_id == order.id
        assert db.session.query(CartItem).filter_by(user_id=user.id).count() == 0

    def test_gold_order_with_fixed_coupon(self, app, make_user, make_product, make_coupon, give_coupon, place_order):
        user = make_user(total_spent=2000000)
        product = make_product(price=100000, stock=3)
        user_coupon = give_coupon(user, make_coupon(discount_value=3000))

        order = place_order(user, [(product, 1)], user_coupon_id=user_coupon.id)

        assert order.tier_discount_amount == 5000
        assert order.coupon_discount_amount == 3000
        assert order.discount_amount == 8000
        assert order.shipping_fee == 0
        assert order.final_amount == 92000
        assert order.earned_points_snapshot == 1380
        assert order.items[0].discount_rate_bps == 500

        assert user_coupon.is_used is True
        assert user_coupon.order_id == order.id
        assert user_coupon.used_at is not None
        assert db.session.get(Coupon, user_coupon.coupon_id).used_quantity == 1

    def test_percent_coupon_priced_on_tier_discounted_amount(
        self, app, make_user, make_product, make_coupon, give_coupon, place_order
    ):
        user = make_user(total_spent=500000)
        product = make_product(price=50000, stock=3)
        coupon = make_coupon(code="PCT10", discount_type="PERCENT", discount_value=1000, max_discount=10000)
        user_coupon = give_coupon(user, coupon)

        order = place_order(user, [(product, 1)], user_coupon_id=user_coupon.id)

        # SILVER: 2% of 50000 = 1000, then 10% of 49000
        assert order.tier_discount_amount == 1000
        assert order.coupon_discount_amount == 4900
        assert order.final_amount == 44100

    def test_shipping_fee_below_threshold(self, app, make_user, make_product, place_order):
        user = make_user()
        product = make_product(price=10000, stock=5)

        order = place_order(user, [(product, 1)])

        assert order.shipping_fee == 3000
        assert order.final_amount == 13000
        assert order.earned_points_snapshot == 130

    def test_client_shipping_fee_is_ignored(self, app, make_user, make_product, add_to_cart):
        user = make_user()
        product = make_product(price=10000, stock=5)
        add_to_cart(user, product, 1)

        request = parse_order_create_request({
            "shipping_address": "1 Main St",
            "recipient_name": "Kim",
            "recipient_phone": "010-0000-0000",
            "shipping_fee": 0,
        })
        order = order_creation_service.create_order(user.id, request)

        assert order.shipping_fee == 3000

    def test_vip_always_ships_free(self, app, make_user, make_product, place_order):
        user = make_user(total_spent=5000000)
        product = make_product(price=1000, stock=5)

        order = place_order(user, [(product, 1)])

        assert order.shipping_fee == 0
        assert order.tier_discount_amount == 70
        assert order.final_amount == 930

    def test_insufficient_stock_rolls_back(self, app, make_user, make_product, place_order):
        user = make_user()
        product = make_product(price=10000, stock=5)

        with pytest.raises(InsufficientStockError) as exc:
            place_order(user, [(product, 6)])

        assert exc.value.code == "INSUFFICIENT_STOCK"
        assert product.stock_quantity == 5
        assert db.session.query(CartItem).filter_by(user_id=user.id).count() == 1
        assert db.session.query(InventoryHistory).count() == 0

    def test_products_locked_in_ascending_order(self, app, make_user, make_product, add_to_cart, monkeypatch):
        user = make_user()
        first = make_product(price=1000, stock=5)
        second = make_product(price=2000, stock=5)
        third = make_product(price=3000, stock=5)
        for product in (third, first, second):
            add_to_cart(user, product, 1)

        acquired = []
        original = stock_ledger._lock_product

        def spy(product_id):
            acquired.append(product_id)
            return original(product_id)

        monkeypatch.setattr(stock_ledger, "_lock_product", spy)
        order_creation_service.create_order(user.id, order_request())

        assert acquired == [first.id, second.id, third.id]

    def test_selected_cart_items_only(self, app, make_user, make_product, add_to_cart):
        user = make_user()
        kept = add_to_cart(user, make_product(price=1000, stock=5), 1)
        bought = add_to_cart(user, make_product(price=2000, stock=5), 2)

        order = order_creation_service.create_order(user.id, order_request(cart_item_ids=(bought.id,)))

        assert order.total_amount == 4000
        remaining = db.session.query(CartItem).filter_by(user_id=user.id).all()
        assert [c.id for c in remaining] == [kept.id]

    def test_inactive_product_rejected(self, app, make_user, make_product, place_order):
        user = make_user()
        product = make_product(stock=5, is_active=False)

        with pytest.raises(ValidationError) as exc:
            place_order(user, [(product, 1)])
        assert exc.value.code == "PRODUCT_UNAVAILABLE"
        assert product.stock_quantity == 5


# =============================================================================
# POINTS, SPEND AND TIER
# =============================================================================


class TestOrderPoints:

    def test_points_used_as_tender(self, app, make_user, make_product, place_order):
        user = make_user(point_balance=1000)
        product = make_product(price=10000, stock=5)

        order = place_order(user, [(product, 1)], use_points=500)

        assert order.used_points == 500
        assert order.payment_amount == 12500
        assert user.point_balance == 500
        entry = db.session.query(PointHistory).filter_by(user_id=user.id).one()
        assert entry.change_type == "USE"
        assert entry.amount == 500
        assert entry.balance_after == 500

    def test_points_over_balance_rolls_back(self, app, make_user, make_product, place_order):
        user = make_user(point_balance=100)
        product = make_product(price=10000, stock=5)

        with pytest.raises(InsufficientPointsError):
            place_order(user, [(product, 1)], use_points=500)

        assert user.point_balance == 100
        assert product.stock_quantity == 5

    def test_points_capped_at_discounted_amount(self, app, make_user, make_product, place_order):
        user = make_user(point_balance=50000)
        product = make_product(price=10000, stock=5)

        order = place_order(user, [(product, 1)], use_points=20000)

        assert order.used_points == 10000
        assert user.point_balance == 40000
        assert order.payment_amount == 3000

    def test_total_spent_and_promotion(self, app, make_user, make_product, place_order):
        user = make_user(total_spent=490000)
        product = make_product(price=10000, stock=5)

        order = place_order(user, [(product, 1)])

        assert order.final_amount == 13000
        assert user.total_spent == 503000
        assert user.tier.name == "SILVER"
        history = db.session.query(UserTierHistory).filter_by(user_id=user.id).one()
        assert history.to_tier.name == "SILVER"

    def test_earned_points_not_credited_at_checkout(self, app, make_user, make_product, place_order):
        user = make_user(point_balance=0)
        product = make_product(price=10000, stock=5)

        order = place_order(user, [(product, 5)])

        assert order.earned_points_snapshot == 500
        assert user.point_balance == 0


# =============================================================================
# COUPON AND REQUEST FAILURES
# =============================================================================


class TestOrderRejections:

    def test_expired_user_coupon(self, app, make_user, make_product, make_coupon, give_coupon, place_order):
        from datetime import timedelta
        from storefront.time_utils import utcnow

        user = make_user()
        product = make_product(stock=5)
        user_coupon = give_coupon(user, make_coupon(), expires_at=utcnow() - timedelta(minutes=1))

        with pytest.raises(InvalidCouponError):
            place_order(user, [(product, 1)], user_coupon_id=user_coupon.id)
        assert product.stock_quantity == 5

    def test_other_users_coupon(self, app, make_user, make_product, make_coupon, give_coupon, place_order):
        owner = make_user()
        shopper = make_user()
        product = make_product(stock=5)
        user_coupon = give_coupon(owner, make_coupon())

        with pytest.raises(InvalidCouponError):
            place_order(shopper, [(product, 1)], user_coupon_id=user_coupon.id)

    def test_coupon_below_minimum(self, app, make_user, make_product, make_coupon, give_coupon, place_order):
        user = make_user()
        product = make_product(price=10000, stock=5)
        user_coupon = give_coupon(user, make_coupon(min_order_amount=20000))

        with pytest.raises(InvalidCouponError) as exc:
            place_order(user, [(product, 1)], user_coupon_id=user_coupon.id)
        assert exc.value.details["reason"] == "BELOW_MINIMUM"

    def test_coupon_cannot_be_reused(self, app, make_user, make_product, make_coupon, give_coupon, place_order):
        user = make_user()
        product = make_product(price=10000, stock=5)
        user_coupon = give_coupon(user, make_coupon())

        place_order(user, [(product, 1)], user_coupon_id=user_coupon.id)
        with pytest.raises(InvalidCouponError) as exc:
            place_order(user, [(product, 1)], user_coupon_id=user_coupon.id)

        assert exc.value.details["reason"] == "ALREADY_USED"
        assert product.stock_quantity == 4

    def test_empty_cart(self, app, make_user):
        user = make_user()

        with pytest.raises(ValidationError) as exc:
            order_creation_service.create_order(user.id, order_request())
        assert exc.value.code == "EMPTY_CART"

    @pytest.mark.parametrize("raw,expected", [
        (" kakao ", "KAKAO"),
        ("Card", "CARD"),
        (None, "CARD"),
        ("", "CARD"),
    ])
    def test_payment_method_normalized(self, raw, expected):
        request = parse_order_create_request({
            "shipping_address": "1 Main St",
            "recipient_name": "Kim",
            "recipient_phone": "010-0000-0000",
            "payment_method": raw,
        })
        assert request.payment_method.value == expected

    def test_unknown_payment_method(self):
        with pytest.raises(InvalidPaymentMethodError) as exc:
            parse_order_create_request({
                "shipping_address": "1 Main St",
                "recipient_name": "Kim",
                "recipient_phone": "010-0000-0000",
                "payment_method": "BITCOIN",
            })
        assert exc.value.code == "INVALID_PAYMENT_METHOD"

    def test_empty_selection_is_empty_cart(self):
        with pytest.raises(ValidationError) as exc:
            parse_order_create_request({
                "shipping_address": "1 Main St",
                "recipient_name": "Kim",
                "recipient_phone": "010-0000-0000",
                "cart_item_ids": [],
            })
        assert exc.value.code == "EMPTY_CART"

    def test_order_number_format(self):
        number = order_creation_service.generate_order_number()
        stamp, suffix = number.split("-")
        assert len(stamp) == 17 and stamp.isdigit()
        assert len(suffix) == 12 and suffix == suffix.upper()
