"""
Pytest fixtures for storefront order core tests.

Each test gets its own in-memory database with the tier table seeded, plus
small factories for users, products, carts and coupons.
"""

from datetime import timedelta

import pytest

from storefront import create_app
from storefront.extensions import db
from storefront.models import CartItem, Coupon, Product, User, UserCoupon
from storefront.services import order_creation_service, tier_service
from storefront.time_utils import utcnow
from storefront.validation import OrderCreateRequest


@pytest.fixture(scope='function')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    })

    with app.app_context():
        db.create_all()
        tier_service.seed_tiers()
        db.session.commit()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def make_user(app):
    """Create a user whose tier matches total_spent."""
    counter = {"n": 0}

    def _make(total_spent=0, point_balance=0, role="USER", username=None):
        counter["n"] += 1
        user = User(
            username=username or f"user{counter['n']}",
            email=f"user{counter['n']}@example.com",
            role=role,
            total_spent=total_spent,
            point_balance=point_balance,
            tier=tier_service.resolve_tier(total_spent),
        )
        db.session.add(user)
        db.session.commit()
        return user

    return _make


@pytest.fixture(scope='function')
def make_product(app):
    def _make(price=10000, stock=10, name=None, is_active=True):
        product = Product(
            name=name or f"Product {price}",
            price=price,
            stock_quantity=stock,
            is_active=is_active,
        )
        db.session.add(product)
        db.session.commit()
        return product

    return _make


@pytest.fixture(scope='function')
def add_to_cart(app):
    def _add(user, product, quantity):
        item = CartItem(user_id=user.id, product_id=product.id, quantity=quantity)
        db.session.add(item)
        db.session.commit()
        return item

    return _add


@pytest.fixture(scope='function')
def make_coupon(app):
    def _make(code="FIXED3000", discount_type="FIXED", discount_value=3000, min_order_amount=0,
              max_discount=None, total_quantity=100, used_quantity=0, valid_from=None,
              valid_until=None, is_active=True):
        now = utcnow()
        coupon = Coupon(
            code=code,
            name=code,
            discount_type=discount_type,
            discount_value=discount_value,
            min_order_amount=min_order_amount,
            max_discount=max_discount,
            total_quantity=total_quantity,
            used_quantity=used_quantity,
            valid_from=valid_from or now - timedelta(days=1),
            valid_until=valid_until or now + timedelta(days=30),
            is_active=is_active,
        )
        db.session.add(coupon)
        db.session.commit()
        return coupon

    return _make


@pytest.fixture(scope='function')
def give_coupon(app):
    def _give(user, coupon, expires_at=None):
        user_coupon = UserCoupon(
            user_id=user.id,
            coupon_id=coupon.id,
            is_used=False,
            issued_at=utcnow(),
            expires_at=expires_at,
        )
        db.session.add(user_coupon)
        db.session.commit()
        return user_coupon

    return _give


def order_request(**overrides) -> OrderCreateRequest:
    fields = {
        "shipping_address": "1 Main St, Seoul",
        "recipient_name": "Kim Minji",
        "recipient_phone": "010-1234-5678",
    }
    fields.update(overrides)
    return OrderCreateRequest(**fields)


@pytest.fixture(scope='function')
def place_order(add_to_cart):
    """Put (product, quantity) lines in the user's cart and check out."""
    def _place(user, lines, **request_fields):
        for product, quantity in lines:
            add_to_cart(user, product, quantity)
        return order_creation_service.create_order(user.id, order_request(**request_fields))

    return _place
