import pytest
from sqlalchemy import inspect
from sqlalchemy.exc import IntegrityError

from storefront.extensions import db
from storefront.models import Order


def test_coupon_usage_cannot_exceed_total(app, make_coupon):
    coupon = make_coupon(total_quantity=1, used_quantity=1)

    coupon.used_quantity = 2
    with pytest.raises(IntegrityError):
        db.session.commit()
    db.session.rollback()


def test_constraint_names_match_migration(app):
    foreign_keys = {fk["name"] for fk in inspect(db.engine).get_foreign_keys("orders")}
    assert foreign_keys == {"fk_orders_user_id_users", "fk_orders_tier_id_snapshot_user_tiers"}

    constraint_names = {c.name for c in Order.__table__.constraints}
    assert "pk_orders" in constraint_names
    assert "uq_orders_order_number" in constraint_names
    assert "ck_orders_refunded_amount" in constraint_names
