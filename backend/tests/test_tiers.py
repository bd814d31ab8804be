import pytest

from storefront.extensions import db
from storefront.models import UserTier, UserTierHistory
from storefront.services import tier_service
from storefront.services.shipping import calculate_shipping_fee


@pytest.mark.parametrize("total_spent,expected", [
    (0, "WELCOME"),
    (499999, "WELCOME"),
    (500000, "SILVER"),
    (1999999, "SILVER"),
    (2000000, "GOLD"),
    (4999999, "GOLD"),
    (5000000, "VIP"),
    (9999999, "VIP"),
    (10000000, "VVIP"),
    (250000000, "VVIP"),
])
def test_resolve_benefits_boundaries(total_spent, expected):
    assert tier_service.resolve_benefits(total_spent).name == expected


def test_tier_rates():
    gold = tier_service.resolve_benefits(2000000)
    assert gold.discount_rate_bps == 500
    assert gold.point_earn_rate_bps == 150
    assert gold.free_shipping_threshold == 20000
    assert not gold.always_free_shipping
    assert tier_service.resolve_benefits(5000000).always_free_shipping


def test_shipping_fee_rules():
    welcome = tier_service.resolve_benefits(0)
    vip = tier_service.resolve_benefits(5000000)

    assert calculate_shipping_fee(welcome, 49999, 3000) == 3000
    assert calculate_shipping_fee(welcome, 50000, 3000) == 0
    assert calculate_shipping_fee(vip, 1000, 3000) == 0


def test_seed_tiers_is_idempotent(app):
    tier_service.seed_tiers()
    db.session.commit()

    assert db.session.query(UserTier).count() == 5
    assert [t.name for t in db.session.query(UserTier).order_by(UserTier.tier_level)] == [
        "WELCOME", "SILVER", "GOLD", "VIP", "VVIP",
    ]


def test_refresh_user_tier_records_history(app, make_user):
    user = make_user(total_spent=0)

    user.total_spent = 2100000
    assert tier_service.refresh_user_tier(user, "test promotion") is True
    assert tier_service.refresh_user_tier(user, "no change") is False
    db.session.commit()

    assert user.tier.name == "GOLD"
    history = db.session.query(UserTierHistory).filter_by(user_id=user.id).all()
    assert len(history) == 1
    assert history[0].from_tier.name == "WELCOME"
    assert history[0].to_tier.name == "GOLD"
    assert history[0].reason == "test promotion"
