# Overview: Service-layer tier resolution from cumulative spend.

"""
Tier Benefit Resolver

The five tiers are fixed. resolve_benefits() is a pure function of
total_spent and is safe to call inside any transaction; the DB-backed
helpers below only map the result onto the user_tiers reference rows.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..extensions import db
from ..models import User, UserTier, UserTierHistory
from ..time_utils import utcnow


@dataclass(frozen=True)
class TierBenefit:
    tier_level: int
    name: str
    min_spent: int
    discount_rate_bps: int
    point_earn_rate_bps: int
    free_shipping_threshold: int  # 0 = always free

    @property
    def always_free_shipping(self) -> bool:
        return self.free_shipping_threshold == 0


TIER_TABLE: tuple[TierBenefit, ...] = (
    TierBenefit(1, "WELCOME", 0, 0, 100, 50000),
    TierBenefit(2, "SILVER", 500000, 200, 100, 30000),
    TierBenefit(3, "GOLD", 2000000, 500, 150, 20000),
    TierBenefit(4, "VIP", 5000000, 700, 200, 0),
    TierBenefit(5, "VVIP", 10000000, 1000, 300, 0),
)


def resolve_benefits(total_spent: int) -> TierBenefit:
    """Highest tier whose min_spent <= total_spent."""
    resolved = TIER_TABLE[0]
    for tier in TIER_TABLE:
        if tier.min_spent <= total_spent:
            resolved = tier
    return resolved


def benefits_for(tier: UserTier | None) -> TierBenefit:
    """Benefits of a persisted tier row (WELCOME when the user has none yet)."""
    if tier is None:
        return TIER_TABLE[0]
    return TierBenefit(
        tier_level=tier.tier_level,
        name=tier.name,
        min_spent=tier.min_spent,
        discount_rate_bps=tier.discount_rate_bps,
        point_earn_rate_bps=tier.point_earn_rate_bps,
        free_shipping_threshold=tier.free_shipping_threshold,
    )


def get_tier_by_level(tier_level: int) -> UserTier | None:
    return db.session.query(UserTier).filter_by(tier_level=tier_level).first()


def resolve_tier(total_spent: int) -> UserTier:
    benefit = resolve_benefits(total_spent)
    tier = get_tier_by_level(benefit.tier_level)
    if tier is None:
        raise RuntimeError("Tier reference table is not seeded; run `flask system init`")
    return tier


def refresh_user_tier(user: User, reason: str) -> bool:
    """
    Re-resolve the user's tier from total_spent and record any change.

    Caller must hold the user row lock. Returns True if the tier changed.
    """
    new_tier = resolve_tier(user.total_spent)
    if user.tier_id == new_tier.id:
        return False
    db.session.add(UserTierHistory(
        user_id=user.id,
        from_tier_id=user.tier_id,
        to_tier_id=new_tier.id,
        reason=reason,
        changed_at=utcnow(),
    ))
    user.tier_id = new_tier.id
    user.tier = new_tier
    return True


def seed_tiers() -> list[UserTier]:
    """Idempotently upsert the fixed tier table. Caller commits."""
    rows = []
    for benefit in TIER_TABLE:
        tier = get_tier_by_level(benefit.tier_level)
        if tier is None:
            tier = UserTier(tier_level=benefit.tier_level)
            db.session.add(tier)
        tier.name = benefit.name
        tier.min_spent = benefit.min_spent
        tier.discount_rate_bps = benefit.discount_rate_bps
        tier.point_earn_rate_bps = benefit.point_earn_rate_bps
        tier.free_shipping_threshold = benefit.free_shipping_threshold
        rows.append(tier)
    db.session.flush()
    return rows
