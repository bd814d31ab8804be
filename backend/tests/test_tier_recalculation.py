import itertools
from datetime import datetime

from storefront.extensions import db
from storefront.models import Order, UserTierHistory
from storefront.services import tier_service
from storefront.services.tier_recalculation_service import recalculate_tiers, settled_spend_by_user
from storefront.time_utils import utcnow


LAST_YEAR = utcnow().year - 1
_order_numbers = itertools.count(1)


def _historic_order(user, final_amount, *, refunded=0, status="DELIVERED", year=LAST_YEAR):
    order = Order(
        order_number=f"HIST-{next(_order_numbers):06d}",
        user_id=user.id,
        status=status,
        total_amount=final_amount,
        final_amount=final_amount,
        refunded_amount=refunded,
        shipping_address="1 Main St",
        recipient_name="Kim",
        recipient_phone="010-0000-0000",
        ordered_at=datetime(year, 6, 15, 12, 0, 0),
    )
    db.session.add(order)
    db.session.commit()
    return order


def _seed_history(make_user):
    riser = make_user(total_spent=0)
    _historic_order(riser, 600000)
    _historic_order(riser, 9000000, year=LAST_YEAR + 1)

    faller = make_user(total_spent=2500000)
    _historic_order(faller, 100000)
    _historic_order(faller, 5000000, status="CANCELLED")

    steady = make_user(total_spent=600000)
    _historic_order(steady, 800000, refunded=100000)
    return riser, faller, steady


def test_settled_spend_excludes_cancelled_and_other_years(app, make_user):
    riser, faller, steady = _seed_history(make_user)

    spend = settled_spend_by_user(LAST_YEAR, [riser.id, faller.id, steady.id])

    assert spend == {riser.id: 600000, faller.id: 100000, steady.id: 700000}


def test_recalculate_tiers_in_chunks(app, make_user):
    riser, faller, steady = _seed_history(make_user)

    result = recalculate_tiers(chunk_size=1)

    assert result.year == LAST_YEAR
    assert result.to_dict() == {
        "year": LAST_YEAR,
        "processed": 3,
        "upgraded": 1,
        "downgraded": 1,
        "unchanged": 1,
        "errors": 0,
    }
    assert (riser.total_spent, riser.tier.name) == (600000, "SILVER")
    assert (faller.total_spent, faller.tier.name) == (100000, "WELCOME")
    assert (steady.total_spent, steady.tier.name) == (700000, "SILVER")
    assert db.session.query(UserTierHistory).filter_by(user_id=faller.id).count() == 1


def test_failed_chunk_is_counted_and_skipped(app, make_user, monkeypatch):
    riser, faller, steady = _seed_history(make_user)
    original = tier_service.refresh_user_tier

    def flaky(user, reason):
        if user.id == faller.id:
            raise RuntimeError("boom")
        return original(user, reason)

    monkeypatch.setattr(tier_service, "refresh_user_tier", flaky)

    result = recalculate_tiers(LAST_YEAR, chunk_size=1)

    assert result.errors == 1
    assert result.processed == 2
    assert (faller.total_spent, faller.tier.name) == (2500000, "GOLD")
    assert riser.tier.name == "SILVER"


def test_cli_reports_counts(app, make_user):
    _seed_history(make_user)
    runner = app.test_cli_runner()

    result = runner.invoke(args=["tiers", "recalculate", "--year", str(LAST_YEAR), "--chunk-size", "2"])

    assert result.exit_code == 0
    assert "processed=3" in result.output
    assert "upgraded=1" in result.output
