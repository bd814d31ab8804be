# Overview: Batch job re-deriving every user's tier from the previous year's settled spend.

"""
Tier Recalculation Job

WHY: Tiers are promoted live as orders are placed, but they are a yearly
status: once a year every user's total_spent is reset to what they actually
kept buying in the previous calendar year, and the tier follows.

SETTLED SPEND for a year = sum(final_amount - refunded_amount - refunded_points)
over the user's non-cancelled orders with ordered_at inside the year.

DESIGN:
- Users are processed in id order, chunk_size at a time (keyset paging).
- Each chunk is its own transaction; each user row is locked individually
  while it is rewritten, so live orders for the same user wait instead of
  being overwritten.
- A failing chunk is rolled back, logged, counted under `errors`, and the
  job moves on to the next chunk.
- Single pass, not meant to run concurrently with itself.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Order, OrderStatus, User
from ..time_utils import utcnow, year_bounds
from . import tier_service
from .concurrency import lock_for_update, run_with_retry


@dataclass
class TierRecalculationResult:
    year: int
    processed: int = 0
    upgraded: int = 0
    downgraded: int = 0
    unchanged: int = 0
    errors: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


def settled_spend_by_user(year: int, user_ids: list[int]) -> dict[int, int]:
    start, end = year_bounds(year)
    rows = (
        db.session.query(
            Order.user_id,
            func.coalesce(func.sum(Order.final_amount - Order.refunded_amount - Order.refunded_points), 0),
        )
        .filter(
            Order.user_id.in_(user_ids),
            Order.status != OrderStatus.CANCELLED.value,
            Order.ordered_at >= start,
            Order.ordered_at < end,
        )
        .group_by(Order.user_id)
        .all()
    )
    return {user_id: max(0, int(total)) for user_id, total in rows}


def _process_chunk(year: int, user_ids: list[int]) -> dict[str, int]:
    counts = {"processed": 0, "upgraded": 0, "downgraded": 0, "unchanged": 0}

    def _op():
        for key in counts:
            counts[key] = 0
        spend = settled_spend_by_user(year, user_ids)
        for user_id in user_ids:
            user = lock_for_update(db.session.query(User).filter_by(id=user_id)).first()
            if user is None:
                continue
            old_level = user.tier.tier_level if user.tier else 0
            user.total_spent = spend.get(user_id, 0)
            tier_service.refresh_user_tier(user, f"Annual tier recalculation for {year}")
            new_level = user.tier.tier_level

            counts["processed"] += 1
            if new_level > old_level:
                counts["upgraded"] += 1
            elif new_level < old_level:
                counts["downgraded"] += 1
            else:
                counts["unchanged"] += 1

    run_with_retry(_op)
    return counts


def recalculate_tiers(year: int | None = None, *, chunk_size: int | None = None) -> TierRecalculationResult:
    """Recalculate every user's tier from `year` (default: last year)."""
    if year is None:
        year = utcnow().year - 1
    if chunk_size is None:
        chunk_size = int(current_app.config.get("TIER_RECALC_CHUNK_SIZE", 1000))
    chunk_size = max(1, chunk_size)

    result = TierRecalculationResult(year=year)
    logger = current_app.logger
    logger.info("Tier recalculation for %s started (chunk size %s)", year, chunk_size)

    last_id = 0
    chunk_number = 0
    while True:
        user_ids = [
            row[0]
            for row in db.session.query(User.id)
            .filter(User.id > last_id)
            .order_by(User.id)
            .limit(chunk_size)
            .all()
        ]
        db.session.rollback()
        if not user_ids:
            break
        last_id = user_ids[-1]
        chunk_number += 1

        try:
            counts = _process_chunk(year, user_ids)
        except Exception:
            logger.exception(
                "Tier recalculation chunk %s failed (users %s-%s)", chunk_number, user_ids[0], user_ids[-1]
            )
            result.errors += len(user_ids)
            continue

        result.processed += counts["processed"]
        result.upgraded += counts["upgraded"]
        result.downgraded += counts["downgraded"]
        result.unchanged += counts["unchanged"]
        logger.info(
            "Tier recalculation chunk %s done: %s users (%s up, %s down)",
            chunk_number, counts["processed"], counts["upgraded"], counts["downgraded"],
        )

    logger.info(
        "Tier recalculation for %s finished: processed=%s upgraded=%s downgraded=%s unchanged=%s errors=%s",
        year, result.processed, result.upgraded, result.downgraded, result.unchanged, result.errors,
    )
    return result
