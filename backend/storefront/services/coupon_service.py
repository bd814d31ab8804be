# Overview: Service-layer coupon validation, pricing, usage bookkeeping and issuance.

"""
Coupon Validator

DESIGN:
- validate() gates order creation; every failure is INVALID_COUPON with a
  reason in details so clients can tell expired from exhausted.
- calculate_discount() never raises: below min_order_amount it is 0.
- use()/cancel_use() flip {is_used, used_at, order_id} together in one
  UPDATE, guarded on the current state. A second use of the same coupon
  matches zero rows and fails instead of silently double-spending.
- The used_quantity increment is guarded on used_quantity < total_quantity
  in the same UPDATE, so concurrent redemptions of the last unit cannot
  both pass a stale validate() read.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Coupon, UserCoupon, DISCOUNT_TYPE_FIXED, DISCOUNT_TYPE_PERCENT
from ..errors import InvalidCouponError, DuplicateError, NotFoundError
from ..time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry


def _invalid(reason: str, message: str, **details) -> InvalidCouponError:
    return InvalidCouponError(message, {"reason": reason, **details})


def check_coupon_available(coupon: Coupon, now: datetime) -> None:
    """Coupon-level checks shared by issuance and redemption."""
    if not coupon.is_active:
        raise _invalid("INACTIVE", "Coupon is not active", coupon_id=coupon.id)
    if now < coupon.valid_from:
        raise _invalid("NOT_YET_VALID", "Coupon is not valid yet", coupon_id=coupon.id)
    if now > coupon.valid_until:
        raise _invalid("EXPIRED", "Coupon has expired", coupon_id=coupon.id)


def validate(user_coupon: UserCoupon, amount: int, *, user_id: int, now: datetime | None = None) -> None:
    """
    Gate a coupon for an order whose amount after tier discount is `amount`.

    Validity boundaries are inclusive on both ends.
    """
    now = now or utcnow()
    coupon = user_coupon.coupon

    if user_coupon.user_id != user_id:
        raise _invalid("NOT_OWNER", "Coupon does not belong to this user", user_coupon_id=user_coupon.id)
    if user_coupon.is_used:
        raise _invalid("ALREADY_USED", "Coupon has already been used", user_coupon_id=user_coupon.id)
    if user_coupon.expires_at is not None and now > user_coupon.expires_at:
        raise _invalid("EXPIRED", "Coupon has expired", user_coupon_id=user_coupon.id)

    check_coupon_available(coupon, now)

    if coupon.used_quantity >= coupon.total_quantity:
        raise _invalid("EXHAUSTED", "Coupon quantity is exhausted", coupon_id=coupon.id)
    if amount < coupon.min_order_amount:
        raise _invalid(
            "BELOW_MINIMUM",
            f"Order amount must be at least {coupon.min_order_amount}",
            min_order_amount=coupon.min_order_amount,
            amount=amount,
        )


def calculate_discount(coupon: Coupon, amount: int) -> int:
    if amount <= 0 or amount < coupon.min_order_amount:
        return 0
    if coupon.discount_type == DISCOUNT_TYPE_FIXED:
        discount = coupon.discount_value
    elif coupon.discount_type == DISCOUNT_TYPE_PERCENT:
        discount = amount * coupon.discount_value // 10000
        if coupon.max_discount is not None:
            discount = min(discount, coupon.max_discount)
    else:
        return 0
    return max(0, min(discount, amount))


def lock_user_coupon(user_coupon_id: int) -> UserCoupon:
    user_coupon = lock_for_update(db.session.query(UserCoupon).filter_by(id=user_coupon_id)).first()
    if user_coupon is None:
        raise _invalid("NOT_FOUND", "Coupon not found", user_coupon_id=user_coupon_id)
    return user_coupon


def use(user_coupon: UserCoupon, order_id: int, now: datetime | None = None) -> None:
    """Mark the coupon used by `order_id`. Caller holds the transaction."""
    now = now or utcnow()
    updated = (
        db.session.query(UserCoupon)
        .filter(UserCoupon.id == user_coupon.id, UserCoupon.is_used.is_(False))
        .update({"is_used": True, "used_at": now, "order_id": order_id}, synchronize_session="fetch")
    )
    if updated != 1:
        raise _invalid("ALREADY_USED", "Coupon has already been used", user_coupon_id=user_coupon.id)

    claimed = (
        db.session.query(Coupon)
        .filter(Coupon.id == user_coupon.coupon_id, Coupon.used_quantity < Coupon.total_quantity)
        .update({"used_quantity": Coupon.used_quantity + 1}, synchronize_session="fetch")
    )
    if claimed != 1:
        raise _invalid("EXHAUSTED", "Coupon quantity is exhausted", coupon_id=user_coupon.coupon_id)


def cancel_use(order_id: int) -> UserCoupon | None:
    """Release the coupon used by `order_id`, if any. Caller holds the transaction."""
    user_coupon = lock_for_update(
        db.session.query(UserCoupon).filter_by(order_id=order_id, is_used=True)
    ).first()
    if user_coupon is None:
        return None

    db.session.query(UserCoupon).filter(UserCoupon.id == user_coupon.id).update(
        {"is_used": False, "used_at": None, "order_id": None}, synchronize_session="fetch"
    )
    db.session.query(Coupon).filter(Coupon.id == user_coupon.coupon_id, Coupon.used_quantity > 0).update(
        {"used_quantity": Coupon.used_quantity - 1}, synchronize_session="fetch"
    )
    return user_coupon


def issue_coupon(user_id: int, code: str, *, expires_at: datetime | None = None) -> UserCoupon:
    """
    Issue coupon `code` to a user.

    A second issue of the same coupon to the same user fails DUPLICATE,
    translated from the (user_id, coupon_id) unique constraint.
    """
    code = (code or "").strip()

    def _op():
        coupon = db.session.query(Coupon).filter_by(code=code).first()
        if coupon is None:
            raise NotFoundError(f"Coupon {code!r} not found", {"code": code})

        now = utcnow()
        check_coupon_available(coupon, now)
        if coupon.used_quantity >= coupon.total_quantity:
            raise _invalid("EXHAUSTED", "Coupon quantity is exhausted", coupon_id=coupon.id)

        user_coupon = UserCoupon(
            user_id=user_id,
            coupon_id=coupon.id,
            is_used=False,
            issued_at=now,
            expires_at=expires_at or coupon.valid_until,
        )
        db.session.add(user_coupon)
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise DuplicateError(
                "Coupon has already been issued to this user",
                {"code": code, "user_id": user_id},
            ) from exc
        return user_coupon

    return run_with_retry(_op)


def list_user_coupons(user_id: int, *, include_used: bool = False) -> list[UserCoupon]:
    query = db.session.query(UserCoupon).filter_by(user_id=user_id)
    if not include_used:
        query = query.filter(UserCoupon.is_used.is_(False))
    return query.order_by(UserCoupon.issued_at.desc()).all()
