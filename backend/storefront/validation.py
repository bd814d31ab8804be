from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .errors import ValidationError, InvalidPaymentMethodError
from .models import PaymentMethod


MAX_NOTE_LENGTH = 500


def _coerce_int(name: str, value: Any, *, minimum: int | None = None) -> int:
    """
    Strict integer parsing: rejects bools, floats, decimals and
    scientific notation instead of silently truncating them.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be an integer")
    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped or "e" in stripped.lower() or "." in stripped:
            raise ValidationError(f"{name} must be a plain integer")
        try:
            result = int(stripped)
        except ValueError:
            raise ValidationError(f"{name} must be an integer")
    else:
        raise ValidationError(f"{name} must be an integer")

    if minimum is not None and result < minimum:
        raise ValidationError(
            f"{name} must be >= {minimum}",
            {"field": name, "value": result},
            code="INVALID_QUANTITY" if name == "quantity" else None,
        )
    return result


def _required_text(data: dict, name: str, max_length: int = MAX_NOTE_LENGTH) -> str:
    value = data.get(name)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{name} is required", {"field": name})
    value = value.strip()
    if len(value) > max_length:
        raise ValidationError(f"{name} must be at most {max_length} characters", {"field": name})
    return value


def normalize_payment_method(value: Any) -> PaymentMethod:
    """Case/whitespace-insensitive; missing or blank defaults to CARD."""
    if value is None:
        return PaymentMethod.CARD
    if not isinstance(value, str):
        raise InvalidPaymentMethodError("Payment method must be a string")
    normalized = value.strip().upper()
    if not normalized:
        return PaymentMethod.CARD
    try:
        return PaymentMethod(normalized)
    except ValueError:
        raise InvalidPaymentMethodError(
            f"Unsupported payment method: {value}",
            {"allowed": [m.value for m in PaymentMethod]},
        )


@dataclass(frozen=True)
class OrderCreateRequest:
    shipping_address: str
    recipient_name: str
    recipient_phone: str
    payment_method: PaymentMethod = PaymentMethod.CARD
    user_coupon_id: int | None = None
    use_points: int = 0
    cart_item_ids: tuple[int, ...] | None = None


@dataclass(frozen=True)
class ItemQuantityRequest:
    order_item_id: int
    quantity: int


@dataclass(frozen=True)
class ReturnRequest:
    order_item_id: int
    quantity: int
    return_reason: str


def parse_order_create_request(data: dict | None) -> OrderCreateRequest:
    """
    Build an OrderCreateRequest from a JSON body.

    Any client-supplied shipping_fee is ignored; the fee is always
    recomputed server-side from tier and amount.
    """
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")

    cart_item_ids = data.get("cart_item_ids")
    if cart_item_ids is not None:
        if not isinstance(cart_item_ids, list):
            raise ValidationError("cart_item_ids must be a list")
        cart_item_ids = tuple(_coerce_int("cart_item_ids", v, minimum=1) for v in cart_item_ids)
        if not cart_item_ids:
            raise ValidationError("No cart items selected", code="EMPTY_CART")

    user_coupon_id = data.get("user_coupon_id")
    if user_coupon_id is not None:
        user_coupon_id = _coerce_int("user_coupon_id", user_coupon_id, minimum=1)

    use_points = data.get("use_points")
    use_points = 0 if use_points is None else _coerce_int("use_points", use_points, minimum=0)

    return OrderCreateRequest(
        shipping_address=_required_text(data, "shipping_address"),
        recipient_name=_required_text(data, "recipient_name", 100),
        recipient_phone=_required_text(data, "recipient_phone", 32),
        payment_method=normalize_payment_method(data.get("payment_method")),
        user_coupon_id=user_coupon_id,
        use_points=use_points,
        cart_item_ids=cart_item_ids,
    )


def parse_item_quantity_request(data: dict | None) -> ItemQuantityRequest:
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    if data.get("order_item_id") is None or data.get("quantity") is None:
        raise ValidationError("order_item_id and quantity required")
    return ItemQuantityRequest(
        order_item_id=_coerce_int("order_item_id", data["order_item_id"], minimum=1),
        quantity=_coerce_int("quantity", data["quantity"], minimum=1),
    )


def parse_return_request(data: dict | None) -> ReturnRequest:
    base = parse_item_quantity_request(data)
    return ReturnRequest(
        order_item_id=base.order_item_id,
        quantity=base.quantity,
        return_reason=_required_text(data, "return_reason"),
    )


def parse_reject_reason(data: dict | None) -> str:
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return _required_text(data, "reject_reason")


def parse_positive_int(name: str, value: Any) -> int:
    return _coerce_int(name, value, minimum=1)
