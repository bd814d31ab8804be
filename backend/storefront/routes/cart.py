# Overview: Flask API routes for cart primitives and coupon issuance.

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import OrderCoreError, error_response
from ..services import cart_service, coupon_service
from ..validation import parse_positive_int
from ..decorators import require_user


cart_bp = Blueprint("cart", __name__, url_prefix="/api")


@cart_bp.get("/cart")
@require_user
def get_cart_route():
    try:
        items = cart_service.get_cart(g.current_user.id)
        return jsonify({"items": [i.to_dict() for i in items]}), 200

    except Exception:
        current_app.logger.exception("Failed to load cart")
        return jsonify({"error": "Internal server error"}), 500


@cart_bp.post("/cart/items")
@require_user
def add_cart_item_route():
    """
    Request body:
    {
        "product_id": 7,
        "quantity": 2
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        item = cart_service.add_item(
            g.current_user.id,
            parse_positive_int("product_id", data.get("product_id")),
            parse_positive_int("quantity", data.get("quantity", 1)),
        )
        return jsonify({"item": item.to_dict()}), 201

    except OrderCoreError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to add cart item")
        return jsonify({"error": "Internal server error"}), 500


@cart_bp.patch("/cart/items/<int:cart_item_id>")
@require_user
def update_cart_item_route(cart_item_id: int):
    try:
        data = request.get_json(silent=True) or {}
        item = cart_service.update_quantity(
            g.current_user.id,
            cart_item_id,
            parse_positive_int("quantity", data.get("quantity")),
        )
        return jsonify({"item": item.to_dict()}), 200

    except OrderCoreError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update cart item")
        return jsonify({"error": "Internal server error"}), 500


@cart_bp.delete("/cart/items/<int:cart_item_id>")
@require_user
def remove_cart_item_route(cart_item_id: int):
    try:
        cart_service.remove_item(g.current_user.id, cart_item_id)
        return "", 204

    except OrderCoreError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to remove cart item")
        return jsonify({"error": "Internal server error"}), 500


@cart_bp.get("/coupons")
@require_user
def list_coupons_route():
    try:
        coupons = coupon_service.list_user_coupons(g.current_user.id)
        return jsonify({"coupons": [c.to_dict() for c in coupons]}), 200

    except Exception:
        current_app.logger.exception("Failed to list coupons")
        return jsonify({"error": "Internal server error"}), 500


@cart_bp.post("/coupons/issue")
@require_user
def issue_coupon_route():
    """
    Request body:
    {
        "code": "WELCOME3000"
    }

    Returns:
        201: Issued user coupon
        409: DUPLICATE (already issued) / INVALID_COUPON
    """
    try:
        data = request.get_json(silent=True) or {}
        user_coupon = coupon_service.issue_coupon(g.current_user.id, data.get("code") or "")
        return jsonify({"user_coupon": user_coupon.to_dict()}), 201

    except OrderCoreError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to issue coupon")
        return jsonify({"error": "Internal server error"}), 500
