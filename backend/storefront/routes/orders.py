# Overview: Flask API routes for shopper order operations; parses input and returns JSON responses.

# backend/storefront/routes/orders.py
"""
Order API Routes

DESIGN:
- Create from cart, view, full cancel, partial cancel, request return
- Callers only ever see their own orders (others answer 404)
- Business failures answer with {"error", "code", "details"} and the
  status carried by the error class; anything else is logged and 500
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import OrderCoreError, error_response
from ..services import (
    order_cancellation_service,
    order_creation_service,
    order_query_service,
    partial_cancellation_service,
)
from ..validation import (
    parse_item_quantity_request,
    parse_order_create_request,
    parse_return_request,
)
from ..decorators import require_user


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.post("")
@require_user
def create_order_route():
    """
    Create an order from the caller's cart.

    Request body:
    {
        "shipping_address": "...",
        "recipient_name": "...",
        "recipient_phone": "...",
        "payment_method": "card",       (optional, default CARD)
        "user_coupon_id": 3,            (optional)
        "use_points": 500,              (optional, default 0)
        "cart_item_ids": [1, 2]         (optional, default whole cart)
    }
    A "shipping_fee" key is accepted and ignored.

    Returns:
        201: Order detail
        400/404/409: Business error
    """
    try:
        order_request = parse_order_create_request(request.get_json(silent=True))
        order = order_creation_service.create_order(g.current_user.id, order_request)
        return jsonify({"order": order.to_dict()}), 201

    except OrderCoreError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("")
@require_user
def list_orders_route():
    try:
        limit = min(request.args.get("limit", 50, type=int), 200)
        offset = max(request.args.get("offset", 0, type=int), 0)
        orders = order_query_service.list_user_orders(g.current_user.id, limit=limit, offset=offset)
        return jsonify({"orders": [o.to_dict(include_items=False) for o in orders]}), 200

    except Exception:
        current_app.logger.exception("Failed to list orders")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>")
@require_user
def get_order_route(order_id: int):
    try:
        detail = order_query_service.get_order_detail(order_id, g.current_user.id)
        return jsonify({"order": detail}), 200

    except OrderCoreError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/cancel")
@require_user
def cancel_order_route(order_id: int):
    """
    Cancel a whole PENDING/PAID order.

    Returns:
        200: Cancelled order detail
        409: ORDER_NOT_CANCELLABLE
    """
    try:
        order = order_cancellation_service.cancel_order(order_id, g.current_user.id)
        return jsonify({"order": order.to_dict()}), 200

    except OrderCoreError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to cancel order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/partial-cancel")
@require_user
def partial_cancel_route(order_id: int):
    """
    Request body:
    {
        "order_item_id": 12,
        "quantity": 2
    }
    """
    try:
        body = parse_item_quantity_request(request.get_json(silent=True))
        result = partial_cancellation_service.partial_cancel(
            user_id=g.current_user.id,
            order_id=order_id,
            order_item_id=body.order_item_id,
            quantity=body.quantity,
        )
        return jsonify({"result": result.to_dict()}), 200

    except OrderCoreError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to partially cancel order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/returns")
@require_user
def request_return_route(order_id: int):
    """
    Request body:
    {
        "order_item_id": 12,
        "quantity": 1,
        "return_reason": "DEFECT"
    }

    Returns:
        201: Item now RETURN_REQUESTED
        409: RETURN_NOT_ALLOWED / RETURN_PERIOD_EXPIRED / INVALID_ITEM_STATUS_TRANSITION
    """
    try:
        body = parse_return_request(request.get_json(silent=True))
        item = partial_cancellation_service.request_return(
            user_id=g.current_user.id,
            order_id=order_id,
            order_item_id=body.order_item_id,
            quantity=body.quantity,
            reason=body.return_reason,
        )
        return jsonify({"item": item.to_dict()}), 201

    except OrderCoreError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to request return")
        return jsonify({"error": "Internal server error"}), 500
