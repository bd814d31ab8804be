# Overview: Flask API routes for admin order operations (return decisions, status updates).

# backend/storefront/routes/admin_orders.py
"""
Admin Order API Routes

- Return queue, approve/reject return
- Order status updates (PAID, SHIPPED, DELIVERED, CANCELLED)
- Manual stock adjustment
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import OrderCoreError, ValidationError, error_response
from ..services import (
    order_fulfillment_service,
    order_query_service,
    partial_cancellation_service,
    stock_ledger,
)
from ..validation import parse_reject_reason, parse_positive_int
from ..decorators import require_admin


admin_orders_bp = Blueprint("admin_orders", __name__, url_prefix="/api/admin")


@admin_orders_bp.get("/returns")
@require_admin
def list_returns_route():
    """Query: ?status=RETURN_REQUESTED (default) | RETURN_REJECTED | RETURNED"""
    try:
        status = request.args.get("status", "RETURN_REQUESTED")
        return jsonify({"returns": order_query_service.list_return_requests(status)}), 200

    except OrderCoreError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list returns")
        return jsonify({"error": "Internal server error"}), 500


@admin_orders_bp.post("/orders/<int:order_id>/items/<int:item_id>/approve-return")
@require_admin
def approve_return_route(order_id: int, item_id: int):
    try:
        result = partial_cancellation_service.approve_return(order_id, item_id, g.current_user.id)
        return jsonify({"result": result.to_dict()}), 200

    except OrderCoreError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to approve return")
        return jsonify({"error": "Internal server error"}), 500


@admin_orders_bp.post("/orders/<int:order_id>/items/<int:item_id>/reject-return")
@require_admin
def reject_return_route(order_id: int, item_id: int):
    """
    Request body:
    {
        "reject_reason": "Item shows signs of use"
    }
    """
    try:
        reason = parse_reject_reason(request.get_json(silent=True))
        item = partial_cancellation_service.reject_return(order_id, item_id, reason)
        return jsonify({"item": item.to_dict()}), 200

    except OrderCoreError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to reject return")
        return jsonify({"error": "Internal server error"}), 500


@admin_orders_bp.post("/orders/<int:order_id>/status")
@require_admin
def update_status_route(order_id: int):
    """
    Request body:
    {
        "status": "SHIPPED"
    }
    DELIVERED settles earned points; CANCELLED runs the full cancellation.
    """
    try:
        data = request.get_json(silent=True) or {}
        status = data.get("status")
        if not isinstance(status, str) or not status.strip():
            raise ValidationError("status required")
        order = order_fulfillment_service.update_order_status(order_id, status, g.current_user.id)
        return jsonify({"order": order.to_dict()}), 200

    except OrderCoreError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update order status")
        return jsonify({"error": "Internal server error"}), 500


@admin_orders_bp.post("/products/<int:product_id>/stock-adjustments")
@require_admin
def adjust_stock_route(product_id: int):
    """
    Request body:
    {
        "delta": -2,
        "reason": "Damaged in warehouse"
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        delta = data.get("delta")
        if not isinstance(delta, int) or isinstance(delta, bool):
            raise ValidationError("delta must be an integer")
        record = stock_ledger.adjust_stock(product_id, delta, data.get("reason") or "", g.current_user.id)
        return jsonify({"history": record.to_dict()}), 201

    except OrderCoreError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500


@admin_orders_bp.get("/products/<int:product_id>/stock-history")
@require_admin
def stock_history_route(product_id: int):
    try:
        limit = parse_positive_int("limit", request.args.get("limit", "100"))
        history = stock_ledger.get_history(product_id, limit=min(limit, 500))
        return jsonify({"history": [h.to_dict() for h in history]}), 200

    except OrderCoreError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load stock history")
        return jsonify({"error": "Internal server error"}), 500
