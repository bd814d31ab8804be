"""
HTTP surface tests.

Verifies:
- Identity header handling (401 / 403)
- Business errors answer with {"error", "code", "details"} and their status
- Shopper and admin flows end to end through the blueprints
"""

import pytest


def _headers(user):
    return {"X-User-Id": str(user.id)}


ORDER_BODY = {
    "shipping_address": "1 Main St, Seoul",
    "recipient_name": "Kim Minji",
    "recipient_phone": "010-1234-5678",
    "payment_method": "kakao",
}


# =============================================================================
# IDENTITY
# =============================================================================


class TestIdentity:

    @pytest.mark.parametrize("method,path", [
        ("GET", "/api/orders"),
        ("POST", "/api/orders"),
        ("GET", "/api/cart"),
        ("GET", "/api/admin/returns"),
    ])
    def test_missing_identity_is_401(self, client, method, path):
        response = client.open(path, method=method, json={})
        assert response.status_code == 401
        assert response.get_json()["code"] == "UNAUTHORIZED"

    def test_admin_routes_forbid_shoppers(self, client, make_user):
        user = make_user()
        response = client.get("/api/admin/returns", headers=_headers(user))
        assert response.status_code == 403
        assert response.get_json()["code"] == "FORBIDDEN"

    def test_health(self, client):
        response = client.get("/api/system/health")
        assert response.status_code == 200
        assert response.get_json()["status"] == "healthy"


# =============================================================================
# SHOPPER FLOW
# =============================================================================


class TestShopperRoutes:

    def test_cart_to_order(self, client, make_user, make_product):
        user = make_user()
        product = make_product(price=10000, stock=5)

        response = client.post(
            "/api/cart/items", json={"product_id": product.id, "quantity": 2}, headers=_headers(user)
        )
        assert response.status_code == 201
        response = client.post(
            "/api/cart/items", json={"product_id": product.id, "quantity": 1}, headers=_headers(user)
        )
        assert response.get_json()["item"]["quantity"] == 3

        response = client.post("/api/orders", json=dict(ORDER_BODY, shipping_fee=0), headers=_headers(user))
        assert response.status_code == 201
        order = response.get_json()["order"]
        assert order["status"] == "PAID"
        assert order["payment_method"] == "KAKAO"
        assert order["final_amount"] == 30000 + 3000
        assert order["items"][0]["remaining_quantity"] == 3

        response = client.get("/api/orders", headers=_headers(user))
        assert [o["id"] for o in response.get_json()["orders"]] == [order["id"]]
        assert client.get("/api/cart", headers=_headers(user)).get_json()["items"] == []

    def test_insufficient_stock_is_409(self, client, make_user, make_product, add_to_cart):
        user = make_user()
        product = make_product(stock=1)
        add_to_cart(user, product, 2)

        response = client.post("/api/orders", json=ORDER_BODY, headers=_headers(user))

        assert response.status_code == 409
        body = response.get_json()
        assert body["code"] == "INSUFFICIENT_STOCK"
        assert body["details"]["available"] == 1

    def test_invalid_payment_method_is_400(self, client, make_user, make_product, add_to_cart):
        user = make_user()
        add_to_cart(user, make_product(stock=5), 1)

        response = client.post(
            "/api/orders", json=dict(ORDER_BODY, payment_method="BITCOIN"), headers=_headers(user)
        )

        assert response.status_code == 400
        assert response.get_json()["code"] == "INVALID_PAYMENT_METHOD"

    def test_other_users_order_is_404(self, client, make_user, make_product, place_order):
        owner = make_user()
        stranger = make_user()
        order = place_order(owner, [(make_product(stock=5), 1)])

        assert client.get(f"/api/orders/{order.id}", headers=_headers(stranger)).status_code == 404
        response = client.post(f"/api/orders/{order.id}/cancel", headers=_headers(stranger))
        assert response.status_code == 404

    def test_cancel_and_partial_cancel(self, client, make_user, make_product, place_order):
        user = make_user()
        product = make_product(price=10000, stock=10)
        first = place_order(user, [(product, 5)])
        first_item_id = first.items[0].id
        first_id = first.id

        response = client.post(
            f"/api/orders/{first_id}/partial-cancel",
            json={"order_item_id": first_item_id, "quantity": 2},
            headers=_headers(user),
        )
        assert response.status_code == 200
        assert response.get_json()["result"]["refund_amount"] == 20000

        response = client.post(
            f"/api/orders/{first_id}/partial-cancel",
            json={"order_item_id": first_item_id, "quantity": 0},
            headers=_headers(user),
        )
        assert response.status_code == 400
        assert response.get_json()["code"] == "INVALID_QUANTITY"

        response = client.post(f"/api/orders/{first_id}/cancel", headers=_headers(user))
        assert response.status_code == 200
        assert response.get_json()["order"]["status"] == "CANCELLED"

        response = client.post(f"/api/orders/{first_id}/cancel", headers=_headers(user))
        assert response.status_code == 409
        assert response.get_json()["code"] == "ORDER_NOT_CANCELLABLE"

    def test_issue_coupon_twice(self, client, make_user, make_coupon):
        user = make_user()
        make_coupon(code="HELLO3000")

        response = client.post("/api/coupons/issue", json={"code": "HELLO3000"}, headers=_headers(user))
        assert response.status_code == 201
        response = client.post("/api/coupons/issue", json={"code": "HELLO3000"}, headers=_headers(user))
        assert response.status_code == 409
        assert response.get_json()["code"] == "DUPLICATE"


# =============================================================================
# ADMIN FLOW
# =============================================================================


class TestAdminRoutes:

    def test_return_approval_flow(self, client, make_user, make_product, place_order):
        user = make_user()
        admin = make_user(role="ADMIN")
        product = make_product(price=10000, stock=5)
        order = place_order(user, [(product, 5)])
        order_id, item_id = order.id, order.items[0].id

        for status in ("shipped", "DELIVERED"):
            response = client.post(
                f"/api/admin/orders/{order_id}/status", json={"status": status}, headers=_headers(admin)
            )
            assert response.status_code == 200
        assert response.get_json()["order"]["points_settled"] is True

        response = client.post(
            f"/api/orders/{order_id}/returns",
            json={"order_item_id": item_id, "quantity": 1, "return_reason": "DEFECT"},
            headers=_headers(user),
        )
        assert response.status_code == 201
        assert response.get_json()["item"]["status"] == "RETURN_REQUESTED"

        queue = client.get("/api/admin/returns", headers=_headers(admin)).get_json()["returns"]
        assert [entry["item"]["id"] for entry in queue] == [item_id]

        response = client.post(
            f"/api/admin/orders/{order_id}/items/{item_id}/approve-return", headers=_headers(admin)
        )
        assert response.status_code == 200
        result = response.get_json()["result"]
        assert result["refund_amount"] == 10000
        assert result["clawed_back_points"] == 100
        assert result["item"]["status"] == "RETURNED"

        response = client.post(
            f"/api/admin/orders/{order_id}/items/{item_id}/approve-return", headers=_headers(admin)
        )
        assert response.status_code == 409
        assert response.get_json()["code"] == "INVALID_ITEM_STATUS_TRANSITION"

    def test_unknown_status_is_rejected(self, client, make_user, make_product, place_order):
        user = make_user()
        admin = make_user(role="ADMIN")
        order = place_order(user, [(make_product(stock=5), 1)])

        response = client.post(
            f"/api/admin/orders/{order.id}/status", json={"status": "LOST"}, headers=_headers(admin)
        )

        assert response.status_code == 409
        assert response.get_json()["code"] == "INVALID_STATUS"

    def test_stock_adjustment(self, client, make_user, make_product):
        admin = make_user(role="ADMIN")
        product = make_product(stock=3)

        response = client.post(
            f"/api/admin/products/{product.id}/stock-adjustments",
            json={"delta": 4, "reason": "Recount"},
            headers=_headers(admin),
        )
        assert response.status_code == 201
        assert response.get_json()["history"]["after_quantity"] == 7

        response = client.post(
            f"/api/admin/products/{product.id}/stock-adjustments",
            json={"delta": -10, "reason": "Shrinkage"},
            headers=_headers(admin),
        )
        assert response.status_code == 409

        history = client.get(
            f"/api/admin/products/{product.id}/stock-history", headers=_headers(admin)
        ).get_json()["history"]
        assert len(history) == 1
