"""Integration tests for order API endpoints."""

from unittest.mock import MagicMock

from fastapi.testclient import TestClient

from src.core.inflight import get_inflight_registry

USER_ID = "770e8400-e29b-41d4-a716-446655440000"
OTHER_USER_ID = "990e8400-e29b-41d4-a716-446655440000"
ADMIN_ID = "aa0e8400-e29b-41d4-a716-446655440000"

ADDRESS = {
    "full_name": "Asha Rao",
    "email": "asha@example.com",
    "address": "12 MG Road",
    "city": "Bengaluru",
    "postal_code": "560001",
}


class TestCreateOrder:
    """Tests for POST /api/v1/orders."""

    def test_creates_order_with_server_prices(
        self,
        client: TestClient,
        auth_as,
        tables: dict[str, MagicMock],
        make_query,
        product_row,
        order_row,
    ) -> None:
        """Test that client prices are ignored in favour of catalog prices."""
        tables["products"] = make_query([
            product_row(id="saffron", price="100"),
            product_row(id="cumin", name="Cumin", price="50", sale_price="40"),
        ])
        order = order_row(user_id=USER_ID, total_price="364.00")
        orders = make_query([order])
        tables["orders"] = orders

        response = client.post(
            "/api/v1/orders",
            json={
                "order_items": [
                    {"product_ref": "saffron", "quantity": 2},
                    {"product_ref": "cumin", "quantity": 1},
                ],
                "shipping_address": ADDRESS,
                "payment_method": "razorpay",
                "prices": {"total_price": "1.00"},
            },
            headers=auth_as(USER_ID),
        )

        assert response.status_code == 201
        data = response.json()
        assert data["id"] == order["id"]
        assert data["order_number"] == order["id"][-6:].upper()
        inserted = orders.insert.call_args[0][0]
        assert inserted["total_price"] == "364.00"
        assert inserted["status"] == "pending"

    def test_empty_order_is_rejected_without_insert(
        self,
        client: TestClient,
        auth_as,
        tables: dict[str, MagicMock],
    ) -> None:
        """Test that an order with no items never reaches storage."""
        response = client.post(
            "/api/v1/orders",
            json={"items": [], "shipping_address": ADDRESS, "payment_method": "razorpay"},
            headers=auth_as(USER_ID),
        )

        assert response.status_code == 422
        assert "orders" not in tables

    def test_zero_quantity_is_rejected(self, client: TestClient, auth_as) -> None:
        """Test request validation of quantities."""
        response = client.post(
            "/api/v1/orders",
            json={
                "items": [{"product_ref": "saffron", "quantity": 0}],
                "shipping_address": ADDRESS,
                "payment_method": "razorpay",
            },
            headers=auth_as(USER_ID),
        )

        assert response.status_code == 422

    def test_duplicate_submission_conflicts(self, client: TestClient, auth_as, tables: dict[str, MagicMock]) -> None:
        """Test that a second order while one is in flight is refused."""
        get_inflight_registry().acquire(f"order:user:{USER_ID}")

        response = client.post(
            "/api/v1/orders",
            json={
                "items": [{"product_ref": "saffron", "quantity": 1}],
                "shipping_address": ADDRESS,
                "payment_method": "razorpay",
            },
            headers=auth_as(USER_ID),
        )

        assert response.status_code == 409
        assert "orders" not in tables


class TestGetOrders:
    """Tests for reading orders."""

    def test_owner_reads_order(
        self,
        client: TestClient,
        auth_as,
        tables: dict[str, MagicMock],
        make_query,
        order_row,
    ) -> None:
        """Test that the owner can read their order."""
        order = order_row(user_id=USER_ID)
        tables["orders"] = make_query(order)

        response = client.get(f"/api/v1/orders/{order['id']}", headers=auth_as(USER_ID))

        assert response.status_code == 200
        data = response.json()
        assert data["total_price"] == "320.00"
        assert data["status"] == "pending"

    def test_other_user_is_forbidden(
        self,
        client: TestClient,
        auth_as,
        tables: dict[str, MagicMock],
        make_query,
        order_row,
    ) -> None:
        """Test that another user's order is a 403."""
        order = order_row(user_id=OTHER_USER_ID)
        tables["orders"] = make_query(order)

        response = client.get(f"/api/v1/orders/{order['id']}", headers=auth_as(USER_ID))

        assert response.status_code == 403
        assert response.json()["error"] == "authorization_error"

    def test_admin_reads_any_order(
        self,
        client: TestClient,
        auth_as,
        tables: dict[str, MagicMock],
        make_query,
        order_row,
    ) -> None:
        """Test that admins can read every order."""
        order = order_row(user_id=OTHER_USER_ID)
        tables["orders"] = make_query(order)

        response = client.get(f"/api/v1/orders/{order['id']}", headers=auth_as(ADMIN_ID, role="admin"))

        assert response.status_code == 200

    def test_missing_order(self, client: TestClient, auth_as, tables: dict[str, MagicMock], make_query) -> None:
        """Test that an unknown order is a 404."""
        tables["orders"] = make_query(None)

        response = client.get("/api/v1/orders/660e8400-e29b-41d4-a716-446655440000", headers=auth_as(USER_ID))

        assert response.status_code == 404

    def test_list_requires_credentials(self, client: TestClient) -> None:
        """Test that listing orders needs a user or session."""
        assert client.get("/api/v1/orders").status_code == 401

    def test_list_my_orders(
        self,
        client: TestClient,
        auth_as,
        tables: dict[str, MagicMock],
        make_query,
        order_row,
    ) -> None:
        """Test that users list their own orders."""
        tables["orders"] = make_query([order_row(user_id=USER_ID), order_row(user_id=USER_ID)])

        response = client.get("/api/v1/orders", headers=auth_as(USER_ID))

        assert response.status_code == 200
        assert len(response.json()["items"]) == 2

    def test_list_all_requires_admin(self, client: TestClient, auth_as) -> None:
        """Test that customers cannot list every order."""
        assert client.get("/api/v1/orders/all", headers=auth_as(USER_ID)).status_code == 403

    def test_admin_lists_all(
        self,
        client: TestClient,
        auth_as,
        tables: dict[str, MagicMock],
        make_query,
        order_row,
    ) -> None:
        """Test that admins list every order."""
        tables["orders"] = make_query([order_row(user_id=USER_ID), order_row(session_id=OTHER_USER_ID)])

        response = client.get("/api/v1/orders/all", headers=auth_as(ADMIN_ID, role="admin"))

        assert response.status_code == 200
        assert len(response.json()["items"]) == 2


class TestUpdateOrderStatus:
    """Tests for PUT /api/v1/orders/{id}/status."""

    def test_admin_moves_order_forward(
        self,
        client: TestClient,
        auth_as,
        tables: dict[str, MagicMock],
        make_query,
        order_row,
    ) -> None:
        """Test an allowed status change."""
        order = order_row(status="processing")
        tables["orders"] = make_query(order, [{**order, "status": "shipped"}])

        response = client.put(
            f"/api/v1/orders/{order['id']}/status",
            json={"status": "shipped"},
            headers=auth_as(ADMIN_ID, role="admin"),
        )

        assert response.status_code == 200
        assert response.json()["status"] == "shipped"

    def test_cancelled_spelling_is_accepted(
        self,
        client: TestClient,
        auth_as,
        tables: dict[str, MagicMock],
        make_query,
        order_row,
    ) -> None:
        """Test that "cancelled" cancels the order."""
        order = order_row(status="pending")
        query = make_query(order, [{**order, "status": "canceled"}])
        tables["orders"] = query

        response = client.put(
            f"/api/v1/orders/{order['id']}/status",
            json={"status": "cancelled"},
            headers=auth_as(ADMIN_ID, role="admin"),
        )

        assert response.status_code == 200
        assert response.json()["status"] == "canceled"
        query.update.assert_called_once_with({"status": "canceled"})

    def test_illegal_transition_conflicts(
        self,
        client: TestClient,
        auth_as,
        tables: dict[str, MagicMock],
        make_query,
        order_row,
    ) -> None:
        """Test that delivered orders cannot go back."""
        order = order_row(status="delivered")
        tables["orders"] = make_query(order)

        response = client.put(
            f"/api/v1/orders/{order['id']}/status",
            json={"status": "processing"},
            headers=auth_as(ADMIN_ID, role="admin"),
        )

        assert response.status_code == 409
        assert response.json()["error"] == "conflict"

    def test_customer_cannot_change_status(self, client: TestClient, auth_as, order_row) -> None:
        """Test that status changes are admin only."""
        response = client.put(
            f"/api/v1/orders/{order_row()['id']}/status",
            json={"status": "shipped"},
            headers=auth_as(USER_ID),
        )

        assert response.status_code == 403
