"""Pytest configuration and fixtures."""

import os
from collections.abc import Callable, Generator
from contextlib import ExitStack
from typing import Any
from unittest.mock import MagicMock, patch
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

# Set test environment variables before importing application modules
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_SECRET_KEY", "test-secret-key")
os.environ.setdefault("SUPABASE_SIGNING_KEY_JWK", "test-signing-key-jwk")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_stripe_secret_key")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_webhook_secret")
os.environ.setdefault("STRIPE_PUBLISHABLE_KEY", "pk_test_stripe_publishable_key")
os.environ.setdefault("RAZORPAY_KEY_ID", "rzp_test_key_id")
os.environ.setdefault("RAZORPAY_KEY_SECRET", "rzp_test_key_secret")
os.environ.setdefault("RESEND_API_KEY", "")
os.environ.setdefault("CART_STORAGE_BACKEND", "memory")
os.environ.setdefault("SESSION_COOKIE_SECURE", "false")

QUERY_METHODS = (
    "select",
    "insert",
    "update",
    "upsert",
    "delete",
    "eq",
    "in_",
    "lt",
    "order",
    "limit",
    "maybe_single",
)

# Modules that import get_supabase_client by name
SUPABASE_CLIENT_TARGETS = (
    "src.core.supabase.get_supabase_client",
    "src.services.cart_storage.get_supabase_client",
    "src.services.catalog_service.get_supabase_client",
    "src.services.order_service.get_supabase_client",
    "src.services.payment_service.get_supabase_client",
    "src.services.session_service.get_supabase_client",
)


def build_query(*responses: Any) -> MagicMock:
    """Chainable PostgREST query double.

    Every builder method returns the same mock. Each execute() call returns
    the next of `responses` as `.data`; with no responses it returns [].
    """
    query = MagicMock()
    for method in QUERY_METHODS:
        getattr(query, method).return_value = query
    if responses:
        query.execute.side_effect = [MagicMock(data=data) for data in responses]
    else:
        query.execute.return_value = MagicMock(data=[])
    return query


@pytest.fixture
def make_query() -> Callable[..., MagicMock]:
    return build_query


@pytest.fixture
def tables() -> dict[str, MagicMock]:
    """Per-table query doubles, created on first use."""
    return {}


@pytest.fixture
def supabase(tables: dict[str, MagicMock]) -> Generator[MagicMock, None, None]:
    """Mocked Supabase client patched into every module that uses one."""
    client = MagicMock()
    client.table.side_effect = lambda name: tables.setdefault(name, build_query())

    with ExitStack() as stack:
        for target in SUPABASE_CLIENT_TARGETS:
            stack.enter_context(patch(target, return_value=client))
        yield client


@pytest.fixture(autouse=True)
def reset_singletons() -> Generator[None, None, None]:
    """Give every test fresh settings, cart storage, hub and in-flight registry."""
    import src.core.inflight as inflight
    import src.services.notification_service as notification_service
    from src.core.config import get_settings
    from src.services.cart_storage import get_cart_storage

    get_settings.cache_clear()
    get_cart_storage.cache_clear()
    inflight._registry = None
    notification_service._hub = None
    yield
    get_settings.cache_clear()
    get_cart_storage.cache_clear()
    inflight._registry = None
    notification_service._hub = None


@pytest.fixture
def test_settings() -> Any:
    from src.core.config import get_settings

    return get_settings()


@pytest.fixture
def product_row() -> Callable[..., dict[str, Any]]:
    """Factory for products table rows."""

    def _make(**overrides: Any) -> dict[str, Any]:
        row = {
            "id": "prod-saffron",
            "name": "Kashmiri Saffron",
            "price": "100.00",
            "sale_price": None,
            "image": "/images/saffron.jpg",
            "active": True,
            "sizes": [],
        }
        row.update(overrides)
        return row

    return _make


@pytest.fixture
def order_row() -> Callable[..., dict[str, Any]]:
    """Factory for orders table rows."""

    def _make(**overrides: Any) -> dict[str, Any]:
        row = {
            "id": str(uuid4()),
            "user_id": None,
            "session_id": None,
            "order_items": [
                {
                    "product_ref": "prod-saffron",
                    "name": "Kashmiri Saffron",
                    "variant": None,
                    "quantity": 2,
                    "unit_price": "100.00",
                    "unit_sale_price": None,
                    "image": None,
                }
            ],
            "shipping_address": {
                "full_name": "Asha Rao",
                "email": "asha@example.com",
                "address": "12 MG Road",
                "city": "Bengaluru",
                "postal_code": "560001",
                "country": "India",
            },
            "payment_method": "razorpay",
            "items_price": "200.00",
            "tax_price": "20.00",
            "shipping_price": "100.00",
            "total_price": "320.00",
            "currency": "INR",
            "is_paid": False,
            "paid_at": None,
            "payment_result": None,
            "is_delivered": False,
            "delivered_at": None,
            "status": "pending",
            "created_at": "2026-01-05T10:00:00+00:00",
            "updated_at": "2026-01-05T10:00:00+00:00",
        }
        row.update(overrides)
        return row

    return _make


@pytest.fixture
def client(supabase: MagicMock) -> Generator[TestClient, None, None]:
    """Provide a test client for the FastAPI application.

    Args:
        supabase: Mocked Supabase client fixture.

    Yields:
        TestClient: FastAPI test client.
    """
    from src.main import app

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_as() -> Generator[Callable[..., dict[str, str]], None, None]:
    """Authenticate requests as a given user.

    Returns a function taking (user_id, role) and returning request headers.
    """
    from src.schemas.auth import TokenPayload

    users: dict[str, TokenPayload] = {}

    def fake_decode(token: str) -> TokenPayload:
        from src.api.middleware.auth import AuthError, AuthErrorCode

        if token not in users:
            raise AuthError("Invalid token", AuthErrorCode.INVALID_TOKEN)
        return users[token]

    def _auth(user_id: Any = None, role: str = "authenticated") -> dict[str, str]:
        user_id = str(user_id or uuid4())
        token = f"token-{user_id}-{role}"
        users[token] = TokenPayload(sub=user_id, role=role, email="user@example.com", exp=4102444800, iat=1700000000)
        return {"Authorization": f"Bearer {token}"}

    with patch("src.api.deps.decode_jwt", side_effect=fake_decode), patch(
        "src.api.routes.notifications.decode_jwt", side_effect=fake_decode
    ):
        yield _auth
