"""Unit tests for cart storage backends."""

import json
from unittest.mock import MagicMock, patch

import pytest

from src.services.cart_storage import (
    CartStorageError,
    InMemoryCartStorage,
    SupabaseCartStorage,
    cart_storage_key,
    get_cart_storage,
)


@pytest.fixture
def mock_client() -> MagicMock:
    return MagicMock()


@pytest.fixture
def supabase_storage(mock_client: MagicMock) -> SupabaseCartStorage:
    with patch("src.services.cart_storage.get_supabase_client", return_value=mock_client):
        return SupabaseCartStorage()


class TestSupabaseCartStorage:
    """Tests for the carts table backend."""

    def test_get_returns_none_for_missing_row(self, supabase_storage: SupabaseCartStorage, mock_client: MagicMock, make_query) -> None:
        """Test that an absent key reads as None."""
        mock_client.table.return_value = make_query(None)

        assert supabase_storage.get("key") is None

    def test_get_encodes_jsonb_payload(self, supabase_storage: SupabaseCartStorage, mock_client: MagicMock, make_query) -> None:
        """Test that decoded jsonb payloads are returned as JSON text."""
        mock_client.table.return_value = make_query({"payload": {"items": []}})

        assert json.loads(supabase_storage.get("key")) == {"items": []}

    def test_set_upserts_by_key(self, supabase_storage: SupabaseCartStorage, mock_client: MagicMock, make_query) -> None:
        """Test that writes replace the row for the key."""
        query = make_query()
        mock_client.table.return_value = query

        supabase_storage.set("key", '{"items": []}')

        query.upsert.assert_called_once_with(
            {"storage_key": "key", "payload": '{"items": []}'},
            on_conflict="storage_key",
        )

    def test_failures_raise_cart_storage_error(self, supabase_storage: SupabaseCartStorage, mock_client: MagicMock, make_query) -> None:
        """Test that database errors are wrapped."""
        query = make_query()
        query.execute.side_effect = ConnectionError("down")
        mock_client.table.return_value = query

        with pytest.raises(CartStorageError):
            supabase_storage.get("key")
        with pytest.raises(CartStorageError):
            supabase_storage.set("key", "{}")


class TestStorageSelection:
    """Tests for backend selection and keys."""

    def test_memory_backend_from_settings(self) -> None:
        """Test that the test environment uses in-memory storage."""
        assert isinstance(get_cart_storage(), InMemoryCartStorage)

    def test_storage_key_is_prefixed(self) -> None:
        """Test that storage keys carry the configured prefix."""
        assert cart_storage_key("session:abc") == "storefront-cart:session:abc"
