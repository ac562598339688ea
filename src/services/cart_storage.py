"""Key-value persistence for serialized carts."""

import json
import logging
from abc import ABC, abstractmethod
from functools import lru_cache
from threading import Lock

from src.core.config import get_settings
from src.core.supabase import get_supabase_client

logger = logging.getLogger(__name__)


class CartStorageError(Exception):
    """Raised when a cart payload cannot be read or written."""


class CartStorage(ABC):
    """Stores one serialized cart payload per key."""

    @abstractmethod
    def get(self, key: str) -> str | None:
        """Return the payload stored under key, or None if there is none."""

    @abstractmethod
    def set(self, key: str, payload: str) -> None:
        """Replace the payload stored under key."""


class InMemoryCartStorage(CartStorage):
    """Process-local storage for development and tests."""

    def __init__(self) -> None:
        self._payloads: dict[str, str] = {}
        self._lock = Lock()

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._payloads.get(key)

    def set(self, key: str, payload: str) -> None:
        with self._lock:
            self._payloads[key] = payload


class SupabaseCartStorage(CartStorage):
    """Carts stored in the `carts` table, one row per storage key."""

    table = "carts"

    def __init__(self) -> None:
        self.client = get_supabase_client()

    def get(self, key: str) -> str | None:
        try:
            response = (
                self.client.table(self.table)
                .select("payload")
                .eq("storage_key", key)
                .maybe_single()
                .execute()
            )
        except Exception as e:
            raise CartStorageError(f"Failed to load cart {key}") from e

        if not response or not response.data:
            return None
        payload = response.data.get("payload")
        # jsonb columns come back already decoded
        if isinstance(payload, (dict, list)):
            return json.dumps(payload)
        return payload

    def set(self, key: str, payload: str) -> None:
        try:
            self.client.table(self.table).upsert(
                {"storage_key": key, "payload": payload},
                on_conflict="storage_key",
            ).execute()
        except Exception as e:
            raise CartStorageError(f"Failed to save cart {key}") from e


@lru_cache
def get_cart_storage() -> CartStorage:
    """Get the configured cart storage backend singleton.

    Call get_cart_storage.cache_clear() to start over with an empty
    in-memory backend.
    """
    backend = get_settings().cart_storage_backend
    logger.info("Using %s cart storage", backend)
    if backend == "memory":
        return InMemoryCartStorage()
    return SupabaseCartStorage()


def cart_storage_key(owner_key: str) -> str:
    """Storage key of the cart belonging to an owner (user:<id> or session:<id>)."""
    return f"{get_settings().cart_storage_key}:{owner_key}"
