"""Supabase client singleton for database operations."""

import logging
from functools import lru_cache
from typing import Any

from supabase import Client, create_client

from src.api.middleware.error_handler import PersistenceError
from src.core.config import get_settings

logger = logging.getLogger(__name__)


@lru_cache
def get_supabase_client() -> Client:
    """Get cached Supabase client singleton for database operations.

    Uses the secret key for backend operations, which bypasses RLS at the
    PostgREST level. Only use it for server-side access where ownership
    has already been checked (orders, carts, sessions, products).

    Returns:
        Client: Supabase client instance.
    """
    settings = get_settings()
    return create_client(
        settings.supabase_url,
        settings.supabase_secret_key,
    )


def execute_query(query: Any, action: str) -> Any:
    """Execute a PostgREST query builder, mapping failures to PersistenceError.

    Args:
        query: Query builder returned by client.table(...).
        action: Short description used in the log line and error message.

    Returns:
        The PostgREST response.

    Raises:
        PersistenceError: If the request fails for any reason.
    """
    try:
        return query.execute()
    except Exception as e:
        logger.error("Database error while trying to %s: %s", action, e)
        raise PersistenceError(f"Failed to {action}") from e


async def check_database_connection() -> dict[str, Any]:
    """Check if database connection is healthy.

    Performs a simple query to verify database connectivity.

    Returns:
        dict: Connection status with 'healthy' boolean and optional 'error' message.
    """
    try:
        client = get_supabase_client()
        client.table("orders").select("id").limit(1).execute()
        return {"healthy": True}
    except Exception as e:
        return {"healthy": False, "error": str(e)}
