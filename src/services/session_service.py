"""Anonymous shopper session business logic service."""

import secrets
from datetime import datetime, timezone
from typing import Any

from src.core.supabase import execute_query, get_supabase_client


class SessionService:
    """Service for managing anonymous shopper sessions.

    Guests get a session so their cart and orders have an owner before
    (or without) signing in.
    """

    TOKEN_LENGTH = 64  # Length of session token in characters

    def __init__(self) -> None:
        """Initialize session service with Supabase client."""
        self.client = get_supabase_client()

    def _generate_token(self) -> str:
        """Generate a cryptographically secure session token.

        Returns:
            str: A 64-character hex token.
        """
        return secrets.token_hex(self.TOKEN_LENGTH // 2)

    async def create_session(self) -> tuple[dict[str, Any], str]:
        """Create a new session with a unique token.

        Returns:
            tuple: (session_data, session_token)
        """
        token = self._generate_token()
        response = execute_query(
            self.client.table("sessions").insert({"session_token": token}),
            "create session",
        )
        return response.data[0], token

    async def get_session_by_token(self, token: str) -> dict[str, Any] | None:
        """Get a session by its token.

        Args:
            token: The session token from header or cookie.

        Returns:
            dict | None: The session data or None if not found.
        """
        response = execute_query(
            self.client.table("sessions").select("*").eq("session_token", token).maybe_single(),
            "load session",
        )
        return response.data if response and response.data else None

    @staticmethod
    def is_expired(session: dict[str, Any]) -> bool:
        expires_at = session.get("expires_at")
        if not expires_at:
            return False
        if isinstance(expires_at, str):
            expires_at = datetime.fromisoformat(expires_at.replace("Z", "+00:00"))
        return expires_at < datetime.now(timezone.utc)

    async def get_valid_session(self, token: str) -> dict[str, Any] | None:
        """Get a session by token if it exists and has not expired."""
        session = await self.get_session_by_token(token)
        if not session or self.is_expired(session):
            return None
        return session

    async def is_session_valid(self, token: str) -> bool:
        """Check if a session token is valid and not expired."""
        return await self.get_valid_session(token) is not None

