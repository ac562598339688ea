"""Unit tests for JWT decoding and authentication utilities."""

import time
from collections.abc import Generator
from typing import Any
from unittest.mock import MagicMock, patch

import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import ec
from jwt.algorithms import ECAlgorithm

from src.api.middleware.auth import AuthError, AuthErrorCode, decode_jwt, get_signing_key

USER_ID = "550e8400-e29b-41d4-a716-446655440000"

SIGNING_KEY = ec.generate_private_key(ec.SECP256R1())
OTHER_KEY = ec.generate_private_key(ec.SECP256R1())


def create_test_token(
    sub: str | None = USER_ID,
    email: str | None = "test@example.com",
    role: str | None = "authenticated",
    exp_offset: int = 3600,
    audience: str = "authenticated",
    key: Any = SIGNING_KEY,
    **claims: Any,
) -> str:
    """Create an ES256 test JWT.

    Args:
        sub: Subject (user ID). Omitted when None.
        email: User email.
        role: Top-level role claim.
        exp_offset: Seconds from now for expiration (negative for expired).
        audience: Audience claim.
        key: EC private key to sign with.
        **claims: Extra claims such as app_metadata.

    Returns:
        str: Encoded JWT token.
    """
    now = int(time.time())
    payload = {
        "email": email,
        "role": role,
        "exp": now + exp_offset,
        "iat": now - 10,
        "aud": audience,
        "iss": "https://test.supabase.co/auth/v1",
        **claims,
    }
    if sub is not None:
        payload["sub"] = sub
    return jwt.encode(payload, key, algorithm="ES256")


@pytest.fixture(autouse=True)
def signing_settings() -> Generator[MagicMock, None, None]:
    """Point the signing key setting at the test key pair."""
    settings = MagicMock()
    settings.supabase_signing_key_jwk = ECAlgorithm.to_jwk(SIGNING_KEY.public_key())
    settings.jwt_audience = "authenticated"

    get_signing_key.cache_clear()
    with patch("src.api.middleware.auth.get_settings", return_value=settings):
        yield settings
    get_signing_key.cache_clear()


class TestDecodeJWT:
    """Tests for decode_jwt function."""

    def test_decode_jwt_with_valid_token(self) -> None:
        """Test decode_jwt successfully decodes a valid token."""
        payload = decode_jwt(create_test_token())

        assert payload.sub == USER_ID
        assert payload.email == "test@example.com"
        assert payload.role == "authenticated"
        assert payload.aud == "authenticated"

    def test_admin_role_read_from_app_metadata(self) -> None:
        """Test that app_metadata.role wins over the top-level role."""
        token = create_test_token(app_metadata={"role": "admin", "provider": "email"})

        assert decode_jwt(token).role == "admin"

    def test_to_user_context(self) -> None:
        """Test conversion to the request user context."""
        user = decode_jwt(create_test_token()).to_user_context()

        assert str(user.user_id) == USER_ID
        assert user.email == "test@example.com"

    def test_expired_token(self) -> None:
        """Test that expired tokens raise TOKEN_EXPIRED."""
        with pytest.raises(AuthError) as exc_info:
            decode_jwt(create_test_token(exp_offset=-60))

        assert exc_info.value.code == AuthErrorCode.TOKEN_EXPIRED

    def test_token_signed_with_other_key(self) -> None:
        """Test that a foreign signature raises INVALID_SIGNATURE."""
        with pytest.raises(AuthError) as exc_info:
            decode_jwt(create_test_token(key=OTHER_KEY))

        assert exc_info.value.code == AuthErrorCode.INVALID_SIGNATURE

    def test_wrong_audience(self) -> None:
        """Test that tokens for another audience are rejected."""
        with pytest.raises(AuthError) as exc_info:
            decode_jwt(create_test_token(audience="service_role"))

        assert exc_info.value.code == AuthErrorCode.INVALID_TOKEN

    def test_missing_subject(self) -> None:
        """Test that a token without sub is rejected."""
        with pytest.raises(AuthError, match="sub") as exc_info:
            decode_jwt(create_test_token(sub=None))

        assert exc_info.value.code == AuthErrorCode.INVALID_TOKEN

    def test_malformed_token(self) -> None:
        """Test that garbage is rejected as INVALID_TOKEN."""
        with pytest.raises(AuthError) as exc_info:
            decode_jwt("not-a-jwt")

        assert exc_info.value.code == AuthErrorCode.INVALID_TOKEN

    def test_missing_signing_key(self, signing_settings: MagicMock) -> None:
        """Test that an unconfigured signing key rejects every token."""
        signing_settings.supabase_signing_key_jwk = ""

        with pytest.raises(AuthError, match="not configured"):
            decode_jwt(create_test_token())
