"""Unit tests for configuration module."""

import os
from decimal import Decimal
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from src.core.config import Settings, get_settings

REQUIRED_ENV = {
    "SUPABASE_URL": "https://test.supabase.co",
    "SUPABASE_SECRET_KEY": "test-secret",
    "SUPABASE_SIGNING_KEY_JWK": "{}",
}


class TestSettings:
    """Tests for Settings class."""

    def test_settings_loads_from_environment(self) -> None:
        """Test that Settings loads values from environment variables."""
        env_vars = {
            **REQUIRED_ENV,
            "APP_NAME": "test-app",
            "PORT": "9000",
            "TAX_RATE": "0.18",
            "FREE_SHIPPING_THRESHOLD": "499",
            "FLAT_SHIPPING_RATE": "49.50",
            "RAZORPAY_KEY_ID": "rzp_test_abc",
            "CART_STORAGE_BACKEND": "memory",
        }

        with patch.dict(os.environ, env_vars, clear=False):
            settings = Settings()

            assert settings.app_name == "test-app"
            assert settings.port == 9000
            assert settings.tax_rate == Decimal("0.18")
            assert settings.free_shipping_threshold == Decimal("499")
            assert settings.flat_shipping_rate == Decimal("49.50")
            assert settings.is_razorpay_test_mode is True
            assert settings.cart_storage_backend == "memory"

    def test_defaults(self) -> None:
        """Test the default pricing policy and roles."""
        settings = Settings(**{key.lower(): value for key, value in REQUIRED_ENV.items()})

        assert settings.currency == "INR"
        assert settings.admin_role == "admin"
        assert settings.jwt_audience == "authenticated"

    def test_settings_cors_origins_list(self) -> None:
        """Test that CORS origins are correctly parsed into a list."""
        with patch.dict(os.environ, {**REQUIRED_ENV, "CORS_ORIGINS": "http://a.com, http://b.com ,"}, clear=False):
            assert Settings().cors_origins_list == ["http://a.com", "http://b.com"]

    def test_tax_rate_above_one_is_rejected(self) -> None:
        """Test that a percentage instead of a fraction fails validation."""
        with patch.dict(os.environ, {**REQUIRED_ENV, "TAX_RATE": "10"}, clear=False):
            with pytest.raises(ValidationError, match="fraction"):
                Settings()

    def test_negative_shipping_is_rejected(self) -> None:
        """Test that negative amounts fail validation."""
        with patch.dict(os.environ, {**REQUIRED_ENV, "FLAT_SHIPPING_RATE": "-1"}, clear=False):
            with pytest.raises(ValidationError):
                Settings()

    def test_unknown_cart_backend_is_rejected(self) -> None:
        """Test that only supported cart backends are accepted."""
        with patch.dict(os.environ, {**REQUIRED_ENV, "CART_STORAGE_BACKEND": "redis"}, clear=False):
            with pytest.raises(ValidationError):
                Settings()


class TestGetSettings:
    """Tests for get_settings."""

    def test_get_settings_is_cached(self) -> None:
        """Test that get_settings returns the same instance."""
        assert get_settings() is get_settings()
