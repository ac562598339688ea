"""Application configuration management using Pydantic Settings."""

from decimal import Decimal
from functools import lru_cache
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    Required settings will raise validation errors if not provided.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="storefront-backend", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/staging/production)")
    debug: bool = Field(default=False, description="Enable debug mode")

    # Server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8080, description="Server port")

    # CORS
    cors_origins: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        description="Comma-separated list of allowed CORS origins",
    )

    # Supabase
    supabase_url: str = Field(..., description="Supabase project URL")
    supabase_secret_key: str = Field(..., description="Supabase secret key for backend operations")
    supabase_signing_key_jwk: str = Field(..., description="Supabase signing key JWK (JSON string) for JWT token verification")

    # Authorization
    jwt_audience: str = Field(default="authenticated", description="Expected audience of user access tokens")
    admin_role: str = Field(default="admin", description="JWT role claim value that grants admin access")

    # Session
    session_cookie_name: str = Field(default="storefront_session", description="Session cookie name")
    session_cookie_max_age: int = Field(default=2592000, description="Session cookie max age in seconds (30 days)")
    session_cookie_secure: bool = Field(default=True, description="Use secure cookies (HTTPS only)")

    # Cart storage
    cart_storage_backend: Literal["supabase", "memory"] = Field(
        default="supabase",
        description="Where cart state is persisted between requests",
    )
    cart_storage_key: str = Field(default="storefront-cart", description="Prefix of the cart storage key")

    # Pricing policy
    currency: str = Field(default="INR", description="ISO currency code for all prices")
    tax_rate: Decimal = Field(default=Decimal("0.10"), ge=0, description="Tax rate applied to the subtotal")
    free_shipping_threshold: Decimal = Field(
        default=Decimal("1000"),
        ge=0,
        description="Subtotal above which shipping is free",
    )
    flat_shipping_rate: Decimal = Field(default=Decimal("100"), ge=0, description="Shipping charged below the threshold")

    # Razorpay
    razorpay_key_id: str = Field(default="", description="Razorpay key id (also sent to the checkout widget)")
    razorpay_key_secret: str = Field(default="", description="Razorpay key secret used for signature verification")

    # Stripe
    stripe_secret_key: str = Field(default="", description="Stripe secret API key")
    stripe_webhook_secret: str = Field(default="", description="Stripe webhook signing secret")
    stripe_publishable_key: str = Field(default="", description="Stripe publishable key (for frontend)")

    # Email (Resend)
    resend_api_key: str = Field(default="", description="Resend API key for sending emails")
    email_from_address: str = Field(
        default="Storefront <orders@example.com>",
        description="From address for transactional emails",
    )

    # Frontend
    frontend_url: str = Field(
        default="http://localhost:3000",
        description="Frontend application URL for email links",
    )

    # Notifications
    notification_queue_size: int = Field(
        default=100,
        ge=1,
        description="Per-subscriber buffer of order events before new events are dropped",
    )

    @model_validator(mode="after")
    def check_shipping_policy(self) -> "Settings":
        """Reject a tax rate above 100%, which is always a misconfiguration."""
        if self.tax_rate > 1:
            raise ValueError("TAX_RATE must be expressed as a fraction, e.g. 0.10")
        return self

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins string into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == "production"

    @property
    def is_stripe_test_mode(self) -> bool:
        """Check if using Stripe test keys."""
        return self.stripe_secret_key.startswith("sk_test_")

    @property
    def is_razorpay_test_mode(self) -> bool:
        """Check if using Razorpay test keys."""
        return self.razorpay_key_id.startswith("rzp_test_")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton.

    Returns:
        Settings: Application settings instance.

    Note:
        Settings are cached using lru_cache for performance.
        Call get_settings.cache_clear() to reload settings.
    """
    return Settings()
