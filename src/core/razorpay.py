"""Razorpay client configuration and singleton."""

import logging
from functools import lru_cache

import razorpay

from src.core.config import get_settings

logger = logging.getLogger(__name__)


def check_razorpay_configuration() -> None:
    """Log a warning at startup when Razorpay credentials are missing.

    Online payments through Razorpay are refused per request until both
    keys are set; cash-on-delivery keeps working.
    """
    settings = get_settings()
    if not settings.razorpay_key_id or not settings.razorpay_key_secret:
        logger.warning(
            "Razorpay credentials not configured (key_id=%s, key_secret=%s). Razorpay payments will not work.",
            "present" if settings.razorpay_key_id else "missing",
            "present" if settings.razorpay_key_secret else "missing",
        )


@lru_cache
def get_razorpay_client() -> razorpay.Client:
    """Get cached Razorpay client.

    Returns:
        razorpay.Client: Client authenticated with the configured key pair.
    """
    settings = get_settings()
    return razorpay.Client(auth=(settings.razorpay_key_id, settings.razorpay_key_secret))
