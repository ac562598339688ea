"""Email service using Resend for transactional emails."""

import logging
from typing import Any

import resend

from src.core.config import get_settings
from src.models.order import order_number

logger = logging.getLogger(__name__)

STATUS_HEADLINES = {
    "pending": "We have received your order",
    "processing": "Your order is being prepared",
    "shipped": "Your order is on its way",
    "delivered": "Your order has been delivered",
    "canceled": "Your order has been canceled",
}


def _layout(title: str, body_html: str, link: str, link_label: str) -> str:
    return f"""
<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{title}</title>
</head>
<body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, 'Helvetica Neue', Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
    <div style="background: #7c2d12; padding: 30px; border-radius: 10px 10px 0 0; text-align: center;">
        <h1 style="color: white; margin: 0; font-size: 24px;">{title}</h1>
    </div>

    <div style="background: #fffbeb; padding: 30px; border: 1px solid #fde68a; border-top: none; border-radius: 0 0 10px 10px;">
        {body_html}

        <div style="text-align: center; margin: 30px 0;">
            <a href="{link}" style="background: #7c2d12; color: white; padding: 14px 32px; text-decoration: none; border-radius: 8px; font-weight: 600; font-size: 16px; display: inline-block;">
                {link_label}
            </a>
        </div>
    </div>
</body>
</html>
"""


class EmailService:
    """Service for sending transactional emails via Resend."""

    def __init__(self) -> None:
        """Initialize email service with Resend API key."""
        settings = get_settings()
        resend.api_key = settings.resend_api_key
        self.enabled = bool(settings.resend_api_key)
        self.from_email = settings.email_from_address
        self.frontend_url = settings.frontend_url
        self.currency = settings.currency

    def _order_url(self, order: dict[str, Any]) -> str:
        return f"{self.frontend_url}/orders/{order['id']}"

    async def _send(self, to_email: str, subject: str, html: str, text: str) -> dict[str, Any]:
        if not self.enabled:
            logger.debug("Email not sent to %s: Resend is not configured", to_email)
            return {"success": False, "error": "Email service not configured"}

        try:
            response = resend.Emails.send({
                "from": self.from_email,
                "to": [to_email],
                "subject": subject,
                "html": html,
                "text": text,
            })

            logger.info("Email '%s' sent to %s, id: %s", subject, to_email, response.get("id"))
            return {"success": True, "email_id": response.get("id")}

        except Exception as e:
            logger.error("Failed to send email '%s' to %s: %s", subject, to_email, str(e))
            return {"success": False, "error": str(e)}

    async def send_order_confirmation_email(self, to_email: str, order: dict[str, Any]) -> dict[str, Any]:
        """Send an order confirmation email.

        Args:
            to_email: Recipient email address.
            order: Order row as returned by the database.

        Returns:
            dict: success flag with the Resend email id or an error.
        """
        number = order_number(order["id"])
        url = self._order_url(order)
        total = f"{self.currency} {order['total_price']}"

        html = _layout(
            title="Thank you for your order!",
            body_html=f"""
        <p style="font-size: 16px;">Your order <strong>#{number}</strong> has been placed.</p>
        <p style="font-size: 14px; color: #6b7280;">Order total: <strong>{total}</strong></p>
""",
            link=url,
            link_label="Track your order",
        )
        text = f"""
Thank you for your order!

Your order #{number} has been placed. Order total: {total}.

Track your order here:
{url}
"""
        return await self._send(to_email, f"Order #{number} confirmed", html, text)

    async def send_order_status_email(self, to_email: str, order: dict[str, Any]) -> dict[str, Any]:
        """Send an order status update email.

        Args:
            to_email: Recipient email address.
            order: Order row with the new status.

        Returns:
            dict: success flag with the Resend email id or an error.
        """
        number = order_number(order["id"])
        status = order["status"]
        headline = STATUS_HEADLINES.get(status, "Your order has been updated")
        url = self._order_url(order)

        html = _layout(
            title=headline,
            body_html=f"""
        <p style="font-size: 16px;">Your order <strong>#{number}</strong> is now <strong>{status}</strong>.</p>
""",
            link=url,
            link_label="View order",
        )
        text = f"""
{headline}

Your order #{number} is now {status}.

View your order here:
{url}
"""
        return await self._send(to_email, f"Order #{number} update: {status}", html, text)
