"""
Transactional e-mail through Resend.

Every ``send_*`` call is meant to run on the side-effect queue; failures
propagate to the queue, which logs and drops them.
"""
import html
import logging
from typing import Any, Dict, Iterable, List, Optional

import resend

logger = logging.getLogger(__name__)


class Mailer:
    def __init__(self, api_key: Optional[str], sender: str, admin_email: Optional[str] = None,
                 frontend_url: str = ""):
        self.api_key = api_key
        self.sender = sender
        self.admin_email = admin_email
        self.frontend_url = frontend_url

    def send(self, to: List[str], subject: str, body_html: str, bcc: Optional[List[str]] = None) -> None:
        if not self.api_key:
            raise RuntimeError("RESEND_API_KEY is not configured")
        resend.api_key = self.api_key
        params: Dict[str, Any] = {"from": self.sender, "to": to, "subject": subject, "html": body_html}
        if bcc:
            params["bcc"] = bcc
        resend.Emails.send(params)
        logger.info("Sent %r to %d recipient(s)", subject, len(to) + len(bcc or []))

    def send_otp(self, email: str, otp: int) -> None:
        self.send(
            [email],
            "Your verification code",
            f"<p>Use this code to complete your registration:</p><h2>{otp}</h2>"
            "<p>The code is valid for 10 minutes.</p>",
        )

    def send_discount_code(self, email: str, code: str) -> None:
        self.send(
            [email],
            "Your exclusive 10% discount code",
            f"<p>Use this code at checkout to get 10% off your order:</p><h2>{code}</h2>"
            "<p>The code is valid for 7 days and can be used once.</p>",
        )

    def send_password_reset(self, email: str, token: str) -> None:
        link = f"{self.frontend_url}/reset-password?token={token}"
        self.send(
            [email],
            "Password reset request",
            f'<p>We received a request to reset your password.</p><p><a href="{link}">Reset password</a></p>'
            "<p>This link expires in 1 hour.</p>",
        )

    def send_order_confirmation(self, order: Dict[str, Any], lines: Iterable[Dict[str, Any]]) -> None:
        rows = "".join(
            f"<tr><td>{html.escape(str(line['product_name']))}</td><td>{line['quantity']}</td>"
            f"<td>{line['unit_price']:.2f}</td></tr>"
            for line in lines
        )
        summary = (
            f"<p>Order ID: {order['_id']}</p>"
            f"<table>{rows}</table>"
            f"<p>Subtotal: {order['original_amount']:.2f}</p>"
            f"<p>Discount: {order['discount_amount']:.2f}</p>"
            f"<p>Shipping: {order['shipping_amount']:.2f}</p>"
            f"<p>Total: {order['total_amount']:.2f}</p>"
        )
        if self.admin_email:
            self.send(
                [self.admin_email],
                f"New order #{order['_id']} from {order['full_name']}",
                f"<p>{html.escape(order['full_name'])} ({order['order_email']}, {order['phone_number']})</p>"
                f"<p>{html.escape(order['shipping_address'])}, {html.escape(order.get('city') or 'N/A')}</p>"
                + summary,
            )
        self.send(
            [order["order_email"]],
            f"Order confirmation - {order['_id']}",
            f"<p>Dear {html.escape(order['full_name'])}, thank you for your order.</p>" + summary,
        )

    def send_campaign(self, subject: str, body_html: str, recipients: List[str]) -> None:
        self.send([self.sender], subject, body_html, bcc=recipients)
