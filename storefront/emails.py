# storefront/emails.py
import os
import re
from dataclasses import dataclass
from html import escape
from typing import Optional

import requests

from storefront import config
from storefront.errors import ConfigError
from storefront.logs import get_logger

log = get_logger("email")

RESEND_URL = "https://api.resend.com/emails"
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def is_valid_email(value) -> bool:
    return bool(value) and bool(EMAIL_RE.match(str(value)))


def format_money(cents: int, currency: str = "usd") -> str:
    return f"${cents/100:.2f}" if currency.upper() == "USD" else f"{cents/100:.2f} {currency.upper()}"


def format_address(address: Optional[dict]) -> str:
    if not address:
        return "N/A"
    lines = []
    for key in ("line1", "line2", "address_line_1", "address_line_2"):
        if address.get(key):
            lines.append(escape(address[key]))
    city = [address.get(k) for k in ("city", "locality", "state",
                                     "administrative_district_level_1", "postal_code")]
    city = ", ".join(escape(str(c)) for c in city if c)
    if city:
        lines.append(city)
    if address.get("country"):
        lines.append(escape(address["country"].upper()))
    return "<br/>".join(lines)


@dataclass
class EmailResult:
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


class Mailer:
    """Transactional mail through the Resend HTTP API."""

    def __init__(self, api_key=None, from_email=None, session=None):
        self._api_key = api_key
        self.from_email = from_email or config.RESEND_FROM_EMAIL
        self.http = session or requests.Session()

    @property
    def api_key(self) -> str:
        return self._api_key or config.require("RESEND_API_KEY")

    def send(self, to, subject: str, html: str, reply_to: Optional[str] = None) -> EmailResult:
        payload = {"from": self.from_email, "to": [to] if isinstance(to, str) else list(to),
                   "subject": subject, "html": html}
        if reply_to:
            payload["reply_to"] = reply_to
        headers = {"Authorization": f"Bearer {self.api_key}"}
        try:
            r = self.http.post(RESEND_URL, json=payload, headers=headers, timeout=config.HTTP_TIMEOUT)
        except requests.RequestException as e:
            log.error(f"Email send failed: {e}")
            return EmailResult(False, error=str(e))
        if not r.ok:
            log.error(f"Resend error {r.status_code}: {r.text[:300]}")
            return EmailResult(False, error=f"HTTP {r.status_code}")
        return EmailResult(True, message_id=r.json().get("id"))

    # ---------- contact form ----------
    def send_contact_message(self, name, email, subject, message) -> EmailResult:
        recipient = os.getenv("CONTACT_EMAIL") or os.getenv("RESEND_FROM_EMAIL")
        if not recipient:
            raise ConfigError("CONTACT_EMAIL or RESEND_FROM_EMAIL not configured")
        html = f"""
        <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
          <h2>New Contact Form Submission</h2>
          <p><strong>From:</strong> {escape(name)}</p>
          <p><strong>Email:</strong> {escape(email)}</p>
          <p><strong>Subject:</strong> {escape(subject)}</p>
          <div style="background-color: #f5f5f5; padding: 15px;">
            <p style="white-space: pre-wrap;">{escape(message)}</p>
          </div>
          <p style="color: #666; font-size: 12px;">Sent via the contact form on {escape(config.SITE_NAME)}.</p>
        </div>
        """
        return self.send(recipient, f"Contact Form: {subject}", html, reply_to=email)

    # ---------- orders ----------
    def _order_rows(self, order) -> str:
        rows = []
        for line in order.lines:
            size = f"<br/><span style='color:#666'>{escape(line.size)}</span>" if line.size else ""
            rows.append(
                f"<tr><td><strong>{escape(line.name)}</strong>{size}</td>"
                f"<td style='text-align:center'>{line.quantity}</td>"
                f"<td style='text-align:right'>{format_money(line.amount_cents, order.currency)}</td></tr>"
            )
        return "".join(rows)

    def send_order_confirmation(self, order) -> EmailResult:
        if not order.customer_email:
            return EmailResult(False, error="order has no customer email")
        greeting = f"<p>Hi {escape(order.customer_name)},</p>" if order.customer_name else ""
        html = f"""
        <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
          <h1>{escape(config.SITE_NAME)}</h1>
          <p>Thank you for your order!</p>
          {greeting}
          <p>Your order has been confirmed and is being processed.</p>
          <p>Order Number: <code>{escape(order.id)}</code></p>
          <table style="width:100%">{self._order_rows(order)}</table>
          <p>Shipping: {format_money(order.shipping_cents, order.currency)}</p>
          <p><strong>Total: {format_money(order.total_cents, order.currency)}</strong></p>
          <p>Shipping to:<br/>{format_address(order.shipping_address)}</p>
        </div>
        """
        return self.send(order.customer_email, f"Order Confirmation - {config.SITE_NAME}", html)

    def send_admin_order_notification(self, order) -> EmailResult:
        admin = os.getenv("ADMIN_EMAIL") or os.getenv("CONTACT_EMAIL")
        if not admin:
            return EmailResult(False, error="ADMIN_EMAIL not configured")
        html = f"""
        <div style="font-family: Arial, sans-serif;">
          <h2>New order {escape(order.id)}</h2>
          <p>Customer: {escape(order.customer_name or "")} &lt;{escape(order.customer_email or "")}&gt;</p>
          <table style="width:100%">{self._order_rows(order)}</table>
          <p><strong>Total: {format_money(order.total_cents, order.currency)}</strong></p>
          <p>{format_address(order.shipping_address)}</p>
        </div>
        """
        return self.send(admin, f"New Order: {format_money(order.total_cents, order.currency)}", html)
