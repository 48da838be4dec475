import logging
import smtplib
from dataclasses import dataclass, field
from email.message import EmailMessage
from html import escape
from typing import Iterable, List, Optional

import httpx

from .config import Settings

logger = logging.getLogger(__name__)

LINE_PUSH_URL = "https://api.line.me/v2/bot/message/push"
LINE_BROADCAST_URL = "https://api.line.me/v2/bot/message/broadcast"

STATUS_MESSAGES = {
    "confirmed": "Your order has been confirmed and is being prepared.",
    "preparing": "Your order is being prepared in our kitchen.",
    "ready": "Your order is ready for pickup!",
    "served": "Your order has been served. Enjoy your meal!",
    "cancelled": "Your order has been cancelled.",
}

EMAIL_LAYOUT = """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>{subject}</title></head>
<body style="font-family: 'Segoe UI', Tahoma, sans-serif; color: #333; max-width: 600px; margin: 0 auto;">
  <div style="text-align: center; border-bottom: 3px solid #d4af37; padding-bottom: 16px;">
    <div style="font-size: 28px; font-weight: bold; color: #2c5530;">Garden Grains</div>
    <div style="color: #666; font-style: italic;">Fresh &bull; Healthy &bull; Delicious</div>
  </div>
  <div style="margin: 24px 0;">{content}</div>
  <div style="border-top: 1px solid #eee; padding-top: 16px; text-align: center; color: #666; font-size: 14px;">
    <p>Garden Grains Restaurant</p>
  </div>
</body>
</html>
"""


@dataclass
class OrderNotice:
    """Snapshot of an order taken before the request session closes."""

    order_number: str
    order_type: str
    status: str
    status_display: str
    total: float
    estimated_time: int
    customer_name: str
    customer_email: str
    items: List[dict] = field(default_factory=list)


@dataclass
class ReservationNotice:
    confirmation_code: str
    customer_name: str
    customer_email: str
    date: str
    time: str
    party_size: int
    table_preference: str
    special_requests: Optional[str] = None


class Notifier:
    """Best-effort customer email and staff LINE messages."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    # -------------------------
    # Transports
    # -------------------------

    def send_email(self, to: Iterable[str] | str, subject: str, html_body: str) -> None:
        recipients = [to] if isinstance(to, str) else list(to)
        if not self.settings.smtp_host:
            logger.debug("SMTP not configured; skipping email '%s'", subject)
            return
        if not recipients:
            return

        message = EmailMessage()
        message["From"] = self.settings.mail_sender
        message["To"] = ", ".join(recipients)
        message["Subject"] = subject
        message.set_content(f"{subject}\n\nThis message is best viewed in an HTML capable mail client.")
        message.add_alternative(EMAIL_LAYOUT.format(subject=escape(subject), content=html_body), subtype="html")

        with smtplib.SMTP(self.settings.smtp_host, self.settings.smtp_port, timeout=10) as smtp:
            if self.settings.smtp_use_tls:
                smtp.starttls()
            if self.settings.smtp_username:
                smtp.login(self.settings.smtp_username, self.settings.smtp_password or "")
            smtp.send_message(message)
        logger.info("Email '%s' sent to %s", subject, message["To"])

    def _post_line(self, url: str, payload: dict) -> None:
        response = httpx.post(
            url,
            headers={"Authorization": f"Bearer {self.settings.line_channel_access_token}"},
            json=payload,
            timeout=5,
        )
        response.raise_for_status()

    def send_staff_message(self, text: str) -> None:
        if not self.settings.line_channel_access_token:
            return
        messages = [{"type": "text", "text": text}]
        if self.settings.line_target_ids:
            for recipient in self.settings.line_target_ids:
                self._post_line(LINE_PUSH_URL, {"to": recipient, "messages": messages})
        else:
            self._post_line(LINE_BROADCAST_URL, {"messages": messages})

    # -------------------------
    # Notifications
    # -------------------------

    def notify_order_placed(self, notice: OrderNotice) -> None:
        items = "".join(
            f"<li>{item['quantity']}x {escape(item['name'])} - {item['price']:.2f} each</li>"
            for item in notice.items
        )
        body = (
            "<h2>Order Confirmation</h2>"
            f"<p>Dear {escape(notice.customer_name)},</p>"
            "<p>Thank you for your order! Here are the details:</p>"
            f"<p><strong>Order Number:</strong> {notice.order_number}</p>"
            f"<p><strong>Order Type:</strong> {notice.order_type}</p>"
            f"<p><strong>Total Amount:</strong> {notice.total:.2f}</p>"
            f"<p><strong>Estimated Time:</strong> {notice.estimated_time} minutes</p>"
            f"<h3>Order Items:</h3><ul>{items}</ul>"
            "<p>You can track your order status in your account.</p>"
        )
        try:
            self.send_email(notice.customer_email, f"Order Confirmation - {notice.order_number}", body)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Order confirmation email failed for %s: %s", notice.order_number, exc)

    def notify_staff_new_order(self, notice: OrderNotice, admin_emails: List[str]) -> None:
        body = (
            "<h2>New Order Placed</h2>"
            f"<p><strong>Order Number:</strong> {notice.order_number}</p>"
            f"<p><strong>Customer Name:</strong> {escape(notice.customer_name)}</p>"
            f"<p><strong>Customer Email:</strong> {escape(notice.customer_email)}</p>"
            f"<p><strong>Order Type:</strong> {notice.order_type}</p>"
            f"<p><strong>Total Amount:</strong> {notice.total:.2f}</p>"
        )
        try:
            self.send_email(admin_emails, f"New Order Placed - {notice.order_number}", body)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Admin new-order email failed for %s: %s", notice.order_number, exc)

        lines = "\n".join(f"- {item['name']} x{item['quantity']}" for item in notice.items)
        text = (
            f"New order {notice.order_number} ({notice.order_type})\n"
            f"Customer: {notice.customer_name}\n"
            f"Total: {notice.total:.2f}\n"
            f"{lines}"
        )
        try:
            self.send_staff_message(text)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Failed to send LINE message: %s", exc)

    def notify_status_changed(self, notice: OrderNotice) -> None:
        body = (
            "<h2>Order Status Update</h2>"
            f"<p>Dear {escape(notice.customer_name)},</p>"
            f"<p><strong>Order Number:</strong> {notice.order_number}</p>"
            f"<p><strong>Status:</strong> {notice.status_display}</p>"
            f"<p>{STATUS_MESSAGES.get(notice.status, 'Your order status has been updated.')}</p>"
            "<p>Thank you for choosing Garden Grains!</p>"
        )
        try:
            self.send_email(notice.customer_email, f"Order Status Update - {notice.order_number}", body)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Status update email failed for %s: %s", notice.order_number, exc)

    def notify_reservation_created(self, notice: ReservationNotice) -> None:
        requests = (
            f"<p><strong>Special Requests:</strong> {escape(notice.special_requests)}</p>"
            if notice.special_requests
            else ""
        )
        body = (
            "<h2>Reservation Received!</h2>"
            f"<p>Dear {escape(notice.customer_name)},</p>"
            f"<p><strong>Confirmation Code:</strong> {notice.confirmation_code}</p>"
            f"<p><strong>Date:</strong> {notice.date}</p>"
            f"<p><strong>Time:</strong> {notice.time}</p>"
            f"<p><strong>Party Size:</strong> {notice.party_size} people</p>"
            f"<p><strong>Table Preference:</strong> {notice.table_preference}</p>"
            f"{requests}"
            "<p>We look forward to serving you!</p>"
        )
        try:
            self.send_email(
                notice.customer_email,
                f"Reservation Confirmation - {notice.confirmation_code}",
                body,
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning("Reservation email failed for %s: %s", notice.confirmation_code, exc)
