from decimal import Decimal
from typing import Optional

import resend
from twilio.http.http_client import TwilioHttpClient
from twilio.rest import Client

from payment_service.config import Settings
from payment_service.logger import get_logger

logger = get_logger(__name__)


class NotificationDispatcher:
    """Best-effort SMS (Twilio) and email (Resend) side channel.

    Nothing here raises: a notification that cannot be delivered is logged
    and dropped, it never rolls back payment state. Phone numbers and email
    addresses are never written to the log.
    """

    def __init__(self, settings: Settings, sms_client: Optional[Client] = None):
        self._settings = settings
        self._sms_client = sms_client

    @property
    def sms_configured(self) -> bool:
        s = self._settings
        return bool(s.twilio_account_sid and s.twilio_auth_token and s.twilio_from_number)

    def _twilio(self) -> Client:
        if self._sms_client is None:
            self._sms_client = Client(
                self._settings.twilio_account_sid,
                self._settings.twilio_auth_token,
                http_client=TwilioHttpClient(timeout=self._settings.notification_timeout),
            )
        return self._sms_client

    def send_sms(self, phone: Optional[str], text: str) -> bool:
        if not phone:
            logger.info("No phone number on file, SMS skipped")
            return False
        if not self.sms_configured:
            logger.warning("Twilio is not configured, SMS skipped")
            return False

        try:
            message = self._twilio().messages.create(
                to=phone,
                from_=self._settings.twilio_from_number,
                body=text,
            )
        except Exception as exc:
            # Provider errors quote the destination number
            logger.error("Error sending SMS: %s", type(exc).__name__)
            return False

        logger.info("SMS sent: %s", getattr(message, "sid", None) or "No SID returned")
        return True

    def send_email(self, to: Optional[str], subject: str, text: str, html: Optional[str] = None) -> bool:
        if not to:
            logger.info("No email address on file, email skipped")
            return False
        if not self._settings.resend_api_key:
            logger.warning("Resend is not configured, email skipped")
            return False

        params = {"from": self._settings.email_from, "to": [to], "subject": subject, "text": text}
        if html:
            params["html"] = html

        resend.api_key = self._settings.resend_api_key
        try:
            email = resend.Emails.send(params)
        except Exception as exc:
            logger.error("Error sending email: %s", type(exc).__name__)
            return False

        email_id = email.get("id") if isinstance(email, dict) else getattr(email, "id", None)
        logger.info("Email sent: %s", email_id or "No ID returned")
        return True


# Message catalog

def format_amount(amount, currency: str) -> str:
    return f"{Decimal(str(amount)):.2f} {currency.upper()}"


def charge_initiated_sms(order_id: str, amount, currency: str) -> str:
    return f"Your payment of {format_amount(amount, currency)} for Order {order_id} has been initiated."


def payment_succeeded_sms(order_id: str) -> str:
    return f"Your payment for Order {order_id} was successful!"


def payment_failed_sms(order_id: str) -> str:
    return f"Your payment for Order {order_id} failed. Please try again."


PAYMENT_SUCCEEDED_SUBJECT = "Payment Confirmation for Your Order"
PAYMENT_FAILED_SUBJECT = "Payment Failure for Your Order"


def payment_succeeded_email(order_id: str, amount, currency: str) -> tuple:
    total = format_amount(amount, currency)
    text = (
        f"Thank you! Your payment of {total} for Order {order_id} was successful.\n"
        "Your order is now being processed."
    )
    html = (
        f"<h2>Payment Confirmed</h2>"
        f"<p>Your payment of <strong>{total}</strong> for Order <strong>{order_id}</strong> was successful.</p>"
        f"<p>Your order is now being processed.</p>"
    )
    return text, html


def payment_failed_email(order_id: str, amount, currency: str) -> tuple:
    total = format_amount(amount, currency)
    text = (
        f"Your payment of {total} for Order {order_id} failed.\n"
        "No money was taken. Please try again or use a different payment method."
    )
    html = (
        f"<h2>Payment Failed</h2>"
        f"<p>Your payment of <strong>{total}</strong> for Order <strong>{order_id}</strong> failed.</p>"
        f"<p>No money was taken. Please try again or use a different payment method.</p>"
    )
    return text, html
