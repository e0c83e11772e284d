import dataclasses
from decimal import Decimal

import pytest
import requests
import resend
from twilio.base.exceptions import TwilioRestException

from payment_service.notifications import (
    NotificationDispatcher,
    payment_failed_sms,
    payment_succeeded_email,
    payment_succeeded_sms,
)


@pytest.fixture
def notify_settings(settings):
    return dataclasses.replace(
        settings,
        twilio_account_sid="AC123",
        twilio_auth_token="twilio_token",
        twilio_from_number="+15550000000",
        resend_api_key="re_test",
        notification_timeout=3,
    )


@pytest.fixture
def twilio_client(mocker):
    client = mocker.patch("payment_service.notifications.Client")
    client.return_value.messages.create.return_value.sid = "SM123"
    return client


@pytest.fixture
def send_email(mocker):
    return mocker.patch("payment_service.notifications.resend.Emails.send", return_value={"id": "email_123"})


@pytest.fixture
def dispatcher(notify_settings, twilio_client, send_email):
    return NotificationDispatcher(notify_settings)


def test_send_sms(mocker, dispatcher, twilio_client, payment_logs):
    http_client = mocker.patch("payment_service.notifications.TwilioHttpClient")

    assert dispatcher.send_sms("+1234567890", "Your payment was successful!") is True

    http_client.assert_called_once_with(timeout=3)
    twilio_client.assert_called_once_with("AC123", "twilio_token", http_client=http_client.return_value)
    twilio_client.return_value.messages.create.assert_called_once_with(
        to="+1234567890", from_="+15550000000", body="Your payment was successful!"
    )
    assert "SMS sent: SM123" in payment_logs.text
    assert "+1234567890" not in payment_logs.text


def test_sms_client_is_built_once(dispatcher, twilio_client):
    dispatcher.send_sms("+1234567890", "one")
    dispatcher.send_sms("+1234567890", "two")

    twilio_client.assert_called_once()
    assert twilio_client.return_value.messages.create.call_count == 2


@pytest.mark.parametrize("phone", [None, ""])
def test_send_sms_without_phone_is_skipped(dispatcher, twilio_client, phone):
    assert dispatcher.send_sms(phone, "hello") is False
    twilio_client.return_value.messages.create.assert_not_called()


def test_send_sms_without_twilio_config_is_skipped(settings, twilio_client):
    assert NotificationDispatcher(settings).send_sms("+1234567890", "hello") is False
    twilio_client.assert_not_called()


def test_send_sms_rejected_by_provider(dispatcher, twilio_client, payment_logs):
    twilio_client.return_value.messages.create.side_effect = TwilioRestException(
        400, "/Messages.json", msg="The 'To' number not-a-number is not a valid phone number.", code=21211
    )

    assert dispatcher.send_sms("not-a-number", "hello") is False
    assert "Error sending SMS: TwilioRestException" in payment_logs.text
    assert "not-a-number" not in payment_logs.text


def test_send_sms_network_error_is_logged_not_raised(dispatcher, twilio_client, payment_logs):
    twilio_client.return_value.messages.create.side_effect = requests.ConnectionError("Network timeout")

    assert dispatcher.send_sms("+1234567890", "hello") is False
    assert "Error sending SMS: ConnectionError" in payment_logs.text


def test_send_email(dispatcher, send_email, payment_logs):
    assert dispatcher.send_email("customer@example.com", "Subject", "text body", "<p>html</p>") is True

    send_email.assert_called_once_with({
        "from": "SkyDish <onboarding@resend.dev>",
        "to": ["customer@example.com"],
        "subject": "Subject",
        "text": "text body",
        "html": "<p>html</p>",
    })
    assert "Email sent: email_123" in payment_logs.text
    assert "customer@example.com" not in payment_logs.text


def test_send_email_uses_configured_api_key(mocker, dispatcher, send_email):
    mocker.patch("payment_service.notifications.resend.api_key", None)

    dispatcher.send_email("customer@example.com", "Subject", "text body")

    assert resend.api_key == "re_test"


def test_send_email_without_id_in_response(dispatcher, send_email, payment_logs):
    send_email.return_value = {}

    assert dispatcher.send_email("customer@example.com", "Subject", "text body") is True
    assert "Email sent: No ID returned" in payment_logs.text


def test_send_email_error_is_logged_not_raised(dispatcher, send_email, payment_logs):
    send_email.side_effect = requests.Timeout("Read timed out for customer@example.com")

    assert dispatcher.send_email("customer@example.com", "Subject", "text") is False
    assert "Error sending email: Timeout" in payment_logs.text
    assert "customer@example.com" not in payment_logs.text


def test_send_email_without_address_is_skipped(dispatcher, send_email):
    assert dispatcher.send_email(None, "Subject", "text") is False
    send_email.assert_not_called()


def test_send_email_without_resend_config_is_skipped(settings, send_email):
    assert NotificationDispatcher(settings).send_email("customer@example.com", "Subject", "text") is False
    send_email.assert_not_called()


def test_message_catalog():
    assert payment_succeeded_sms("ORDER-1") == "Your payment for Order ORDER-1 was successful!"
    assert payment_failed_sms("ORDER-1") == "Your payment for Order ORDER-1 failed. Please try again."

    text, html = payment_succeeded_email("ORDER-NOTIFY-001", Decimal("150.5"), "usd")
    assert "150.50 USD" in text
    assert "ORDER-NOTIFY-001" in text
    assert "ORDER-NOTIFY-001" in html
