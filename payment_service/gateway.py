from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

import stripe

from payment_service.errors import GatewayError, WebhookVerificationError
from payment_service.logger import get_logger

logger = get_logger(__name__)

REUSABLE_INTENT_STATUS = "requires_payment_method"

CHARGE_SUCCEEDED = "payment_intent.succeeded"
CHARGE_FAILED = "payment_intent.payment_failed"


@dataclass(frozen=True)
class GatewayIntent:
    id: str
    client_secret: Optional[str]
    status: str

    @property
    def reusable(self) -> bool:
        return self.status == REUSABLE_INTENT_STATUS


@dataclass(frozen=True)
class WebhookEvent:
    id: Optional[str]
    type: str
    intent_id: Optional[str]
    order_id: Optional[str]


def to_minor_units(amount) -> int:
    # str() first so floats convert at their printed value (99.99 -> 9999)
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class StripeGateway:
    """Stripe PaymentIntents behind an explicitly constructed client.

    Every call is bounded by ``timeout`` and is not retried here: the
    caller decides what a failure means.
    """

    def __init__(self, api_key: str, timeout: float = 10.0, client: Optional[stripe.StripeClient] = None):
        if client is None:
            client = stripe.StripeClient(
                api_key,
                http_client=stripe.RequestsClient(timeout=timeout),
                max_network_retries=0,
            )
        self._client = client

    def create_intent(self, amount_minor: int, currency: str, metadata: dict,
                      receipt_email: Optional[str] = None) -> GatewayIntent:
        params = {
            "amount": amount_minor,
            "currency": currency,
            "metadata": metadata,
            "automatic_payment_methods": {"enabled": True},
        }
        if receipt_email:
            params["receipt_email"] = receipt_email

        try:
            intent = self._client.v1.payment_intents.create(params=params)
        except stripe.StripeError as exc:
            raise GatewayError(f"create intent failed: {exc.user_message or exc}") from exc
        logger.info("Created PaymentIntent %s", intent.id)
        return self._to_intent(intent)

    def retrieve_intent(self, intent_id: str) -> GatewayIntent:
        try:
            intent = self._client.v1.payment_intents.retrieve(intent_id)
        except stripe.StripeError as exc:
            raise GatewayError(f"retrieve intent {intent_id} failed: {exc.user_message or exc}") from exc
        return self._to_intent(intent)

    def cancel_intent(self, intent_id: str) -> None:
        try:
            self._client.v1.payment_intents.cancel(intent_id)
        except stripe.StripeError as exc:
            raise GatewayError(f"cancel intent {intent_id} failed: {exc.user_message or exc}") from exc
        logger.info("Cancelled PaymentIntent %s", intent_id)

    def verify_event(self, raw_body: bytes, signature_header: Optional[str], secret: str) -> WebhookEvent:
        if not secret:
            raise WebhookVerificationError("Webhook signing secret is not configured")
        if not signature_header:
            raise WebhookVerificationError("No signatures found matching the expected signature for payload")

        try:
            event = self._client.construct_event(raw_body, signature_header, secret)
        except ValueError as exc:
            raise WebhookVerificationError("Invalid payload") from exc
        except stripe.SignatureVerificationError as exc:
            raise WebhookVerificationError(str(exc.user_message or exc)) from exc

        return self._to_event(event)

    @staticmethod
    def _to_intent(intent) -> GatewayIntent:
        return GatewayIntent(id=intent.id, client_secret=intent.client_secret, status=intent.status)

    @staticmethod
    def _to_event(event) -> WebhookEvent:
        data = _field(event, "data")
        obj = _field(data, "object")
        metadata = _field(obj, "metadata")
        return WebhookEvent(
            id=_field(event, "id"),
            type=_field(event, "type") or "",
            intent_id=_field(obj, "id"),
            order_id=_field(metadata, "orderId") or None,
        )


def _field(obj, key: str):
    # Recent stripe releases no longer make StripeObject a dict
    if obj is None:
        return None
    if isinstance(obj, dict) and not isinstance(obj, stripe.StripeObject):
        return obj.get(key)
    return getattr(obj, key, None)
