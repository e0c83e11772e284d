from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError

from payment_service.errors import PaymentNotFoundError, PersistenceError, WebhookVerificationError
from payment_service.gateway import CHARGE_FAILED, CHARGE_SUCCEEDED, StripeGateway, WebhookEvent
from payment_service.logger import get_logger
from payment_service.models import PaymentRecord, PaymentStatus
from payment_service.notifications import (
    PAYMENT_FAILED_SUBJECT,
    PAYMENT_SUCCEEDED_SUBJECT,
    NotificationDispatcher,
    payment_failed_email,
    payment_failed_sms,
    payment_succeeded_email,
    payment_succeeded_sms,
)
from payment_service.store import PaymentStore

logger = get_logger(__name__)

RECEIVED = {"received": True}


class WebhookReconciler:
    """Applies signed gateway events to stored payment records.

    Events may be redelivered or arrive out of order. The terminal-state
    check before the write, and the conditional write itself, make every
    delivery after the first a no-op, so notifications go out at most once.
    """

    def __init__(self, store: PaymentStore, gateway: StripeGateway,
                 notifier: NotificationDispatcher, webhook_secret: str):
        self._store = store
        self._gateway = gateway
        self._notifier = notifier
        self._webhook_secret = webhook_secret
        if not webhook_secret:
            logger.error("STRIPE_WEBHOOK_SECRET is not set, webhook deliveries will be rejected")

    def handle(self, raw_body: bytes, signature_header: Optional[str]) -> dict:
        if not self._webhook_secret:
            logger.error("Webhook rejected: signing secret is not configured")
            raise WebhookVerificationError("Webhook signing secret is not configured")

        try:
            event = self._gateway.verify_event(raw_body, signature_header, self._webhook_secret)
        except WebhookVerificationError as exc:
            logger.error("Webhook signature verification failed: %s", exc.message)
            raise

        if event.type == CHARGE_SUCCEEDED:
            self._apply(event, PaymentStatus.PAID, self._notify_succeeded)
        elif event.type == CHARGE_FAILED:
            self._apply(event, PaymentStatus.FAILED, self._notify_failed)
        else:
            logger.info("Unhandled event type %s", event.type)

        return RECEIVED

    def _find_record(self, event: WebhookEvent) -> Optional[PaymentRecord]:
        record = None
        try:
            if event.order_id:
                record = self._store.get_by_order_id(event.order_id)
            # Metadata is not guaranteed on every event
            if record is None and event.intent_id:
                record = self._store.get_by_intent_id(event.intent_id)
        except SQLAlchemyError as exc:
            logger.error("Payment lookup failed for event %s: %s", event.id, type(exc).__name__)
            raise PersistenceError("Database lookup failed") from exc
        return record

    def _apply(self, event: WebhookEvent, target: PaymentStatus,
               notify: Callable[[PaymentRecord], None]) -> None:
        record = self._find_record(event)
        if record is None:
            logger.warning(
                "No payment record for event %s (order %s, intent %s)",
                event.id, event.order_id, event.intent_id,
            )
            raise PaymentNotFoundError()

        if record.status == target:
            logger.info("Order %s already %s, event %s ignored", record.order_id, target.value, event.id)
            return

        if record.status.is_terminal:
            logger.warning(
                "Order %s is %s, %s event %s ignored",
                record.order_id, record.status.value, event.type, event.id,
            )
            return

        if (target == PaymentStatus.FAILED and event.intent_id and record.gateway_intent_id
                and event.intent_id != record.gateway_intent_id):
            logger.warning(
                "Failure of superseded intent %s ignored for order %s (current intent %s)",
                event.intent_id, record.order_id, record.gateway_intent_id,
            )
            return

        try:
            updated = self._store.apply_terminal_status(record.id, target)
        except SQLAlchemyError as exc:
            logger.error("Database update failed for order %s: %s", record.order_id, type(exc).__name__)
            raise PersistenceError() from exc

        if updated is None:
            logger.info("Order %s was settled by a concurrent delivery", record.order_id)
            return

        logger.info("Payment for order %s marked %s", updated.order_id, target.value)
        notify(updated)

    def _notify_succeeded(self, record: PaymentRecord) -> None:
        if record.phone:
            self._notifier.send_sms(record.phone, payment_succeeded_sms(record.order_id))
        text, html = payment_succeeded_email(record.order_id, record.amount, record.currency)
        self._notifier.send_email(record.email, PAYMENT_SUCCEEDED_SUBJECT, text, html)

    def _notify_failed(self, record: PaymentRecord) -> None:
        if record.phone:
            self._notifier.send_sms(record.phone, payment_failed_sms(record.order_id))
        text, html = payment_failed_email(record.order_id, record.amount, record.currency)
        self._notifier.send_email(record.email, PAYMENT_FAILED_SUBJECT, text, html)
