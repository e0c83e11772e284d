from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from payment_service.errors import (
    ChargeConflictError,
    DuplicateOrderError,
    GatewayError,
    InconsistentStateError,
    PaymentNotFoundError,
    PaymentProcessingError,
    PaymentValidationError,
    PersistenceError,
)
from payment_service.gateway import GatewayIntent, StripeGateway, to_minor_units
from payment_service.logger import get_logger
from payment_service.models import PaymentRecord, PaymentStatus
from payment_service.notifications import NotificationDispatcher, charge_initiated_sms
from payment_service.store import PaymentStore

logger = get_logger(__name__)

CENT = Decimal("0.01")
ALREADY_PAID_MESSAGE = "This order has already been paid successfully."
PROCESSING_FAILED_MESSAGE = "Payment processing failed. Please try again."
RETRY_MESSAGE = "Payment intent expired. Please refresh the page and try again."


@dataclass(frozen=True)
class ChargeResult:
    payment_id: int
    status: PaymentStatus
    disable_payment: bool
    client_secret: Optional[str] = None
    message: Optional[str] = None


class IntentLifecycleManager:
    """Creates, reuses and replaces the gateway intent behind an order's charge.

    Only ever produces or refreshes a Pending record. Completion arrives
    later through the webhook. Concurrent requests for one order are
    serialized by the store's unique ``order_id``; the loser re-reads and
    converges on the winner's intent.
    """

    def __init__(self, store: PaymentStore, gateway: StripeGateway,
                 notifier: NotificationDispatcher, default_currency: str = "usd"):
        self._store = store
        self._gateway = gateway
        self._notifier = notifier
        self._default_currency = default_currency

    def request_charge(self, order_id: str, user_id: str, amount: Decimal, email: str,
                       phone: Optional[str], currency: Optional[str] = None) -> ChargeResult:
        if not phone:
            raise PaymentValidationError("Phone number is required.")

        amount = Decimal(str(amount)).quantize(CENT, rounding=ROUND_HALF_UP)
        if amount < CENT:
            raise PaymentValidationError("Amount must be at least 0.01.")

        currency = (currency or self._default_currency).lower()
        logger.info("Processing payment request for order %s", order_id)

        try:
            return self._charge(order_id, user_id, amount, currency, email, phone)
        except SQLAlchemyError as exc:
            logger.error("Payment store error for order %s: %s", order_id, type(exc).__name__)
            raise PaymentProcessingError(PROCESSING_FAILED_MESSAGE) from exc

    def get_payment(self, order_id: str) -> PaymentRecord:
        try:
            record = self._store.get_by_order_id(order_id)
        except SQLAlchemyError as exc:
            logger.error("Payment lookup failed for order %s: %s", order_id, type(exc).__name__)
            raise PersistenceError("Database lookup failed") from exc
        if record is None:
            raise PaymentNotFoundError()
        return record

    def _charge(self, order_id, user_id, amount, currency, email, phone) -> ChargeResult:
        existing = self._store.get_by_order_id(order_id)
        if existing is not None and existing.gateway_client_secret:
            # Duplicate-charge guard comes before any gateway call
            if existing.status == PaymentStatus.PAID:
                logger.info("Order %s has already been paid", order_id)
                return self._already_paid(existing)

            if existing.status == PaymentStatus.PENDING and self._intent_reusable(existing):
                logger.info("Reusing PaymentIntent %s for order %s", existing.gateway_intent_id, order_id)
                return self._reuse(existing)

            settled = self._supersede(existing)
            if settled is not None:
                return settled

        intent = self._create_intent(order_id, user_id, amount, currency, email)

        try:
            record = self._store.create(
                order_id=order_id,
                user_id=user_id,
                amount=amount,
                currency=currency,
                email=email,
                phone=phone,
                status=PaymentStatus.PENDING,
                gateway_intent_id=intent.id,
                gateway_client_secret=intent.client_secret,
            )
        except DuplicateOrderError:
            return self._converge(order_id, intent)
        except SQLAlchemyError as exc:
            # str(exc) carries the bound parameters, client secret included
            logger.error("Could not store payment record for order %s: %s", order_id, type(exc).__name__)
            self._discard_intent(intent.id)
            raise PaymentProcessingError(PROCESSING_FAILED_MESSAGE) from exc

        self._notifier.send_sms(phone, charge_initiated_sms(order_id, amount, currency))

        return ChargeResult(
            payment_id=record.id,
            status=record.status,
            disable_payment=False,
            client_secret=intent.client_secret,
        )

    def _create_intent(self, order_id, user_id, amount, currency, email) -> GatewayIntent:
        try:
            return self._gateway.create_intent(
                to_minor_units(amount),
                currency,
                metadata={"orderId": order_id, "userId": user_id},
                receipt_email=email,
            )
        except GatewayError as exc:
            logger.error("Stripe payment processing error for order %s: %s", order_id, exc)
            raise PaymentProcessingError(PROCESSING_FAILED_MESSAGE) from exc

    def _intent_reusable(self, record: PaymentRecord) -> bool:
        if not record.gateway_intent_id:
            return False
        try:
            intent = self._gateway.retrieve_intent(record.gateway_intent_id)
        except GatewayError as exc:
            logger.warning("Old payment intent %s invalid or expired: %s", record.gateway_intent_id, exc)
            return False
        return intent.reusable

    def _supersede(self, record: PaymentRecord) -> Optional[ChargeResult]:
        """Cancel and delete a stale record so a fresh attempt can be stored.

        Returns a result instead when the record changed under us, e.g. a
        webhook marked it Paid while the old intent was being checked.
        """
        logger.info("Replacing stale payment record %s for order %s", record.id, record.order_id)
        if record.gateway_intent_id:
            self._discard_intent(record.gateway_intent_id)

        if self._store.delete_if_unchanged(record):
            return None

        current = self._store.get_by_order_id(record.order_id)
        if current is None:
            return None
        if current.status == PaymentStatus.PAID:
            logger.info("Order %s was paid while its old intent was being replaced", record.order_id)
            return self._already_paid(current)

        logger.warning("Payment record for order %s changed during replacement, client should retry",
                       record.order_id)
        raise ChargeConflictError(RETRY_MESSAGE)

    def _discard_intent(self, intent_id: str) -> None:
        try:
            self._gateway.cancel_intent(intent_id)
        except GatewayError as exc:
            logger.warning("Could not cancel payment intent %s (may already be expired): %s", intent_id, exc)

    def _converge(self, order_id: str, own_intent: GatewayIntent) -> ChargeResult:
        logger.warning("Duplicate payment record for order %s, checking existing record", order_id)
        existing = self._store.get_by_order_id(order_id)

        if existing is None or existing.gateway_intent_id != own_intent.id:
            # The intent created by this request is not referenced by any record
            self._discard_intent(own_intent.id)

        if existing is None:
            logger.error("Duplicate key error for order %s but no payment record found", order_id)
            raise InconsistentStateError("Duplicate key error but no payment record found.")

        if existing.status == PaymentStatus.PAID:
            return self._already_paid(existing)

        if existing.status == PaymentStatus.PENDING and self._intent_reusable(existing):
            logger.info("Returning existing PaymentIntent %s for order %s", existing.gateway_intent_id, order_id)
            return self._reuse(existing)

        logger.warning("Existing payment intent for order %s is unusable, client should retry", order_id)
        raise ChargeConflictError(RETRY_MESSAGE)

    @staticmethod
    def _already_paid(record: PaymentRecord) -> ChargeResult:
        return ChargeResult(
            payment_id=record.id,
            status=PaymentStatus.PAID,
            disable_payment=True,
            message=ALREADY_PAID_MESSAGE,
        )

    @staticmethod
    def _reuse(record: PaymentRecord) -> ChargeResult:
        return ChargeResult(
            payment_id=record.id,
            status=record.status,
            disable_payment=False,
            client_secret=record.gateway_client_secret,
        )
