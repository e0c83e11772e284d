from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from payment_service.errors import DuplicateOrderError
from payment_service.logger import get_logger
from payment_service.models import PaymentRecord, PaymentStatus

logger = get_logger(__name__)


class PaymentStore:
    """One payment record per order, keyed by the unique ``order_id``.

    Each operation runs in its own short session; nothing is cached between
    calls, so every read reflects what concurrent requests have committed.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def get_by_order_id(self, order_id: str) -> Optional[PaymentRecord]:
        with self._session_factory() as db:
            return db.scalars(
                select(PaymentRecord).where(PaymentRecord.order_id == order_id)
            ).first()

    def get_by_intent_id(self, intent_id: str) -> Optional[PaymentRecord]:
        with self._session_factory() as db:
            return db.scalars(
                select(PaymentRecord).where(PaymentRecord.gateway_intent_id == intent_id)
            ).first()

    def create(self, **fields) -> PaymentRecord:
        record = PaymentRecord(**fields)
        with self._session_factory() as db:
            db.add(record)
            try:
                db.commit()
            except IntegrityError as exc:
                db.rollback()
                raise DuplicateOrderError(fields.get("order_id")) from exc
            db.refresh(record)
        logger.info("Payment record %s created for order %s", record.id, record.order_id)
        return record

    def delete_if_unchanged(self, record: PaymentRecord) -> bool:
        """Delete ``record`` only if its status and intent are still as read.

        A webhook settling the record between the read and this call leaves
        the row in place and returns False.
        """
        if record.gateway_intent_id is None:
            same_intent = PaymentRecord.gateway_intent_id.is_(None)
        else:
            same_intent = PaymentRecord.gateway_intent_id == record.gateway_intent_id

        with self._session_factory() as db:
            result = db.execute(
                delete(PaymentRecord)
                .where(
                    PaymentRecord.id == record.id,
                    PaymentRecord.status == record.status,
                    same_intent,
                )
                .execution_options(synchronize_session=False)
            )
            db.commit()
        return result.rowcount > 0

    def apply_terminal_status(self, record_id: int, status: PaymentStatus) -> Optional[PaymentRecord]:
        """Move a Pending record to ``status``.

        The write is conditional on the row still being Pending, so two
        deliveries racing on the same record cannot both perform the
        transition. Returns the updated record for the caller that won,
        ``None`` if the record was already terminal (or is gone).
        """
        if not status.is_terminal:
            raise ValueError(f"{status.value} is not a terminal payment status")

        with self._session_factory() as db:
            result = db.execute(
                update(PaymentRecord)
                .where(
                    PaymentRecord.id == record_id,
                    PaymentRecord.status == PaymentStatus.PENDING,
                )
                .values(status=status, updated_at=datetime.now(timezone.utc))
                .execution_options(synchronize_session=False)
            )
            db.commit()
            if result.rowcount == 0:
                return None
            return db.get(PaymentRecord, record_id)
