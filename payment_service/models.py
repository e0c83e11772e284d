import enum
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Enum, Integer, Numeric, String

from payment_service.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PaymentStatus(str, enum.Enum):
    PENDING = "Pending"
    PAID = "Paid"
    FAILED = "Failed"

    @property
    def is_terminal(self) -> bool:
        return self is not PaymentStatus.PENDING


class PaymentRecord(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(String(100), unique=True, index=True, nullable=False)
    user_id = Column(String(100), nullable=False)

    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(10), nullable=False, default="usd")
    email = Column(String(255), nullable=False)
    phone = Column(String(32), nullable=True)

    status = Column(
        Enum(
            PaymentStatus,
            name="payment_status",
            native_enum=False,
            values_callable=lambda statuses: [s.value for s in statuses],
        ),
        nullable=False,
        default=PaymentStatus.PENDING,
    )

    gateway_intent_id = Column(String(255), index=True, nullable=True)      # Stripe PaymentIntent ID
    gateway_client_secret = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    @property
    def is_tentative(self) -> bool:
        """Un-reconciled charge attempt that a fresh attempt may supersede."""
        return bool(self.gateway_client_secret) and self.status == PaymentStatus.PENDING

    def __repr__(self) -> str:
        return f"<PaymentRecord id={self.id} order_id={self.order_id!r} status={self.status}>"
