from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from payment_service.models import PaymentStatus


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ChargeRequest(CamelModel):
    order_id: str = Field(min_length=1)
    user_id: str = Field(min_length=1)
    amount: Decimal = Field(gt=0)
    currency: Optional[str] = None
    email: str
    # Checked by the lifecycle manager so the error matches the other 400s
    phone: Optional[str] = None


class ChargeResponse(CamelModel):
    client_secret: Optional[str] = None
    payment_id: int
    disable_payment: bool
    payment_status: PaymentStatus
    message: Optional[str] = None


class PaymentStatusResponse(CamelModel):
    payment_id: int
    order_id: str
    status: PaymentStatus
    amount: Decimal
    currency: str
    updated_at: datetime


class WebhookAck(BaseModel):
    received: bool
