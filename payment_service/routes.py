from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from fastapi.concurrency import run_in_threadpool

from payment_service.lifecycle import IntentLifecycleManager
from payment_service.reconciler import WebhookReconciler
from payment_service.schemas import ChargeRequest, ChargeResponse, PaymentStatusResponse, WebhookAck

router = APIRouter(prefix="/payment", tags=["Payments"])


def get_lifecycle(request: Request) -> IntentLifecycleManager:
    return request.app.state.lifecycle


def get_reconciler(request: Request) -> WebhookReconciler:
    return request.app.state.reconciler


@router.post("/process", response_model=ChargeResponse, response_model_exclude_none=True)
def process_payment(
    request: ChargeRequest,
    lifecycle: IntentLifecycleManager = Depends(get_lifecycle)
):
    result = lifecycle.request_charge(
        order_id=request.order_id,
        user_id=request.user_id,
        amount=request.amount,
        email=request.email,
        phone=request.phone,
        currency=request.currency,
    )

    return ChargeResponse(
        client_secret=result.client_secret,
        payment_id=result.payment_id,
        disable_payment=result.disable_payment,
        payment_status=result.status,
        message=result.message,
    )


@router.post("/webhook", response_model=WebhookAck)
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None),
    reconciler: WebhookReconciler = Depends(get_reconciler)
):
    # Signature is computed over the exact bytes received
    payload = await request.body()
    return await run_in_threadpool(reconciler.handle, payload, stripe_signature)


@router.get("/{order_id}", response_model=PaymentStatusResponse)
def get_payment_status(
    order_id: str,
    lifecycle: IntentLifecycleManager = Depends(get_lifecycle)
):
    payment = lifecycle.get_payment(order_id)

    return PaymentStatusResponse(
        payment_id=payment.id,
        order_id=payment.order_id,
        status=payment.status,
        amount=payment.amount,
        currency=payment.currency,
        updated_at=payment.updated_at,
    )
