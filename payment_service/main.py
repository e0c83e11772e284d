import os
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from payment_service.config import Settings, load_settings
from payment_service.database import init_db, make_engine, make_session_factory
from payment_service.errors import PaymentServiceError, WebhookVerificationError
from payment_service.gateway import StripeGateway
from payment_service.lifecycle import IntentLifecycleManager
from payment_service.logger import configure_logging, logger
from payment_service.notifications import NotificationDispatcher
from payment_service.reconciler import WebhookReconciler
from payment_service.routes import router
from payment_service.store import PaymentStore


def create_app(
    settings: Optional[Settings] = None,
    gateway: Optional[StripeGateway] = None,
    notifier: Optional[NotificationDispatcher] = None,
) -> FastAPI:
    settings = settings or load_settings()
    configure_logging(settings.log_level)

    engine = make_engine(settings.database_url)
    init_db(engine)
    store = PaymentStore(make_session_factory(engine))

    gateway = gateway or StripeGateway(settings.stripe_secret_key, timeout=settings.gateway_timeout)
    notifier = notifier or NotificationDispatcher(settings)

    app = FastAPI(title="Payment Service")
    app.state.settings = settings
    app.state.store = store
    app.state.lifecycle = IntentLifecycleManager(store, gateway, notifier, settings.default_currency)
    app.state.reconciler = WebhookReconciler(store, gateway, notifier, settings.stripe_webhook_secret)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(WebhookVerificationError)
    async def webhook_error_handler(request: Request, exc: WebhookVerificationError):
        return PlainTextResponse(f"Webhook Error: {exc.message}", status_code=exc.status_code)

    @app.exception_handler(PaymentServiceError)
    async def payment_error_handler(request: Request, exc: PaymentServiceError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_body())

    @app.get("/", response_class=PlainTextResponse)
    def health():
        return "Payment Service Running"

    app.include_router(router)

    return app


def run() -> None:
    port = int(os.getenv("PORT", "5004"))
    logger.info("Payment Service running on port %s", port)
    uvicorn.run(create_app(), host=os.getenv("HOST", "0.0.0.0"), port=port)


if __name__ == "__main__":
    run()
