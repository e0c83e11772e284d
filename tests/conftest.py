from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from payment_service.config import Settings
from payment_service.database import init_db, make_engine, make_session_factory
from payment_service.gateway import GatewayIntent, StripeGateway
from payment_service.lifecycle import IntentLifecycleManager
from payment_service.logger import logger as package_logger
from payment_service.main import create_app
from payment_service.models import PaymentStatus
from payment_service.notifications import NotificationDispatcher
from payment_service.reconciler import WebhookReconciler
from payment_service.store import PaymentStore


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'test_payments.db'}",
        stripe_secret_key="sk_test_123",
        stripe_webhook_secret="whsec_test",
    )


@pytest.fixture
def store(settings):
    engine = make_engine(settings.database_url)
    init_db(engine)
    yield PaymentStore(make_session_factory(engine))
    engine.dispose()


@pytest.fixture
def gateway(mocker):
    gateway = mocker.Mock(spec=StripeGateway)
    gateway.create_intent.return_value = GatewayIntent(
        id="pi_123", client_secret="pi_123_secret_abc", status="requires_payment_method"
    )
    gateway.retrieve_intent.return_value = GatewayIntent(
        id="pi_123", client_secret="pi_123_secret_abc", status="requires_payment_method"
    )
    return gateway


@pytest.fixture
def notifier(mocker):
    return mocker.Mock(spec=NotificationDispatcher)


@pytest.fixture
def lifecycle(store, gateway, notifier):
    return IntentLifecycleManager(store, gateway, notifier, default_currency="usd")


@pytest.fixture
def reconciler(store, gateway, notifier):
    return WebhookReconciler(store, gateway, notifier, webhook_secret="whsec_test")


@pytest.fixture
def client(settings, store, gateway, notifier):
    # The app opens its own engine on the same database file as `store`
    fastapi_app = create_app(settings, gateway=gateway, notifier=notifier)
    with TestClient(fastapi_app) as c:
        yield c


@pytest.fixture
def make_payment(store):
    """Insert a payment record directly, bypassing the gateway."""

    def _make_payment(**overrides):
        fields = {
            "order_id": "ORDER-100",
            "user_id": "USER-1",
            "amount": Decimal("99.99"),
            "currency": "usd",
            "email": "customer@example.com",
            "phone": "+15551234567",
            "status": PaymentStatus.PENDING,
            "gateway_intent_id": "pi_existing",
            "gateway_client_secret": "pi_existing_secret_xyz",
        }
        fields.update(overrides)
        return store.create(**fields)

    return _make_payment


@pytest.fixture
def payment_logs(caplog, monkeypatch):
    # The package logger does not propagate outside tests
    monkeypatch.setattr(package_logger, "propagate", True)
    return caplog
