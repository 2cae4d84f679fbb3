import hashlib
import hmac
import json
import time
from datetime import date

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import func, select
from sqlalchemy.pool import StaticPool

from vokatra_checkout.application.errors import PaymentProviderError
from vokatra_checkout.application.schemas import CheckoutSession
from vokatra_checkout.core_settings import Settings
from vokatra_checkout.domain.models import DeliveryDate, Product
from vokatra_checkout.infrastructure.datastore import SqlDatastore
from vokatra_checkout.infrastructure.db import build_engine, build_session_factory, init_models
from vokatra_checkout.infrastructure.payments import StripeGateway
from vokatra_checkout.main import create_app

WEBHOOK_SECRET = "whsec_test_secret"

class FakeGateway(StripeGateway):
    """Opens sessions locally; webhook verification is Stripe's own."""

    def __init__(self, fail: bool = False):
        super().__init__(secret_key="sk_test_fake", webhook_secret=WEBHOOK_SECRET)
        self.fail = fail
        self.sessions = []

    def create_session(self, line_items, metadata, success_url, cancel_url, customer_email=None, expires_at=None):
        if self.fail:
            raise PaymentProviderError("Stripe is unavailable")
        session_id = f"cs_test_{len(self.sessions) + 1}"
        self.sessions.append({
            "id": session_id,
            "line_items": line_items,
            "metadata": metadata,
            "success_url": success_url,
            "cancel_url": cancel_url,
            "customer_email": customer_email,
            "expires_at": expires_at,
        })
        return CheckoutSession(id=session_id, url=f"https://checkout.stripe.com/c/pay/{session_id}")

@pytest.fixture
def settings():
    return Settings(
        DATABASE_URL="sqlite://",
        STRIPE_WEBHOOK_SECRET=WEBHOOK_SECRET,
        SITE_URL="https://shop.example",
        LOG_LEVEL="WARNING",
    )

@pytest.fixture
def engine():
    engine = build_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    init_models(engine)
    yield engine
    engine.dispose()

@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)

@pytest.fixture
def catalog(session_factory):
    with session_factory() as db:
        db.add_all([
            Product(id="P1", name="Ravitoto", emoji="🥬", unit_price_cents=1500, stock_qty=5, active=True),
            Product(id="P2", name="Sambos", emoji="🥟", unit_price_cents=250, stock_qty=10, active=True),
            Product(id="P3", name="Koba", emoji="🍌", unit_price_cents=400, stock_qty=3, active=False),
            DeliveryDate(id="D1", delivery_date=date(2026, 11, 14), label="Saturday 14 November", active=True),
            DeliveryDate(id="D0", delivery_date=date(2026, 10, 3), label="Saturday 3 October", active=False),
        ])
        db.commit()

@pytest.fixture
def datastore(session_factory, catalog):
    return SqlDatastore(session_factory)

@pytest.fixture
def gateway():
    return FakeGateway()

@pytest.fixture
def make_client(settings, gateway):
    clients = []

    def _make(datastore, gateway=gateway, settings=settings):
        client = TestClient(create_app(settings=settings, datastore=datastore, gateway=gateway))
        client.__enter__()
        clients.append(client)
        return client

    yield _make
    for client in clients:
        client.__exit__(None, None, None)

@pytest.fixture
def client(make_client, datastore):
    return make_client(datastore)

@pytest.fixture
def count(session_factory):
    def _count(model) -> int:
        with session_factory() as db:
            return db.execute(select(func.count()).select_from(model)).scalar_one()
    return _count

@pytest.fixture
def order_body():
    def _body(cart=None, **customer_overrides):
        customer = {
            "firstName": "Hery",
            "lastName": "Rakoto",
            "address": "12 rue Sainte-Catherine, Bordeaux",
            "churchName": "FLM Bordeaux",
            "sectionName": "Dorkasy",
            "email": "hery@example.com",
        }
        customer.update(customer_overrides)
        return {
            "cart": cart if cart is not None else [{"productId": "P1", "qty": 2}],
            "customer": customer,
            "delivery": {"address": "Temple, 5 rue du Mirail", "dateId": "D1"},
        }
    return _body

@pytest.fixture
def sign():
    def _sign(payload: str, secret: str = WEBHOOK_SECRET, timestamp: int = None) -> str:
        timestamp = timestamp or int(time.time())
        digest = hmac.new(secret.encode(), f"{timestamp}.{payload}".encode(), hashlib.sha256).hexdigest()
        return f"t={timestamp},v1={digest}"
    return _sign

@pytest.fixture
def stripe_event():
    def _event(event_type: str, obj: dict, event_id: str = "evt_test_1") -> str:
        return json.dumps({
            "id": event_id,
            "object": "event",
            "type": event_type,
            "data": {"object": obj},
        })
    return _event

@pytest.fixture
def post_event(sign, stripe_event):
    def _post(client, event_type: str, obj: dict, event_id: str = "evt_test_1"):
        payload = stripe_event(event_type, obj, event_id)
        return client.post(
            "/stripe_webhook",
            content=payload,
            headers={"Stripe-Signature": sign(payload), "Content-Type": "application/json"},
        )
    return _post
