"""
Pytest configuration and fixtures for testing

Stripe network calls and Firebase token checks are replaced by in-process
doubles; webhook signatures are still checked with the real Stripe scheme.
The document store is an in-memory Motor-compatible database.
"""
import hashlib
import hmac
import json
import time

import pytest
from httpx import ASGITransport, AsyncClient
from mongomock_motor import AsyncMongoMockClient

from app.api.deps import build_services, get_services
from app.core.config import Settings
from app.core.exceptions import AuthenticationError, UpstreamProcessorError
from app.schemas.stripe_events import StripeSubscription
from app.services.stripe_processor import StripeProcessor
from main import app

WEBHOOK_SECRET = "whsec_test_secret"
WEBHOOK_URL = "/api/v1/payments/webhook"
APP_URL = "https://goals.example.com"

# 2030-03-17, comfortably in the future for "current period" fixtures
PERIOD_END = 1_900_000_000

TOKENS = {
    "token-alice": "alice",
    "token-bob": "bob",
}


class FakeStripeProcessor(StripeProcessor):
    """Real webhook verification, canned Stripe API responses."""

    def __init__(self):
        super().__init__("sk_test_fake", WEBHOOK_SECRET, 300)
        self.subscriptions = {}
        self.retrieve_calls = []
        self.checkout_calls = []
        self.portal_calls = []

    def add_subscription(self, **kwargs) -> dict:
        subscription = subscription_object(**kwargs)
        self.subscriptions[subscription["id"]] = subscription
        return subscription

    async def retrieve_subscription(self, subscription_id):
        self.retrieve_calls.append(subscription_id)
        if subscription_id not in self.subscriptions:
            raise UpstreamProcessorError(f"No such subscription: '{subscription_id}'")
        return StripeSubscription.model_validate(self.subscriptions[subscription_id])

    async def create_checkout_session(self, params):
        self.checkout_calls.append(params)
        return f"https://checkout.stripe.com/c/pay/cs_test_{len(self.checkout_calls)}"

    async def create_portal_session(self, customer_id, return_url):
        self.portal_calls.append((customer_id, return_url))
        return f"https://billing.stripe.com/p/session/{customer_id}"


class FakeIdentityVerifier:
    def __init__(self, tokens):
        self.tokens = tokens

    def verify(self, token):
        try:
            return self.tokens[token]
        except KeyError:
            raise AuthenticationError("Invalid or expired token")


def subscription_object(
    id="sub_123",
    status="active",
    cancel_at_period_end=False,
    current_period_end=PERIOD_END,
    customer="cus_123",
    interval="month",
    metadata=None,
) -> dict:
    """A Stripe subscription as the API returns it (trimmed)."""
    return {
        "id": id,
        "object": "subscription",
        "status": status,
        "cancel_at_period_end": cancel_at_period_end,
        "current_period_end": current_period_end,
        "customer": customer,
        "metadata": metadata or {},
        "items": {
            "object": "list",
            "data": [
                {
                    "id": f"si_{id}",
                    "price": {
                        "id": f"price_{interval or 'once'}",
                        "recurring": {"interval": interval} if interval else None,
                    },
                }
            ],
        },
    }


def checkout_session_object(
    id="cs_test_123",
    mode="subscription",
    subscription="sub_123",
    customer="cus_123",
    user_id="alice",
    client_reference_id=None,
) -> dict:
    return {
        "id": id,
        "object": "checkout.session",
        "mode": mode,
        "subscription": subscription,
        "customer": customer,
        "client_reference_id": client_reference_id,
        "metadata": {"userId": user_id} if user_id else {},
    }


def make_event(event_type: str, obj: dict, event_id: str = "evt_123") -> dict:
    return {
        "id": event_id,
        "object": "event",
        "type": event_type,
        "data": {"object": obj},
    }


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: int = None) -> str:
    """Build a stripe-signature header the way Stripe does."""
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload.decode('utf-8')}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


async def post_event(client: AsyncClient, event: dict, secret: str = WEBHOOK_SECRET):
    body = json.dumps(event).encode("utf-8")
    return await client.post(
        WEBHOOK_URL,
        content=body,
        headers={"stripe-signature": sign_payload(body, secret), "content-type": "application/json"},
    )


def auth_headers(token: str = "token-alice") -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def db():
    return AsyncMongoMockClient()["goaltracker_test"]


@pytest.fixture
def processor():
    return FakeStripeProcessor()


@pytest.fixture
def services(db, processor):
    settings = Settings(APP_URL=APP_URL)
    return build_services(settings, db, processor=processor, identity=FakeIdentityVerifier(TOKENS))


@pytest.fixture
def store(services):
    return services.store


@pytest.fixture
def reconciler(services):
    return services.reconciler


@pytest.fixture
async def client(services):
    """HTTP client against the app with test services injected"""
    app.dependency_overrides[get_services] = lambda: services
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as test_client:
        yield test_client
    app.dependency_overrides.clear()
