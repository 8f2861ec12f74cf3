"""
Unit tests for UserResolver's fallback chain
"""
import pytest

from app.schemas.stripe_events import CheckoutSession, StripeSubscription
from app.schemas.subscription import SubscriptionPatch
from app.services.user_resolver import ResolutionSource
from tests.conftest import checkout_session_object, subscription_object


def _subscription(**kwargs) -> StripeSubscription:
    return StripeSubscription.model_validate(subscription_object(**kwargs))


@pytest.mark.asyncio
async def test_metadata_wins_over_customer_lookup(services, store):
    """
    Test that correlation metadata takes precedence over reverse lookups.

    bob's stored record matches the customer id, but the subscription was
    created for alice.
    """
    await store.merge("bob", SubscriptionPatch(customer_id="cus_shared"))
    subscription = _subscription(customer="cus_shared", metadata={"userId": "alice"})

    resolution = await services.resolver.resolve_subscription(subscription)

    assert resolution.user_id == "alice"
    assert resolution.source == ResolutionSource.METADATA


@pytest.mark.asyncio
async def test_subscription_id_lookup_before_customer_lookup(services, store):
    await store.merge("alice", SubscriptionPatch(subscription_id="sub_123"))
    await store.merge("bob", SubscriptionPatch(customer_id="cus_123"))

    resolution = await services.resolver.resolve_subscription(_subscription(id="sub_123", customer="cus_123"))

    assert resolution.user_id == "alice"
    assert resolution.source == ResolutionSource.SUBSCRIPTION_ID


@pytest.mark.asyncio
async def test_customer_id_lookup_is_last_resort(services, store):
    await store.merge("bob", SubscriptionPatch(customer_id="cus_bob"))

    resolution = await services.resolver.resolve_subscription(_subscription(id="sub_new", customer="cus_bob"))

    assert resolution.user_id == "bob"
    assert resolution.source == ResolutionSource.CUSTOMER_ID


@pytest.mark.asyncio
async def test_expanded_customer_object_is_used(services, store):
    await store.merge("bob", SubscriptionPatch(customer_id="cus_bob"))
    payload = subscription_object(id="sub_new")
    payload["customer"] = {"id": "cus_bob", "object": "customer"}

    resolution = await services.resolver.resolve_subscription(StripeSubscription.model_validate(payload))

    assert resolution.user_id == "bob"


@pytest.mark.asyncio
async def test_not_found(services):
    resolution = await services.resolver.resolve_subscription(_subscription(customer="cus_nobody"))

    assert resolution.found is False
    assert resolution.ambiguous is False


@pytest.mark.asyncio
async def test_duplicate_correlation_keys_are_ambiguous(services, store):
    await store.merge("alice", SubscriptionPatch(customer_id="cus_dup"))
    await store.merge("bob", SubscriptionPatch(customer_id="cus_dup"))

    resolution = await services.resolver.resolve_subscription(_subscription(id="sub_x", customer="cus_dup"))

    assert resolution.found is False
    assert resolution.ambiguous is True
    assert sorted(resolution.candidates) == ["alice", "bob"]
    assert resolution.source == ResolutionSource.CUSTOMER_ID


def test_session_resolution_order(services):
    resolver = services.resolver

    both = CheckoutSession.model_validate(checkout_session_object(user_id="alice", client_reference_id="bob"))
    reference_only = CheckoutSession.model_validate(checkout_session_object(user_id=None, client_reference_id="bob"))
    neither = CheckoutSession.model_validate(checkout_session_object(user_id=None))

    assert resolver.resolve_session(both).user_id == "alice"
    assert resolver.resolve_session(reference_only).source == ResolutionSource.CLIENT_REFERENCE
    assert resolver.resolve_session(neither).found is False
