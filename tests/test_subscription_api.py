"""
Integration tests for reading the caller's subscription and entitlements
"""
import pytest

from app.schemas.subscription import PlanType, SubscriptionPatch, SubscriptionStatus, SubscriptionTier
from tests.conftest import auth_headers

SUBSCRIPTION_URL = "/api/v1/subscription"


@pytest.mark.asyncio
async def test_first_read_creates_free_record(client, db):
    response = await client.get(SUBSCRIPTION_URL, headers=auth_headers())

    assert response.status_code == 200
    body = response.json()
    assert body["subscription"]["subscriptionTier"] == "free"
    assert body["subscription"]["subscriptionStatus"] == "none"
    assert body["entitlements"] == {
        "isPremium": False,
        "goals": {"limit": 3, "remaining": 3},
        "trackers": {"limit": 2, "remaining": 2},
        "journalEditDays": 14,
    }
    stored = await db["users"].find_one({"_id": "alice"})
    assert stored["subscriptionTier"] == "free"


@pytest.mark.asyncio
async def test_existing_profile_fields_survive_first_read(client, db):
    await db["users"].insert_one({"_id": "alice", "displayName": "Alice", "xp": 120})

    await client.get(SUBSCRIPTION_URL, headers=auth_headers())

    stored = await db["users"].find_one({"_id": "alice"})
    assert stored["displayName"] == "Alice"
    assert stored["xp"] == 120


@pytest.mark.asyncio
async def test_lifetime_entitlements(client, store):
    await store.merge("alice", SubscriptionPatch(
        tier=SubscriptionTier.PREMIUM,
        status=SubscriptionStatus.ACTIVE,
        plan_type=PlanType.LIFETIME,
        subscription_id="cs_life",
        end_date=None,
    ))

    response = await client.get(SUBSCRIPTION_URL, headers=auth_headers())

    body = response.json()
    assert body["subscription"]["subscriptionPlanType"] == "Lifetime"
    assert body["subscription"]["subscriptionEndDate"] is None
    assert body["entitlements"]["isPremium"] is True
    assert body["entitlements"]["goals"] == {"limit": None, "remaining": None}


@pytest.mark.asyncio
async def test_requires_token(client):
    response = await client.get(SUBSCRIPTION_URL)

    assert response.status_code == 401
    assert response.json() == {"error": "Missing or invalid authorization header"}


@pytest.mark.asyncio
async def test_verify_token(client):
    response = await client.get("/api/v1/auth/verify", headers=auth_headers("token-bob"))

    assert response.json() == {"valid": True, "user_id": "bob"}
