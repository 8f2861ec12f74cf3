"""
Work out which local user a Stripe object belongs to.

Subscriptions are resolved through an ordered fallback chain; each step runs
only when the previous one found nothing:

1. ``metadata.userId`` written at checkout time,
2. a user whose stored ``subscriptionId`` equals the subscription id,
3. a user whose stored ``subscriptionCustomerId`` equals the customer id.

Reverse lookups read at most two documents. Two hits are reported as
ambiguous instead of silently picking one of them.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional
import logging

from app.schemas.stripe_events import CheckoutSession, StripeSubscription
from app.services.user_store import UserStore

logger = logging.getLogger(__name__)

USER_ID_METADATA_KEY = "userId"


class ResolutionSource(str, Enum):
    METADATA = "metadata"
    CLIENT_REFERENCE = "client_reference_id"
    SUBSCRIPTION_ID = "subscriptionId"
    CUSTOMER_ID = "subscriptionCustomerId"


@dataclass(frozen=True)
class Resolution:
    user_id: Optional[str] = None
    source: Optional[ResolutionSource] = None
    candidates: List[str] = field(default_factory=list)

    @property
    def found(self) -> bool:
        return self.user_id is not None

    @property
    def ambiguous(self) -> bool:
        return len(self.candidates) > 1

    def describe(self) -> str:
        if self.found:
            return f"user {self.user_id} (via {self.source.value})"
        if self.ambiguous:
            return f"ambiguous match on {self.source.value}: {self.candidates}"
        return "no matching user"


NOT_FOUND = Resolution()


class UserResolver:
    def __init__(self, store: UserStore):
        self.store = store

    def resolve_session(self, session: CheckoutSession) -> Resolution:
        """Checkout sessions carry the user id directly; no lookup needed."""
        user_id = session.metadata.get(USER_ID_METADATA_KEY)
        if user_id:
            return Resolution(user_id=user_id, source=ResolutionSource.METADATA)
        if session.client_reference_id:
            return Resolution(
                user_id=session.client_reference_id,
                source=ResolutionSource.CLIENT_REFERENCE
            )
        return NOT_FOUND

    async def resolve_subscription(self, subscription: StripeSubscription) -> Resolution:
        user_id = subscription.metadata.get(USER_ID_METADATA_KEY)
        if user_id:
            return Resolution(user_id=user_id, source=ResolutionSource.METADATA)

        resolution = await self._lookup(ResolutionSource.SUBSCRIPTION_ID, subscription.id)
        if resolution.found or resolution.ambiguous:
            return resolution

        if subscription.customer:
            return await self._lookup(ResolutionSource.CUSTOMER_ID, subscription.customer)
        return NOT_FOUND

    async def _lookup(self, source: ResolutionSource, value: str) -> Resolution:
        user_ids = await self.store.find_user_ids(source.value, value, limit=2)
        if len(user_ids) == 1:
            logger.info(f"Found user {user_ids[0]} by {source.value}")
            return Resolution(user_id=user_ids[0], source=source, candidates=user_ids)
        if len(user_ids) > 1:
            logger.warning(f"Multiple users share {source.value}={value}: {user_ids}")
            return Resolution(source=source, candidates=user_ids)
        return NOT_FOUND
