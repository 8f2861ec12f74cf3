"""
Subscription reconciliation.

Merges Stripe's view of a subscription into the local subscription record.
Webhooks can arrive late, twice or out of order, so handlers re-fetch the
live subscription where it matters and only ever write absolute values:
replaying an event converges on the same record.
"""
from dataclasses import dataclass
from typing import Optional
import logging

from app.core.exceptions import NotFoundError
from app.schemas.stripe_events import (
    CheckoutSessionCompleted,
    InvoicePaymentFailed,
    StripeEvent,
    StripeSubscription,
    SubscriptionDeleted,
    SubscriptionUpdated,
)
from app.schemas.subscription import (
    PlanType,
    SubscriptionPatch,
    SubscriptionStatus,
    SubscriptionTier,
    SyncResult,
)
from app.services.stripe_processor import StripeProcessor
from app.services.user_resolver import Resolution, UserResolver
from app.services.user_store import UserStore

logger = logging.getLogger(__name__)

PLAN_TYPE_BY_INTERVAL = {
    "month": PlanType.MONTHLY,
    "year": PlanType.YEARLY,
}


def derive_status(processor_status: str, cancel_at_period_end: bool) -> SubscriptionStatus:
    """Single source of truth for mapping Stripe state onto the local status."""
    if cancel_at_period_end or processor_status == "canceled":
        return SubscriptionStatus.CANCELED
    if processor_status == "active":
        return SubscriptionStatus.ACTIVE
    return SubscriptionStatus.EXPIRED


def plan_type_for_interval(interval: Optional[str]) -> PlanType:
    return PLAN_TYPE_BY_INTERVAL.get(interval, PlanType.SUBSCRIPTION)


def period_end_millis(period_end: Optional[int]) -> Optional[int]:
    if period_end is None:
        return None
    return period_end * 1000


@dataclass(frozen=True)
class ReconcileOutcome:
    event_type: str
    applied: bool
    user_id: Optional[str] = None
    reason: Optional[str] = None


class SubscriptionReconciler:
    def __init__(self, store: UserStore, processor: StripeProcessor, resolver: UserResolver):
        self.store = store
        self.processor = processor
        self.resolver = resolver

    async def reconcile(self, event: StripeEvent) -> ReconcileOutcome:
        """Apply one decoded event. Unresolvable users are skipped, not raised."""
        if isinstance(event, CheckoutSessionCompleted):
            outcome = await self._checkout_completed(event)
        elif isinstance(event, SubscriptionUpdated):
            outcome = await self._subscription_updated(event)
        elif isinstance(event, SubscriptionDeleted):
            outcome = await self._subscription_deleted(event)
        elif isinstance(event, InvoicePaymentFailed):
            invoice = event.data.object
            # TODO: notify the user once transactional email is wired up
            logger.warning(
                f"Payment failed for invoice {invoice.id} "
                f"(customer {invoice.customer}, subscription {invoice.subscription})"
            )
            outcome = ReconcileOutcome(event.type, applied=False, reason="logged only")
        else:
            outcome = ReconcileOutcome(event.type, applied=False, reason="unhandled event type")

        if outcome.applied:
            logger.info(f"Reconciled {event.type} ({event.id}) for user {outcome.user_id}")
        else:
            logger.info(f"Skipped {event.type} ({event.id}): {outcome.reason}")
        return outcome

    async def sync_from_processor(self, user_id: str) -> SyncResult:
        """Self-healing path: pull the subscription from Stripe for a user on demand."""
        record = await self.store.get_record(user_id)
        if record is None:
            raise NotFoundError("User not found")
        if not record.subscription_id:
            raise NotFoundError("No subscription ID found for user")

        if record.is_lifetime:
            # Lifetime purchases are one-off payments with nothing to poll
            return SyncResult(status=record.status, endDate=None)

        subscription = await self.processor.retrieve_subscription(record.subscription_id)
        patch = self._status_patch(subscription)
        await self.store.merge(user_id, patch)
        logger.info(f"Synced subscription for user {user_id}: {patch.status.value}")
        return SyncResult(status=patch.status, endDate=patch.end_date)

    def _status_patch(self, subscription: StripeSubscription) -> SubscriptionPatch:
        return SubscriptionPatch(
            status=derive_status(subscription.status, subscription.cancel_at_period_end),
            end_date=period_end_millis(subscription.current_period_end),
        )

    async def _checkout_completed(self, event: CheckoutSessionCompleted) -> ReconcileOutcome:
        session = event.data.object
        resolution = self.resolver.resolve_session(session)
        if not resolution.found:
            return self._unresolved(event, resolution)
        user_id = resolution.user_id

        if session.mode == "subscription":
            if not session.subscription:
                return ReconcileOutcome(
                    event.type, applied=False, user_id=user_id,
                    reason="subscription checkout without a subscription id"
                )
            # The session payload can predate the subscription's first period
            subscription = await self.processor.retrieve_subscription(session.subscription)
            patch = SubscriptionPatch(
                tier=SubscriptionTier.PREMIUM,
                status=SubscriptionStatus.ACTIVE,
                subscription_id=subscription.id,
                plan_type=plan_type_for_interval(subscription.interval),
                end_date=period_end_millis(subscription.current_period_end),
            )
            customer_id = subscription.customer or session.customer
        elif session.mode == "payment":
            patch = SubscriptionPatch(
                tier=SubscriptionTier.PREMIUM,
                status=SubscriptionStatus.ACTIVE,
                subscription_id=session.id,
                plan_type=PlanType.LIFETIME,
                end_date=None,
            )
            customer_id = session.customer
        else:
            return ReconcileOutcome(
                event.type, applied=False, user_id=user_id,
                reason=f"unsupported checkout mode {session.mode}"
            )

        # Never overwrite a known customer id with nothing
        if customer_id:
            patch.customer_id = customer_id

        await self.store.merge(user_id, patch)
        logger.info(f"Activated premium {patch.plan_type.value} for user {user_id}")
        return ReconcileOutcome(event.type, applied=True, user_id=user_id)

    async def _subscription_updated(self, event: SubscriptionUpdated) -> ReconcileOutcome:
        # Rapid successive updates can deliver stale intermediate payloads
        subscription = await self.processor.retrieve_subscription(event.data.object.id)
        resolution = await self.resolver.resolve_subscription(subscription)
        if not resolution.found:
            return self._unresolved(event, resolution)

        skipped = await self._lifetime_guard(event, resolution.user_id, subscription.id)
        if skipped:
            return skipped

        patch = self._status_patch(subscription)
        await self.store.merge(resolution.user_id, patch)
        logger.info(
            f"Updated subscription for user {resolution.user_id}, status: {patch.status.value}, "
            f"cancel_at_period_end: {subscription.cancel_at_period_end}"
        )
        return ReconcileOutcome(event.type, applied=True, user_id=resolution.user_id)

    async def _subscription_deleted(self, event: SubscriptionDeleted) -> ReconcileOutcome:
        subscription = event.data.object
        resolution = await self.resolver.resolve_subscription(subscription)
        if not resolution.found:
            return self._unresolved(event, resolution)

        skipped = await self._lifetime_guard(event, resolution.user_id, subscription.id)
        if skipped:
            return skipped

        await self.store.merge(resolution.user_id, SubscriptionPatch(
            tier=SubscriptionTier.FREE,
            status=SubscriptionStatus.EXPIRED,
            subscription_id=None,
            end_date=None,
        ))
        logger.info(f"Downgraded user to free: {resolution.user_id}")
        return ReconcileOutcome(event.type, applied=True, user_id=resolution.user_id)

    async def _lifetime_guard(
        self, event: StripeEvent, user_id: str, subscription_id: str
    ) -> Optional[ReconcileOutcome]:
        """A leftover recurring subscription must not touch a lifetime purchase."""
        record = await self.store.get_record(user_id)
        if record is not None and record.is_lifetime and record.subscription_id != subscription_id:
            logger.info(
                f"Ignoring {event.type} for subscription {subscription_id}: "
                f"user {user_id} holds a lifetime purchase"
            )
            return ReconcileOutcome(
                event.type, applied=False, user_id=user_id, reason="lifetime purchase on file"
            )
        return None

    def _unresolved(self, event: StripeEvent, resolution: Resolution) -> ReconcileOutcome:
        logger.error(f"Could not resolve user for {event.type} ({event.id}): {resolution.describe()}")
        reason = "ambiguous user" if resolution.ambiguous else "user not found"
        return ReconcileOutcome(event.type, applied=False, reason=reason)
