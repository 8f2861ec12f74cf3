import json
import logging
from typing import Any, Dict, Optional

import stripe
from starlette.concurrency import run_in_threadpool

from app.core.exceptions import (
    InvalidPayloadError,
    ServiceNotConfiguredError,
    UpstreamProcessorError,
    WebhookSignatureError,
)
from app.schemas.stripe_events import StripeSubscription

logger = logging.getLogger(__name__)


def _to_dict(stripe_object: Any) -> Dict[str, Any]:
    if hasattr(stripe_object, "to_dict"):
        return stripe_object.to_dict()
    return dict(stripe_object)


class StripeProcessor:
    """
    Thin client over the Stripe API.

    Holds its own keys instead of the module-level ``stripe.api_key`` so the
    service can build exactly one configured instance at startup. Blocking
    SDK calls run in the threadpool.
    """

    def __init__(
        self,
        secret_key: Optional[str],
        webhook_secret: Optional[str],
        webhook_tolerance: int = stripe.Webhook.DEFAULT_TOLERANCE,
    ):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.webhook_tolerance = webhook_tolerance

    def _require_secret_key(self) -> str:
        if not self.secret_key:
            logger.error("STRIPE_SECRET_KEY is not set")
            raise ServiceNotConfiguredError("Stripe API key")
        return self.secret_key

    def verify_webhook(self, payload: bytes, sig_header: Optional[str]) -> Dict[str, Any]:
        """
        Authenticate a raw webhook body against its ``stripe-signature`` header
        and return the decoded JSON. Runs before any event field is read.
        """
        if not sig_header:
            raise WebhookSignatureError("No signature")
        if not self.webhook_secret:
            logger.error("STRIPE_WEBHOOK_SECRET is not set")
            raise ServiceNotConfiguredError("Webhook secret")

        try:
            body = payload.decode("utf-8")
        except UnicodeDecodeError:
            raise InvalidPayloadError()

        try:
            stripe.WebhookSignature.verify_header(
                body, sig_header, self.webhook_secret, self.webhook_tolerance
            )
        except stripe.SignatureVerificationError as e:
            logger.warning(f"Webhook signature verification failed: {e}")
            raise WebhookSignatureError()

        try:
            event = json.loads(body)
        except ValueError:
            raise InvalidPayloadError()
        if not isinstance(event, dict) or "type" not in event:
            raise InvalidPayloadError("Payload is not an event")
        return event

    async def retrieve_subscription(self, subscription_id: str) -> StripeSubscription:
        """Fetch the live subscription rather than trusting event payloads."""
        api_key = self._require_secret_key()
        try:
            subscription = await run_in_threadpool(
                stripe.Subscription.retrieve, subscription_id, api_key=api_key
            )
        except stripe.StripeError as e:
            logger.error(f"Error retrieving subscription {subscription_id}: {e}")
            raise UpstreamProcessorError(str(e))
        return StripeSubscription.model_validate(_to_dict(subscription))

    async def create_checkout_session(self, params: Dict[str, Any]) -> str:
        api_key = self._require_secret_key()
        try:
            session = await run_in_threadpool(
                stripe.checkout.Session.create, api_key=api_key, **params
            )
        except stripe.StripeError as e:
            logger.error(
                f"Error creating checkout session for user "
                f"{params.get('client_reference_id')}: {e}"
            )
            raise UpstreamProcessorError(str(e))
        return session.url

    async def create_portal_session(self, customer_id: str, return_url: str) -> str:
        api_key = self._require_secret_key()
        try:
            session = await run_in_threadpool(
                stripe.billing_portal.Session.create,
                api_key=api_key,
                customer=customer_id,
                return_url=return_url,
            )
        except stripe.StripeError as e:
            logger.error(f"Error creating portal session for customer {customer_id}: {e}")
            raise UpstreamProcessorError(str(e))
        return session.url
