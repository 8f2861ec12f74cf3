import logging
from typing import Any, Dict

from app.core.exceptions import AuthorizationError, MissingFieldsError
from app.services.stripe_processor import StripeProcessor
from app.services.user_resolver import USER_ID_METADATA_KEY
from app.services.user_store import UserStore

logger = logging.getLogger(__name__)

# Price ids containing this marker are sold as a one-time lifetime purchase
LIFETIME_PRICE_MARKER = "lifetime"


def checkout_mode_for_price(price_id: str) -> str:
    return "payment" if LIFETIME_PRICE_MARKER in price_id else "subscription"


class BillingSessionGateway:
    """Creates hosted checkout and billing-portal sessions for local users."""

    def __init__(self, processor: StripeProcessor, store: UserStore, app_url: str):
        self.processor = processor
        self.store = store
        self.app_url = app_url.rstrip("/")

    def checkout_params(self, price_id: str, user_id: str, user_email: str) -> Dict[str, Any]:
        """
        Build the Stripe checkout request.

        The user id goes into the session metadata, the client reference and,
        for recurring plans, the subscription's own metadata so that later
        subscription events resolve without a reverse lookup.
        """
        mode = checkout_mode_for_price(price_id)
        params = {
            "mode": mode,
            "payment_method_types": ["card"],
            "line_items": [{"price": price_id, "quantity": 1}],
            "customer_email": user_email,
            "client_reference_id": user_id,
            "success_url": f"{self.app_url}/subscription/success?session_id={{CHECKOUT_SESSION_ID}}",
            "cancel_url": f"{self.app_url}/subscription/cancel",
            "metadata": {USER_ID_METADATA_KEY: user_id},
        }
        if mode == "subscription":
            params["subscription_data"] = {"metadata": {USER_ID_METADATA_KEY: user_id}}
        else:
            # One-off payments only get a customer object when asked for one
            params["customer_creation"] = "always"
        return params

    async def create_checkout_session(self, price_id: str, user_id: str, user_email: str) -> str:
        if not price_id or not user_id or not user_email:
            raise MissingFieldsError()

        params = self.checkout_params(price_id, user_id, user_email)
        url = await self.processor.create_checkout_session(params)
        logger.info(f"Created {params['mode']} checkout session for user {user_id}")
        return url

    async def create_portal_session(self, customer_id: str, caller_id: str) -> str:
        """Open the billing portal, but only for the caller's own customer."""
        if not customer_id:
            raise MissingFieldsError("Missing customerId")

        record = await self.store.get_record(caller_id)
        if record is None or record.customer_id != customer_id:
            logger.warning(f"User {caller_id} requested a portal session for customer {customer_id}")
            raise AuthorizationError("Customer does not belong to the authenticated user")

        url = await self.processor.create_portal_session(customer_id, f"{self.app_url}/settings")
        logger.info(f"Created billing portal session for user {caller_id}")
        return url
