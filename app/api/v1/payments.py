from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from app.api.deps import Services, get_services
from app.api.v1.auth import get_current_user_id, require_same_user
from app.core.exceptions import InvalidPayloadError, MissingFieldsError, UpstreamProcessorError
from app.schemas.stripe_events import parse_event
from app.schemas.subscription import (
    CheckoutSessionRequest,
    PortalSessionRequest,
    SessionUrlResponse,
    SyncResult,
    SyncSubscriptionRequest,
)
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/create-checkout-session", response_model=SessionUrlResponse)
async def create_checkout_session(
    request: CheckoutSessionRequest,
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
):
    if not request.priceId or not request.userId or not request.userEmail:
        raise MissingFieldsError()
    require_same_user(user_id, request.userId)

    url = await services.gateway.create_checkout_session(
        request.priceId, request.userId, request.userEmail
    )
    return {"url": url}


@router.post("/create-portal-session", response_model=SessionUrlResponse)
async def create_portal_session(
    request: PortalSessionRequest,
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
):
    url = await services.gateway.create_portal_session(request.customerId, user_id)
    return {"url": url}


@router.post("/sync-subscription", response_model=SyncResult)
async def sync_subscription(
    request: SyncSubscriptionRequest,
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
):
    """Pull the subscription state from Stripe when a webhook may have been missed."""
    if not request.userId:
        raise MissingFieldsError("Missing userId")
    require_same_user(user_id, request.userId)

    return await services.reconciler.sync_from_processor(request.userId)


@router.post("/webhook", include_in_schema=False)
async def stripe_webhook(request: Request, services: Services = Depends(get_services)):
    """
    Handle Stripe webhook events.

    The signature is verified before the body is decoded. Once verified, every
    path answers with a structured response: events for users we cannot
    resolve are acknowledged so Stripe does not retry them forever, while
    processor or database failures return 500 so Stripe redelivers.
    """
    payload = await request.body()
    raw_event = services.processor.verify_webhook(
        payload, request.headers.get("stripe-signature")
    )

    try:
        event = parse_event(raw_event)
    except ValidationError as e:
        logger.error(f"Malformed {raw_event.get('type')} event {raw_event.get('id')}: {e}")
        raise InvalidPayloadError("Malformed event")

    try:
        await services.reconciler.reconcile(event)
    except UpstreamProcessorError as e:
        logger.error(f"Processor error while handling {event.type} ({event.id}): {e.detail}")
        return JSONResponse(status_code=e.status_code, content={"error": e.detail})
    except Exception as e:
        logger.exception(f"Webhook error while handling {event.type} ({event.id}): {e}")
        return JSONResponse(status_code=500, content={"error": "Webhook handling failed"})

    return {"received": True}
