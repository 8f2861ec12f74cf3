"""
Dependency objects shared by the request handlers.

Everything here is built once at startup (see ``main.lifespan``) and handed to
handlers through ``Depends(get_services)``.
"""
from dataclasses import dataclass
import logging

from fastapi import Request
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.core.config import Settings
from app.core.exceptions import ServiceNotConfiguredError
from app.services.billing_gateway import BillingSessionGateway
from app.services.identity import FirebaseIdentityVerifier, init_firebase
from app.services.reconciler import SubscriptionReconciler
from app.services.stripe_processor import StripeProcessor
from app.services.user_resolver import UserResolver
from app.services.user_store import UserStore

logger = logging.getLogger(__name__)


@dataclass
class Services:
    store: UserStore
    processor: StripeProcessor
    identity: FirebaseIdentityVerifier
    resolver: UserResolver
    reconciler: SubscriptionReconciler
    gateway: BillingSessionGateway


def build_services(
    settings: Settings,
    db: AsyncIOMotorDatabase,
    processor: StripeProcessor = None,
    identity: FirebaseIdentityVerifier = None,
) -> Services:
    store = UserStore(db, settings.USERS_COLLECTION)
    if processor is None:
        processor = StripeProcessor(
            settings.STRIPE_SECRET_KEY,
            settings.STRIPE_WEBHOOK_SECRET,
            settings.STRIPE_WEBHOOK_TOLERANCE,
        )
    if identity is None:
        identity = FirebaseIdentityVerifier(init_firebase(settings))
    resolver = UserResolver(store)
    return Services(
        store=store,
        processor=processor,
        identity=identity,
        resolver=resolver,
        reconciler=SubscriptionReconciler(store, processor, resolver),
        gateway=BillingSessionGateway(processor, store, settings.APP_URL),
    )


def get_services(request: Request) -> Services:
    services = getattr(request.app.state, "services", None)
    if services is None:
        logger.error("Request received before services were initialized")
        raise ServiceNotConfiguredError("Backend services")
    return services
