from fastapi import APIRouter, Depends
from app.api.deps import Services, get_services
from app.api.v1.auth import get_current_user_id
from app.schemas.subscription import (
    EntitlementsResponse,
    ResourceEntitlement,
    SubscriptionRecord,
    SubscriptionResponse,
)
from app.services import entitlements
from app.services.entitlements import ResourceKind

router = APIRouter(prefix="/subscription", tags=["Subscription"])


def evaluate_entitlements(record: SubscriptionRecord) -> EntitlementsResponse:
    premium = entitlements.is_premium(record)

    def resource(kind: ResourceKind) -> ResourceEntitlement:
        # Counts live client-side, so report the allowance from zero
        return ResourceEntitlement(
            limit=None if premium else entitlements.free_limit(kind),
            remaining=entitlements.remaining(kind, 0, record),
        )

    return EntitlementsResponse(
        isPremium=premium,
        goals=resource(ResourceKind.GOALS),
        trackers=resource(ResourceKind.TRACKERS),
        journalEditDays=None if premium else entitlements.FREE_JOURNAL_EDIT_DAYS,
    )


@router.get("", response_model=SubscriptionResponse)
async def get_subscription(
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
):
    """Get the caller's subscription record, creating a free one on first read."""
    record = await services.store.get_or_create_record(user_id)
    return SubscriptionResponse(subscription=record, entitlements=evaluate_entitlements(record))
