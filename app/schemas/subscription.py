from enum import Enum
from typing import Any, Dict, Optional
from pydantic import BaseModel, EmailStr, Field


class SubscriptionTier(str, Enum):
    FREE = "free"
    PREMIUM = "premium"


class SubscriptionStatus(str, Enum):
    NONE = "none"
    ACTIVE = "active"
    CANCELED = "canceled"
    EXPIRED = "expired"


class PlanType(str, Enum):
    MONTHLY = "Monthly"
    YEARLY = "Yearly"
    LIFETIME = "Lifetime"
    SUBSCRIPTION = "Subscription"


class SubscriptionRecord(BaseModel):
    """Subscription fields stored flat on the user's profile document."""
    tier: SubscriptionTier = Field(default=SubscriptionTier.FREE, alias="subscriptionTier")
    status: SubscriptionStatus = Field(default=SubscriptionStatus.NONE, alias="subscriptionStatus")
    subscription_id: Optional[str] = Field(default=None, alias="subscriptionId")
    plan_type: Optional[PlanType] = Field(default=None, alias="subscriptionPlanType")
    customer_id: Optional[str] = Field(default=None, alias="subscriptionCustomerId")
    # Milliseconds since epoch; None means lifetime or not yet known
    end_date: Optional[int] = Field(default=None, alias="subscriptionEndDate")

    class Config:
        populate_by_name = True

    @property
    def is_lifetime(self) -> bool:
        return self.plan_type == PlanType.LIFETIME


class SubscriptionPatch(SubscriptionRecord):
    """
    Partial update of a SubscriptionRecord.

    Only fields passed explicitly end up in the document merge, so an
    explicit None clears a field while an omitted one is left untouched.
    """
    tier: Optional[SubscriptionTier] = Field(default=None, alias="subscriptionTier")
    status: Optional[SubscriptionStatus] = Field(default=None, alias="subscriptionStatus")

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_unset=True, mode="json")


class CheckoutSessionRequest(BaseModel):
    priceId: Optional[str] = None
    userId: Optional[str] = None
    userEmail: Optional[EmailStr] = None


class PortalSessionRequest(BaseModel):
    customerId: Optional[str] = None


class SyncSubscriptionRequest(BaseModel):
    userId: Optional[str] = None


class SessionUrlResponse(BaseModel):
    url: str


class SyncResult(BaseModel):
    """Outcome of an on-demand sync, as returned to the caller."""
    synced: bool = True
    status: SubscriptionStatus
    endDate: Optional[int] = None


class ResourceEntitlement(BaseModel):
    limit: Optional[int] = None  # None means unbounded
    remaining: Optional[int] = None


class EntitlementsResponse(BaseModel):
    isPremium: bool
    goals: ResourceEntitlement
    trackers: ResourceEntitlement
    journalEditDays: Optional[int] = None


class SubscriptionResponse(BaseModel):
    subscription: SubscriptionRecord
    entitlements: EntitlementsResponse
