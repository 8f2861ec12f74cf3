"""
Strict schemas for the Stripe objects and events the reconciler consumes.

Raw webhook JSON is decoded into one of the event variants below before any
field is read. Event types we do not handle decode to ``UnknownEvent``.
"""
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from pydantic import BaseModel, Field, TypeAdapter, field_validator, model_validator


def _expandable_id(value: Any) -> Any:
    """Stripe returns either an id or the expanded object for related resources."""
    if isinstance(value, dict):
        return value.get("id")
    return value


class Recurring(BaseModel):
    interval: Optional[str] = None


class Price(BaseModel):
    id: Optional[str] = None
    recurring: Optional[Recurring] = None


class SubscriptionItem(BaseModel):
    price: Optional[Price] = None
    current_period_end: Optional[int] = None


class SubscriptionItemList(BaseModel):
    data: List[SubscriptionItem] = []


class StripeSubscription(BaseModel):
    """Snapshot of a processor-side subscription. Never persisted as-is."""
    id: str
    status: str
    cancel_at_period_end: bool = False
    current_period_end: Optional[int] = None
    customer: Optional[str] = None
    metadata: Dict[str, str] = {}
    line_items: SubscriptionItemList = Field(default_factory=SubscriptionItemList, alias="items")

    class Config:
        populate_by_name = True

    @field_validator("customer", mode="before")
    @classmethod
    def _customer_id(cls, value):
        return _expandable_id(value)

    @field_validator("metadata", mode="before")
    @classmethod
    def _none_metadata(cls, value):
        return value or {}

    @model_validator(mode="after")
    def _period_end_from_items(self):
        # Newer API versions only report the period end per item
        if self.current_period_end is None and self.line_items.data:
            self.current_period_end = self.line_items.data[0].current_period_end
        return self

    @property
    def interval(self) -> Optional[str]:
        if not self.line_items.data:
            return None
        price = self.line_items.data[0].price
        if price is None or price.recurring is None:
            return None
        return price.recurring.interval


class CheckoutSession(BaseModel):
    id: str
    mode: str
    subscription: Optional[str] = None
    customer: Optional[str] = None
    client_reference_id: Optional[str] = None
    metadata: Dict[str, str] = {}

    @field_validator("subscription", "customer", mode="before")
    @classmethod
    def _related_ids(cls, value):
        return _expandable_id(value)

    @field_validator("metadata", mode="before")
    @classmethod
    def _none_metadata(cls, value):
        return value or {}


class Invoice(BaseModel):
    id: Optional[str] = None
    customer: Optional[str] = None
    subscription: Optional[str] = None

    @field_validator("subscription", "customer", mode="before")
    @classmethod
    def _related_ids(cls, value):
        return _expandable_id(value)


class CheckoutSessionData(BaseModel):
    object: CheckoutSession


class SubscriptionData(BaseModel):
    object: StripeSubscription


class InvoiceData(BaseModel):
    object: Invoice


class CheckoutSessionCompleted(BaseModel):
    id: str
    type: Literal["checkout.session.completed"]
    data: CheckoutSessionData


class SubscriptionUpdated(BaseModel):
    id: str
    type: Literal["customer.subscription.updated"]
    data: SubscriptionData


class SubscriptionDeleted(BaseModel):
    id: str
    type: Literal["customer.subscription.deleted"]
    data: SubscriptionData


class InvoicePaymentFailed(BaseModel):
    id: str
    type: Literal["invoice.payment_failed"]
    data: InvoiceData


class UnknownEvent(BaseModel):
    id: Optional[str] = None
    type: str


KnownEvent = Annotated[
    Union[
        CheckoutSessionCompleted,
        SubscriptionUpdated,
        SubscriptionDeleted,
        InvoicePaymentFailed,
    ],
    Field(discriminator="type"),
]

StripeEvent = Union[
    CheckoutSessionCompleted,
    SubscriptionUpdated,
    SubscriptionDeleted,
    InvoicePaymentFailed,
    UnknownEvent,
]

HANDLED_EVENT_TYPES = frozenset({
    "checkout.session.completed",
    "customer.subscription.updated",
    "customer.subscription.deleted",
    "invoice.payment_failed",
})

_known_event_adapter = TypeAdapter(KnownEvent)


def parse_event(payload: Dict[str, Any]) -> StripeEvent:
    """
    Decode a verified webhook payload into its event variant.

    Raises pydantic.ValidationError when a handled event type does not match
    its schema.
    """
    if payload.get("type") in HANDLED_EVENT_TYPES:
        return _known_event_adapter.validate_python(payload)
    return UnknownEvent.model_validate(payload)
