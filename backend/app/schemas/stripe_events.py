"""Pydantic views over Stripe webhook payloads.

Only the fields the reconciler reads are declared; everything else Stripe
sends is ignored. Expandable references (customer, product, subscription)
are accepted either as an id string or as an expanded object.

Both payload generations are understood: older API versions carry period
bounds on the subscription and `subscription` on the invoice, newer ones move
them to the subscription item and to `invoice.parent.subscription_details`.
"""

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, PrivateAttr, field_validator

# Metadata keys set by the quote flow when it opens a checkout session
PARTNER_METADATA_KEYS = ("partnerId", "userId")
QUOTE_METADATA_KEY = "quoteId"
CAMERA_COUNT_METADATA_KEY = "cameraCount"
STARTER_KIT_METADATA_KEY = "includesStarterKit"

PAID_CHECKOUT_STATUSES = frozenset({"paid", "no_payment_required"})


class EventType(StrEnum):
    """Stripe event types the engine reconciles. Anything else is recorded and ignored."""

    SUBSCRIPTION_CREATED = "customer.subscription.created"
    SUBSCRIPTION_UPDATED = "customer.subscription.updated"
    SUBSCRIPTION_DELETED = "customer.subscription.deleted"
    CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"
    INVOICE_PAYMENT_SUCCEEDED = "invoice.payment_succeeded"
    INVOICE_PAYMENT_FAILED = "invoice.payment_failed"


def ref_id(value: str | dict[str, Any] | None) -> str | None:
    """Return the id of an expandable Stripe reference."""
    if isinstance(value, dict):
        return value.get("id")
    return value


def partner_from_metadata(metadata: dict[str, Any]) -> str | None:
    for key in PARTNER_METADATA_KEYS:
        if metadata.get(key):
            return str(metadata[key])
    return None


class StripeObject(BaseModel):
    model_config = ConfigDict(extra="ignore")


class EventData(StripeObject):
    object: dict[str, Any]


class StripeEvent(StripeObject):
    """Event envelope: id, type, provider timestamp, and the raw event body."""

    id: str
    type: str
    created: int | None = None
    data: EventData

    _raw: dict[str, Any] = PrivateAttr(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "StripeEvent":
        event = cls.model_validate(payload)
        event._raw = payload
        return event

    @property
    def raw(self) -> dict[str, Any]:
        return self._raw

    @property
    def object(self) -> dict[str, Any]:
        return self.data.object


# ── customer.subscription.* ─────────────────────────────────────────


class Recurring(StripeObject):
    interval: str | None = None


class Price(StripeObject):
    id: str
    product: str | dict[str, Any] | None = None
    unit_amount: int | None = None
    recurring: Recurring | None = None


class Plan(StripeObject):
    id: str
    amount: int | None = None
    interval: str | None = None
    product: str | dict[str, Any] | None = None


class SubscriptionItem(StripeObject):
    price: Price | None = None
    quantity: int | None = None
    current_period_start: int | None = None
    current_period_end: int | None = None


class SubscriptionItemList(StripeObject):
    data: list[SubscriptionItem] = []


class CancellationDetails(StripeObject):
    reason: str | None = None
    comment: str | None = None


class SubscriptionPayload(StripeObject):
    id: str
    status: str
    customer: str | dict[str, Any] | None = None
    currency: str | None = None
    plan: Plan | None = None
    items: SubscriptionItemList | None = None
    current_period_start: int | None = None
    current_period_end: int | None = None
    cancel_at_period_end: bool = False
    cancellation_details: CancellationDetails | None = None
    metadata: dict[str, Any] = {}
    start_date: int | None = None
    ended_at: int | None = None
    canceled_at: int | None = None

    @field_validator("metadata", mode="before")
    @classmethod
    def _metadata_default(cls, value):
        return value or {}

    @property
    def first_item(self) -> SubscriptionItem | None:
        if self.items and self.items.data:
            return self.items.data[0]
        return None

    @property
    def price_id(self) -> str | None:
        item = self.first_item
        if item and item.price:
            return item.price.id
        return self.plan.id if self.plan else None

    @property
    def product_id(self) -> str | None:
        item = self.first_item
        if item and item.price and item.price.product:
            return ref_id(item.price.product)
        return ref_id(self.plan.product) if self.plan else None

    @property
    def interval(self) -> str | None:
        if self.plan and self.plan.interval:
            return self.plan.interval
        item = self.first_item
        if item and item.price and item.price.recurring:
            return item.price.recurring.interval
        return None

    @property
    def amount(self) -> int | None:
        if self.plan and self.plan.amount is not None:
            return self.plan.amount
        item = self.first_item
        if item and item.price and item.price.unit_amount is not None:
            return item.price.unit_amount * (item.quantity or 1)
        return None

    @property
    def quantity(self) -> int | None:
        item = self.first_item
        return item.quantity if item else None

    @property
    def period_start(self) -> int | None:
        if self.current_period_start is not None:
            return self.current_period_start
        item = self.first_item
        return item.current_period_start if item else None

    @property
    def period_end(self) -> int | None:
        if self.current_period_end is not None:
            return self.current_period_end
        item = self.first_item
        return item.current_period_end if item else None

    @property
    def partner_id(self) -> str | None:
        return partner_from_metadata(self.metadata)


# ── checkout.session.completed ──────────────────────────────────────


class CustomerDetails(StripeObject):
    name: str | None = None
    email: str | None = None


class CheckoutSessionPayload(StripeObject):
    id: str
    mode: str | None = None
    subscription: str | dict[str, Any] | None = None
    payment_status: str | None = None
    customer: str | dict[str, Any] | None = None
    customer_email: str | None = None
    customer_details: CustomerDetails | None = None
    metadata: dict[str, Any] = {}

    @field_validator("metadata", mode="before")
    @classmethod
    def _metadata_default(cls, value):
        return value or {}

    @property
    def subscription_id(self) -> str | None:
        return ref_id(self.subscription)

    @property
    def is_subscription_checkout(self) -> bool:
        return self.mode == "subscription" and self.subscription_id is not None

    @property
    def is_paid(self) -> bool:
        return self.payment_status in PAID_CHECKOUT_STATUSES

    @property
    def customer_name(self) -> str | None:
        return self.customer_details.name if self.customer_details else None

    @property
    def buyer_email(self) -> str | None:
        if self.customer_details and self.customer_details.email:
            return self.customer_details.email
        return self.customer_email

    @property
    def partner_id(self) -> str | None:
        return partner_from_metadata(self.metadata)

    @property
    def quote_id(self) -> str | None:
        return self.metadata.get(QUOTE_METADATA_KEY) or None

    @property
    def camera_count(self) -> int | None:
        raw = self.metadata.get(CAMERA_COUNT_METADATA_KEY)
        if raw is None:
            return None
        try:
            return int(raw)
        except (TypeError, ValueError):
            return None

    @property
    def includes_starter_kit(self) -> bool | None:
        raw = self.metadata.get(STARTER_KIT_METADATA_KEY)
        if raw is None:
            return None
        return str(raw).lower() == "true"


# ── invoice.payment_* ───────────────────────────────────────────────


class SubscriptionDetails(StripeObject):
    subscription: str | dict[str, Any] | None = None


class InvoiceParent(StripeObject):
    subscription_details: SubscriptionDetails | None = None


class InvoicePayload(StripeObject):
    id: str
    subscription: str | dict[str, Any] | None = None
    parent: InvoiceParent | None = None
    amount_paid: int = 0
    amount_due: int = 0
    currency: str | None = None
    status: str | None = None
    customer_email: str | None = None
    created: int | None = None

    @property
    def subscription_id(self) -> str | None:
        if self.subscription:
            return ref_id(self.subscription)
        if self.parent and self.parent.subscription_details:
            return ref_id(self.parent.subscription_details.subscription)
        return None
