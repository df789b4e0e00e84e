"""SubscriptionReconciler — applies customer.subscription.* events to SubscriptionRecord.

Each event carries Stripe's current view of the subscription, so handlers
write that view over the local row. Ordering is not guaranteed:

- created upserts, so a redelivery or a row the checkout path already touched
  is patched rather than duplicated, then merges any checkout context parked
  after an exhausted checkout wait;
- updated/deleted patch only; with no row they raise ReconciliationMiss and the
  delivery is acknowledged without retry;
- a partner id, once known, is never cleared by an event that lacks one.
"""

from typing import Any

import structlog
from pydantic import ValidationError

from app.core.config import WebhookConfig
from app.core.exceptions import MalformedPayloadError, ReconciliationMiss
from app.schemas.stripe_events import StripeEvent, SubscriptionPayload, ref_id
from app.services.event_dispatcher import DispatchOutcome
from app.services.subscription_store import SubscriptionStore

logger = structlog.get_logger(__name__)


def parse_subscription(event: StripeEvent) -> SubscriptionPayload:
    try:
        return SubscriptionPayload.model_validate(event.object)
    except ValidationError as exc:
        raise MalformedPayloadError(event.type, str(exc)) from exc


class SubscriptionReconciler:
    def __init__(self, store: SubscriptionStore, config: WebhookConfig):
        self.store = store
        self.config = config

    def subscription_type(self, price_id: str | None) -> str:
        """Derive the contract length from the price the subscription is on."""
        if price_id and price_id == self.config.yearly_price_id:
            return "yearly"
        if price_id and price_id == self.config.three_year_price_id:
            return "three_year"
        return "monthly"

    async def handle_created(self, event: StripeEvent) -> DispatchOutcome:
        sub = parse_subscription(event)
        fields: dict[str, Any] = {
            "status": sub.status,
            "provider_customer_id": ref_id(sub.customer),
            "price_id": sub.price_id,
            "product_id": sub.product_id,
            "currency": sub.currency,
            "interval": sub.interval,
            "amount": sub.amount,
            "subscription_type": self.subscription_type(sub.price_id),
            "current_period_start": sub.period_start,
            "current_period_end": sub.period_end,
            "started_at": sub.start_date,
            "provider_metadata": sub.metadata,
            **self._cancellation_fields(sub),
        }
        if sub.partner_id:
            fields["partner_id"] = sub.partner_id

        # Checkout metadata owns the camera count; item quantity only seeds it
        defaults = {"camera_count": sub.quantity} if sub.quantity is not None else {}
        record, created = await self.store.upsert(sub.id, fields, defaults)
        logger.info(
            "subscription_created" if created else "subscription_create_reapplied",
            subscription_id=sub.id,
            status=record.status,
            partner_id=record.partner_id,
        )

        replayed = await self.store.apply_pending_checkout(sub.id)
        if replayed:
            logger.info("checkout_context_replayed", subscription_id=sub.id, fields=sorted(replayed))
        return DispatchOutcome.APPLIED

    async def handle_updated(self, event: StripeEvent) -> DispatchOutcome:
        sub = parse_subscription(event)
        fields: dict[str, Any] = {
            "status": sub.status,
            "amount": sub.amount,
            "current_period_start": sub.period_start,
            "current_period_end": sub.period_end,
            "provider_metadata": sub.metadata,
            **self._cancellation_fields(sub),
        }
        if sub.partner_id:
            fields["partner_id"] = sub.partner_id

        record = await self.store.patch(sub.id, fields)
        if record is None:
            raise ReconciliationMiss(event.type, sub.id)

        logger.info("subscription_status_updated", subscription_id=sub.id, status=record.status)
        return DispatchOutcome.APPLIED

    async def handle_deleted(self, event: StripeEvent) -> DispatchOutcome:
        sub = parse_subscription(event)
        fields: dict[str, Any] = {"status": sub.status}
        if sub.ended_at is not None:
            fields["ended_at"] = sub.ended_at
        if sub.canceled_at is not None:
            fields["canceled_at"] = sub.canceled_at

        record = await self.store.patch(sub.id, fields)
        if record is None:
            raise ReconciliationMiss(event.type, sub.id)

        logger.info("subscription_ended", subscription_id=sub.id, status=record.status)
        return DispatchOutcome.APPLIED

    @staticmethod
    def _cancellation_fields(sub: SubscriptionPayload) -> dict[str, Any]:
        details = sub.cancellation_details
        return {
            "cancel_at_period_end": sub.cancel_at_period_end,
            "cancellation_reason": details.reason if details else None,
            "cancellation_comment": details.comment if details else None,
            "canceled_at": sub.canceled_at,
            "ended_at": sub.ended_at,
        }
