"""CheckoutCompletionResolver — merges checkout context into a subscription record.

`checkout.session.completed` carries who bought (partner, quote, customer)
but only a reference to the subscription; `customer.subscription.created`
carries the subscription itself. Stripe may deliver them in either order, so
when the checkout event wins the race the resolver polls the store for the
subscription with a fixed delay and a fixed attempt ceiling.

When the wait runs out the context is parked as a `pending_checkout_contexts`
row and the delivery is acknowledged as missed. That row is the only durable
trace of the exhausted wait: no SubscriptionRecord is ever created from it.
It is merged, then deleted, only when the subscription's created event stores
the record. If created never arrives the row stays parked.

Authoritative fields (status, price, period bounds) are never written here.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import structlog
from pydantic import ValidationError

from app.core.config import WebhookConfig
from app.core.exceptions import MalformedPayloadError, ReconciliationMiss
from app.db.models.subscription import SubscriptionRecord
from app.schemas.stripe_events import CheckoutSessionPayload, StripeEvent
from app.services.event_dispatcher import DispatchOutcome
from app.services.subscription_store import SubscriptionStore

logger = structlog.get_logger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class CheckoutCompletionResolver:
    def __init__(self, store: SubscriptionStore, config: WebhookConfig, sleep: Sleep = asyncio.sleep):
        self.store = store
        self.max_attempts = max(1, config.checkout_max_attempts)
        self.retry_delay = config.checkout_retry_delay_seconds
        self._sleep = sleep

    async def handle_completed(self, event: StripeEvent) -> DispatchOutcome:
        try:
            checkout = CheckoutSessionPayload.model_validate(event.object)
        except ValidationError as exc:
            raise MalformedPayloadError(event.type, str(exc)) from exc

        if await self.store.mark_checkout_link_used(checkout.id):
            logger.info("checkout_link_marked_used", session_id=checkout.id)

        if not checkout.is_subscription_checkout:
            logger.info("checkout_not_subscription", session_id=checkout.id, mode=checkout.mode)
            return DispatchOutcome.NOOP

        if not checkout.is_paid:
            logger.info(
                "checkout_not_paid",
                session_id=checkout.id,
                payment_status=checkout.payment_status,
            )
            return DispatchOutcome.NOOP

        subscription_id = checkout.subscription_id
        record = await self.wait_for_subscription(subscription_id)
        if record is None:
            logger.error(
                "checkout_subscription_not_found",
                session_id=checkout.id,
                subscription_id=subscription_id,
                attempts=self.max_attempts,
            )
            fields = self.checkout_context(checkout)
            if fields:
                await self.store.park_checkout_context(subscription_id, checkout.id, fields)
                # created may have landed between the last lookup and the park
                if await self.store.apply_pending_checkout(subscription_id) is not None:
                    logger.info("checkout_context_merged_late", session_id=checkout.id, subscription_id=subscription_id)
                    return DispatchOutcome.APPLIED
                logger.info("checkout_context_parked", session_id=checkout.id, subscription_id=subscription_id)
            raise ReconciliationMiss(event.type, subscription_id, attempts=self.max_attempts)

        fields = self.checkout_context(checkout)
        if fields:
            await self.store.patch(subscription_id, fields)

        logger.info(
            "checkout_context_merged",
            session_id=checkout.id,
            subscription_id=subscription_id,
            partner_id=fields.get("partner_id", record.partner_id),
            quote_id=fields.get("quote_id", record.quote_id),
        )
        return DispatchOutcome.APPLIED

    async def wait_for_subscription(self, subscription_id: str) -> SubscriptionRecord | None:
        """Look the subscription up, sleeping between misses. None once attempts run out."""
        for attempt in range(1, self.max_attempts + 1):
            record = await self.store.get(subscription_id)
            if record is not None:
                if attempt > 1:
                    logger.info(
                        "checkout_subscription_found_after_retry",
                        subscription_id=subscription_id,
                        attempt=attempt,
                    )
                return record

            logger.debug("checkout_subscription_pending", subscription_id=subscription_id, attempt=attempt)
            if attempt < self.max_attempts:
                await self._sleep(self.retry_delay)
        return None

    @staticmethod
    def checkout_context(checkout: CheckoutSessionPayload) -> dict[str, Any]:
        """Checkout-only fields present on the session. Absent values are left out."""
        context = {
            "partner_id": checkout.partner_id,
            "quote_id": checkout.quote_id,
            "customer_name": checkout.customer_name,
            "customer_email": checkout.buyer_email,
            "camera_count": checkout.camera_count,
            "includes_starter_kit": checkout.includes_starter_kit,
        }
        return {name: value for name, value in context.items() if value is not None}
