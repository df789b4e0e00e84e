"""InvoiceRecorder — invoice.payment_succeeded and invoice.payment_failed."""

import structlog
from pydantic import ValidationError

from app.core.exceptions import MalformedPayloadError, ReconciliationMiss
from app.schemas.stripe_events import InvoicePayload, StripeEvent
from app.services.event_dispatcher import DispatchOutcome
from app.services.subscription_store import SubscriptionStore

logger = structlog.get_logger(__name__)

PAST_DUE = "past_due"


def parse_invoice(event: StripeEvent) -> InvoicePayload:
    try:
        return InvoicePayload.model_validate(event.object)
    except ValidationError as exc:
        raise MalformedPayloadError(event.type, str(exc)) from exc


class InvoiceRecorder:
    def __init__(self, store: SubscriptionStore):
        self.store = store

    async def handle_payment_succeeded(self, event: StripeEvent) -> DispatchOutcome:
        """Record the paid invoice, linked to its subscription when that row exists.

        A missing subscription is tolerated: the invoice is stored with a null
        link and the raw provider subscription id.
        """
        invoice = parse_invoice(event)
        subscription_id = invoice.subscription_id
        subscription = await self.store.get(subscription_id) if subscription_id else None

        _, created = await self.store.upsert_invoice(
            invoice.id,
            {
                "provider_subscription_id": subscription_id,
                "subscription_id": subscription.id if subscription else None,
                "partner_id": subscription.partner_id if subscription else None,
                "amount_paid": invoice.amount_paid,
                "amount_due": invoice.amount_due,
                "currency": invoice.currency,
                "status": invoice.status,
                "customer_email": invoice.customer_email,
                "provider_created_at": invoice.created,
            },
        )
        logger.info(
            "invoice_recorded" if created else "invoice_rerecorded",
            invoice_id=invoice.id,
            subscription_id=subscription_id,
            linked=subscription is not None,
        )
        return DispatchOutcome.APPLIED

    async def handle_payment_failed(self, event: StripeEvent) -> DispatchOutcome:
        invoice = parse_invoice(event)
        subscription_id = invoice.subscription_id
        if not subscription_id:
            logger.info("invoice_failed_without_subscription", invoice_id=invoice.id)
            return DispatchOutcome.NOOP

        record = await self.store.patch(subscription_id, {"status": PAST_DUE})
        if record is None:
            raise ReconciliationMiss(event.type, subscription_id)

        logger.info("subscription_marked_past_due", subscription_id=subscription_id, invoice_id=invoice.id)
        return DispatchOutcome.APPLIED
