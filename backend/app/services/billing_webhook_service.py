"""BillingWebhookService — verify, record, dispatch.

One instance serves one delivery; it holds no state between requests. The
audit write commits before any handler runs and is not rolled back if the
handler fails, so a crash mid-dispatch still leaves the event on record.
"""

import asyncio

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import WebhookConfig
from app.core.logging import bind_stripe_event
from app.schemas.stripe_events import EventType
from app.services.checkout_resolver import CheckoutCompletionResolver, Sleep
from app.services.event_dispatcher import DispatchOutcome, EventDispatcher
from app.services.event_recorder import EventRecorder
from app.services.invoice_recorder import InvoiceRecorder
from app.services.subscription_reconciler import SubscriptionReconciler
from app.services.subscription_store import SubscriptionStore
from app.services.webhook_verifier import SignatureVerifier

logger = structlog.get_logger(__name__)


class BillingWebhookService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        config: WebhookConfig,
        sleep: Sleep | None = None,
    ):
        """Wire the pipeline from an explicit config.

        Args:
            session_factory: SQLAlchemy async session factory
            config: signing secret, tolerance, and checkout retry policy
            sleep: override for the checkout retry delay (tests)
        """
        self.config = config
        self.store = SubscriptionStore(session_factory)
        self.verifier = SignatureVerifier(config.webhook_secret, config.signature_tolerance_seconds)
        self.recorder = EventRecorder(session_factory)

        reconciler = SubscriptionReconciler(self.store, config)
        resolver = CheckoutCompletionResolver(self.store, config, sleep=sleep or asyncio.sleep)
        invoices = InvoiceRecorder(self.store)

        self.dispatcher = EventDispatcher({
            EventType.SUBSCRIPTION_CREATED: reconciler.handle_created,
            EventType.SUBSCRIPTION_UPDATED: reconciler.handle_updated,
            EventType.SUBSCRIPTION_DELETED: reconciler.handle_deleted,
            EventType.CHECKOUT_SESSION_COMPLETED: resolver.handle_completed,
            EventType.INVOICE_PAYMENT_SUCCEEDED: invoices.handle_payment_succeeded,
            EventType.INVOICE_PAYMENT_FAILED: invoices.handle_payment_failed,
        })

    async def handle(self, body: bytes, signature_header: str | None) -> DispatchOutcome:
        """Process one delivery end to end.

        Raises:
            AuthenticationFailure: nothing recorded, nothing dispatched
            InvalidPayloadError: signed body is not an event envelope
            RecordingFailure: audit write failed; caller answers 5xx so Stripe redelivers
        """
        event = self.verifier.verify(body, signature_header)

        with bind_stripe_event(event.id, event.type):
            logger.info("stripe_webhook_received")

            await self.recorder.record(event)
            outcome = await self.dispatcher.dispatch(event)

            logger.info("stripe_webhook_processed", outcome=outcome.value)
        return outcome
