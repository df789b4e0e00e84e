"""EventDispatcher — routes a recorded Stripe event to exactly one handler."""

from collections.abc import Awaitable, Callable, Mapping
from enum import StrEnum

import structlog

from app.core.exceptions import MalformedPayloadError, ReconciliationMiss
from app.schemas.stripe_events import StripeEvent

logger = structlog.get_logger(__name__)


class DispatchOutcome(StrEnum):
    """What happened to a delivery after it was recorded."""

    APPLIED = "applied"  # local state changed
    NOOP = "noop"  # handler ran, nothing to do (e.g. unpaid checkout)
    MISSED = "missed"  # referenced subscription not stored locally
    IGNORED = "ignored"  # event type not handled
    MALFORMED = "malformed"  # known type, unexpected object shape


Handler = Callable[[StripeEvent], Awaitable[DispatchOutcome]]


class EventDispatcher:
    """Fixed routing table from event type to handler.

    Best-effort failures (ReconciliationMiss, MalformedPayloadError) are logged
    and reported as an outcome. Anything else propagates so the delivery fails
    and Stripe retries it.
    """

    def __init__(self, routes: Mapping[str, Handler]):
        self.routes = dict(routes)

    async def dispatch(self, event: StripeEvent) -> DispatchOutcome:
        handler = self.routes.get(event.type)
        if handler is None:
            logger.info("stripe_event_ignored", event_id=event.id, event_type=event.type)
            return DispatchOutcome.IGNORED

        try:
            return await handler(event)
        except ReconciliationMiss as miss:
            logger.warning(
                "webhook_reconciliation_miss",
                event_id=event.id,
                event_type=event.type,
                subscription_id=miss.subscription_id,
                attempts=miss.attempts,
            )
            return DispatchOutcome.MISSED
        except MalformedPayloadError as exc:
            logger.error(
                "webhook_malformed_payload",
                event_id=event.id,
                event_type=event.type,
                detail=exc.detail,
            )
            return DispatchOutcome.MALFORMED
