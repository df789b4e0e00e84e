"""EventRecorder — append every verified delivery to the audit log before dispatch."""

from datetime import UTC, datetime

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.exceptions import RecordingFailure
from app.db.models.webhook_event import WebhookEvent
from app.schemas.stripe_events import StripeEvent

logger = structlog.get_logger(__name__)


class EventRecorder:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def record(self, event: StripeEvent) -> None:
        """Persist the event. No dedup by event id: redeliveries get their own row.

        Raises:
            RecordingFailure: the audit write did not commit; the request must fail
        """
        provider_created_at = datetime.fromtimestamp(event.created, tz=UTC) if event.created is not None else None
        try:
            async with self.session_factory() as session:
                session.add(
                    WebhookEvent(
                        provider_event_id=event.id,
                        event_type=event.type,
                        provider_created_at=provider_created_at,
                        payload=event.raw,
                    )
                )
                await session.commit()
        except SQLAlchemyError as exc:
            logger.error("webhook_event_record_failed", event_id=event.id, event_type=event.type, error=str(exc))
            raise RecordingFailure(f"Could not record event {event.id}") from exc

        logger.info("webhook_event_recorded", event_id=event.id, event_type=event.type)
