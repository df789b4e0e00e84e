"""WebhookEvent model — append-only audit log of verified Stripe deliveries."""

from datetime import UTC, datetime

from sqlalchemy import JSON, Column, DateTime, Integer, String
from sqlalchemy.dialects.postgresql import JSONB

from app.db.base import Base


class WebhookEvent(Base):
    """One row per verified delivery, duplicates included."""

    __tablename__ = "webhook_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    # Not unique: redeliveries of the same event are recorded again
    provider_event_id = Column(String(255), nullable=False, index=True)
    event_type = Column(String(100), nullable=False, index=True)
    provider_created_at = Column(DateTime(timezone=True), nullable=True)
    payload = Column(JSON().with_variant(JSONB, "postgresql"), nullable=False)

    ingested_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        index=True,
    )
    # NO updated_at -- audit rows are immutable
