"""PendingCheckoutContext model — checkout context parked until its subscription arrives."""

from datetime import UTC, datetime

from sqlalchemy import JSON, Column, DateTime, Integer, String
from sqlalchemy.dialects.postgresql import JSONB

from app.db.base import Base


class PendingCheckoutContext(Base):
    """One row per subscription whose checkout completed before it was stored.

    Written when the checkout wait runs out; consumed and deleted by
    customer.subscription.created for the same subscription.
    """

    __tablename__ = "pending_checkout_contexts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    provider_subscription_id = Column(String(255), unique=True, nullable=False, index=True)
    session_id = Column(String(255), nullable=False)
    context = Column(JSON().with_variant(JSONB, "postgresql"), nullable=False, default=dict)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )
