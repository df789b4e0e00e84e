"""SubscriptionRecord model — local mirror of a Stripe subscription."""

from datetime import UTC, datetime

from sqlalchemy import JSON, BigInteger, Boolean, Column, DateTime, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from app.db.base import Base


class SubscriptionRecord(Base):
    __tablename__ = "subscriptions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    provider_subscription_id = Column(String(255), unique=True, nullable=False, index=True)
    provider_customer_id = Column(String(255), nullable=True, index=True)

    # Authoritative fields, owned by customer.subscription.* events
    status = Column(String(50), nullable=False)  # incomplete, active, past_due, canceled, unpaid, ...
    price_id = Column(String(255), nullable=True)
    product_id = Column(String(255), nullable=True)
    currency = Column(String(10), nullable=True)
    interval = Column(String(20), nullable=True)
    amount = Column(BigInteger, nullable=True)  # minor units
    subscription_type = Column(String(20), nullable=True)  # monthly, yearly, three_year
    current_period_start = Column(BigInteger, nullable=True)  # epoch seconds
    current_period_end = Column(BigInteger, nullable=True)
    cancel_at_period_end = Column(Boolean, nullable=False, default=False)
    cancellation_reason = Column(String(100), nullable=True)
    cancellation_comment = Column(Text, nullable=True)
    started_at = Column(BigInteger, nullable=True)
    ended_at = Column(BigInteger, nullable=True)
    canceled_at = Column(BigInteger, nullable=True)
    # "metadata" is reserved on declarative classes
    provider_metadata = Column("metadata", JSON().with_variant(JSONB, "postgresql"), nullable=False, default=dict)

    # Checkout context, merged in by checkout.session.completed
    partner_id = Column(String(255), nullable=True, index=True)
    quote_id = Column(String(255), nullable=True)
    customer_name = Column(String(255), nullable=True)
    customer_email = Column(String(255), nullable=True)
    camera_count = Column(Integer, nullable=True)
    includes_starter_kit = Column(Boolean, nullable=False, default=False)

    invoices = relationship("InvoiceRecord", back_populates="subscription")

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )
