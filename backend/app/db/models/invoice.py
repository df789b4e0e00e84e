"""InvoiceRecord model — paid invoice facts with a weak link to their subscription."""

from datetime import UTC, datetime

from sqlalchemy import BigInteger, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from app.db.base import Base


class InvoiceRecord(Base):
    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True, autoincrement=True)
    provider_invoice_id = Column(String(255), unique=True, nullable=False, index=True)

    # Raw reference from the event, kept even when no local subscription exists yet
    provider_subscription_id = Column(String(255), nullable=True, index=True)
    subscription_id = Column(Integer, ForeignKey("subscriptions.id"), nullable=True, index=True)
    subscription = relationship("SubscriptionRecord", back_populates="invoices")
    partner_id = Column(String(255), nullable=True, index=True)

    amount_paid = Column(BigInteger, nullable=False, default=0)  # minor units
    amount_due = Column(BigInteger, nullable=False, default=0)
    currency = Column(String(10), nullable=True)
    status = Column(String(50), nullable=True)
    customer_email = Column(String(255), nullable=True)
    provider_created_at = Column(BigInteger, nullable=True)  # epoch seconds

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC))
