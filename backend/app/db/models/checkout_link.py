"""CheckoutLink model — quote checkout links issued to partners' customers.

Rows are created by the quote flow when it opens a Stripe checkout session;
the webhook engine only marks them used once the session completes.
"""

from datetime import UTC, datetime

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text

from app.db.base import Base


class CheckoutLink(Base):
    __tablename__ = "checkout_links"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(String(255), unique=True, nullable=False, index=True)
    quote_id = Column(String(255), nullable=False, index=True)
    partner_id = Column(String(255), nullable=False, index=True)
    customer_email = Column(String(255), nullable=False)
    checkout_url = Column(Text, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    is_used = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC))
