"""Shared test fixtures for all test groups.

Every test gets its own file-backed SQLite database (aiosqlite), so nothing
here needs PostgreSQL or Stripe.
"""

import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from app.core.config import WebhookConfig
from app.db.base import build_session_factory, create_tables
from app.services.subscription_store import SubscriptionStore
from billing_support import TEST_WEBHOOK_SECRET, StripePayloads


@pytest.fixture
def payloads():
    return StripePayloads


@pytest.fixture
def webhook_config():
    """Default retry policy; tests pass fake_sleep so no real time passes."""
    return WebhookConfig(
        webhook_secret=TEST_WEBHOOK_SECRET,
        checkout_max_attempts=5,
        checkout_retry_delay_seconds=1.0,
        yearly_price_id="price_yearly",
        three_year_price_id="price_three_year",
    )


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'billing.db'}", echo=False)
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def store(session_factory):
    return SubscriptionStore(session_factory)


@pytest.fixture
def sleeps():
    """Records requested delays instead of sleeping."""
    return []


@pytest.fixture
def fake_sleep(sleeps):
    async def _sleep(delay: float) -> None:
        sleeps.append(delay)

    return _sleep
