"""API-specific test fixtures."""

from contextlib import asynccontextmanager

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient


@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'billing_api.db'}"


@pytest.fixture
def api_client(db_url, webhook_config, fake_sleep):
    """FastAPI test client with a throwaway database.

    Initializes the global database via init_db inside the TestClient's
    own event loop so route handlers can use get_session_factory(). The
    webhook service is built from the test WebhookConfig and never sleeps.
    """
    from fastapi import HTTPException

    from app.api.routes import api_router
    from app.api.routes.billing import get_webhook_service
    from app.core.config import get_settings
    from app.db import close_db, get_session_factory, init_db
    from app.main import generic_exception_handler, http_exception_handler
    from app.services.billing_webhook_service import BillingWebhookService

    @asynccontextmanager
    async def test_lifespan(app: FastAPI):
        """Test lifespan - initialize DB in TestClient's event loop."""
        # Reset global so init_db creates a fresh engine in THIS loop
        import app.db.base as db_mod

        db_mod._engine = None
        db_mod._session_factory = None
        await init_db(db_url)
        yield
        await close_db()

    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Partner Billing Sync - Test Client",
        version="0.1.0",
        lifespan=test_lifespan,
    )

    # Exception handlers (needed for debug_id testing)
    app.exception_handler(HTTPException)(http_exception_handler)
    app.exception_handler(Exception)(generic_exception_handler)

    app.include_router(api_router, prefix="/api")

    def _webhook_service() -> BillingWebhookService:
        return BillingWebhookService(get_session_factory(), webhook_config, sleep=fake_sleep)

    app.dependency_overrides[get_webhook_service] = _webhook_service

    with TestClient(app) as client:
        yield client
