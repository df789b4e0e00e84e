"""Billing routes — Stripe webhook receiver."""

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel

from app.core.config import WebhookConfig, get_settings
from app.core.exceptions import AuthenticationFailure, InvalidPayloadError, RecordingFailure
from app.db.base import get_session_factory
from app.services.billing_webhook_service import BillingWebhookService

logger = structlog.get_logger(__name__)

router = APIRouter()


class WebhookAck(BaseModel):
    status: str
    outcome: str


def get_webhook_service() -> BillingWebhookService:
    """Build the engine for one delivery from explicit config."""
    settings = get_settings()
    if not settings.stripe_webhook_secret:
        logger.error("stripe_webhook_secret_missing")
        raise HTTPException(status_code=503, detail="Stripe webhook endpoint is not configured")
    return BillingWebhookService(get_session_factory(), WebhookConfig.from_settings(settings))


@router.post("/webhooks/stripe", response_model=WebhookAck)
async def stripe_webhook(request: Request, service: BillingWebhookService = Depends(get_webhook_service)):
    """Verify, record, and reconcile a Stripe webhook delivery.

    200 once the event is recorded, whatever the business outcome; Stripe must
    not retry events this service deliberately ignores.
    """
    body = await request.body()
    sig_header = request.headers.get("stripe-signature")

    if not sig_header:
        raise HTTPException(status_code=400, detail="Missing stripe-signature header")

    try:
        outcome = await service.handle(body, sig_header)
    except AuthenticationFailure:
        logger.warning("stripe_signature_invalid")
        raise HTTPException(status_code=400, detail="Invalid signature")
    except InvalidPayloadError:
        raise HTTPException(status_code=400, detail="Invalid payload")
    except RecordingFailure:
        raise HTTPException(status_code=500, detail="Webhook processing failed")

    return WebhookAck(status="ok", outcome=outcome.value)
