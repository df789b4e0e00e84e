"""Tests for BillingWebhookService — signed bodies through verify, record, dispatch."""

import pytest
import structlog
from sqlalchemy import select

from app.core.exceptions import AuthenticationFailure, InvalidPayloadError, RecordingFailure
from app.db.models.invoice import InvoiceRecord
from app.db.models.webhook_event import WebhookEvent
from app.schemas.stripe_events import EventType
from app.services.billing_webhook_service import BillingWebhookService
from app.services.event_dispatcher import DispatchOutcome
from billing_support import StripePayloads, count_rows, encode, sign_payload

pytestmark = pytest.mark.unit


@pytest.fixture
def service(session_factory, webhook_config, fake_sleep):
    return BillingWebhookService(session_factory, webhook_config, sleep=fake_sleep)


async def deliver(service, event_type: str, obj: dict, event_id: str | None = None) -> DispatchOutcome:
    body = encode(StripePayloads.event(event_type, obj, event_id))
    return await service.handle(body, sign_payload(body))


class TestLifecycle:
    async def test_checkout_context_survives_later_update(self, service):
        """created(S1, active, P1) -> checkout(P1, Q1) -> updated(past_due)."""
        created = await deliver(
            service, "customer.subscription.created", StripePayloads.subscription(partner_id="P1")
        )
        checkout = await deliver(service, "checkout.session.completed", StripePayloads.checkout())
        updated = await deliver(
            service, "customer.subscription.updated", StripePayloads.subscription(status="past_due")
        )

        assert [created, checkout, updated] == [DispatchOutcome.APPLIED] * 3
        record = await service.store.get("sub_S1")
        assert record.status == "past_due"
        assert record.partner_id == "P1"
        assert record.quote_id == "Q1"

    async def test_checkout_before_created_resolves_after_wait(self, session_factory, webhook_config, sleeps):
        service = None

        async def deliver_created_on_first_sleep(delay: float) -> None:
            sleeps.append(delay)
            if len(sleeps) == 1:
                await deliver(service, "customer.subscription.created", StripePayloads.subscription())

        service = BillingWebhookService(session_factory, webhook_config, sleep=deliver_created_on_first_sleep)

        outcome = await deliver(service, "checkout.session.completed", StripePayloads.checkout())

        assert outcome == DispatchOutcome.APPLIED
        record = await service.store.get("sub_S1")
        assert record.status == "active"
        assert record.partner_id == "P1"
        assert record.quote_id == "Q1"
        assert await count_rows(session_factory, WebhookEvent) == 2

    async def test_created_redelivery_keeps_checkout_camera_count(self, service):
        created = StripePayloads.subscription(quantity=1)
        await deliver(service, "customer.subscription.created", created, event_id="evt_created")
        await deliver(service, "checkout.session.completed", StripePayloads.checkout(cameraCount="12"))
        assert (await service.store.get("sub_S1")).camera_count == 12

        await deliver(service, "customer.subscription.created", created, event_id="evt_created")

        record = await service.store.get("sub_S1")
        assert record.camera_count == 12
        assert record.quote_id == "Q1"

    async def test_created_after_exhausted_wait_recovers_context(self, service, sleeps):
        missed = await deliver(service, "checkout.session.completed", StripePayloads.checkout())
        assert missed == DispatchOutcome.MISSED
        assert await service.store.get("sub_S1") is None

        await deliver(service, "customer.subscription.created", StripePayloads.subscription())

        record = await service.store.get("sub_S1")
        assert record.status == "active"
        assert record.partner_id == "P1"
        assert record.quote_id == "Q1"
        assert len(sleeps) == 4

    async def test_invoice_then_cancellation(self, service, session_factory):
        await deliver(service, "customer.subscription.created", StripePayloads.subscription(partner_id="P1"))
        await deliver(service, "invoice.payment_succeeded", StripePayloads.invoice())
        await deliver(service, "invoice.payment_failed", StripePayloads.invoice(invoice_id="in_002"))
        await deliver(
            service,
            "customer.subscription.deleted",
            StripePayloads.subscription(status="canceled", ended_at=1_763_000_000),
        )

        record = await service.store.get("sub_S1")
        assert record.status == "canceled"
        assert record.ended_at == 1_763_000_000
        async with session_factory() as session:
            invoices = (await session.execute(select(InvoiceRecord))).scalars().all()
        assert [i.provider_invoice_id for i in invoices] == ["in_001"]
        assert invoices[0].partner_id == "P1"


class TestAuditLog:
    async def test_every_delivery_is_recorded(self, service, session_factory):
        obj = StripePayloads.subscription(partner_id="P1")

        await deliver(service, "customer.subscription.created", obj, event_id="evt_dup")
        await deliver(service, "customer.subscription.created", obj, event_id="evt_dup")

        async with session_factory() as session:
            rows = (await session.execute(select(WebhookEvent))).scalars().all()
        assert [row.provider_event_id for row in rows] == ["evt_dup", "evt_dup"]
        assert rows[0].event_type == "customer.subscription.created"
        assert rows[0].payload["data"]["object"]["id"] == "sub_S1"
        assert rows[0].provider_created_at is not None

    async def test_unknown_type_recorded_and_ignored(self, service, session_factory):
        outcome = await deliver(service, "customer.discount.created", {"id": "di_1", "object": "discount"})

        assert outcome == DispatchOutcome.IGNORED
        assert await count_rows(session_factory, WebhookEvent) == 1

    async def test_miss_is_still_recorded(self, service, session_factory):
        outcome = await deliver(service, "customer.subscription.updated", StripePayloads.subscription("sub_X"))

        assert outcome == DispatchOutcome.MISSED
        assert await count_rows(session_factory, WebhookEvent) == 1

    async def test_malformed_object_is_recorded(self, service, session_factory):
        outcome = await deliver(service, "invoice.payment_failed", {"object": "invoice"})

        assert outcome == DispatchOutcome.MALFORMED
        assert await count_rows(session_factory, WebhookEvent) == 1


class TestRejected:
    async def test_bad_signature_records_nothing(self, service, session_factory):
        body = encode(StripePayloads.event("customer.subscription.created", StripePayloads.subscription()))

        with pytest.raises(AuthenticationFailure):
            await service.handle(body, sign_payload(body, secret="whsec_wrong"))

        assert await count_rows(session_factory, WebhookEvent) == 0
        assert await service.store.get("sub_S1") is None

    async def test_invalid_envelope_records_nothing(self, service, session_factory):
        body = b'{"data": {}}'

        with pytest.raises(InvalidPayloadError):
            await service.handle(body, sign_payload(body))

        assert await count_rows(session_factory, WebhookEvent) == 0

    async def test_recording_failure_skips_dispatch(self, service, monkeypatch):
        async def failing_record(event):
            raise RecordingFailure("database unavailable")

        monkeypatch.setattr(service.recorder, "record", failing_record)
        body = encode(StripePayloads.event("customer.subscription.created", StripePayloads.subscription()))

        with pytest.raises(RecordingFailure):
            await service.handle(body, sign_payload(body))

        assert await service.store.get("sub_S1") is None


class TestLogContext:
    async def test_handlers_log_under_the_event(self, service, monkeypatch):
        seen = []

        async def capture(event):
            seen.append(structlog.contextvars.get_contextvars())
            return DispatchOutcome.NOOP

        monkeypatch.setitem(service.dispatcher.routes, EventType.SUBSCRIPTION_CREATED, capture)

        await deliver(service, "customer.subscription.created", StripePayloads.subscription(), event_id="evt_ctx")

        assert seen[0]["event_id"] == "evt_ctx"
        assert seen[0]["event_type"] == "customer.subscription.created"
        assert "event_id" not in structlog.contextvars.get_contextvars()

    async def test_context_cleared_when_recording_fails(self, service, monkeypatch):
        async def failing_record(event):
            raise RecordingFailure("database unavailable")

        monkeypatch.setattr(service.recorder, "record", failing_record)
        body = encode(StripePayloads.event("customer.subscription.created", StripePayloads.subscription()))

        with pytest.raises(RecordingFailure):
            await service.handle(body, sign_payload(body))

        context = structlog.contextvars.get_contextvars()
        assert "event_id" not in context
        assert "event_type" not in context
