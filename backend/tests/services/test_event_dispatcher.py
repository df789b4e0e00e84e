"""Tests for EventDispatcher — routing table and best-effort failure policy."""

from unittest.mock import AsyncMock

import pytest

from app.core.exceptions import MalformedPayloadError, ReconciliationMiss
from app.services.event_dispatcher import DispatchOutcome, EventDispatcher
from billing_support import StripePayloads, as_event

pytestmark = pytest.mark.unit


def _event(event_type: str):
    return as_event(StripePayloads.event(event_type, {"id": "obj_1"}))


async def test_routes_to_exactly_one_handler():
    created = AsyncMock(return_value=DispatchOutcome.APPLIED)
    updated = AsyncMock(return_value=DispatchOutcome.APPLIED)
    dispatcher = EventDispatcher({
        "customer.subscription.created": created,
        "customer.subscription.updated": updated,
    })

    outcome = await dispatcher.dispatch(_event("customer.subscription.updated"))

    assert outcome == DispatchOutcome.APPLIED
    updated.assert_awaited_once()
    created.assert_not_awaited()


async def test_unknown_type_is_ignored():
    handler = AsyncMock(return_value=DispatchOutcome.APPLIED)
    dispatcher = EventDispatcher({"customer.subscription.created": handler})

    outcome = await dispatcher.dispatch(_event("customer.tax_id.created"))

    assert outcome == DispatchOutcome.IGNORED
    handler.assert_not_awaited()


async def test_reconciliation_miss_is_swallowed():
    handler = AsyncMock(side_effect=ReconciliationMiss("customer.subscription.updated", "sub_missing"))
    dispatcher = EventDispatcher({"customer.subscription.updated": handler})

    outcome = await dispatcher.dispatch(_event("customer.subscription.updated"))

    assert outcome == DispatchOutcome.MISSED


async def test_malformed_payload_is_swallowed():
    handler = AsyncMock(side_effect=MalformedPayloadError("invoice.payment_failed", "id missing"))
    dispatcher = EventDispatcher({"invoice.payment_failed": handler})

    outcome = await dispatcher.dispatch(_event("invoice.payment_failed"))

    assert outcome == DispatchOutcome.MALFORMED


async def test_unexpected_errors_propagate():
    """Store outages must fail the delivery so Stripe retries it."""
    handler = AsyncMock(side_effect=ConnectionError("database down"))
    dispatcher = EventDispatcher({"invoice.payment_failed": handler})

    with pytest.raises(ConnectionError):
        await dispatcher.dispatch(_event("invoice.payment_failed"))
