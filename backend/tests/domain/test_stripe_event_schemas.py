"""Tests for the Stripe payload views across API versions."""

import pytest
from pydantic import ValidationError

from app.schemas.stripe_events import (
    CheckoutSessionPayload,
    InvoicePayload,
    StripeEvent,
    SubscriptionPayload,
    partner_from_metadata,
    ref_id,
)
from billing_support import StripePayloads

pytestmark = pytest.mark.unit


def test_ref_id_accepts_id_or_expanded_object():
    assert ref_id("cus_1") == "cus_1"
    assert ref_id({"id": "cus_1", "object": "customer"}) == "cus_1"
    assert ref_id(None) is None


def test_partner_prefers_partner_id_over_user_id():
    assert partner_from_metadata({"partnerId": "P1", "userId": "U1"}) == "P1"
    assert partner_from_metadata({"userId": "U1"}) == "U1"
    assert partner_from_metadata({"partnerId": ""}) is None
    assert partner_from_metadata({}) is None


class TestStripeEvent:
    def test_keeps_raw_body(self):
        payload = StripePayloads.event("invoice.payment_failed", StripePayloads.invoice(), "evt_raw")
        payload["livemode"] = False

        event = StripeEvent.from_payload(payload)

        assert event.raw == payload
        assert event.object["id"] == "in_001"

    def test_requires_type(self):
        with pytest.raises(ValidationError):
            StripeEvent.from_payload({"id": "evt_1", "data": {"object": {}}})


class TestSubscriptionPayload:
    def test_legacy_plan_shape(self):
        sub = SubscriptionPayload.model_validate(StripePayloads.subscription(partner_id="P1"))

        assert sub.price_id == "price_monthly"
        assert sub.product_id == "prod_vision"
        assert sub.amount == 9900
        assert sub.interval == "month"
        assert sub.quantity == 4
        assert sub.period_start == 1_760_000_000
        assert sub.partner_id == "P1"

    def test_item_level_periods_and_prices(self):
        """Newer API versions drop plan and top-level period bounds."""
        payload = {
            "id": "sub_new",
            "status": "active",
            "customer": {"id": "cus_9", "object": "customer"},
            "items": {
                "data": [
                    {
                        "price": {
                            "id": "price_yearly",
                            "product": {"id": "prod_x"},
                            "unit_amount": 5000,
                            "recurring": {"interval": "year"},
                        },
                        "quantity": 3,
                        "current_period_start": 1_770_000_000,
                        "current_period_end": 1_801_536_000,
                    }
                ]
            },
            "metadata": None,
        }

        sub = SubscriptionPayload.model_validate(payload)

        assert sub.price_id == "price_yearly"
        assert sub.product_id == "prod_x"
        assert sub.interval == "year"
        assert sub.amount == 15000
        assert sub.period_start == 1_770_000_000
        assert sub.period_end == 1_801_536_000
        assert sub.metadata == {}
        assert ref_id(sub.customer) == "cus_9"


class TestCheckoutSessionPayload:
    def test_metadata_accessors(self):
        checkout = CheckoutSessionPayload.model_validate(
            StripePayloads.checkout(cameraCount="8", includesStarterKit="false")
        )

        assert checkout.is_subscription_checkout
        assert checkout.is_paid
        assert checkout.partner_id == "P1"
        assert checkout.quote_id == "Q1"
        assert checkout.camera_count == 8
        assert checkout.includes_starter_kit is False
        assert checkout.customer_name == "Ada Buyer"

    def test_unparseable_camera_count_is_dropped(self):
        checkout = CheckoutSessionPayload.model_validate(StripePayloads.checkout(cameraCount="lots"))

        assert checkout.camera_count is None
        assert checkout.includes_starter_kit is None

    def test_email_falls_back_to_top_level(self):
        payload = StripePayloads.checkout()
        payload["customer_details"] = None
        payload["customer_email"] = "fallback@example.com"

        assert CheckoutSessionPayload.model_validate(payload).buyer_email == "fallback@example.com"

    def test_expanded_subscription_reference(self):
        payload = StripePayloads.checkout()
        payload["subscription"] = {"id": "sub_S1", "object": "subscription"}

        assert CheckoutSessionPayload.model_validate(payload).subscription_id == "sub_S1"


class TestInvoicePayload:
    def test_top_level_subscription(self):
        assert InvoicePayload.model_validate(StripePayloads.invoice()).subscription_id == "sub_S1"

    def test_parent_subscription_details(self):
        payload = StripePayloads.invoice(
            sub_id=None,
            parent={"type": "subscription_details", "subscription_details": {"subscription": "sub_P"}},
        )

        assert InvoicePayload.model_validate(payload).subscription_id == "sub_P"

    def test_one_off_invoice_has_no_subscription(self):
        payload = StripePayloads.invoice(sub_id=None)

        assert InvoicePayload.model_validate(payload).subscription_id is None
