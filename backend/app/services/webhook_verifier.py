"""Stripe webhook signature verification."""

import json

import stripe
from pydantic import ValidationError

from app.core.exceptions import AuthenticationFailure, InvalidPayloadError
from app.schemas.stripe_events import StripeEvent


class SignatureVerifier:
    """Checks the `Stripe-Signature` header against the raw body.

    Stripe signs `"{timestamp}.{body}"` with HMAC-SHA256 using the endpoint
    secret; deliveries older than the tolerance window are rejected.
    """

    def __init__(self, webhook_secret: str, tolerance_seconds: int = stripe.Webhook.DEFAULT_TOLERANCE):
        self.webhook_secret = webhook_secret
        self.tolerance_seconds = tolerance_seconds

    def verify(self, body: bytes, signature_header: str | None) -> StripeEvent:
        """Return the verified event envelope.

        Raises:
            AuthenticationFailure: header absent, signature mismatch, or timestamp outside tolerance
            InvalidPayloadError: signed body is not a Stripe event envelope
        """
        if not signature_header:
            raise AuthenticationFailure("Missing stripe-signature header")

        try:
            stripe.Webhook.construct_event(body, signature_header, self.webhook_secret, self.tolerance_seconds)
        except stripe.SignatureVerificationError as exc:
            raise AuthenticationFailure(str(exc)) from exc
        except (ValueError, TypeError, AttributeError) as exc:
            raise InvalidPayloadError("Body is not a JSON object") from exc

        # Keep the provider's exact JSON for the audit log rather than the SDK object
        try:
            payload = json.loads(body)
            return StripeEvent.from_payload(payload)
        except (ValueError, TypeError, ValidationError) as exc:
            raise InvalidPayloadError(f"Not a Stripe event envelope: {exc}") from exc
