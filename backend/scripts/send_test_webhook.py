"""Send a signed Stripe-style event to a running instance.

Usage:
    python scripts/send_test_webhook.py customer.subscription.created sub_123 --partner partner_1
    python scripts/send_test_webhook.py checkout.session.completed sub_123 --partner partner_1 --quote q_1
"""

import argparse
import asyncio
import hashlib
import hmac
import json
import time
import uuid

import httpx

from app.core.config import get_settings


def build_event(event_type: str, subscription_id: str, partner_id: str | None, quote_id: str | None) -> dict:
    metadata = {k: v for k, v in {"partnerId": partner_id, "quoteId": quote_id}.items() if v}
    now = int(time.time())

    if event_type.startswith("customer.subscription."):
        obj = {
            "id": subscription_id,
            "object": "subscription",
            "status": "canceled" if event_type.endswith("deleted") else "active",
            "customer": "cus_test",
            "currency": "usd",
            "plan": {"id": "price_test_monthly", "amount": 9900, "interval": "month", "product": "prod_test"},
            "current_period_start": now,
            "current_period_end": now + 30 * 24 * 3600,
            "metadata": metadata,
        }
    elif event_type == "checkout.session.completed":
        obj = {
            "id": f"cs_test_{uuid.uuid4().hex[:12]}",
            "object": "checkout.session",
            "mode": "subscription",
            "subscription": subscription_id,
            "payment_status": "paid",
            "customer_details": {"name": "Test Buyer", "email": "buyer@example.com"},
            "metadata": metadata,
        }
    else:
        obj = {
            "id": f"in_test_{uuid.uuid4().hex[:12]}",
            "object": "invoice",
            "subscription": subscription_id,
            "amount_paid": 9900,
            "amount_due": 9900,
            "currency": "usd",
            "status": "paid",
            "customer_email": "buyer@example.com",
            "created": now,
        }

    return {"id": f"evt_test_{uuid.uuid4().hex[:16]}", "type": event_type, "created": now, "data": {"object": obj}}


def sign(payload: bytes, secret: str) -> str:
    timestamp = int(time.time())
    signed = f"{timestamp}.".encode() + payload
    signature = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


async def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("event_type")
    parser.add_argument("subscription_id")
    parser.add_argument("--partner")
    parser.add_argument("--quote")
    parser.add_argument("--url", default="http://127.0.0.1:8000/api/webhooks/stripe")
    args = parser.parse_args()

    secret = get_settings().stripe_webhook_secret
    if not secret:
        raise SystemExit("STRIPE_WEBHOOK_SECRET is not set")

    payload = json.dumps(build_event(args.event_type, args.subscription_id, args.partner, args.quote)).encode()
    async with httpx.AsyncClient(timeout=30) as client:
        resp = await client.post(
            args.url,
            content=payload,
            headers={"stripe-signature": sign(payload, secret), "Content-Type": "application/json"},
        )

    print("Status:", resp.status_code)
    print("Response:", resp.json())


if __name__ == "__main__":
    asyncio.run(main())
