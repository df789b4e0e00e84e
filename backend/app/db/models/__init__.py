"""Re-export all models so Base.metadata sees them."""

from app.db.models.checkout_link import CheckoutLink
from app.db.models.invoice import InvoiceRecord
from app.db.models.pending_checkout import PendingCheckoutContext
from app.db.models.subscription import SubscriptionRecord
from app.db.models.webhook_event import WebhookEvent

__all__ = [
    "CheckoutLink",
    "InvoiceRecord",
    "PendingCheckoutContext",
    "SubscriptionRecord",
    "WebhookEvent",
]
