class BillingSyncError(Exception):
    """Base exception for the billing sync service."""

    pass


class AuthenticationFailure(BillingSyncError):
    """Raised when a webhook delivery is unsigned or its signature does not verify."""

    pass


class InvalidPayloadError(BillingSyncError):
    """Raised when a verified body cannot be decoded into an event envelope."""

    pass


class RecordingFailure(BillingSyncError):
    """Raised when the audit write for a verified event fails."""

    pass


class MalformedPayloadError(BillingSyncError):
    """Raised when a known event type carries an object of unexpected shape."""

    def __init__(self, event_type: str, detail: str):
        self.event_type = event_type
        self.detail = detail
        super().__init__(f"Malformed '{event_type}' payload: {detail}")


class ReconciliationMiss(BillingSyncError):
    """Raised when an event references a subscription that is not stored locally.

    Best-effort by policy: the dispatcher logs it and acknowledges the delivery.
    """

    def __init__(self, event_type: str, subscription_id: str | None, attempts: int = 1):
        self.event_type = event_type
        self.subscription_id = subscription_id
        self.attempts = attempts
        super().__init__(
            f"No subscription '{subscription_id}' for '{event_type}' after {attempts} attempt(s)"
        )
