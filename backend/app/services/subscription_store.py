"""SubscriptionStore — the persistence boundary the webhook engine writes through.

Every write is a read-then-write keyed on a provider id. The unique
constraints on `subscriptions.provider_subscription_id` and
`invoices.provider_invoice_id` are the only synchronization between
concurrent deliveries: the loser of an insert race re-reads and patches.
Checkout context that outlives the checkout wait is parked in
`pending_checkout_contexts` until the subscription is stored.
Each call opens its own session so retries observe other requests' commits.
"""

from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.models.checkout_link import CheckoutLink
from app.db.models.invoice import InvoiceRecord
from app.db.models.pending_checkout import PendingCheckoutContext
from app.db.models.subscription import SubscriptionRecord

logger = structlog.get_logger(__name__)


def _apply(record: Any, fields: dict[str, Any]) -> None:
    for name, value in fields.items():
        setattr(record, name, value)


def _fill_missing(record: Any, defaults: dict[str, Any]) -> None:
    for name, value in defaults.items():
        if getattr(record, name) is None:
            setattr(record, name, value)


class SubscriptionStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def get(self, provider_subscription_id: str) -> SubscriptionRecord | None:
        async with self.session_factory() as session:
            return await self._select_for_key(session, provider_subscription_id)

    async def upsert(
        self,
        provider_subscription_id: str,
        fields: dict[str, Any],
        defaults: dict[str, Any] | None = None,
    ) -> tuple[SubscriptionRecord, bool]:
        """Insert or patch the record for a provider subscription id.

        `fields` are always written. `defaults` are written on insert and
        otherwise only fill columns that are still null, so a redelivery never
        overwrites a value another event has set since.

        Returns:
            (record, created) where created is False when an existing row was patched.
        """
        async with self.session_factory() as session:
            record = await self._select_for_key(session, provider_subscription_id)
            if record is not None:
                _apply(record, fields)
                _fill_missing(record, defaults or {})
                await session.commit()
                return record, False

            record = SubscriptionRecord(
                provider_subscription_id=provider_subscription_id,
                **{**(defaults or {}), **fields},
            )
            session.add(record)
            try:
                await session.commit()
                return record, True
            except IntegrityError:
                # A concurrent delivery inserted the same subscription first
                await session.rollback()
                logger.info("subscription_insert_race_lost", subscription_id=provider_subscription_id)

        return await self._patch_existing(provider_subscription_id, fields, defaults or {}), False

    async def patch(self, provider_subscription_id: str, fields: dict[str, Any]) -> SubscriptionRecord | None:
        """Patch an existing record in place. Returns None when no record exists."""
        async with self.session_factory() as session:
            record = await self._select_for_key(session, provider_subscription_id)
            if record is None:
                return None
            _apply(record, fields)
            await session.commit()
            return record

    async def upsert_invoice(self, provider_invoice_id: str, fields: dict[str, Any]) -> tuple[InvoiceRecord, bool]:
        """Record an invoice keyed by its provider id; a redelivery patches the same row."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(InvoiceRecord).where(InvoiceRecord.provider_invoice_id == provider_invoice_id)
            )
            invoice = result.scalar_one_or_none()
            if invoice is not None:
                _apply(invoice, fields)
                await session.commit()
                return invoice, False

            invoice = InvoiceRecord(provider_invoice_id=provider_invoice_id, **fields)
            session.add(invoice)
            try:
                await session.commit()
                return invoice, True
            except IntegrityError:
                await session.rollback()

        async with self.session_factory() as session:
            result = await session.execute(
                select(InvoiceRecord).where(InvoiceRecord.provider_invoice_id == provider_invoice_id)
            )
            invoice = result.scalar_one()
            _apply(invoice, fields)
            await session.commit()
            return invoice, False

    async def mark_checkout_link_used(self, session_id: str) -> bool:
        """Flag the quote checkout link for a completed session. False when none was issued."""
        async with self.session_factory() as session:
            result = await session.execute(select(CheckoutLink).where(CheckoutLink.session_id == session_id))
            link = result.scalar_one_or_none()
            if link is None:
                return False
            if not link.is_used:
                link.is_used = True
                await session.commit()
            return True

    async def park_checkout_context(
        self, provider_subscription_id: str, session_id: str, context: dict[str, Any]
    ) -> PendingCheckoutContext:
        """Keep checkout context for a subscription that is not stored yet.

        A second checkout for the same subscription merges over the first.
        """
        for _ in range(2):
            async with self.session_factory() as session:
                pending = await self._select_pending(session, provider_subscription_id)
                if pending is None:
                    pending = PendingCheckoutContext(
                        provider_subscription_id=provider_subscription_id,
                        session_id=session_id,
                        context=dict(context),
                    )
                    session.add(pending)
                else:
                    pending.session_id = session_id
                    pending.context = {**pending.context, **context}
                try:
                    await session.commit()
                    return pending
                except IntegrityError:
                    await session.rollback()
                    logger.info("pending_checkout_insert_race_lost", subscription_id=provider_subscription_id)
        raise RuntimeError(f"Could not park checkout context for {provider_subscription_id}")

    async def apply_pending_checkout(self, provider_subscription_id: str) -> dict[str, Any] | None:
        """Merge parked checkout context into the stored subscription and drop it.

        Returns the applied fields, or None when nothing was parked or the
        subscription is not stored. Merge and delete commit together.
        """
        async with self.session_factory() as session:
            pending = await self._select_pending(session, provider_subscription_id)
            if pending is None:
                return None
            record = await self._select_for_key(session, provider_subscription_id)
            if record is None:
                return None
            context = dict(pending.context)
            _apply(record, context)
            await session.delete(pending)
            await session.commit()
            return context

    async def _patch_existing(
        self, provider_subscription_id: str, fields: dict[str, Any], defaults: dict[str, Any]
    ) -> SubscriptionRecord:
        async with self.session_factory() as session:
            record = await self._select_for_key(session, provider_subscription_id)
            if record is None:
                raise RuntimeError(f"Subscription {provider_subscription_id} vanished after insert conflict")
            _apply(record, fields)
            _fill_missing(record, defaults)
            await session.commit()
            return record

    @staticmethod
    async def _select_for_key(session: AsyncSession, provider_subscription_id: str) -> SubscriptionRecord | None:
        result = await session.execute(
            select(SubscriptionRecord).where(SubscriptionRecord.provider_subscription_id == provider_subscription_id)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def _select_pending(session: AsyncSession, provider_subscription_id: str) -> PendingCheckoutContext | None:
        result = await session.execute(
            select(PendingCheckoutContext).where(
                PendingCheckoutContext.provider_subscription_id == provider_subscription_id
            )
        )
        return result.scalar_one_or_none()
