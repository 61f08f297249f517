"""
Invoice Webhook Handler

Handles invoice-related webhook events:
- invoice.paid
- invoice.payment_failed
"""

import logging
from typing import Any, Optional

from tutor_backend.src.billing.shared.config import EntitlementStatus
from tutor_backend.src.billing.shared.helpers import (
    extract_period_from_item,
    get_field,
    period_end_with_fallback,
    period_start_with_fallback,
)
from tutor_backend.src.billing.subscriptions.context import BillingContext
from .base import WebhookEventHandler, event_object

logger = logging.getLogger(__name__)


def subscription_id_from_invoice(invoice: Any) -> Optional[str]:
    """
    Subscription billed by an invoice.

    Newer API versions move the id under ``parent.subscription_details``.
    """
    direct = get_field(invoice, 'subscription')
    if isinstance(direct, str):
        return direct
    nested = get_field(get_field(get_field(invoice, 'parent'), 'subscription_details'), 'subscription')
    if isinstance(nested, str):
        return nested
    return None


class InvoiceEventHandler(WebhookEventHandler):
    """
    Handler for Stripe invoice webhook events.

    Invoice events drive renewals: a paid invoice opens the new period and
    reactivates the children, a failed one pauses them.
    """

    @classmethod
    async def handle_invoice_paid(cls, event: Any, context: Optional[BillingContext] = None) -> None:
        """
        Handle invoice.paid event.

        Args:
            event: Stripe event object
            context: Billing collaborators
        """
        handler = cls(context)
        await handler._handle_invoice_paid(event_object(event))

    async def _handle_invoice_paid(self, invoice: Any) -> None:
        customer_id = get_field(invoice, 'customer')
        if not customer_id:
            logger.warning(f"[INVOICE] Paid invoice {get_field(invoice, 'id')} without customer")
            return

        subscription_id = subscription_id_from_invoice(invoice)
        if not subscription_id:
            logger.debug(f"[INVOICE] Invoice {get_field(invoice, 'id')} is not for a subscription")
            return

        record = await self.ledger.find_by_customer(customer_id)
        if record is None:
            logger.error(f"[INVOICE] No family billing record for customer {customer_id}")
            return

        subscription = await self._fetch_subscription(subscription_id)
        if subscription is None:
            logger.error(f"[INVOICE] Subscription {subscription_id} not found")
            return

        start, end = extract_period_from_item(subscription)
        await self.ledger.record_payment(
            record.parent_id,
            period_start_with_fallback(start),
            period_end_with_fallback(end),
            get_field(invoice, 'amount_paid'),
        )

        children_ids = self._children_of(subscription)
        if children_ids:
            await self.entitlements.set_status(children_ids, EntitlementStatus.ACTIVE, reset_usage=True)

        logger.info(f"[INVOICE] Paid for {record.parent_id}, {len(children_ids)} children activated")

    @classmethod
    async def handle_invoice_failed(cls, event: Any, context: Optional[BillingContext] = None) -> None:
        """
        Handle invoice.payment_failed event.

        The family goes past_due and its children are paused until a later
        invoice is paid.
        """
        handler = cls(context)
        await handler._handle_invoice_failed(event_object(event))

    async def _handle_invoice_failed(self, invoice: Any) -> None:
        customer_id = get_field(invoice, 'customer')
        if not customer_id:
            return

        record = await self.ledger.find_by_customer(customer_id)
        if record is None:
            return

        await self.ledger.set_past_due(record.parent_id)

        subscription = await self._fetch_subscription(subscription_id_from_invoice(invoice))
        children_ids = self._children_of(subscription) if subscription is not None else []
        if children_ids:
            await self.entitlements.set_status(children_ids, EntitlementStatus.PAUSED)

        logger.warning(f"[INVOICE] Payment failed for {record.parent_id}, {len(children_ids)} children paused")
