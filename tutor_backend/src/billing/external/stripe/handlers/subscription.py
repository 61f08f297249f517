"""
Subscription Webhook Handler

Handles subscription lifecycle webhook events:
- customer.subscription.updated
- customer.subscription.deleted
"""

import logging
from typing import Any, Optional

from tutor_backend.src.billing.shared.config import BillingStatus, EntitlementStatus
from tutor_backend.src.billing.shared.helpers import extract_period_from_item, get_field
from tutor_backend.src.billing.subscriptions.context import BillingContext
from tutor_backend.utils.timezone import timezone
from .base import WebhookEventHandler, event_object

logger = logging.getLogger(__name__)


def map_billing_status(subscription: Any) -> BillingStatus:
    """Family billing status for a Stripe subscription status."""
    status = get_field(subscription, 'status')
    if status == 'active':
        return BillingStatus.CANCELED if get_field(subscription, 'cancel_at_period_end') else BillingStatus.ACTIVE
    if status == 'past_due':
        return BillingStatus.PAST_DUE
    if status in ('canceled', 'unpaid'):
        return BillingStatus.EXPIRED
    return BillingStatus.ACTIVE


class SubscriptionEventHandler(WebhookEventHandler):
    """
    Handler for Stripe subscription webhook events.

    Keeps the ledger status and period in line with Stripe and moves the
    children's entitlements accordingly.
    """

    @classmethod
    async def handle_subscription_updated(cls, event: Any, context: Optional[BillingContext] = None) -> None:
        """
        Handle customer.subscription.updated event.

        Args:
            event: Stripe event object
            context: Billing collaborators
        """
        handler = cls(context)
        await handler._handle_subscription_updated(event_object(event))

    async def _handle_subscription_updated(self, subscription: Any) -> None:
        record = await self.ledger.find_by_customer(get_field(subscription, 'customer'))
        if record is None:
            return

        start, end = extract_period_from_item(subscription)
        billing_status = map_billing_status(subscription)
        await self.ledger.update_period(
            record.parent_id,
            billing_status,
            timezone.from_ts(start) if start else None,
            timezone.from_ts(end) if end else None,
        )

        children_ids = self._children_of(subscription)
        if children_ids:
            # a canceled family keeps access until the period ends
            if billing_status in (BillingStatus.ACTIVE, BillingStatus.CANCELED):
                child_status = EntitlementStatus.ACTIVE
            else:
                child_status = EntitlementStatus.PAUSED
            await self.entitlements.set_status(children_ids, child_status)

        logger.info(
            f"[SUBSCRIPTION] Updated for {record.parent_id}: {get_field(subscription, 'status')} -> "
            f"{billing_status.value}, {len(children_ids)} children affected"
        )

    @classmethod
    async def handle_subscription_deleted(cls, event: Any, context: Optional[BillingContext] = None) -> None:
        """
        Handle customer.subscription.deleted event.

        The family ledger is reset and every child returns to the free plan.
        """
        handler = cls(context)
        await handler._handle_subscription_deleted(event_object(event))

    async def _handle_subscription_deleted(self, subscription: Any) -> None:
        record = await self.ledger.find_by_customer(get_field(subscription, 'customer'))
        if record is None:
            return

        await self.ledger.clear_subscription(record.parent_id)

        children_ids = self._children_of(subscription)
        free_plan_id = await self.plans.free_plan_id()
        if free_plan_id and children_ids:
            await self.entitlements.revert_to_free(children_ids, free_plan_id)

        logger.info(f"[SUBSCRIPTION] Deleted for {record.parent_id}, {len(children_ids)} children reverted to free")
