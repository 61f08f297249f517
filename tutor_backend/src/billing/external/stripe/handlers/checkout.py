"""
Checkout Session Webhook Handler

Handles checkout.session.completed. This is where a family subscription
starts: the ledger row is written and every child is moved to premium.
"""

import logging
from typing import Any, Optional

from tutor_backend.src.billing.shared.helpers import (
    calculate_monthly_price,
    extract_period_from_item,
    get_field,
    period_end_with_fallback,
    period_start_with_fallback,
)
from tutor_backend.src.billing.shared.metadata import decode_child_ids
from tutor_backend.src.billing.subscriptions.context import BillingContext
from .base import WebhookEventHandler, event_object

logger = logging.getLogger(__name__)


class CheckoutEventHandler(WebhookEventHandler):
    """
    Handler for Stripe Checkout session webhook events.

    Handles:
    - checkout.session.completed: First payment of a family subscription
    """

    @classmethod
    async def handle_checkout_completed(cls, event: Any, context: Optional[BillingContext] = None) -> None:
        """
        Handle checkout.session.completed event.

        Args:
            event: Stripe event object
            context: Billing collaborators

        Raises:
            NoPlanConfiguredError: The premium plan is unusable; the event
                fails and Stripe delivers it again
        """
        handler = cls(context)
        await handler._handle_checkout_completed(event_object(event))

    async def _handle_checkout_completed(self, session: Any) -> None:
        subscription_id = get_field(session, 'subscription')
        if not subscription_id:
            logger.warning(f"[CHECKOUT] Session {get_field(session, 'id')} completed without subscription")
            return

        metadata = get_field(session, 'metadata', {})
        parent_id = get_field(metadata, 'parentId')
        if not parent_id:
            logger.error(f"[CHECKOUT] Missing parentId in session {get_field(session, 'id')} metadata")
            return

        children_ids = decode_child_ids(get_field(metadata, 'childrenIds'), source="checkout session metadata")
        try:
            children_count = int(get_field(metadata, 'childrenCount', 0)) or len(children_ids)
        except (TypeError, ValueError):
            children_count = len(children_ids)

        premium = await self.plans.require_premium_config()
        monthly_amount = calculate_monthly_price(children_count, premium)

        subscription = await self._fetch_subscription(subscription_id)
        start, end = extract_period_from_item(subscription)

        await self.ledger.upsert_from_checkout(
            parent_id=parent_id,
            customer_id=get_field(session, 'customer'),
            subscription_id=subscription_id,
            period_start=period_start_with_fallback(start),
            period_end=period_end_with_fallback(end),
            children_count=children_count,
            monthly_amount_cents=monthly_amount,
        )

        if children_ids:
            premium_plan_id = await self.plans.premium_plan_id()
            await self.entitlements.grant_premium(children_ids, premium_plan_id)

        logger.info(f"[CHECKOUT] Subscription activated for {parent_id} with {children_count} children")
