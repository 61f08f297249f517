"""
Handler Base

Plumbing shared by the subscription handlers: access to the billing context,
the "ledger must reference a subscription" precondition, and building a
SubscriptionInfo from a live subscription plus the ledger row.
"""

import logging
from typing import Any, List, Optional, Tuple

from ...domain.subscription import SubscriptionInfo
from ...shared.config import PremiumPlanConfig
from ...shared.exceptions import NoSubscriptionError, SubscriptionFullyCanceledError
from ...shared.helpers import extract_period_from_item, get_field, period_end_with_fallback, period_start_with_fallback
from ..context import BillingContext, get_billing_context
from ..ledger import LedgerRecord

logger = logging.getLogger(__name__)

SUBSCRIPTION_CANCELED = 'canceled'


class BillingHandler:
    """Base class holding the collaborators every handler needs."""

    def __init__(self, context: Optional[BillingContext] = None):
        self.ctx = context or get_billing_context()

    @property
    def stripe(self) -> Any:
        return self.ctx.stripe

    @property
    def ledger(self):
        return self.ctx.ledger

    @property
    def plans(self):
        return self.ctx.plans

    async def _require_subscription(self, parent_id: str) -> Tuple[LedgerRecord, str]:
        """
        Ledger row of a family that has a subscription.

        Raises:
            NoSubscriptionError: No row or no subscription id
        """
        record = await self.ledger.get(parent_id)
        if record is None or not record.stripe_subscription_id:
            raise NoSubscriptionError(parent_id=parent_id)
        return record, record.stripe_subscription_id

    async def _retrieve_live_subscription(self, parent_id: str, subscription_id: str, expand: List[str] = None) -> Any:
        """
        Retrieve a subscription that must not be terminated.

        Raises:
            SubscriptionFullyCanceledError: The subscription is canceled on
                Stripe; the ledger is reset before raising
        """
        subscription = await self.stripe.retrieve_subscription(subscription_id, expand=expand or ['items.data'])
        if get_field(subscription, 'status') == SUBSCRIPTION_CANCELED:
            await self.ledger.clear_subscription(parent_id)
            logger.warning(f"[SUBSCRIPTION] {subscription_id} is fully canceled, ledger reset for {parent_id}")
            raise SubscriptionFullyCanceledError(parent_id=parent_id)
        return subscription

    @staticmethod
    def _build_info(
        subscription: Any,
        record: LedgerRecord,
        premium: Optional[PremiumPlanConfig] = None,
        **overrides
    ) -> SubscriptionInfo:
        """SubscriptionInfo with current counts from the ledger row."""
        start, end = extract_period_from_item(subscription, premium)
        values = dict(
            subscription_id=get_field(subscription, 'id'),
            status=get_field(subscription, 'status'),
            current_period_start=period_start_with_fallback(start),
            current_period_end=period_end_with_fallback(end),
            premium_children_count=record.premium_children_count,
            monthly_amount_cents=record.monthly_amount_cents,
            cancel_at_period_end=False,
        )
        values.update(overrides)
        return SubscriptionInfo(**values)

    @staticmethod
    def _build_canceled_info(subscription: Any) -> SubscriptionInfo:
        """Terminal view of a subscription Stripe already canceled."""
        start, end = extract_period_from_item(subscription)
        return SubscriptionInfo(
            subscription_id=get_field(subscription, 'id'),
            status=SUBSCRIPTION_CANCELED,
            current_period_start=period_start_with_fallback(start),
            current_period_end=period_end_with_fallback(end),
            premium_children_count=0,
            monthly_amount_cents=0,
            cancel_at_period_end=True,
        )
