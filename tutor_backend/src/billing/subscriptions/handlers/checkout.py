"""
Checkout Handler

Creates Stripe Checkout sessions for a new family subscription. The line
items carry one first-child price plus the additional-child price for every
further child; the family metadata is written on both the session and the
subscription it creates.
"""

import logging
from typing import List, Optional

from ...domain.subscription import CheckoutResult
from ...shared.exceptions import (
    BillingError,
    ExistingSubscriptionError,
    NoChildrenError,
    SubscriptionCanceledPendingError,
)
from ...shared.helpers import build_subscription_items, get_field, is_pending_cancellation
from ...shared.metadata import encode_subscription_metadata
from ..context import BillingContext
from .base import SUBSCRIPTION_CANCELED, BillingHandler
from .customer import CustomerHandler

logger = logging.getLogger(__name__)


class CheckoutHandler(BillingHandler):
    """Handles checkout session creation."""

    @classmethod
    async def create_checkout_session(
        cls,
        parent_id: str,
        children_ids: List[str],
        success_url: str,
        cancel_url: str,
        context: Optional[BillingContext] = None
    ) -> CheckoutResult:
        """
        Create a subscription checkout for a set of children.

        Args:
            parent_id: Paying parent
            children_ids: Children to subscribe (at least one)
            success_url: Redirect after payment
            cancel_url: Redirect when the parent backs out
            context: Billing collaborators

        Returns:
            CheckoutResult with session id and hosted URL

        Raises:
            NoChildrenError: Empty child set
            NoPlanConfiguredError: Premium plan not usable
            ExistingSubscriptionError: The family already pays
            SubscriptionCanceledPendingError: Resume instead of subscribing again
        """
        handler = cls(context)
        return await handler._create_checkout_session(parent_id, children_ids, success_url, cancel_url)

    async def _create_checkout_session(
        self,
        parent_id: str,
        children_ids: List[str],
        success_url: str,
        cancel_url: str
    ) -> CheckoutResult:
        children_ids = list(dict.fromkeys(children_ids))
        if not children_ids:
            raise NoChildrenError(parent_id=parent_id)

        premium = await self.plans.require_premium_config()
        customer = await CustomerHandler(self.ctx)._get_or_create_customer(parent_id)

        record = await self.ledger.get(parent_id)
        if record is not None and record.stripe_subscription_id:
            await self._validate_no_active_subscription(parent_id, record.stripe_subscription_id)

        metadata = encode_subscription_metadata(parent_id, children_ids)

        session = await self.stripe.create_checkout_session(
            customer=customer.customer_id,
            mode='subscription',
            line_items=build_subscription_items(len(children_ids), premium),
            success_url=success_url,
            cancel_url=cancel_url,
            billing_address_collection='auto',
            allow_promotion_codes=True,
            metadata=metadata,
            subscription_data={'metadata': metadata},
        )

        logger.info(f"[CHECKOUT] Created session {get_field(session, 'id')} for {parent_id} ({len(children_ids)} children)")
        return CheckoutResult(session_id=get_field(session, 'id'), url=get_field(session, 'url'))

    async def _validate_no_active_subscription(self, parent_id: str, subscription_id: str) -> None:
        """
        Refuse checkout while the referenced subscription is alive.

        A canceled subscription, or one that cannot be retrieved at all, is a
        stale pointer: it is cleared and checkout proceeds.
        """
        try:
            existing = await self.stripe.retrieve_subscription(subscription_id)
        except BillingError:
            raise
        except Exception as e:
            logger.warning(f"[CHECKOUT] Could not retrieve {subscription_id} for {parent_id}, clearing stale pointer: {e}")
            await self.ledger.clear_subscription(parent_id)
            return

        if get_field(existing, 'status') == SUBSCRIPTION_CANCELED:
            await self.ledger.clear_subscription(parent_id)
            logger.info(f"[CHECKOUT] Cleared canceled subscription {subscription_id} for {parent_id}")
        elif not is_pending_cancellation(existing):
            raise ExistingSubscriptionError(parent_id=parent_id)
        else:
            raise SubscriptionCanceledPendingError(parent_id=parent_id)


async def create_checkout_session(
    parent_id: str,
    children_ids: List[str],
    success_url: str,
    cancel_url: str,
    context: Optional[BillingContext] = None
) -> CheckoutResult:
    return await CheckoutHandler.create_checkout_session(parent_id, children_ids, success_url, cancel_url, context)
