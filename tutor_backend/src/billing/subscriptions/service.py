"""
Subscription Service

Main orchestrator for family subscription operations.
Provides a unified interface for:
- Customer management
- Checkout session creation
- Adding and removing children
- Subscription lifecycle (cancel, resume, cancel pending removal)
- Status and prorata previews
- Billing portal
"""

import logging
from typing import List, Optional

from ..domain.subscription import (
    CheckoutResult,
    CustomerResult,
    PortalResult,
    ProrataCalculation,
    SubscriptionInfo,
)
from ..shared.config import PremiumPlanConfig
from .context import BillingContext
from .handlers import (
    CheckoutHandler,
    ChildrenHandler,
    CustomerHandler,
    LifecycleHandler,
    PortalHandler,
    StatusHandler,
)

logger = logging.getLogger(__name__)


class SubscriptionService:
    """
    Unified family subscription service.

    Delegates to the specialized handlers, all sharing one BillingContext.

    Usage:
        from tutor_backend.src.billing.subscriptions import subscription_service

        result = await subscription_service.create_checkout_session(
            parent_id=parent_id,
            children_ids=[child_id],
            success_url="/billing/success",
            cancel_url="/billing/cancel"
        )

        info = await subscription_service.remove_children(parent_id, [child_id])
    """

    def __init__(self, context: Optional[BillingContext] = None):
        self.context = context

    # =========================================================================
    # Plan Configuration
    # =========================================================================

    async def get_premium_plan_config(self) -> Optional[PremiumPlanConfig]:
        return await CustomerHandler(self.context).plans.premium_config()

    # =========================================================================
    # Customer & Checkout
    # =========================================================================

    async def get_or_create_customer(self, parent_id: str) -> CustomerResult:
        """
        Get existing Stripe customer or create new one.

        Args:
            parent_id: Parent account id

        Returns:
            CustomerResult (customer id, created now or not)
        """
        return await CustomerHandler.get_or_create_customer(parent_id, self.context)

    async def create_checkout_session(
        self,
        parent_id: str,
        children_ids: List[str],
        success_url: str,
        cancel_url: str
    ) -> CheckoutResult:
        """
        Create a Stripe checkout session for a new family subscription.

        Returns:
            CheckoutResult with session id and URL
        """
        return await CheckoutHandler.create_checkout_session(
            parent_id, children_ids, success_url, cancel_url, self.context
        )

    # =========================================================================
    # Children
    # =========================================================================

    async def add_children(self, parent_id: str, children_ids: List[str]) -> SubscriptionInfo:
        """Add children now; the remaining days are invoiced immediately."""
        return await ChildrenHandler.add_children(parent_id, children_ids, self.context)

    async def remove_children(self, parent_id: str, children_ids: List[str]) -> SubscriptionInfo:
        """Remove children at the end of the period, without refund."""
        return await ChildrenHandler.remove_children(parent_id, children_ids, self.context)

    # =========================================================================
    # Subscription Lifecycle
    # =========================================================================

    async def cancel_subscription(self, parent_id: str) -> SubscriptionInfo:
        """
        Cancel the subscription at the end of the paid period.

        Children keep premium access until then.
        """
        return await LifecycleHandler.cancel_subscription(parent_id, self.context)

    async def resume_subscription(self, parent_id: str) -> SubscriptionInfo:
        return await LifecycleHandler.resume_subscription(parent_id, self.context)

    async def cancel_pending_removal(
        self,
        parent_id: str,
        child_id: Optional[str] = None
    ) -> Optional[SubscriptionInfo]:
        return await LifecycleHandler.cancel_pending_removal(parent_id, child_id, self.context)

    # =========================================================================
    # Status & Portal
    # =========================================================================

    async def get_subscription_status(self, parent_id: str) -> Optional[SubscriptionInfo]:
        return await StatusHandler.get_subscription_status(parent_id, self.context)

    async def calculate_add_children_prorata(self, parent_id: str, new_children_count: int) -> ProrataCalculation:
        return await StatusHandler.calculate_add_children_prorata(parent_id, new_children_count, self.context)

    async def create_portal_session(self, parent_id: str, return_url: str) -> PortalResult:
        """
        Create a Stripe billing portal session.

        Returns:
            PortalResult with the portal URL
        """
        return await PortalHandler.create_portal_session(parent_id, return_url, self.context)


# Global service instance
subscription_service = SubscriptionService()
