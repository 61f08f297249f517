"""
Lifecycle Handler

Cancellation, resumption and undoing pending removals.

Billing rules:
- CANCEL: at the end of the paid period, never immediately
- RESUME: possible until the period ends, nothing is paid again
- CANCEL PENDING REMOVAL: a child scheduled to leave stays subscribed
"""

import logging
from typing import Any, Optional

from ...domain.subscription import SubscriptionInfo
from ...shared.config import BillingStatus, ScheduleEndBehavior
from ...shared.exceptions import NoPendingChangesError, NoSubscriptionError, SubscriptionFullyCanceledError
from ...shared.helpers import get_field, get_schedule_id
from ...shared.metadata import decode_subscription_children, pending_removal_ids
from ..context import BillingContext
from ..ledger import LedgerRecord
from .base import SUBSCRIPTION_CANCELED, BillingHandler
from .schedules import ScheduleHandler
from .status import StatusHandler

logger = logging.getLogger(__name__)


class LifecycleHandler(BillingHandler):
    """Handles subscription cancel, resume and pending-removal reversal."""

    # -------------------------------------------------------------------------
    # Cancel
    # -------------------------------------------------------------------------

    @classmethod
    async def cancel_subscription(cls, parent_id: str, context: Optional[BillingContext] = None) -> SubscriptionInfo:
        """
        Cancel the family subscription at the end of the current period.

        A subscription already driven by a schedule is cancelled through that
        schedule so pending changes are not lost.

        Raises:
            NoSubscriptionError: The family has no subscription
        """
        handler = cls(context)
        return await handler._cancel_subscription(parent_id)

    async def _cancel_subscription(self, parent_id: str) -> SubscriptionInfo:
        record, subscription_id = await self._require_subscription(parent_id)
        subscription = await self.stripe.retrieve_subscription(subscription_id, expand=['items.data'])

        if get_field(subscription, 'status') == SUBSCRIPTION_CANCELED:
            await self.ledger.clear_subscription(parent_id)
            logger.info(f"[LIFECYCLE] Subscription {subscription_id} already terminated, ledger reset for {parent_id}")
            return self._build_canceled_info(subscription)

        if get_field(subscription, 'cancel_at_period_end'):
            return self._build_info(subscription, record, cancel_at_period_end=True)

        if get_schedule_id(subscription):
            premium = await self.plans.require_premium_config()
            children_ids = decode_subscription_children(get_field(subscription, 'metadata'))
            return await ScheduleHandler(self.ctx).cancel_via_schedule(
                parent_id, record, subscription, children_ids, premium
            )

        updated = await self.stripe.modify_subscription(subscription_id, cancel_at_period_end=True)
        await self.ledger.set_canceled(parent_id)
        logger.info(f"[LIFECYCLE] Subscription {subscription_id} of {parent_id} cancels at period end")

        return self._build_info(updated, record, cancel_at_period_end=True)

    # -------------------------------------------------------------------------
    # Cancel pending removal
    # -------------------------------------------------------------------------

    @classmethod
    async def cancel_pending_removal(
        cls,
        parent_id: str,
        child_id: Optional[str] = None,
        context: Optional[BillingContext] = None
    ) -> Optional[SubscriptionInfo]:
        """
        Keep children that were scheduled to leave.

        Args:
            parent_id: Paying parent
            child_id: One child to keep; None keeps every pending child
            context: Billing collaborators

        Returns:
            Fresh subscription status

        Raises:
            NoPlanConfiguredError, NoSubscriptionError
            NoPendingChangesError: The subscription has no schedule
        """
        handler = cls(context)
        return await handler._cancel_pending_removal(parent_id, child_id)

    async def _cancel_pending_removal(self, parent_id: str, child_id: Optional[str]) -> Optional[SubscriptionInfo]:
        premium = await self.plans.require_premium_config()
        record, subscription_id = await self._require_subscription(parent_id)
        subscription = await self.stripe.retrieve_subscription(subscription_id, expand=['items.data'])

        schedule_id = get_schedule_id(subscription)
        if not schedule_id:
            raise NoPendingChangesError(parent_id=parent_id)

        schedules = ScheduleHandler(self.ctx)
        schedule = await self.stripe.retrieve_subscription_schedule(schedule_id)
        pending_ids = pending_removal_ids(get_field(schedule, 'metadata'))

        logger.info(
            f"[LIFECYCLE] Cancel pending removal for {parent_id} on {schedule_id}: "
            f"pending={pending_ids} child={child_id}"
        )

        if not child_id or len(pending_ids) <= 1:
            await self._release_and_reactivate(schedules, schedule_id, record)
            return await StatusHandler(self.ctx)._get_subscription_status(parent_id)

        remaining_pending = [pending for pending in pending_ids if pending != child_id]
        if not remaining_pending:
            await self._release_and_reactivate(schedules, schedule_id, record)
        else:
            updated = await schedules.update_partial_reactivation(
                schedule,
                premium,
                parent_id,
                record.premium_children_count,
                remaining_pending,
                children_ids=decode_subscription_children(get_field(subscription, 'metadata')),
            )
            releases = get_field(updated, 'end_behavior') == ScheduleEndBehavior.RELEASE.value
            if releases and record.billing_status == BillingStatus.CANCELED.value:
                await self.ledger.set_active(parent_id)
            logger.info(f"[LIFECYCLE] Child {child_id} kept, {len(remaining_pending)} still leaving for {parent_id}")

        return await StatusHandler(self.ctx)._get_subscription_status(parent_id)

    async def _release_and_reactivate(self, schedules: ScheduleHandler, schedule_id: str, record: LedgerRecord) -> None:
        await schedules.release_schedule(schedule_id, record.stripe_subscription_id)
        if record.billing_status == BillingStatus.CANCELED.value:
            await self.ledger.set_active(record.parent_id)
        logger.info(f"[LIFECYCLE] Released schedule {schedule_id}, all children kept for {record.parent_id}")

    # -------------------------------------------------------------------------
    # Resume
    # -------------------------------------------------------------------------

    @classmethod
    async def resume_subscription(cls, parent_id: str, context: Optional[BillingContext] = None) -> SubscriptionInfo:
        """
        Resume a subscription that was set to end at the period boundary.

        Any schedule is released and every child in the subscription metadata
        is restored to premium.

        Raises:
            NoSubscriptionError: The family has no subscription
            SubscriptionFullyCanceledError: Stripe already ended the subscription
        """
        handler = cls(context)
        return await handler._resume_subscription(parent_id)

    async def _resume_subscription(self, parent_id: str) -> SubscriptionInfo:
        record, subscription_id = await self._require_subscription(parent_id)
        current = await self.stripe.retrieve_subscription(subscription_id, expand=['items.data'])

        if get_field(current, 'status') == SUBSCRIPTION_CANCELED:
            await self.ledger.clear_subscription(parent_id)
            raise SubscriptionFullyCanceledError(parent_id=parent_id)

        schedule_id = get_schedule_id(current)
        if schedule_id:
            await self.stripe.release_subscription_schedule(schedule_id)
            logger.info(f"[LIFECYCLE] Released schedule {schedule_id} for {parent_id}")

        subscription = await self.stripe.modify_subscription(subscription_id, cancel_at_period_end=False, cancel_at='')
        await self.ledger.set_active(parent_id)
        await self._restore_children(subscription)

        logger.info(f"[LIFECYCLE] Resumed subscription {subscription_id} for {parent_id}")
        return self._build_info(subscription, record, cancel_at_period_end=False)

    async def _restore_children(self, subscription: Any) -> None:
        premium_plan_id = await self.plans.premium_plan_id()
        children_ids = decode_subscription_children(get_field(subscription, 'metadata'))
        if not premium_plan_id or not children_ids:
            return
        restored = await self.ctx.entitlements.grant_premium(children_ids, premium_plan_id)
        logger.info(f"[LIFECYCLE] Restored {restored} children to premium")


async def cancel_subscription(parent_id: str, context: Optional[BillingContext] = None) -> SubscriptionInfo:
    return await LifecycleHandler.cancel_subscription(parent_id, context)


async def cancel_pending_removal(
    parent_id: str,
    child_id: Optional[str] = None,
    context: Optional[BillingContext] = None
) -> Optional[SubscriptionInfo]:
    return await LifecycleHandler.cancel_pending_removal(parent_id, child_id, context)


async def resume_subscription(parent_id: str, context: Optional[BillingContext] = None) -> SubscriptionInfo:
    return await LifecycleHandler.resume_subscription(parent_id, context)
