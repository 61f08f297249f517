"""
Children Handler

Changes the set of children a family pays for.

Pricing rules:
- ADD: takes effect now, the remaining days are invoiced immediately
- REMOVE: takes effect at the period end, nothing is refunded

Adding children to a subscription that was about to end resumes it; the
children paid for before then leave at the period end through a schedule.
"""

import logging
from typing import List, Optional

from ...domain.subscription import SubscriptionInfo
from ...shared.exceptions import ChildrenAlreadySubscribedError, ChildrenNotSubscribedError
from ...shared.helpers import (
    calculate_monthly_price,
    count_children_from_items,
    extract_period_from_item,
    find_item_by_price,
    get_field,
    get_schedule_id,
    is_pending_cancellation,
    period_end_ts,
    period_end_with_fallback,
    period_start_with_fallback,
    subscription_items,
)
from ...shared.metadata import decode_subscription_children, encode_subscription_metadata
from ..context import BillingContext
from .base import BillingHandler
from .schedules import ScheduleHandler

logger = logging.getLogger(__name__)


class ChildrenHandler(BillingHandler):
    """Adds and removes children on a family subscription."""

    @classmethod
    async def add_children(
        cls,
        parent_id: str,
        new_children_ids: List[str],
        context: Optional[BillingContext] = None
    ) -> SubscriptionInfo:
        """
        Add children to the family subscription with immediate proration.

        Args:
            parent_id: Paying parent
            new_children_ids: Children to add
            context: Billing collaborators

        Returns:
            SubscriptionInfo after the change; when the subscription was
            pending cancellation it also carries the children leaving at the
            period end and the amount billed from then on

        Raises:
            NoPlanConfiguredError, NoSubscriptionError, SubscriptionFullyCanceledError
            ChildrenAlreadySubscribedError: Every child is already subscribed
        """
        handler = cls(context)
        return await handler._add_children(parent_id, new_children_ids)

    async def _grant_premium(self, parent_id: str, children_ids: List[str]) -> None:
        premium_plan_id = await self.plans.premium_plan_id()
        if not premium_plan_id:
            logger.error(f"[CHILDREN] No premium plan row, children of {parent_id} keep their plan")
            return
        granted = await self.ctx.entitlements.grant_premium(children_ids, premium_plan_id)
        logger.info(f"[CHILDREN] Granted premium to {granted} children of {parent_id}")

    async def _add_children(self, parent_id: str, new_children_ids: List[str]) -> SubscriptionInfo:
        premium = await self.plans.require_premium_config()
        record, subscription_id = await self._require_subscription(parent_id)
        subscription = await self._retrieve_live_subscription(parent_id, subscription_id)
        schedules = ScheduleHandler(self.ctx)

        existing_children_ids = decode_subscription_children(get_field(subscription, 'metadata'))
        requested_ids = list(dict.fromkeys(new_children_ids))
        new_children_ids = [child_id for child_id in requested_ids if child_id not in existing_children_ids]
        if not new_children_ids:
            raise ChildrenAlreadySubscribedError(parent_id=parent_id)
        if len(new_children_ids) < len(requested_ids):
            logger.info(f"[CHILDREN] Skipping children already subscribed for {parent_id}")

        schedule_id = get_schedule_id(subscription)
        cancel_flagged = is_pending_cancellation(subscription)
        # a cancel schedule ends the subscription just like the cancel flags
        was_pending_cancellation = cancel_flagged or bool(
            schedule_id and await schedules.is_cancel_schedule(schedule_id)
        )

        if cancel_flagged:
            await self.stripe.modify_subscription(subscription_id, cancel_at_period_end=False, cancel_at='')
            logger.info(f"[CHILDREN] Resumed subscription pending cancellation for {parent_id}")

        if schedule_id:
            await schedules.release_schedule(schedule_id)

        items = subscription_items(subscription)
        current_total = count_children_from_items(items, premium)
        new_total = current_total + len(new_children_ids)
        additional_count = max(0, new_total - 1)

        update_items = []
        additional_item = find_item_by_price(items, premium.price_id_additional_child)
        if additional_item is not None:
            update_items.append({'id': get_field(additional_item, 'id'), 'quantity': additional_count})
        elif additional_count > 0:
            update_items.append({'price': premium.price_id_additional_child, 'quantity': additional_count})

        all_children_ids = list(dict.fromkeys(existing_children_ids + new_children_ids))
        updated = await self.stripe.modify_subscription(
            subscription_id,
            items=update_items,
            proration_behavior='always_invoice',
            metadata=encode_subscription_metadata(parent_id, all_children_ids, new_total),
        )
        await self._grant_premium(parent_id, new_children_ids)

        start_ts, end_ts = extract_period_from_item(subscription, premium)
        period_end = period_end_ts(subscription, premium)

        has_scheduled_changes = was_pending_cancellation and bool(existing_children_ids)
        if has_scheduled_changes:
            await schedules.create_deferred_removal_schedule(
                updated,
                parent_id,
                period_end,
                removed_children_ids=existing_children_ids,
                remaining_children_ids=new_children_ids,
                premium=premium,
            )

        monthly_amount = calculate_monthly_price(new_total, premium)
        await self.ledger.update_subscription(parent_id, new_total, monthly_amount)

        logger.info(f"[CHILDREN] Added {len(new_children_ids)} children for {parent_id}: {current_total} -> {new_total}")

        info = SubscriptionInfo(
            subscription_id=get_field(updated, 'id'),
            status=get_field(updated, 'status'),
            current_period_start=period_start_with_fallback(start_ts),
            current_period_end=period_end_with_fallback(period_end),
            premium_children_count=new_total,
            monthly_amount_cents=monthly_amount,
            cancel_at_period_end=False,
            has_scheduled_changes=has_scheduled_changes,
        )
        if has_scheduled_changes:
            info.pending_removal_children_ids = existing_children_ids
            info.scheduled_children_count = len(new_children_ids)
            info.scheduled_monthly_amount_cents = calculate_monthly_price(len(new_children_ids), premium)
        return info

    @classmethod
    async def remove_children(
        cls,
        parent_id: str,
        children_ids: List[str],
        context: Optional[BillingContext] = None
    ) -> SubscriptionInfo:
        """
        Remove children at the end of the current period.

        Nothing changes on the subscription or the ledger now; a schedule
        applies the new composition at the boundary. Removing every child
        turns the schedule into a cancellation.

        Raises:
            NoPlanConfiguredError, NoSubscriptionError, SubscriptionFullyCanceledError
            ChildrenNotSubscribedError: None of the children is subscribed
        """
        handler = cls(context)
        return await handler._remove_children(parent_id, children_ids)

    async def _remove_children(self, parent_id: str, children_ids: List[str]) -> SubscriptionInfo:
        premium = await self.plans.require_premium_config()
        record, subscription_id = await self._require_subscription(parent_id)
        subscription = await self._retrieve_live_subscription(parent_id, subscription_id)
        schedules = ScheduleHandler(self.ctx)

        enrolled_ids = decode_subscription_children(get_field(subscription, 'metadata'))
        requested_ids = list(dict.fromkeys(children_ids))
        to_remove = [child_id for child_id in requested_ids if child_id in enrolled_ids]
        if not to_remove:
            raise ChildrenNotSubscribedError(parent_id=parent_id)
        if len(to_remove) < len(requested_ids):
            logger.warning(f"[CHILDREN] Ignoring children not subscribed by {parent_id}")

        current_total = count_children_from_items(subscription_items(subscription), premium)
        already_pending = [
            child_id for child_id in await schedules.get_pending_removal_ids(subscription) if child_id in enrolled_ids
        ]
        all_to_remove = list(dict.fromkeys(already_pending + to_remove))
        remaining = max(0, current_total - len(all_to_remove))

        logger.info(
            f"[CHILDREN] Scheduling removal for {parent_id}: {current_total} billed, "
            f"{len(all_to_remove)} to remove -> {remaining} remaining"
        )

        if remaining <= 0:
            return await schedules.cancel_via_schedule(parent_id, record, subscription, all_to_remove, premium)

        start_ts, _ = extract_period_from_item(subscription, premium)
        period_end = period_end_ts(subscription, premium)

        await schedules.schedule_removal(
            subscription,
            parent_id,
            period_end,
            remaining,
            all_to_remove,
            premium,
            children_ids=[child_id for child_id in enrolled_ids if child_id not in all_to_remove],
        )

        return SubscriptionInfo(
            subscription_id=get_field(subscription, 'id'),
            status=get_field(subscription, 'status'),
            current_period_start=period_start_with_fallback(start_ts),
            current_period_end=period_end_with_fallback(period_end),
            premium_children_count=record.premium_children_count,
            monthly_amount_cents=record.monthly_amount_cents,
            cancel_at_period_end=False,
            pending_removal_children_ids=all_to_remove,
            scheduled_children_count=remaining,
            scheduled_monthly_amount_cents=calculate_monthly_price(remaining, premium),
            has_scheduled_changes=True,
        )


async def add_children(parent_id: str, new_children_ids: List[str], context: Optional[BillingContext] = None) -> SubscriptionInfo:
    return await ChildrenHandler.add_children(parent_id, new_children_ids, context)


async def remove_children(parent_id: str, children_ids: List[str], context: Optional[BillingContext] = None) -> SubscriptionInfo:
    return await ChildrenHandler.remove_children(parent_id, children_ids, context)
