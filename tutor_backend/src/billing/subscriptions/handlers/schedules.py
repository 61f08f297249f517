"""
Schedule Handler

Subscription schedules are the only timer in family billing. Two shapes are
written:

- removal schedule: phase 0 keeps the current items until the period end,
  phase 1 bills the remaining children; ``end_behavior='release'``
- cancel schedule: a single phase of the current items until the period
  end; ``end_behavior='cancel'``

Both use ``proration_behavior='none'`` so nothing is refunded or charged
when the boundary passes. Schedule writes are read-modify-write without a
version check; a concurrent writer can overwrite a change.
"""

import logging
from typing import Any, Dict, List, Optional

from tutor_backend.utils.timezone import timezone
from ...domain.subscription import SubscriptionInfo
from ...shared.config import DEFAULT_PERIOD_SECONDS, PremiumPlanConfig, ScheduleEndBehavior
from ...shared.helpers import (
    build_subscription_items,
    extract_current_items_from_phase,
    extract_current_items_from_subscription,
    extract_period_from_item,
    get_field,
    get_schedule_id,
    period_end_with_fallback,
    period_start_with_fallback,
    schedule_phases,
)
from ...shared.metadata import (
    CancelAllPending,
    RemoveChildrenPending,
    encode_removal_phase_metadata,
    encode_schedule_metadata,
    pending_removal_ids,
)
from ..ledger import LedgerRecord
from .base import BillingHandler

logger = logging.getLogger(__name__)


def _union(*groups: List[str]) -> List[str]:
    merged: List[str] = []
    for group in groups:
        merged.extend(group)
    return list(dict.fromkeys(merged))


def _remaining(children_ids: Optional[List[str]], removed_children_ids: List[str]) -> Optional[List[str]]:
    """Children left after a removal, or None when the enrolled ids are unknown."""
    if children_ids is None:
        return None
    removed = set(removed_children_ids)
    return [child_id for child_id in dict.fromkeys(children_ids) if child_id not in removed]


class ScheduleHandler(BillingHandler):
    """Creates, rewrites and releases subscription schedules."""

    # -------------------------------------------------------------------------
    # Phase builders
    # -------------------------------------------------------------------------

    @staticmethod
    def _current_phase(items: List[Dict[str, Any]], start_date: int, end_date: int) -> Dict[str, Any]:
        return {
            'items': items,
            'start_date': start_date,
            'end_date': end_date,
            'proration_behavior': 'none',
        }

    @staticmethod
    def _removal_phase(
        items: List[Dict[str, Any]],
        start_date: int,
        parent_id: str,
        children_count: int,
        removed_children_ids: List[str],
        children_ids: Optional[List[str]] = None
    ) -> Dict[str, Any]:
        return {
            'items': items,
            'start_date': start_date,
            'proration_behavior': 'none',
            'metadata': encode_removal_phase_metadata(parent_id, children_count, removed_children_ids, children_ids),
        }

    @staticmethod
    def _phase_start(schedule: Any) -> int:
        phases = schedule_phases(schedule)
        start = get_field(phases[0], 'start_date') if phases else None
        return int(start) if start else timezone.now_ts()

    async def _schedule_for(self, subscription: Any) -> Any:
        """Existing schedule of a subscription, or a new one created from it."""
        schedule_id = get_schedule_id(subscription)
        if schedule_id:
            return await self.stripe.retrieve_subscription_schedule(schedule_id)
        schedule = await self.stripe.create_subscription_schedule(from_subscription=get_field(subscription, 'id'))
        logger.info(f"[SCHEDULE] Created schedule {get_field(schedule, 'id')} from {get_field(subscription, 'id')}")
        return schedule

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get_pending_removal_ids(self, subscription: Any) -> List[str]:
        """Children already pending removal, or [] when unknown."""
        schedule_id = get_schedule_id(subscription)
        if not schedule_id:
            return []
        try:
            schedule = await self.stripe.retrieve_subscription_schedule(schedule_id)
        except Exception as e:
            logger.warning(f"[SCHEDULE] Could not read schedule {schedule_id}, assuming no pending removals: {e}")
            return []
        return pending_removal_ids(get_field(schedule, 'metadata'))

    async def is_cancel_schedule(self, schedule_id: str) -> bool:
        """True when the schedule ends the subscription at its last phase."""
        schedule = await self.stripe.retrieve_subscription_schedule(schedule_id)
        return get_field(schedule, 'end_behavior') == ScheduleEndBehavior.CANCEL.value

    # -------------------------------------------------------------------------
    # Release
    # -------------------------------------------------------------------------

    async def release_schedule(self, schedule_id: str, subscription_id: Optional[str] = None) -> bool:
        """
        Release a schedule and undo its cancellation, without raising.

        When the schedule was a cancel schedule, ``cancel_at`` is cleared on
        the subscription as well.

        Returns:
            True if released, False if any step failed (logged)
        """
        try:
            schedule = await self.stripe.retrieve_subscription_schedule(schedule_id)
            subscription_id = subscription_id or get_field(schedule, 'subscription')

            await self.stripe.release_subscription_schedule(schedule_id)
            logger.info(f"[SCHEDULE] Released schedule {schedule_id}")

            if subscription_id and get_field(schedule, 'end_behavior') == ScheduleEndBehavior.CANCEL.value:
                await self.stripe.modify_subscription(subscription_id, cancel_at='')
                logger.info(f"[SCHEDULE] Cleared cancel_at on subscription {subscription_id}")
            return True

        except Exception as e:
            logger.error(f"[SCHEDULE] Failed to release schedule {schedule_id}: {e}")
            return False

    # -------------------------------------------------------------------------
    # Removal schedules
    # -------------------------------------------------------------------------

    async def create_deferred_removal_schedule(
        self,
        subscription: Any,
        parent_id: str,
        period_end: int,
        removed_children_ids: List[str],
        remaining_children_ids: List[str],
        premium: PremiumPlanConfig
    ) -> Any:
        """
        Schedule for a subscription that was resumed by adding children.

        The children billed before stay until ``period_end``; only the newly
        added children continue after it.
        """
        schedule = await self.stripe.create_subscription_schedule(from_subscription=get_field(subscription, 'id'))
        start_date = self._phase_start(schedule)

        updated = await self.stripe.update_subscription_schedule(
            get_field(schedule, 'id'),
            end_behavior=ScheduleEndBehavior.RELEASE.value,
            phases=[
                self._current_phase(extract_current_items_from_subscription(subscription), start_date, period_end),
                self._removal_phase(
                    build_subscription_items(len(remaining_children_ids), premium),
                    period_end,
                    parent_id,
                    len(remaining_children_ids),
                    removed_children_ids,
                    children_ids=remaining_children_ids,
                ),
            ],
            metadata=encode_schedule_metadata(
                RemoveChildrenPending(parent_id=parent_id, removed_children_ids=removed_children_ids)
            ),
        )
        logger.info(
            f"[SCHEDULE] Deferred removal of {len(removed_children_ids)} children for {parent_id} "
            f"on schedule {get_field(schedule, 'id')}"
        )
        return updated

    async def schedule_removal(
        self,
        subscription: Any,
        parent_id: str,
        period_end: int,
        children_count: int,
        removed_children_ids: List[str],
        premium: PremiumPlanConfig,
        children_ids: Optional[List[str]] = None
    ) -> Any:
        """
        Create or rewrite the removal schedule of a subscription.

        An existing schedule keeps its phase 0 items and start; its pending
        ids are merged with ``removed_children_ids``. ``children_ids`` are the
        children still subscribed after the boundary; Stripe copies them to
        the subscription metadata when phase 1 starts.
        """
        next_items = build_subscription_items(children_count, premium)
        schedule_id = get_schedule_id(subscription)

        if schedule_id:
            schedule = await self.stripe.retrieve_subscription_schedule(schedule_id)
            all_removed = _union(pending_removal_ids(get_field(schedule, 'metadata')), removed_children_ids)
            phases = schedule_phases(schedule)
            current_items = extract_current_items_from_phase(phases[0] if phases else None)
        else:
            schedule = await self.stripe.create_subscription_schedule(from_subscription=get_field(subscription, 'id'))
            all_removed = _union(removed_children_ids)
            current_items = extract_current_items_from_subscription(subscription)
            logger.info(f"[SCHEDULE] Created schedule {get_field(schedule, 'id')} for {parent_id}")

        updated = await self.stripe.update_subscription_schedule(
            get_field(schedule, 'id'),
            end_behavior=ScheduleEndBehavior.RELEASE.value,
            phases=[
                self._current_phase(current_items, self._phase_start(schedule), period_end),
                self._removal_phase(
                    next_items,
                    period_end,
                    parent_id,
                    children_count,
                    all_removed,
                    children_ids=_remaining(children_ids, all_removed),
                ),
            ],
            metadata=encode_schedule_metadata(
                RemoveChildrenPending(parent_id=parent_id, removed_children_ids=all_removed)
            ),
        )
        logger.info(
            f"[SCHEDULE] {len(all_removed)} children pending removal for {parent_id}, "
            f"{children_count} remaining on schedule {get_field(schedule, 'id')}"
        )
        return updated

    async def update_partial_reactivation(
        self,
        schedule: Any,
        premium: PremiumPlanConfig,
        parent_id: str,
        current_children_count: int,
        pending_ids: List[str],
        children_ids: Optional[List[str]] = None
    ) -> Any:
        """
        Rewrite phase 1 after one child was taken off the pending list.

        Phase 0 keeps its items, start and end. The schedule cancels the
        subscription when no child would remain.
        """
        next_count = current_children_count - len(pending_ids)
        phases = schedule_phases(schedule)
        current = phases[0] if phases else None

        start_date = self._phase_start(schedule)
        period_end = int(get_field(current, 'end_date') or timezone.now_ts() + DEFAULT_PERIOD_SECONDS)
        current_phase = self._current_phase(extract_current_items_from_phase(current), start_date, period_end)

        if next_count > 0:
            end_behavior = ScheduleEndBehavior.RELEASE
            phases = [
                current_phase,
                self._removal_phase(
                    build_subscription_items(next_count, premium),
                    period_end,
                    parent_id,
                    next_count,
                    pending_ids,
                    children_ids=_remaining(children_ids, pending_ids),
                ),
            ]
            pending = RemoveChildrenPending(parent_id=parent_id, removed_children_ids=pending_ids)
        else:
            # nothing left to bill: Stripe rejects an empty phase, so the schedule just ends
            end_behavior = ScheduleEndBehavior.CANCEL
            phases = [current_phase]
            pending = CancelAllPending(parent_id=parent_id, removed_children_ids=pending_ids)

        updated = await self.stripe.update_subscription_schedule(
            get_field(schedule, 'id'),
            end_behavior=end_behavior.value,
            phases=phases,
            metadata=encode_schedule_metadata(pending),
        )
        logger.info(f"[SCHEDULE] {len(pending_ids)} children still pending removal for {parent_id}")
        return updated

    # -------------------------------------------------------------------------
    # Cancel schedule
    # -------------------------------------------------------------------------

    async def cancel_via_schedule(
        self,
        parent_id: str,
        record: LedgerRecord,
        subscription: Any,
        removed_children_ids: List[str],
        premium: PremiumPlanConfig
    ) -> SubscriptionInfo:
        """
        End the subscription at the period boundary through a schedule.

        The ledger is marked canceled; current counts stay until Stripe
        deletes the subscription.
        """
        start_ts, end_ts = extract_period_from_item(subscription, premium)
        period_end = int(end_ts) if end_ts else timezone.now_ts() + DEFAULT_PERIOD_SECONDS
        current_items = extract_current_items_from_subscription(subscription)

        schedule = await self._schedule_for(subscription)
        await self.stripe.update_subscription_schedule(
            get_field(schedule, 'id'),
            end_behavior=ScheduleEndBehavior.CANCEL.value,
            phases=[self._current_phase(current_items, self._phase_start(schedule), period_end)],
            metadata=encode_schedule_metadata(
                CancelAllPending(parent_id=parent_id, removed_children_ids=removed_children_ids)
            ),
        )
        await self.ledger.set_canceled(parent_id)
        logger.info(f"[SCHEDULE] Schedule {get_field(schedule, 'id')} cancels subscription of {parent_id} at period end")

        return SubscriptionInfo(
            subscription_id=get_field(subscription, 'id'),
            status=get_field(subscription, 'status'),
            current_period_start=period_start_with_fallback(start_ts),
            current_period_end=period_end_with_fallback(period_end),
            premium_children_count=record.premium_children_count,
            monthly_amount_cents=record.monthly_amount_cents,
            cancel_at_period_end=True,
            pending_removal_children_ids=list(dict.fromkeys(removed_children_ids)),
            scheduled_children_count=0,
            scheduled_monthly_amount_cents=0,
            has_scheduled_changes=True,
        )
