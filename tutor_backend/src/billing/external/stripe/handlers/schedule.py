"""
Subscription Schedule Webhook Handler

Handles subscription_schedule.updated. When a removal schedule enters its
second phase the removed children leave: the ledger takes the new count and
they return to the free plan.
"""

import logging
from typing import Any, Optional

from tutor_backend.src.billing.shared.helpers import calculate_monthly_price, current_phase_index, get_field, schedule_phases
from tutor_backend.src.billing.shared.metadata import (
    RemoveChildrenPending,
    decode_removal_phase_metadata,
    decode_schedule_metadata,
)
from tutor_backend.src.billing.subscriptions.context import BillingContext
from .base import WebhookEventHandler, event_object

logger = logging.getLogger(__name__)

REMOVAL_PHASE_INDEX = 1


class ScheduleEventHandler(WebhookEventHandler):
    """Handler for Stripe subscription schedule webhook events."""

    @classmethod
    async def handle_schedule_updated(cls, event: Any, context: Optional[BillingContext] = None) -> None:
        """
        Handle subscription_schedule.updated event.

        Only acts once a remove_children schedule is in its removal phase;
        every other update is ignored.

        Raises:
            NoPlanConfiguredError: The premium plan is unusable
        """
        handler = cls(context)
        await handler._handle_schedule_updated(event_object(event))

    async def _handle_schedule_updated(self, schedule: Any) -> None:
        pending = decode_schedule_metadata(get_field(schedule, 'metadata'))
        if not isinstance(pending, RemoveChildrenPending):
            logger.debug(f"[SCHEDULE] Schedule {get_field(schedule, 'id')} updated, no removal pending")
            return

        index = current_phase_index(schedule)
        if index != REMOVAL_PHASE_INDEX:
            logger.debug(f"[SCHEDULE] Schedule {get_field(schedule, 'id')} in phase {index}, waiting for removal phase")
            return

        phase = schedule_phases(schedule)[REMOVAL_PHASE_INDEX]
        phase_meta = decode_removal_phase_metadata(get_field(phase, 'metadata'))
        if phase_meta is None:
            logger.debug(f"[SCHEDULE] Current phase of {get_field(schedule, 'id')} is not a removal phase")
            return

        premium = await self.plans.require_premium_config()
        children_count = phase_meta.children_count
        await self.ledger.update_counts(
            pending.parent_id, children_count, calculate_monthly_price(children_count, premium)
        )

        removed_ids = list(pending.removed_children_ids)
        if removed_ids:
            free_plan_id = await self.plans.free_plan_id()
            if free_plan_id:
                await self.entitlements.revert_to_free(removed_ids, free_plan_id)

        logger.info(
            f"[SCHEDULE] Removal applied for {pending.parent_id}: {children_count} children billed, "
            f"{len(removed_ids)} reverted to free"
        )
