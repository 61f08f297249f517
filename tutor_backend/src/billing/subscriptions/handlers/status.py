"""
Status Handler

Read-only views of a family subscription: the live status (current period
from Stripe, counts from the ledger, pending changes from the schedule) and
the prorata preview shown before adding children.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, List, Optional

from tutor_backend.utils.timezone import timezone
from ...domain.subscription import ProrataCalculation, SubscriptionInfo
from ...shared.config import SECONDS_PER_DAY, ScheduleEndBehavior
from ...shared.helpers import (
    calculate_monthly_price,
    count_children_in_phase,
    extract_period_from_item,
    format_cents,
    get_field,
    get_schedule_id,
    is_pending_cancellation,
    period_end_with_fallback,
    period_start_with_fallback,
    phase_amount_cents,
    round_half_away_from_zero,
    schedule_phases,
)
from ...shared.metadata import RemoveChildrenPending, decode_removal_phase_metadata, decode_schedule_metadata
from ..context import BillingContext
from .base import BillingHandler

logger = logging.getLogger(__name__)


@dataclass
class ScheduleView:
    """Pending changes read from a subscription schedule."""
    has_scheduled_changes: bool = False
    cancel_at_period_end: bool = False
    pending_removal_children_ids: List[str] = field(default_factory=list)
    scheduled_children_count: Optional[int] = None
    scheduled_monthly_amount_cents: Optional[int] = None


class StatusHandler(BillingHandler):
    """Builds subscription status and prorata previews."""

    # -------------------------------------------------------------------------
    # Status
    # -------------------------------------------------------------------------

    @classmethod
    async def get_subscription_status(
        cls,
        parent_id: str,
        context: Optional[BillingContext] = None
    ) -> Optional[SubscriptionInfo]:
        """
        Get the live subscription status of a family.

        Args:
            parent_id: Paying parent
            context: Billing collaborators

        Returns:
            SubscriptionInfo, or None when the family has no subscription or
            Stripe could not be read
        """
        handler = cls(context)
        return await handler._get_subscription_status(parent_id)

    async def _get_subscription_status(self, parent_id: str) -> Optional[SubscriptionInfo]:
        record = await self.ledger.get(parent_id)
        if record is None or not record.stripe_subscription_id:
            return None

        try:
            subscription = await self.stripe.retrieve_subscription(
                record.stripe_subscription_id, expand=['items.data', 'schedule']
            )
            view = await self._schedule_view(subscription)
        except Exception as e:
            logger.warning(f"[STATUS] Could not read subscription of {parent_id}: {e}")
            return None

        start, end = extract_period_from_item(subscription)
        return SubscriptionInfo(
            subscription_id=get_field(subscription, 'id'),
            status=get_field(subscription, 'status'),
            current_period_start=period_start_with_fallback(start),
            current_period_end=period_end_with_fallback(end),
            premium_children_count=record.premium_children_count,
            monthly_amount_cents=record.monthly_amount_cents,
            cancel_at_period_end=is_pending_cancellation(subscription) or view.cancel_at_period_end,
            pending_removal_children_ids=view.pending_removal_children_ids,
            scheduled_children_count=view.scheduled_children_count,
            scheduled_monthly_amount_cents=view.scheduled_monthly_amount_cents,
            has_scheduled_changes=view.has_scheduled_changes,
        )

    async def _schedule_view(self, subscription: Any) -> ScheduleView:
        schedule_id = get_schedule_id(subscription)
        if not schedule_id:
            return ScheduleView()

        schedule = await self.stripe.retrieve_subscription_schedule(schedule_id, expand=['phases.items.price'])
        pending = decode_schedule_metadata(get_field(schedule, 'metadata'))
        pending_ids = list(pending.removed_children_ids) if pending else []

        if get_field(schedule, 'end_behavior') == ScheduleEndBehavior.CANCEL.value:
            return ScheduleView(
                has_scheduled_changes=True,
                cancel_at_period_end=True,
                pending_removal_children_ids=pending_ids,
                scheduled_children_count=0,
                scheduled_monthly_amount_cents=0,
            )

        if isinstance(pending, RemoveChildrenPending):
            phases = schedule_phases(schedule)
            next_phase = phases[1] if len(phases) > 1 else None
            phase_meta = decode_removal_phase_metadata(get_field(next_phase, 'metadata'))
            return ScheduleView(
                has_scheduled_changes=True,
                pending_removal_children_ids=pending_ids,
                scheduled_children_count=phase_meta.children_count if phase_meta else None,
                scheduled_monthly_amount_cents=phase_amount_cents(next_phase),
            )

        return ScheduleView()

    # -------------------------------------------------------------------------
    # Prorata
    # -------------------------------------------------------------------------

    @classmethod
    async def calculate_add_children_prorata(
        cls,
        parent_id: str,
        new_children_count: int,
        context: Optional[BillingContext] = None
    ) -> ProrataCalculation:
        """
        Preview the immediate charge for adding children.

        The charge is the additional-child price for the days left in the
        period. The new monthly amount starts from the children billed next
        period: the scheduled composition when a schedule exists, none when
        the subscription is ending, else the ledger count.

        Raises:
            NoPlanConfiguredError, NoSubscriptionError
        """
        handler = cls(context)
        return await handler._calculate_add_children_prorata(parent_id, new_children_count)

    async def _calculate_add_children_prorata(self, parent_id: str, new_children_count: int) -> ProrataCalculation:
        premium = await self.plans.require_premium_config()
        record, subscription_id = await self._require_subscription(parent_id)
        subscription = await self.stripe.retrieve_subscription(subscription_id, expand=['items.data', 'schedule'])

        start, end = extract_period_from_item(subscription)
        period_start = period_start_with_fallback(start)
        period_end = period_end_with_fallback(end)
        now = timezone.now()

        total_days = max(1, math.ceil((period_end - period_start).total_seconds() / SECONDS_PER_DAY))
        days_remaining = max(0, math.ceil((period_end - now).total_seconds() / SECONDS_PER_DAY))

        price_per_child = premium.price_additional_child_cents
        prorata_cents = round_half_away_from_zero(price_per_child * days_remaining / total_days * new_children_count)

        base_count = record.premium_children_count
        ending = is_pending_cancellation(subscription)
        schedule_id = get_schedule_id(subscription)
        if schedule_id and not ending:
            schedule = await self.stripe.retrieve_subscription_schedule(schedule_id, expand=['phases.items.price'])
            phases = schedule_phases(schedule)
            if get_field(schedule, 'end_behavior') == ScheduleEndBehavior.CANCEL.value:
                ending = True
            elif len(phases) > 1:
                base_count = count_children_in_phase(phases[1], premium)
                logger.debug(f"[STATUS] Schedule found for {parent_id}, {base_count} children next period")
        if ending:
            base_count = 0
            logger.debug(f"[STATUS] Subscription of {parent_id} ends at period end, no children next period")

        new_monthly = calculate_monthly_price(base_count + new_children_count, premium)

        return ProrataCalculation(
            prorata_amount_cents=prorata_cents,
            prorata_amount=format_cents(prorata_cents),
            days_remaining=days_remaining,
            total_days_in_period=total_days,
            current_period_end=period_end,
            new_monthly_amount_cents=new_monthly,
            new_monthly_amount=format_cents(new_monthly),
            price_per_child_cents=price_per_child,
        )


async def get_subscription_status(parent_id: str, context: Optional[BillingContext] = None) -> Optional[SubscriptionInfo]:
    return await StatusHandler.get_subscription_status(parent_id, context)


async def calculate_add_children_prorata(
    parent_id: str,
    new_children_count: int,
    context: Optional[BillingContext] = None
) -> ProrataCalculation:
    return await StatusHandler.calculate_add_children_prorata(parent_id, new_children_count, context)
