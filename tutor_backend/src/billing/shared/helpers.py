"""
Billing Helpers

Pure functions over Stripe objects and plan pricing. Nothing here performs
I/O; every function accepts either a stripe SDK object or a plain dict.
"""

import math
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from tutor_backend.utils.timezone import timezone
from .config import DEFAULT_PERIOD_SECONDS, PremiumPlanConfig


# =============================================================================
# FIELD ACCESS
# =============================================================================

def get_field(obj: Any, key: str, default: Any = None) -> Any:
    """
    Read a field from a Stripe object or dict.

    A stored ``None`` is returned as ``default``.
    """
    if obj is None:
        return default
    if hasattr(obj, 'get'):
        value = obj.get(key, default)
    else:
        value = getattr(obj, key, default)
    return default if value is None else value


def subscription_items(subscription: Any) -> List[Any]:
    """Line items of a subscription (``items.data``)."""
    return list(get_field(get_field(subscription, 'items'), 'data', []))


def price_id_of(item: Any) -> Optional[str]:
    """Price id of a subscription or phase item; the price may be expanded."""
    price = get_field(item, 'price')
    if isinstance(price, str):
        return price
    return get_field(price, 'id')


def get_schedule_id(subscription: Any) -> Optional[str]:
    """Schedule attached to a subscription, whether expanded or not."""
    schedule = get_field(subscription, 'schedule')
    if not schedule:
        return None
    if isinstance(schedule, str):
        return schedule
    return get_field(schedule, 'id')


def is_pending_cancellation(subscription: Any) -> bool:
    """True when the subscription ends at the next boundary."""
    return bool(get_field(subscription, 'cancel_at_period_end') or get_field(subscription, 'cancel_at'))


# =============================================================================
# PRICING
# =============================================================================

def calculate_monthly_price(children_count: int, premium: PremiumPlanConfig) -> int:
    """
    Monthly amount for a number of premium children.

    Args:
        children_count: Billed children
        premium: Plan pricing

    Returns:
        0 for no children, else first + (n - 1) * additional, in cents
    """
    if children_count <= 0:
        return 0
    return premium.price_first_child_cents + max(0, children_count - 1) * premium.price_additional_child_cents


def format_cents(amount_cents: int) -> str:
    """Format an amount in cents as euros, e.g. 1500 -> '15.00€'."""
    return f"{amount_cents / 100:.2f}€"


def round_half_away_from_zero(value: float) -> int:
    if value < 0:
        return -int(math.floor(-value + 0.5))
    return int(math.floor(value + 0.5))


def build_subscription_items(children_count: int, premium: PremiumPlanConfig) -> List[Dict[str, Any]]:
    """
    Line items for a given number of children.

    The first-child price always has quantity 1; the additional-child price
    carries the remaining children.
    """
    if children_count <= 0:
        return []
    items = [{'price': premium.price_id_first_child, 'quantity': 1}]
    if children_count > 1:
        items.append({'price': premium.price_id_additional_child, 'quantity': children_count - 1})
    return items


def count_children_from_items(items: List[Any], premium: PremiumPlanConfig) -> int:
    """
    Children billed by a list of items.

    A first-child item counts as one child whatever its quantity; the
    additional-child item counts its quantity.
    """
    count = 0
    if find_item_by_price(items, premium.price_id_first_child) is not None:
        count += 1
    additional = find_item_by_price(items, premium.price_id_additional_child)
    if additional is not None:
        count += int(get_field(additional, 'quantity', 0))
    return count


def find_item_by_price(items: List[Any], price_id: str) -> Optional[Any]:
    for item in items:
        if price_id_of(item) == price_id:
            return item
    return None


# =============================================================================
# PERIODS
# =============================================================================

def extract_period_from_item(
    subscription: Any,
    premium: Optional[PremiumPlanConfig] = None
) -> Tuple[Optional[int], Optional[int]]:
    """
    Current period bounds of a subscription as unix timestamps.

    Bounds are read from the first-child item when the plan is known, else
    from the first item, and finally from the subscription itself.
    """
    items = subscription_items(subscription)
    item = None
    if premium is not None:
        item = find_item_by_price(items, premium.price_id_first_child)
    if item is None and items:
        item = items[0]

    start = get_field(item, 'current_period_start') or get_field(subscription, 'current_period_start')
    end = get_field(item, 'current_period_end') or get_field(subscription, 'current_period_end')
    return start, end


def period_end_with_fallback(end_ts: Optional[int]) -> datetime:
    """Period end, or now + 30 days when Stripe gave none."""
    if end_ts:
        return timezone.from_ts(end_ts)
    return timezone.now() + timedelta(seconds=DEFAULT_PERIOD_SECONDS)


def period_start_with_fallback(start_ts: Optional[int]) -> datetime:
    """Period start, or now when Stripe gave none."""
    if start_ts:
        return timezone.from_ts(start_ts)
    return timezone.now()


def period_end_ts(subscription: Any, premium: Optional[PremiumPlanConfig] = None) -> int:
    """Period end timestamp with the 30 day fallback applied."""
    _, end = extract_period_from_item(subscription, premium)
    if end:
        return int(end)
    return timezone.now_ts() + DEFAULT_PERIOD_SECONDS


def period_start_ts(subscription: Any, premium: Optional[PremiumPlanConfig] = None) -> int:
    start, _ = extract_period_from_item(subscription, premium)
    if start:
        return int(start)
    return timezone.now_ts()


# =============================================================================
# SCHEDULE PHASES
# =============================================================================

def extract_current_items_from_subscription(subscription: Any) -> List[Dict[str, Any]]:
    """Subscription items as schedule phase items ({price, quantity})."""
    return [
        {'price': price_id_of(item), 'quantity': int(get_field(item, 'quantity', 1))}
        for item in subscription_items(subscription)
    ]


def extract_current_items_from_phase(phase: Any) -> List[Dict[str, Any]]:
    """Phase items as writable phase items ({price, quantity})."""
    return [
        {'price': price_id_of(item), 'quantity': int(get_field(item, 'quantity', 1))}
        for item in get_field(phase, 'items', [])
    ]


def schedule_phases(schedule: Any) -> List[Any]:
    return list(get_field(schedule, 'phases', []))


def current_phase_index(schedule: Any) -> Optional[int]:
    """
    Index of the phase Stripe reports as current.

    The current phase is matched on its ``start_date``.
    """
    current = get_field(schedule, 'current_phase')
    start_date = get_field(current, 'start_date')
    if not start_date:
        return None
    for index, phase in enumerate(schedule_phases(schedule)):
        if get_field(phase, 'start_date') == start_date:
            return index
    return None


def count_children_in_phase(phase: Any, premium: PremiumPlanConfig) -> int:
    """Children billed by a schedule phase."""
    return count_children_from_items(list(get_field(phase, 'items', [])), premium)


def phase_amount_cents(phase: Any) -> Optional[int]:
    """
    Sum of unit_amount * quantity over a phase with expanded prices.

    Returns None when there is no phase. Unexpanded prices contribute 0.
    """
    if phase is None:
        return None
    total = 0
    for item in get_field(phase, 'items', []):
        price = get_field(item, 'price')
        if isinstance(price, str):
            continue
        total += int(get_field(price, 'unit_amount', 0)) * int(get_field(item, 'quantity', 1))
    return total
