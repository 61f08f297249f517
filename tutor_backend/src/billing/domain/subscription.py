"""
Subscription Domain Entities

Result objects returned by the family subscription operations.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class SubscriptionInfo:
    """
    Current and scheduled billing state of a family.

    Attributes:
        subscription_id: Stripe subscription ID
        status: Stripe subscription status
        current_period_start: Start of the current billing period
        current_period_end: End of the current billing period
        premium_children_count: Children billed this period (from the ledger)
        monthly_amount_cents: Amount billed this period (from the ledger)
        cancel_at_period_end: Whether the subscription ends at the boundary
        pending_removal_children_ids: Children that stay active until the boundary
        scheduled_children_count: Children billed once pending changes apply
        scheduled_monthly_amount_cents: Amount billed once pending changes apply
        has_scheduled_changes: Whether a schedule holds pending changes
    """
    subscription_id: str
    status: str
    current_period_start: datetime
    current_period_end: datetime
    premium_children_count: int
    monthly_amount_cents: int
    cancel_at_period_end: bool = False
    pending_removal_children_ids: List[str] = field(default_factory=list)
    scheduled_children_count: Optional[int] = None
    scheduled_monthly_amount_cents: Optional[int] = None
    has_scheduled_changes: bool = False

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            'subscription_id': self.subscription_id,
            'status': self.status,
            'current_period_start': _iso(self.current_period_start),
            'current_period_end': _iso(self.current_period_end),
            'premium_children_count': self.premium_children_count,
            'monthly_amount_cents': self.monthly_amount_cents,
            'cancel_at_period_end': self.cancel_at_period_end,
            'pending_removal_children_ids': list(self.pending_removal_children_ids),
            'scheduled_children_count': self.scheduled_children_count,
            'scheduled_monthly_amount_cents': self.scheduled_monthly_amount_cents,
            'has_scheduled_changes': self.has_scheduled_changes,
        }


@dataclass
class ProrataCalculation:
    """Immediate charge for adding children mid-period."""
    prorata_amount_cents: int
    prorata_amount: str
    days_remaining: int
    total_days_in_period: int
    current_period_end: datetime
    new_monthly_amount_cents: int
    new_monthly_amount: str
    price_per_child_cents: int

    def to_dict(self) -> dict:
        return {
            'prorata_amount_cents': self.prorata_amount_cents,
            'prorata_amount': self.prorata_amount,
            'days_remaining': self.days_remaining,
            'total_days_in_period': self.total_days_in_period,
            'current_period_end': _iso(self.current_period_end),
            'new_monthly_amount_cents': self.new_monthly_amount_cents,
            'new_monthly_amount': self.new_monthly_amount,
            'price_per_child_cents': self.price_per_child_cents,
        }


@dataclass
class CheckoutResult:
    session_id: str
    url: Optional[str] = None

    def to_dict(self) -> dict:
        return {'session_id': self.session_id, 'url': self.url}


@dataclass
class CustomerResult:
    customer_id: str
    is_new: bool = False


@dataclass
class PortalResult:
    url: str
    session_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {'url': self.url, 'session_id': self.session_id}
