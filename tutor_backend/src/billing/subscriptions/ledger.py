"""
Billing Ledger and Entitlements

Database access for family billing:

- ``BillingLedger``: the ``family_billing`` row of each parent (customer,
  subscription, status, current period, billed children and amount)
- ``EntitlementStore``: per-child ``user_subscriptions`` rows that the
  billing engine moves between the free and premium plans
- ``UserDirectory``: read-only lookup of parent accounts

The ledger only records the period being paid now. Future compositions held
by a Stripe schedule are derived live and never written here.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import select, text, update
from sqlalchemy.dialects.postgresql import insert

from tutor_backend.app.billing.model import FamilyBilling, UserSubscription
from tutor_backend.utils.timezone import timezone
from ..shared.config import BillingStatus, EntitlementStatus

logger = logging.getLogger(__name__)


def _session():
    from tutor_backend.database.db import async_db_session

    return async_db_session.begin()


@dataclass(frozen=True)
class LedgerRecord:
    """Snapshot of a family_billing row."""
    parent_id: str
    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None
    billing_status: str = BillingStatus.ACTIVE.value
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    premium_children_count: int = 0
    monthly_amount_cents: int = 0
    last_payment_amount_cents: Optional[int] = None
    last_payment_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, row: FamilyBilling) -> 'LedgerRecord':
        return cls(
            parent_id=row.parent_id,
            stripe_customer_id=row.stripe_customer_id,
            stripe_subscription_id=row.stripe_subscription_id,
            billing_status=row.billing_status,
            current_period_start=row.current_period_start,
            current_period_end=row.current_period_end,
            premium_children_count=row.premium_children_count or 0,
            monthly_amount_cents=row.monthly_amount_cents or 0,
            last_payment_amount_cents=row.last_payment_amount_cents,
            last_payment_at=row.last_payment_at,
        )


@dataclass(frozen=True)
class ParentAccount:
    id: str
    email: Optional[str] = None
    username: Optional[str] = None
    name: Optional[str] = None


# =============================================================================
# FAMILY BILLING LEDGER
# =============================================================================

class BillingLedger:
    """Reads and writes family_billing rows keyed by parent id."""

    async def get(self, parent_id: str) -> Optional[LedgerRecord]:
        async with _session() as session:
            result = await session.execute(select(FamilyBilling).where(FamilyBilling.parent_id == parent_id))
            row = result.scalars().first()
            return LedgerRecord.from_model(row) if row else None

    async def find_by_customer(self, customer_id: str) -> Optional[LedgerRecord]:
        if not customer_id:
            return None
        async with _session() as session:
            result = await session.execute(
                select(FamilyBilling).where(FamilyBilling.stripe_customer_id == customer_id)
            )
            row = result.scalars().first()
            return LedgerRecord.from_model(row) if row else None

    async def _update(self, parent_id: str, **values) -> None:
        values['updated_at'] = timezone.now()
        async with _session() as session:
            await session.execute(
                update(FamilyBilling).where(FamilyBilling.parent_id == parent_id).values(**values)
            )

    async def set_status(self, parent_id: str, status: BillingStatus) -> None:
        await self._update(parent_id, billing_status=BillingStatus(status).value)
        logger.debug(f"[LEDGER] {parent_id} -> {BillingStatus(status).value}")

    async def set_active(self, parent_id: str) -> None:
        await self.set_status(parent_id, BillingStatus.ACTIVE)

    async def set_canceled(self, parent_id: str) -> None:
        await self.set_status(parent_id, BillingStatus.CANCELED)

    async def set_past_due(self, parent_id: str) -> None:
        await self.set_status(parent_id, BillingStatus.PAST_DUE)

    async def clear_subscription(self, parent_id: str) -> None:
        """Reset to a subscription-less, zeroed, expired row."""
        await self._update(
            parent_id,
            stripe_subscription_id=None,
            premium_children_count=0,
            monthly_amount_cents=0,
            billing_status=BillingStatus.EXPIRED.value,
        )
        logger.info(f"[LEDGER] Cleared subscription for {parent_id}")

    async def update_subscription(self, parent_id: str, children_count: int, monthly_amount_cents: int) -> None:
        """Record the billed children and amount of the current period (status active)."""
        await self._update(
            parent_id,
            premium_children_count=children_count,
            monthly_amount_cents=monthly_amount_cents,
            billing_status=BillingStatus.ACTIVE.value,
        )

    async def update_counts(self, parent_id: str, children_count: int, monthly_amount_cents: int) -> None:
        """Record billed children and amount without touching the status."""
        await self._update(
            parent_id,
            premium_children_count=children_count,
            monthly_amount_cents=monthly_amount_cents,
        )

    async def update_period(
        self,
        parent_id: str,
        status: BillingStatus,
        period_start: Optional[datetime],
        period_end: Optional[datetime]
    ) -> None:
        values = {'billing_status': BillingStatus(status).value}
        if period_start is not None:
            values['current_period_start'] = period_start
        if period_end is not None:
            values['current_period_end'] = period_end
        await self._update(parent_id, **values)

    async def record_payment(
        self,
        parent_id: str,
        period_start: datetime,
        period_end: datetime,
        amount_cents: Optional[int]
    ) -> None:
        """Paid invoice: active again, new period, last payment."""
        await self._update(
            parent_id,
            billing_status=BillingStatus.ACTIVE.value,
            current_period_start=period_start,
            current_period_end=period_end,
            last_payment_amount_cents=amount_cents,
            last_payment_at=timezone.now(),
        )

    async def set_customer_id(self, parent_id: str, customer_id: str) -> None:
        await self._update(parent_id, stripe_customer_id=customer_id)

    async def create_record(self, parent_id: str, customer_id: str) -> None:
        """First row of a family: active, no subscription, zero counts."""
        async with _session() as session:
            session.add(FamilyBilling(
                parent_id=parent_id,
                stripe_customer_id=customer_id,
                billing_status=BillingStatus.ACTIVE.value,
                premium_children_count=0,
                monthly_amount_cents=0,
            ))
        logger.info(f"[LEDGER] Created billing record for {parent_id}")

    async def upsert_from_checkout(
        self,
        parent_id: str,
        customer_id: Optional[str],
        subscription_id: str,
        period_start: datetime,
        period_end: datetime,
        children_count: int,
        monthly_amount_cents: int
    ) -> None:
        """Insert or overwrite the row after a completed checkout."""
        now = timezone.now()
        values = {
            'stripe_customer_id': customer_id,
            'stripe_subscription_id': subscription_id,
            'billing_status': BillingStatus.ACTIVE.value,
            'current_period_start': period_start,
            'current_period_end': period_end,
            'premium_children_count': children_count,
            'monthly_amount_cents': monthly_amount_cents,
            'updated_at': now,
        }
        stmt = insert(FamilyBilling).values(
            id=_new_id(), parent_id=parent_id, created_at=now, **values
        ).on_conflict_do_update(index_elements=[FamilyBilling.parent_id], set_=values)

        async with _session() as session:
            await session.execute(stmt)
        logger.info(f"[LEDGER] Upserted subscription {subscription_id} for {parent_id}")


# =============================================================================
# CHILD ENTITLEMENTS
# =============================================================================

class EntitlementStore:
    """Moves children between plans in user_subscriptions."""

    async def grant_premium(self, user_ids: Iterable[str], premium_plan_id: str) -> int:
        """Upsert each child onto the premium plan, active."""
        user_ids = list(dict.fromkeys(user_ids))
        if not user_ids or not premium_plan_id:
            return 0

        now = timezone.now()
        async with _session() as session:
            for user_id in user_ids:
                stmt = insert(UserSubscription).values(
                    id=_new_id(),
                    user_id=user_id,
                    plan_id=premium_plan_id,
                    status=EntitlementStatus.ACTIVE.value,
                    tokens_used_today=0,
                    created_at=now,
                    updated_at=now,
                ).on_conflict_do_update(
                    index_elements=[UserSubscription.user_id],
                    set_={'plan_id': premium_plan_id, 'status': EntitlementStatus.ACTIVE.value, 'updated_at': now},
                )
                await session.execute(stmt)
        return len(user_ids)

    async def set_status(self, user_ids: Iterable[str], status: EntitlementStatus, reset_usage: bool = False) -> int:
        user_ids = list(dict.fromkeys(user_ids))
        if not user_ids:
            return 0

        values = {'status': EntitlementStatus(status).value, 'updated_at': timezone.now()}
        if reset_usage:
            values['tokens_used_today'] = 0
        async with _session() as session:
            await session.execute(
                update(UserSubscription).where(UserSubscription.user_id.in_(user_ids)).values(**values)
            )
        return len(user_ids)

    async def revert_to_free(self, user_ids: Iterable[str], free_plan_id: str) -> int:
        """Back to the free plan, active, with today's usage reset."""
        user_ids = list(dict.fromkeys(user_ids))
        if not user_ids or not free_plan_id:
            return 0

        async with _session() as session:
            await session.execute(
                update(UserSubscription)
                .where(UserSubscription.user_id.in_(user_ids))
                .values(
                    plan_id=free_plan_id,
                    status=EntitlementStatus.ACTIVE.value,
                    tokens_used_today=0,
                    updated_at=timezone.now(),
                )
            )
        return len(user_ids)


# =============================================================================
# PARENT ACCOUNTS
# =============================================================================

class UserDirectory:
    """Parent accounts live in the ``users`` table owned by the account service."""

    async def get_parent(self, parent_id: str) -> Optional[ParentAccount]:
        async with _session() as session:
            result = await session.execute(
                text("SELECT id, email, username, name FROM users WHERE id = :parent_id"),
                {"parent_id": parent_id}
            )
            row = result.fetchone()
            if not row:
                return None
            return ParentAccount(id=str(row.id), email=row.email, username=row.username, name=row.name)


def _new_id() -> str:
    from tutor_backend.database.db import uuid4_str

    return uuid4_str()


__all__: List[str] = [
    'BillingLedger',
    'EntitlementStore',
    'LedgerRecord',
    'ParentAccount',
    'UserDirectory',
]
