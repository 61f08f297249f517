"""Shared fixtures for billing unit tests.

In-memory stand-ins for Stripe, the family ledger, child entitlements and
the users table. They keep just enough state to follow a family through
checkout, membership changes and cancellation.
"""

import copy
import itertools
from dataclasses import replace
from typing import Any, Dict, List, Optional

import pytest

from tutor_backend.src.billing.shared.config import (
    BillingStatus,
    EntitlementStatus,
    PlanCatalog,
    PlanConfigStore,
    PremiumPlanConfig,
)
from tutor_backend.src.billing.subscriptions.context import BillingContext
from tutor_backend.src.billing.subscriptions.ledger import LedgerRecord, ParentAccount
from tutor_backend.utils.timezone import timezone

PRICE_FIRST = 'price_first'
PRICE_ADDITIONAL = 'price_additional'
FREE_PLAN_ID = 'plan_free'
PREMIUM_PLAN_ID = 'plan_premium'
DAY = 24 * 60 * 60

PREMIUM = PremiumPlanConfig(
    product_id='prod_family',
    price_id_first_child=PRICE_FIRST,
    price_id_additional_child=PRICE_ADDITIONAL,
    price_first_child_cents=1500,
    price_additional_child_cents=500,
)

UNIT_AMOUNTS = {PRICE_FIRST: 1500, PRICE_ADDITIONAL: 500}


# =============================================================================
# Stripe
# =============================================================================

class FakeStripe:
    """In-memory Stripe with the StripeAPIWrapper call surface."""

    def __init__(self):
        self.subscriptions: Dict[str, Dict[str, Any]] = {}
        self.schedules: Dict[str, Dict[str, Any]] = {}
        self.calls: List[tuple] = []
        self._ids = itertools.count(1)

    def _next(self, prefix: str) -> str:
        return f"{prefix}_{next(self._ids)}"

    def calls_to(self, name: str) -> List[Dict[str, Any]]:
        return [kwargs for call, kwargs in self.calls if call == name]

    # --- setup helpers ---

    def add_subscription(
        self,
        children: int,
        children_ids: List[str],
        parent_id: str = 'parent_1',
        customer: str = 'cus_1',
        status: str = 'active',
        period_start: int = None,
        period_end: int = None,
    ) -> Dict[str, Any]:
        start = period_start or timezone.now_ts() - 10 * DAY
        end = period_end or start + 30 * DAY
        subscription_id = self._next('sub')
        items = [self._item(PRICE_FIRST, 1, start, end)]
        if children > 1:
            items.append(self._item(PRICE_ADDITIONAL, children - 1, start, end))
        from tutor_backend.src.billing.shared.metadata import encode_subscription_metadata

        self.subscriptions[subscription_id] = {
            'id': subscription_id,
            'object': 'subscription',
            'status': status,
            'customer': customer,
            'cancel_at_period_end': False,
            'cancel_at': None,
            'schedule': None,
            'metadata': encode_subscription_metadata(parent_id, children_ids, children),
            'items': {'data': items},
        }
        return self.subscriptions[subscription_id]

    def _item(self, price: str, quantity: int, start: int, end: int) -> Dict[str, Any]:
        return {
            'id': self._next('si'),
            'price': {'id': price, 'unit_amount': UNIT_AMOUNTS[price]},
            'quantity': quantity,
            'current_period_start': start,
            'current_period_end': end,
        }

    # --- customers and sessions ---

    async def create_customer(self, **kwargs):
        self.calls.append(('create_customer', kwargs))
        return {'id': self._next('cus'), **kwargs}

    async def create_checkout_session(self, **kwargs):
        self.calls.append(('create_checkout_session', kwargs))
        session_id = self._next('cs')
        return {'id': session_id, 'url': f'https://checkout.stripe.test/{session_id}'}

    async def create_billing_portal_session(self, **kwargs):
        self.calls.append(('create_billing_portal_session', kwargs))
        session_id = self._next('bps')
        return {'id': session_id, 'url': f'https://billing.stripe.test/{session_id}'}

    # --- subscriptions ---

    async def retrieve_subscription(self, subscription_id: str, **kwargs):
        self.calls.append(('retrieve_subscription', {'id': subscription_id, **kwargs}))
        if subscription_id not in self.subscriptions:
            raise LookupError(f"No such subscription: {subscription_id}")
        return copy.deepcopy(self.subscriptions[subscription_id])

    async def modify_subscription(self, subscription_id: str, **kwargs):
        self.calls.append(('modify_subscription', {'id': subscription_id, **kwargs}))
        subscription = self.subscriptions[subscription_id]
        if 'cancel_at_period_end' in kwargs:
            subscription['cancel_at_period_end'] = kwargs['cancel_at_period_end']
        if 'cancel_at' in kwargs:
            subscription['cancel_at'] = kwargs['cancel_at'] or None
        if 'metadata' in kwargs:
            subscription['metadata'] = {**subscription['metadata'], **kwargs['metadata']}
        items = subscription['items']['data']
        for change in kwargs.get('items', []):
            if 'id' in change:
                for item in items:
                    if item['id'] == change['id']:
                        item['quantity'] = change['quantity']
            else:
                first = items[0]
                items.append(self._item(
                    change['price'], change['quantity'],
                    first['current_period_start'], first['current_period_end']
                ))
        return copy.deepcopy(subscription)

    # --- schedules ---

    async def create_subscription_schedule(self, **kwargs):
        self.calls.append(('create_subscription_schedule', kwargs))
        subscription = self.subscriptions[kwargs['from_subscription']]
        first = subscription['items']['data'][0]
        schedule_id = self._next('sub_sched')
        self.schedules[schedule_id] = {
            'id': schedule_id,
            'subscription': subscription['id'],
            'status': 'active',
            'end_behavior': 'release',
            'metadata': {},
            'current_phase': {'start_date': first['current_period_start'], 'end_date': first['current_period_end']},
            'phases': [{
                'start_date': first['current_period_start'],
                'end_date': first['current_period_end'],
                'items': [
                    {'price': item['price']['id'], 'quantity': item['quantity']}
                    for item in subscription['items']['data']
                ],
                'metadata': {},
            }],
        }
        subscription['schedule'] = schedule_id
        return copy.deepcopy(self.schedules[schedule_id])

    async def retrieve_subscription_schedule(self, schedule_id: str, **kwargs):
        self.calls.append(('retrieve_subscription_schedule', {'id': schedule_id, **kwargs}))
        schedule = copy.deepcopy(self.schedules[schedule_id])
        if 'phases.items.price' in kwargs.get('expand', []):
            for phase in schedule['phases']:
                for item in phase['items']:
                    item['price'] = {'id': item['price'], 'unit_amount': UNIT_AMOUNTS[item['price']]}
        return schedule

    async def update_subscription_schedule(self, schedule_id: str, **kwargs):
        self.calls.append(('update_subscription_schedule', {'id': schedule_id, **kwargs}))
        schedule = self.schedules[schedule_id]
        if 'end_behavior' in kwargs:
            schedule['end_behavior'] = kwargs['end_behavior']
        if 'phases' in kwargs:
            schedule['phases'] = [
                {'metadata': {}, **copy.deepcopy(phase)} for phase in kwargs['phases']
            ]
        if 'metadata' in kwargs:
            schedule['metadata'] = {**schedule['metadata'], **kwargs['metadata']}
        return copy.deepcopy(schedule)

    async def release_subscription_schedule(self, schedule_id: str):
        self.calls.append(('release_subscription_schedule', {'id': schedule_id}))
        schedule = self.schedules[schedule_id]
        schedule['status'] = 'released'
        subscription = self.subscriptions.get(schedule['subscription'])
        if subscription is not None and subscription['schedule'] == schedule_id:
            subscription['schedule'] = None
        return copy.deepcopy(schedule)

    def construct_webhook_event(self, payload: bytes, sig_header: str):
        raise NotImplementedError("patch construct_webhook_event in webhook tests")


# =============================================================================
# Ledger, entitlements, users
# =============================================================================

class FakeLedger:
    """family_billing rows keyed by parent id."""

    def __init__(self):
        self.rows: Dict[str, LedgerRecord] = {}

    def put(self, record: LedgerRecord) -> LedgerRecord:
        self.rows[record.parent_id] = record
        return record

    def _update(self, parent_id: str, **values) -> None:
        if parent_id in self.rows:
            self.rows[parent_id] = replace(self.rows[parent_id], **values)

    async def get(self, parent_id: str) -> Optional[LedgerRecord]:
        return self.rows.get(parent_id)

    async def find_by_customer(self, customer_id: str) -> Optional[LedgerRecord]:
        for record in self.rows.values():
            if customer_id and record.stripe_customer_id == customer_id:
                return record
        return None

    async def set_status(self, parent_id: str, status: BillingStatus) -> None:
        self._update(parent_id, billing_status=BillingStatus(status).value)

    async def set_active(self, parent_id: str) -> None:
        await self.set_status(parent_id, BillingStatus.ACTIVE)

    async def set_canceled(self, parent_id: str) -> None:
        await self.set_status(parent_id, BillingStatus.CANCELED)

    async def set_past_due(self, parent_id: str) -> None:
        await self.set_status(parent_id, BillingStatus.PAST_DUE)

    async def clear_subscription(self, parent_id: str) -> None:
        self._update(
            parent_id,
            stripe_subscription_id=None,
            premium_children_count=0,
            monthly_amount_cents=0,
            billing_status=BillingStatus.EXPIRED.value,
        )

    async def update_subscription(self, parent_id: str, children_count: int, monthly_amount_cents: int) -> None:
        self._update(
            parent_id,
            premium_children_count=children_count,
            monthly_amount_cents=monthly_amount_cents,
            billing_status=BillingStatus.ACTIVE.value,
        )

    async def update_counts(self, parent_id: str, children_count: int, monthly_amount_cents: int) -> None:
        self._update(parent_id, premium_children_count=children_count, monthly_amount_cents=monthly_amount_cents)

    async def update_period(self, parent_id, status, period_start, period_end) -> None:
        values = {'billing_status': BillingStatus(status).value}
        if period_start is not None:
            values['current_period_start'] = period_start
        if period_end is not None:
            values['current_period_end'] = period_end
        self._update(parent_id, **values)

    async def record_payment(self, parent_id, period_start, period_end, amount_cents) -> None:
        self._update(
            parent_id,
            billing_status=BillingStatus.ACTIVE.value,
            current_period_start=period_start,
            current_period_end=period_end,
            last_payment_amount_cents=amount_cents,
            last_payment_at=timezone.now(),
        )

    async def set_customer_id(self, parent_id: str, customer_id: str) -> None:
        self._update(parent_id, stripe_customer_id=customer_id)

    async def create_record(self, parent_id: str, customer_id: str) -> None:
        self.rows[parent_id] = LedgerRecord(parent_id=parent_id, stripe_customer_id=customer_id)

    async def upsert_from_checkout(
        self,
        parent_id,
        customer_id,
        subscription_id,
        period_start,
        period_end,
        children_count,
        monthly_amount_cents
    ) -> None:
        self.rows[parent_id] = replace(
            self.rows.get(parent_id) or LedgerRecord(parent_id=parent_id),
            stripe_customer_id=customer_id,
            stripe_subscription_id=subscription_id,
            billing_status=BillingStatus.ACTIVE.value,
            current_period_start=period_start,
            current_period_end=period_end,
            premium_children_count=children_count,
            monthly_amount_cents=monthly_amount_cents,
        )


class FakeEntitlements:
    """user_subscriptions rows keyed by child id."""

    def __init__(self):
        self.rows: Dict[str, Dict[str, Any]] = {}

    async def grant_premium(self, user_ids, premium_plan_id) -> int:
        user_ids = list(dict.fromkeys(user_ids))
        for user_id in user_ids:
            row = self.rows.setdefault(user_id, {'tokens_used_today': 0})
            row.update(plan_id=premium_plan_id, status=EntitlementStatus.ACTIVE.value)
        return len(user_ids)

    async def set_status(self, user_ids, status, reset_usage: bool = False) -> int:
        user_ids = list(dict.fromkeys(user_ids))
        for user_id in user_ids:
            if user_id in self.rows:
                self.rows[user_id]['status'] = EntitlementStatus(status).value
                if reset_usage:
                    self.rows[user_id]['tokens_used_today'] = 0
        return len(user_ids)

    async def revert_to_free(self, user_ids, free_plan_id) -> int:
        user_ids = list(dict.fromkeys(user_ids))
        for user_id in user_ids:
            if user_id in self.rows:
                self.rows[user_id].update(
                    plan_id=free_plan_id, status=EntitlementStatus.ACTIVE.value, tokens_used_today=0
                )
        return len(user_ids)


class FakeUsers:
    def __init__(self):
        self.parents: Dict[str, ParentAccount] = {}

    async def get_parent(self, parent_id: str) -> Optional[ParentAccount]:
        return self.parents.get(parent_id)


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def premium() -> PremiumPlanConfig:
    return PREMIUM


@pytest.fixture
def plans() -> PlanConfigStore:
    return PlanConfigStore.preloaded(
        PlanCatalog(free_plan_id=FREE_PLAN_ID, premium_plan_id=PREMIUM_PLAN_ID, premium=PREMIUM)
    )


@pytest.fixture
def fake_stripe() -> FakeStripe:
    return FakeStripe()


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def entitlements() -> FakeEntitlements:
    return FakeEntitlements()


@pytest.fixture
def users() -> FakeUsers:
    return FakeUsers()


@pytest.fixture
def context(plans, ledger, entitlements, users, fake_stripe) -> BillingContext:
    return BillingContext(
        plans=plans,
        ledger=ledger,
        entitlements=entitlements,
        users=users,
        stripe=fake_stripe,
    )


@pytest.fixture
def family(fake_stripe, ledger, entitlements):
    """
    Factory for a subscribed family.

    Returns the live subscription dict; the ledger row and premium
    entitlements are written to match it.
    """
    def _make(children_ids: List[str], parent_id: str = 'parent_1', customer: str = 'cus_1', **kwargs):
        subscription = fake_stripe.add_subscription(
            len(children_ids), children_ids, parent_id=parent_id, customer=customer, **kwargs
        )
        first = subscription['items']['data'][0]
        ledger.put(LedgerRecord(
            parent_id=parent_id,
            stripe_customer_id=customer,
            stripe_subscription_id=subscription['id'],
            billing_status=BillingStatus.ACTIVE.value,
            current_period_start=timezone.from_ts(first['current_period_start']),
            current_period_end=timezone.from_ts(first['current_period_end']),
            premium_children_count=len(children_ids),
            monthly_amount_cents=1500 + 500 * (len(children_ids) - 1),
        ))
        for child_id in children_ids:
            entitlements.rows[child_id] = {
                'plan_id': PREMIUM_PLAN_ID,
                'status': EntitlementStatus.ACTIVE.value,
                'tokens_used_today': 3,
            }
        return subscription

    return _make
