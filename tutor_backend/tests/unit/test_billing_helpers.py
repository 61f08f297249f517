"""
Unit tests for billing helpers and the metadata codec.

Tests cover:
- Monthly price and line items for a number of children
- Counting children from subscription and phase items
- Period extraction and fallbacks
- Subscription, schedule and phase metadata encoding and fail-open decoding
- Plan catalog building and the plan config store
"""

import json

import pytest


class TestPricing:
    """Tests for price calculation and line items."""

    def test_monthly_price(self, premium):
        from tutor_backend.src.billing.shared.helpers import calculate_monthly_price

        assert calculate_monthly_price(0, premium) == 0
        assert calculate_monthly_price(1, premium) == 1500
        assert calculate_monthly_price(2, premium) == 2000
        assert calculate_monthly_price(4, premium) == 3000

    def test_negative_count_costs_nothing(self, premium):
        from tutor_backend.src.billing.shared.helpers import calculate_monthly_price

        assert calculate_monthly_price(-1, premium) == 0

    def test_build_items_single_child(self, premium):
        from tutor_backend.src.billing.shared.helpers import build_subscription_items

        assert build_subscription_items(1, premium) == [{'price': 'price_first', 'quantity': 1}]

    def test_build_items_several_children(self, premium):
        from tutor_backend.src.billing.shared.helpers import build_subscription_items

        assert build_subscription_items(3, premium) == [
            {'price': 'price_first', 'quantity': 1},
            {'price': 'price_additional', 'quantity': 2},
        ]

    def test_build_items_no_children(self, premium):
        from tutor_backend.src.billing.shared.helpers import build_subscription_items

        assert build_subscription_items(0, premium) == []

    def test_format_cents(self):
        from tutor_backend.src.billing.shared.helpers import format_cents

        assert format_cents(1500) == "15.00€"
        assert format_cents(333) == "3.33€"

    def test_round_half_away_from_zero(self):
        from tutor_backend.src.billing.shared.helpers import round_half_away_from_zero

        assert round_half_away_from_zero(2.5) == 3
        assert round_half_away_from_zero(3.5) == 4
        assert round_half_away_from_zero(2.4) == 2
        assert round_half_away_from_zero(-2.5) == -3


class TestItemCounting:
    """Tests for counting billed children."""

    def test_count_from_expanded_items(self, premium):
        from tutor_backend.src.billing.shared.helpers import count_children_from_items

        items = [
            {'price': {'id': 'price_first'}, 'quantity': 1},
            {'price': {'id': 'price_additional'}, 'quantity': 2},
        ]
        assert count_children_from_items(items, premium) == 3

    def test_first_child_item_counts_once(self, premium):
        from tutor_backend.src.billing.shared.helpers import count_children_from_items

        assert count_children_from_items([{'price': 'price_first', 'quantity': 5}], premium) == 1

    def test_unknown_prices_ignored(self, premium):
        from tutor_backend.src.billing.shared.helpers import count_children_from_items

        assert count_children_from_items([{'price': 'price_other', 'quantity': 3}], premium) == 0

    def test_phase_amount_uses_expanded_prices(self):
        from tutor_backend.src.billing.shared.helpers import phase_amount_cents

        phase = {'items': [
            {'price': {'id': 'price_first', 'unit_amount': 1500}, 'quantity': 1},
            {'price': {'id': 'price_additional', 'unit_amount': 500}, 'quantity': 2},
        ]}
        assert phase_amount_cents(phase) == 2500
        assert phase_amount_cents(None) is None

    def test_current_phase_index_matches_start_date(self):
        from tutor_backend.src.billing.shared.helpers import current_phase_index

        schedule = {
            'current_phase': {'start_date': 200, 'end_date': 300},
            'phases': [{'start_date': 100}, {'start_date': 200}],
        }
        assert current_phase_index(schedule) == 1
        assert current_phase_index({'phases': []}) is None


class TestPeriods:
    """Tests for period extraction."""

    def test_period_from_first_item(self):
        from tutor_backend.src.billing.shared.helpers import extract_period_from_item

        subscription = {'items': {'data': [{'current_period_start': 100, 'current_period_end': 200}]}}
        assert extract_period_from_item(subscription) == (100, 200)

    def test_period_falls_back_to_subscription(self):
        from tutor_backend.src.billing.shared.helpers import extract_period_from_item

        subscription = {'items': {'data': []}, 'current_period_start': 10, 'current_period_end': 20}
        assert extract_period_from_item(subscription) == (10, 20)

    def test_missing_end_defaults_to_thirty_days(self):
        from tutor_backend.src.billing.shared.helpers import period_end_with_fallback
        from tutor_backend.utils.timezone import timezone

        end = period_end_with_fallback(None)
        delta = end - timezone.now()
        assert 29 <= delta.days <= 30

    def test_schedule_id_expanded_or_not(self):
        from tutor_backend.src.billing.shared.helpers import get_schedule_id

        assert get_schedule_id({'schedule': 'sub_sched_1'}) == 'sub_sched_1'
        assert get_schedule_id({'schedule': {'id': 'sub_sched_2'}}) == 'sub_sched_2'
        assert get_schedule_id({'schedule': None}) is None


class TestMetadataCodec:
    """Tests for the Stripe metadata codec."""

    def test_subscription_metadata_encoding(self):
        from tutor_backend.src.billing.shared.metadata import encode_subscription_metadata

        data = encode_subscription_metadata('parent_1', ['c1', 'c2', 'c1'])

        assert data['parentId'] == 'parent_1'
        assert json.loads(data['childrenIds']) == ['c1', 'c2']
        assert data['childrenCount'] == '2'
        assert data['metadataVersion'] == '1'

    def test_subscription_children_decoding(self):
        from tutor_backend.src.billing.shared.metadata import (
            decode_subscription_children,
            encode_subscription_metadata,
        )

        data = encode_subscription_metadata('parent_1', ['c1', 'c2'])
        assert decode_subscription_children(data) == ['c1', 'c2']

    def test_malformed_children_decode_as_empty(self):
        from tutor_backend.src.billing.shared.metadata import decode_subscription_children

        assert decode_subscription_children({'childrenIds': 'not json'}) == []
        assert decode_subscription_children({'childrenIds': '[1, 2]'}) == []
        assert decode_subscription_children(None) == []

    def test_unversioned_metadata_reads_as_v1(self):
        from tutor_backend.src.billing.shared.metadata import decode_subscription_children

        assert decode_subscription_children({'parentId': 'p', 'childrenIds': '["c1"]'}) == ['c1']

    def test_unknown_version_decodes_as_empty(self):
        from tutor_backend.src.billing.shared.metadata import decode_schedule_metadata, decode_subscription_children

        assert decode_subscription_children({'metadataVersion': '9', 'childrenIds': '["c1"]'}) == []
        assert decode_schedule_metadata({
            'metadataVersion': '9', 'parentId': 'p', 'pendingAction': 'cancel_all', 'removedChildrenIds': '[]'
        }) is None

    def test_schedule_state_round_trip(self):
        from tutor_backend.src.billing.shared.metadata import (
            CancelAllPending,
            RemoveChildrenPending,
            decode_schedule_metadata,
            encode_schedule_metadata,
        )

        removal = RemoveChildrenPending(parent_id='parent_1', removed_children_ids=['c2'])
        cancel = CancelAllPending(parent_id='parent_1', removed_children_ids=['c1', 'c2'])

        assert decode_schedule_metadata(encode_schedule_metadata(removal)) == removal
        assert decode_schedule_metadata(encode_schedule_metadata(cancel)) == cancel

    def test_unknown_pending_action_rejected(self):
        from tutor_backend.src.billing.shared.metadata import decode_schedule_metadata, pending_removal_ids

        metadata = {'parentId': 'p', 'pendingAction': 'teleport', 'removedChildrenIds': '["c1"]'}
        assert decode_schedule_metadata(metadata) is None
        assert pending_removal_ids(metadata) == []

    def test_no_pending_action(self):
        from tutor_backend.src.billing.shared.metadata import decode_schedule_metadata

        assert decode_schedule_metadata({}) is None
        assert decode_schedule_metadata({'parentId': 'p'}) is None

    def test_removal_phase_metadata(self):
        from tutor_backend.src.billing.shared.metadata import (
            decode_removal_phase_metadata,
            encode_removal_phase_metadata,
        )

        data = encode_removal_phase_metadata('parent_1', 1, ['c2'], children_ids=['c1'])
        decoded = decode_removal_phase_metadata(data)

        assert data['action'] == 'remove_children'
        assert decoded.children_count == 1
        assert decoded.removed_children_ids == ['c2']
        assert decoded.children_ids == ['c1']

    def test_removal_phase_without_children_ids(self):
        from tutor_backend.src.billing.shared.metadata import (
            decode_removal_phase_metadata,
            encode_removal_phase_metadata,
        )

        data = encode_removal_phase_metadata('parent_1', 2, ['c3'])

        assert 'childrenIds' not in data
        assert decode_removal_phase_metadata(data).children_ids is None

    def test_phase_without_action_is_not_removal(self):
        from tutor_backend.src.billing.shared.metadata import decode_removal_phase_metadata

        assert decode_removal_phase_metadata({'childrenCount': '1'}) is None


class TestPlanConfig:
    """Tests for the plan catalog and store."""

    def test_catalog_from_rows(self):
        from tutor_backend.src.billing.shared.config import PlanCatalog, PlanRow

        catalog = PlanCatalog.from_rows([
            PlanRow(id='plan_f', name='free'),
            PlanRow(
                id='plan_p',
                name='premium',
                stripe_product_id='prod_1',
                stripe_price_id_first_child='price_a',
                stripe_price_id_additional_child='price_b',
                price_first_child_cents=1500,
                price_additional_child_cents=500,
            ),
        ], free_plan_name='free', premium_plan_name='premium')

        assert catalog.free_plan_id == 'plan_f'
        assert catalog.premium_plan_id == 'plan_p'
        assert catalog.premium.price_id_additional_child == 'price_b'

    def test_incomplete_premium_row_is_unusable(self):
        from tutor_backend.src.billing.shared.config import PlanCatalog, PlanRow

        catalog = PlanCatalog.from_rows(
            [PlanRow(id='plan_p', name='premium', stripe_product_id='prod_1')],
            free_plan_name='free',
            premium_plan_name='premium',
        )

        assert catalog.premium_plan_id == 'plan_p'
        assert catalog.premium is None

    @pytest.mark.asyncio
    async def test_store_loads_once(self):
        from unittest.mock import AsyncMock

        from tutor_backend.src.billing.shared.config import PlanConfigStore, PlanRow

        loader = AsyncMock(return_value=[PlanRow(id='plan_f', name='free')])
        store = PlanConfigStore(loader=loader)

        await store.free_plan_id()
        await store.premium_plan_id()

        assert loader.await_count == 1

    @pytest.mark.asyncio
    async def test_invalidate_reloads(self):
        from unittest.mock import AsyncMock

        from tutor_backend.src.billing.shared.config import PlanConfigStore

        loader = AsyncMock(return_value=[])
        store = PlanConfigStore(loader=loader)

        await store.load()
        store.invalidate()
        await store.load()

        assert loader.await_count == 2

    @pytest.mark.asyncio
    async def test_require_premium_raises_when_missing(self):
        from tutor_backend.src.billing.shared.config import PlanCatalog, PlanConfigStore
        from tutor_backend.src.billing.shared.exceptions import NoPlanConfiguredError

        store = PlanConfigStore.preloaded(PlanCatalog(free_plan_id='plan_free'))

        assert await store.premium_config() is None
        with pytest.raises(NoPlanConfiguredError):
            await store.require_premium_config()
