"""Tests for billing API endpoints.

Tests cover:
- Route mounting with and without a Stripe secret key
- Parent identity and request validation
- Mapping of billing errors to HTTP answers
- Subscription, children and webhook routes end to end over in-memory fakes
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

BASE = '/api/v1/billing'
PARENT = {'X-Parent-Id': 'parent_1'}


def make_app(context, enabled: bool = True):
    from tutor_backend.core.conf import Settings
    from tutor_backend.core.registrar import register_app
    from tutor_backend.src.billing.endpoints.dependencies import verify_billing_enabled

    settings = Settings(STRIPE_SECRET_KEY='sk_test_123' if enabled else '')
    app = register_app(settings, context)
    if enabled:
        app.dependency_overrides[verify_billing_enabled] = lambda: True
    return app


def make_client(app):
    from httpx import ASGITransport, AsyncClient

    return AsyncClient(transport=ASGITransport(app=app), base_url='http://test')


class TestAppRegistration:
    """Tests for application assembly."""

    @pytest.mark.asyncio
    async def test_health(self, context):
        async with make_client(make_app(context)) as client:
            response = await client.get('/health')

        assert response.status_code == 200
        assert response.json() == {'status': 'ok'}

    @pytest.mark.asyncio
    async def test_context_attached_to_app(self, context):
        app = make_app(context)

        assert app.state.billing_context is context

    @pytest.mark.asyncio
    async def test_webhook_not_mounted_without_key(self, context):
        async with make_client(make_app(context, enabled=False)) as client:
            response = await client.post(f'{BASE}/webhooks/stripe', content=b'{}')

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_routes_unavailable_without_key(self, context):
        app = make_app(context, enabled=False)

        with patch('tutor_backend.src.billing.endpoints.dependencies.settings', MagicMock(BILLING_ENABLED=False)):
            async with make_client(app) as client:
                response = await client.get(f'{BASE}/subscriptions/status', headers=PARENT)

        assert response.status_code == 503


class TestSubscriptionEndpoints:
    """Tests for /subscriptions routes."""

    @pytest.mark.asyncio
    async def test_missing_parent_identity(self, context):
        async with make_client(make_app(context)) as client:
            response = await client.get(f'{BASE}/subscriptions/status')

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_status_without_subscription(self, context):
        async with make_client(make_app(context)) as client:
            response = await client.get(f'{BASE}/subscriptions/status', headers=PARENT)

        assert response.status_code == 200
        assert response.json() == {'subscription': None}

    @pytest.mark.asyncio
    async def test_status(self, context, family):
        subscription = family(['c1', 'c2'])

        async with make_client(make_app(context)) as client:
            response = await client.get(f'{BASE}/subscriptions/status', headers=PARENT)

        body = response.json()
        assert response.status_code == 200
        assert body['subscription_id'] == subscription['id']
        assert body['premium_children_count'] == 2
        assert body['monthly_amount_cents'] == 2000
        assert body['has_scheduled_changes'] is False

    @pytest.mark.asyncio
    async def test_checkout(self, context, users, fake_stripe):
        from tutor_backend.src.billing.subscriptions.ledger import ParentAccount

        users.parents['parent_1'] = ParentAccount(id='parent_1', email='p@example.com')

        async with make_client(make_app(context)) as client:
            response = await client.post(
                f'{BASE}/subscriptions/checkout',
                headers=PARENT,
                json={'children_ids': ['c1', 'c2'], 'success_url': 'https://app/ok', 'cancel_url': 'https://app/ko'},
            )

        assert response.status_code == 200
        assert response.json()['session_id'].startswith('cs_')
        assert len(fake_stripe.calls_to('create_checkout_session')) == 1

    @pytest.mark.asyncio
    async def test_checkout_requires_children(self, context):
        async with make_client(make_app(context)) as client:
            response = await client.post(
                f'{BASE}/subscriptions/checkout',
                headers=PARENT,
                json={'children_ids': [], 'success_url': 'ok', 'cancel_url': 'ko'},
            )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_cancel_without_subscription(self, context):
        async with make_client(make_app(context)) as client:
            response = await client.post(f'{BASE}/subscriptions/cancel', headers=PARENT)

        assert response.status_code == 400
        assert response.json()['detail']['error'] == 'NO_SUBSCRIPTION'

    @pytest.mark.asyncio
    async def test_resume_terminated_asks_for_new_subscription(self, context, family):
        family(['c1'], status='canceled')

        async with make_client(make_app(context)) as client:
            response = await client.post(f'{BASE}/subscriptions/resume', headers=PARENT)

        detail = response.json()['detail']
        assert response.status_code == 400
        assert detail['error'] == 'SUBSCRIPTION_FULLY_CANCELED'
        assert detail['action'] == 'CREATE_NEW_SUBSCRIPTION'

    @pytest.mark.asyncio
    async def test_prorata(self, context, family):
        family(['c1'])

        async with make_client(make_app(context)) as client:
            response = await client.get(f'{BASE}/subscriptions/prorata', headers=PARENT, params={'children_count': 1})

        body = response.json()
        assert response.status_code == 200
        assert body['new_monthly_amount_cents'] == 2000
        assert body['price_per_child_cents'] == 500

    @pytest.mark.asyncio
    async def test_prorata_requires_positive_count(self, context, family):
        family(['c1'])

        async with make_client(make_app(context)) as client:
            response = await client.get(f'{BASE}/subscriptions/prorata', headers=PARENT, params={'children_count': 0})

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_portal(self, context, family):
        family(['c1'])

        async with make_client(make_app(context)) as client:
            response = await client.post(
                f'{BASE}/subscriptions/portal', headers=PARENT, json={'return_url': 'https://app/billing'}
            )

        assert response.status_code == 200
        assert response.json()['url'].startswith('https://billing.stripe.test/')


class TestErrorMapping:
    """Tests for billing error translation."""

    @pytest.mark.asyncio
    async def test_circuit_open_is_503(self, context):
        from tutor_backend.src.billing.endpoints.dependencies import get_subscription_service
        from tutor_backend.src.billing.shared.exceptions import CircuitBreakerOpenError

        service = MagicMock()
        service.cancel_subscription = AsyncMock(side_effect=CircuitBreakerOpenError())
        app = make_app(context)
        app.dependency_overrides[get_subscription_service] = lambda: service

        async with make_client(app) as client:
            response = await client.post(f'{BASE}/subscriptions/cancel', headers=PARENT)

        assert response.status_code == 503
        assert response.json()['detail']['error'] == 'CIRCUIT_BREAKER_OPEN'

    @pytest.mark.asyncio
    async def test_unexpected_error_is_500(self, context):
        from tutor_backend.src.billing.endpoints.dependencies import get_subscription_service

        service = MagicMock()
        service.cancel_subscription = AsyncMock(side_effect=RuntimeError("boom"))
        app = make_app(context)
        app.dependency_overrides[get_subscription_service] = lambda: service

        async with make_client(app) as client:
            response = await client.post(f'{BASE}/subscriptions/cancel', headers=PARENT)

        assert response.status_code == 500
        assert response.json()['detail'] == "Internal billing error"


class TestChildrenEndpoints:
    """Tests for /subscriptions/children routes."""

    @pytest.mark.asyncio
    async def test_add_children(self, context, family):
        family(['c1'])

        async with make_client(make_app(context)) as client:
            response = await client.post(
                f'{BASE}/subscriptions/children/add', headers=PARENT, json={'children_ids': ['c2']}
            )

        assert response.status_code == 200
        assert response.json()['premium_children_count'] == 2

    @pytest.mark.asyncio
    async def test_add_subscribed_child_is_400(self, context, family):
        family(['c1'])

        async with make_client(make_app(context)) as client:
            response = await client.post(
                f'{BASE}/subscriptions/children/add', headers=PARENT, json={'children_ids': ['c1']}
            )

        assert response.status_code == 400
        assert response.json()['detail']['error'] == 'CHILDREN_ALREADY_SUBSCRIBED'

    @pytest.mark.asyncio
    async def test_remove_children(self, context, family):
        family(['c1', 'c2'])

        async with make_client(make_app(context)) as client:
            response = await client.post(
                f'{BASE}/subscriptions/children/remove', headers=PARENT, json={'children_ids': ['c2']}
            )

        body = response.json()
        assert response.status_code == 200
        assert body['pending_removal_children_ids'] == ['c2']
        assert body['scheduled_children_count'] == 1

    @pytest.mark.asyncio
    async def test_remove_requires_children(self, context, family):
        family(['c1'])

        async with make_client(make_app(context)) as client:
            response = await client.post(
                f'{BASE}/subscriptions/children/remove', headers=PARENT, json={'children_ids': []}
            )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_cancel_pending_removal_without_body(self, context, family):
        family(['c1', 'c2'])

        async with make_client(make_app(context)) as client:
            await client.post(
                f'{BASE}/subscriptions/children/remove', headers=PARENT, json={'children_ids': ['c2']}
            )
            response = await client.post(f'{BASE}/subscriptions/children/cancel-pending-removal', headers=PARENT)

        body = response.json()
        assert response.status_code == 200
        assert body['has_scheduled_changes'] is False
        assert body['pending_removal_children_ids'] == []

    @pytest.mark.asyncio
    async def test_cancel_pending_removal_nothing_pending(self, context, family):
        family(['c1'])

        async with make_client(make_app(context)) as client:
            response = await client.post(
                f'{BASE}/subscriptions/children/cancel-pending-removal', headers=PARENT, json={'child_id': 'c1'}
            )

        assert response.status_code == 400
        assert response.json()['detail']['error'] == 'NO_PENDING_CHANGES'


class TestWebhookEndpoint:
    """Tests for /webhooks/stripe."""

    @pytest.mark.asyncio
    async def test_webhook_delegates_to_service(self, context):
        from tutor_backend.src.billing.endpoints.dependencies import get_webhook_service

        service = MagicMock()
        service.process_stripe_webhook = AsyncMock(return_value={'status': 'success', 'event_id': 'evt_1'})
        app = make_app(context)
        app.dependency_overrides[get_webhook_service] = lambda: service

        async with make_client(app) as client:
            response = await client.post(
                f'{BASE}/webhooks/stripe', content=b'{}', headers={'stripe-signature': 't=1,v1=abc'}
            )

        assert response.status_code == 200
        assert response.json()['status'] == 'success'
        service.process_stripe_webhook.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_webhook_missing_signature(self, context):
        async with make_client(make_app(context)) as client:
            response = await client.post(f'{BASE}/webhooks/stripe', content=b'{}')

        assert response.status_code == 400
