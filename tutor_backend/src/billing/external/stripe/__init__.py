"""
Stripe Integration Module

Provides the Stripe integration for family billing:
- Circuit breaker for API resilience
- Async API wrapper for customers, subscriptions, schedules and sessions
- Webhook processing and event handlers

Usage:
    from tutor_backend.src.billing.external.stripe import StripeAPIWrapper

    schedule = await StripeAPIWrapper.create_subscription_schedule(
        from_subscription='sub_xxx',
    )
"""

from .circuit_breaker import (
    CircuitState,
    StripeCircuitBreaker,
    stripe_circuit_breaker,
)

from .client import StripeAPIWrapper

from .webhook_lock import WebhookLock

from .webhooks import (
    WebhookService,
    webhook_service,
)

from .handlers import (
    CheckoutEventHandler,
    InvoiceEventHandler,
    SubscriptionEventHandler,
    ScheduleEventHandler,
)

__all__ = [
    # Circuit Breaker
    'CircuitState',
    'StripeCircuitBreaker',
    'stripe_circuit_breaker',
    # API Client
    'StripeAPIWrapper',
    # Webhook Lock
    'WebhookLock',
    # Webhook Service
    'WebhookService',
    'webhook_service',
    # Handlers
    'CheckoutEventHandler',
    'InvoiceEventHandler',
    'SubscriptionEventHandler',
    'ScheduleEventHandler',
]
