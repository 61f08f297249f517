"""
Billing Module

Family subscription billing for the tutoring platform. A parent pays one
Stripe subscription covering any number of children: a first-child price
plus an additional-child price per extra child.

Submodules:
- shared: Configuration, exceptions, metadata codec, helpers
- domain: Result entities (SubscriptionInfo, ProrataCalculation, ...)
- external: Stripe client, circuit breaker, webhooks
- subscriptions: Service, handlers, ledger
- endpoints: API routes

Usage:
    from tutor_backend.src.billing import subscription_service

    info = await subscription_service.add_children(parent_id, [child_id])
"""

from .shared import (
    BillingError,
    SubscriptionError,
    WebhookError,
    CircuitBreakerOpenError,
    PlanConfigStore,
    PremiumPlanConfig,
    calculate_monthly_price,
)

from .domain import (
    CheckoutResult,
    CustomerResult,
    PortalResult,
    ProrataCalculation,
    SubscriptionInfo,
)

from .subscriptions import (
    BillingContext,
    get_billing_context,
    SubscriptionService,
    subscription_service,
)

from .external import (
    StripeAPIWrapper,
    stripe_circuit_breaker,
    WebhookService,
    webhook_service,
)

__all__ = [
    # Shared
    'BillingError',
    'SubscriptionError',
    'WebhookError',
    'CircuitBreakerOpenError',
    'PlanConfigStore',
    'PremiumPlanConfig',
    'calculate_monthly_price',
    # Domain
    'CheckoutResult',
    'CustomerResult',
    'PortalResult',
    'ProrataCalculation',
    'SubscriptionInfo',
    # Subscriptions
    'BillingContext',
    'get_billing_context',
    'SubscriptionService',
    'subscription_service',
    # Stripe
    'StripeAPIWrapper',
    'stripe_circuit_breaker',
    'WebhookService',
    'webhook_service',
]
