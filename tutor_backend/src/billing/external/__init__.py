"""
External Integrations Module

Integration with Stripe, the family billing payment provider.

Usage:
    from tutor_backend.src.billing.external.stripe import (
        StripeAPIWrapper,
        webhook_service,
    )
"""

from .stripe import (
    CircuitState,
    StripeCircuitBreaker,
    stripe_circuit_breaker,
    StripeAPIWrapper,
    WebhookLock,
    WebhookService,
    webhook_service,
)

__all__ = [
    'CircuitState',
    'StripeCircuitBreaker',
    'stripe_circuit_breaker',
    'StripeAPIWrapper',
    'WebhookLock',
    'WebhookService',
    'webhook_service',
]
