from tutor_backend.app.billing.model.circuit_breaker import CircuitBreakerState
from tutor_backend.app.billing.model.family_billing import FamilyBilling
from tutor_backend.app.billing.model.subscription_plan import SubscriptionPlan
from tutor_backend.app.billing.model.user_subscription import UserSubscription
from tutor_backend.app.billing.model.webhook_event import WebhookEvent

__all__ = [
    'CircuitBreakerState',
    'FamilyBilling',
    'SubscriptionPlan',
    'UserSubscription',
    'WebhookEvent',
]
