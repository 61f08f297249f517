"""Shared configuration, errors, metadata codec and helpers for billing."""

from .config import (
    BillingStatus,
    EntitlementStatus,
    PlanCatalog,
    PlanConfigStore,
    PlanRow,
    PremiumPlanConfig,
    ScheduleEndBehavior,
)
from .exceptions import (
    BillingError,
    ChildrenAlreadySubscribedError,
    ChildrenNotSubscribedError,
    CircuitBreakerOpenError,
    ExistingSubscriptionError,
    NoChildrenError,
    NoCustomerError,
    NoPendingChangesError,
    NoPlanConfiguredError,
    NoSubscriptionError,
    ParentNotFoundError,
    SubscriptionCanceledPendingError,
    SubscriptionError,
    SubscriptionFullyCanceledError,
    WebhookError,
)
from .helpers import build_subscription_items, calculate_monthly_price, format_cents
from .metadata import ScheduleAction

__all__ = [
    # Config
    'BillingStatus',
    'EntitlementStatus',
    'PlanCatalog',
    'PlanConfigStore',
    'PlanRow',
    'PremiumPlanConfig',
    'ScheduleEndBehavior',
    'ScheduleAction',
    # Exceptions
    'BillingError',
    'ChildrenAlreadySubscribedError',
    'ChildrenNotSubscribedError',
    'CircuitBreakerOpenError',
    'ExistingSubscriptionError',
    'NoChildrenError',
    'NoCustomerError',
    'NoPendingChangesError',
    'NoPlanConfiguredError',
    'NoSubscriptionError',
    'ParentNotFoundError',
    'SubscriptionCanceledPendingError',
    'SubscriptionError',
    'SubscriptionFullyCanceledError',
    'WebhookError',
    # Helpers
    'build_subscription_items',
    'calculate_monthly_price',
    'format_cents',
]
