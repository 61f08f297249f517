"""
Subscriptions Module

Family subscription management for the billing system.

Components:
- SubscriptionService: Main orchestrator
- Handlers: Customer, Checkout, Children, Schedule, Lifecycle, Status, Portal
- BillingLedger / EntitlementStore: family_billing and user_subscriptions access
- BillingContext: collaborators shared by every handler

Usage:
    from tutor_backend.src.billing.subscriptions import subscription_service

    # Add a child with immediate proration
    info = await subscription_service.add_children(parent_id, [child_id])

    # Cancel at period end
    info = await subscription_service.cancel_subscription(parent_id)
"""

from .context import (
    BillingContext,
    get_billing_context,
)

from .ledger import (
    BillingLedger,
    EntitlementStore,
    LedgerRecord,
    ParentAccount,
    UserDirectory,
)

from .service import (
    SubscriptionService,
    subscription_service,
)

from .handlers import (
    CustomerHandler,
    CheckoutHandler,
    ChildrenHandler,
    ScheduleHandler,
    LifecycleHandler,
    StatusHandler,
    PortalHandler,
    get_or_create_customer,
    create_checkout_session,
    add_children,
    remove_children,
    cancel_subscription,
    cancel_pending_removal,
    resume_subscription,
    get_subscription_status,
    calculate_add_children_prorata,
    create_portal_session,
)

__all__ = [
    # Context
    'BillingContext',
    'get_billing_context',
    # Persistence
    'BillingLedger',
    'EntitlementStore',
    'LedgerRecord',
    'ParentAccount',
    'UserDirectory',
    # Main service
    'SubscriptionService',
    'subscription_service',
    # Handlers
    'CustomerHandler',
    'CheckoutHandler',
    'ChildrenHandler',
    'ScheduleHandler',
    'LifecycleHandler',
    'StatusHandler',
    'PortalHandler',
    # Convenience functions
    'get_or_create_customer',
    'create_checkout_session',
    'add_children',
    'remove_children',
    'cancel_subscription',
    'cancel_pending_removal',
    'resume_subscription',
    'get_subscription_status',
    'calculate_add_children_prorata',
    'create_portal_session',
]
