"""
Subscription Handlers

Handler modules for family subscription operations.
"""

from .base import BillingHandler

from .customer import (
    CustomerHandler,
    get_or_create_customer,
)

from .checkout import (
    CheckoutHandler,
    create_checkout_session,
)

from .children import (
    ChildrenHandler,
    add_children,
    remove_children,
)

from .schedules import ScheduleHandler

from .lifecycle import (
    LifecycleHandler,
    cancel_subscription,
    cancel_pending_removal,
    resume_subscription,
)

from .status import (
    StatusHandler,
    get_subscription_status,
    calculate_add_children_prorata,
)

from .portal import (
    PortalHandler,
    create_portal_session,
)

__all__ = [
    'BillingHandler',
    # Customer
    'CustomerHandler',
    'get_or_create_customer',
    # Checkout
    'CheckoutHandler',
    'create_checkout_session',
    # Children
    'ChildrenHandler',
    'add_children',
    'remove_children',
    'ScheduleHandler',
    # Lifecycle
    'LifecycleHandler',
    'cancel_subscription',
    'cancel_pending_removal',
    'resume_subscription',
    # Status
    'StatusHandler',
    'get_subscription_status',
    'calculate_add_children_prorata',
    # Portal
    'PortalHandler',
    'create_portal_session',
]
