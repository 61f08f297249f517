"""
Stripe Webhook Handlers

Contains handlers for the Stripe webhook event types family billing uses:
- CheckoutEventHandler: Checkout session completion
- InvoiceEventHandler: Paid and failed invoices
- SubscriptionEventHandler: Subscription updates and deletion
- ScheduleEventHandler: Removal phases of subscription schedules
"""

from .checkout import CheckoutEventHandler
from .invoice import InvoiceEventHandler
from .subscription import SubscriptionEventHandler
from .schedule import ScheduleEventHandler

__all__ = [
    'CheckoutEventHandler',
    'InvoiceEventHandler',
    'SubscriptionEventHandler',
    'ScheduleEventHandler',
]
