"""
Billing Context

Collaborators shared by every subscription and webhook handler. The
application builds one context at start-up and hands it to the service
facade; tests build one from fakes.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from ..shared.config import PlanConfigStore
from .ledger import BillingLedger, EntitlementStore, UserDirectory

logger = logging.getLogger(__name__)


def _default_stripe():
    from ..external.stripe.client import StripeAPIWrapper

    return StripeAPIWrapper


@dataclass
class BillingContext:
    """
    Attributes:
        plans: Cached plan configuration
        ledger: family_billing access
        entitlements: user_subscriptions access
        users: Parent account lookup
        stripe: Stripe API wrapper (StripeAPIWrapper or a compatible object)
    """
    plans: PlanConfigStore = field(default_factory=PlanConfigStore)
    ledger: BillingLedger = field(default_factory=BillingLedger)
    entitlements: EntitlementStore = field(default_factory=EntitlementStore)
    users: UserDirectory = field(default_factory=UserDirectory)
    stripe: Any = field(default_factory=_default_stripe)


_default_context: Optional[BillingContext] = None


def get_billing_context() -> BillingContext:
    """Process-wide context used when a handler is created without one."""
    global _default_context
    if _default_context is None:
        _default_context = BillingContext()
    return _default_context
