"""
Webhook Handler Base

Shared lookups for the Stripe event handlers.
"""

import logging
from typing import Any, List, Optional

from tutor_backend.src.billing.shared.helpers import get_field
from tutor_backend.src.billing.shared.metadata import decode_subscription_children
from tutor_backend.src.billing.subscriptions.handlers.base import BillingHandler

logger = logging.getLogger(__name__)


def event_object(event: Any) -> Any:
    """The resource carried by an event (``event.data.object``)."""
    return get_field(get_field(event, 'data'), 'object')


class WebhookEventHandler(BillingHandler):
    """Base class for handlers of one family of Stripe events."""

    @property
    def entitlements(self):
        return self.ctx.entitlements

    async def _fetch_subscription(self, subscription_id: Optional[str]) -> Optional[Any]:
        """Subscription with expanded items, or None when it cannot be read."""
        if not subscription_id:
            return None
        try:
            return await self.stripe.retrieve_subscription(subscription_id, expand=['items.data'])
        except Exception as e:
            logger.warning(f"[WEBHOOK] Could not retrieve subscription {subscription_id}: {e}")
            return None

    @staticmethod
    def _children_of(subscription: Any) -> List[str]:
        return decode_subscription_children(get_field(subscription, 'metadata'))
