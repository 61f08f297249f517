"""
Portal Handler

Stripe billing portal sessions, where parents manage payment methods and
download invoices.
"""

import logging
from typing import Optional

from ...domain.subscription import PortalResult
from ...shared.exceptions import NoCustomerError
from ...shared.helpers import get_field
from ..context import BillingContext
from .base import BillingHandler

logger = logging.getLogger(__name__)


class PortalHandler(BillingHandler):
    """Handles billing portal sessions."""

    @classmethod
    async def create_portal_session(
        cls,
        parent_id: str,
        return_url: str,
        context: Optional[BillingContext] = None
    ) -> PortalResult:
        """
        Create a billing portal session for the parent's customer.

        Raises:
            NoCustomerError: The family has no Stripe customer
        """
        handler = cls(context)
        return await handler._create_portal_session(parent_id, return_url)

    async def _create_portal_session(self, parent_id: str, return_url: str) -> PortalResult:
        record = await self.ledger.get(parent_id)
        if record is None or not record.stripe_customer_id:
            raise NoCustomerError(parent_id=parent_id)

        session = await self.stripe.create_billing_portal_session(
            customer=record.stripe_customer_id,
            return_url=return_url,
        )
        logger.info(f"[PORTAL] Created portal session for {parent_id}")
        return PortalResult(url=get_field(session, 'url'), session_id=get_field(session, 'id'))


async def create_portal_session(parent_id: str, return_url: str, context: Optional[BillingContext] = None) -> PortalResult:
    return await PortalHandler.create_portal_session(parent_id, return_url, context)
