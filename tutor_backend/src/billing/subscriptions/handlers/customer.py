"""
Customer Handler

Maps each parent to one Stripe customer. The customer id is stored on the
family's ledger row; the row is created here when the parent has none yet.
"""

import logging
from typing import Optional

from tutor_backend.core.conf import settings
from ...domain.subscription import CustomerResult
from ...shared.exceptions import ParentNotFoundError
from ...shared.helpers import get_field
from ..context import BillingContext
from .base import BillingHandler

logger = logging.getLogger(__name__)


class CustomerHandler(BillingHandler):
    """Handles Stripe customer management."""

    @classmethod
    async def get_or_create_customer(cls, parent_id: str, context: Optional[BillingContext] = None) -> CustomerResult:
        """
        Get the parent's Stripe customer or create one.

        Args:
            parent_id: Parent account id
            context: Billing collaborators (defaults to the process context)

        Returns:
            CustomerResult with the customer id and whether it was just created

        Raises:
            ParentNotFoundError: The parent account does not exist
        """
        handler = cls(context)
        return await handler._get_or_create_customer(parent_id)

    async def _get_or_create_customer(self, parent_id: str) -> CustomerResult:
        record = await self.ledger.get(parent_id)
        if record is not None and record.stripe_customer_id:
            return CustomerResult(customer_id=record.stripe_customer_id, is_new=False)

        parent = await self.ctx.users.get_parent(parent_id)
        if parent is None:
            raise ParentNotFoundError(parent_id=parent_id)

        email = parent.email or f"{parent.username}@{settings.BILLING_PLACEHOLDER_EMAIL_DOMAIN}"
        customer = await self.stripe.create_customer(
            email=email,
            name=parent.name or parent.username,
            metadata={'parentId': parent.id, 'type': 'parent'},
        )
        customer_id = get_field(customer, 'id')

        if record is not None:
            await self.ledger.set_customer_id(parent_id, customer_id)
        else:
            await self.ledger.create_record(parent_id, customer_id)

        logger.info(f"[CUSTOMER] Created Stripe customer {customer_id} for parent {parent_id}")
        return CustomerResult(customer_id=customer_id, is_new=True)


async def get_or_create_customer(parent_id: str, context: Optional[BillingContext] = None) -> CustomerResult:
    return await CustomerHandler.get_or_create_customer(parent_id, context)
