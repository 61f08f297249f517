"""
Webhook Endpoints

Stripe webhook endpoint for processing billing events. Only mounted when
billing is enabled.
"""

import logging

from fastapi import APIRouter, Depends, Request

from tutor_backend.src.billing.external.stripe.webhooks import WebhookService
from .dependencies import get_webhook_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["billing-webhooks"])


@router.post("/stripe")
async def stripe_webhook(request: Request, service: WebhookService = Depends(get_webhook_service)):
    """
    Process Stripe webhook events.

    Handles:
    - checkout.session.completed
    - invoice.paid
    - invoice.payment_failed
    - customer.subscription.updated
    - customer.subscription.deleted
    - subscription_schedule.updated
    """
    return await service.process_stripe_webhook(request)
