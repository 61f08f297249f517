"""
Stripe Webhook Service

Central dispatcher for Stripe webhook events.
Handles size limits, signature verification, deduplication, and routing to
handlers.
"""

import logging
from typing import Any, Dict, Optional

import stripe
from fastapi import HTTPException, Request

from tutor_backend.core.conf import settings
from tutor_backend.src.billing.shared.cache_utils import is_webhook_event_processed, mark_webhook_event_processed
from tutor_backend.src.billing.shared.helpers import get_field
from tutor_backend.src.billing.subscriptions.context import BillingContext, get_billing_context
from .webhook_lock import WebhookLock

logger = logging.getLogger(__name__)


class WebhookService:
    """
    Central service for processing Stripe webhooks.

    Responsibilities:
    - Refuse oversized bodies
    - Verify webhook signatures
    - Deduplicate events (Redis marker, then the webhook_events lock)
    - Route events to appropriate handlers
    - Mark event status; failures answer 500 so Stripe retries

    Usage:
        webhook_service = WebhookService(context)
        result = await webhook_service.process_stripe_webhook(request)
    """

    def __init__(self, context: Optional[BillingContext] = None, lock: Any = None):
        self._context = context
        self.lock = lock or WebhookLock

    @property
    def ctx(self) -> BillingContext:
        return self._context or get_billing_context()

    async def process_stripe_webhook(self, request: Request) -> Dict[str, Any]:
        """
        Process an incoming Stripe webhook.

        Args:
            request: FastAPI Request object

        Returns:
            Dict with processing status

        Raises:
            HTTPException: 413 oversized body, 400 missing or invalid
                signature, 500 when a handler failed
        """
        max_bytes = settings.STRIPE_WEBHOOK_MAX_BODY_BYTES

        content_length = request.headers.get('content-length')
        if content_length and content_length.isdigit() and int(content_length) > max_bytes:
            logger.warning(f"[WEBHOOK] Request too large: content-length {content_length}")
            raise HTTPException(status_code=413, detail="Request entity too large")

        payload = await request.body()
        if len(payload) > max_bytes:
            logger.warning(f"[WEBHOOK] Body too large after read: {len(payload)} bytes")
            raise HTTPException(status_code=413, detail="Request entity too large")

        sig_header = request.headers.get('stripe-signature')
        if not sig_header:
            raise HTTPException(status_code=400, detail="Missing stripe-signature header")

        try:
            event = self.ctx.stripe.construct_webhook_event(payload, sig_header)
        except stripe.SignatureVerificationError as e:
            logger.error(f"[WEBHOOK] Invalid signature (severity=high): {e}")
            raise HTTPException(status_code=400, detail="Invalid webhook signature")
        except ValueError as e:
            logger.warning(f"[WEBHOOK] Invalid payload: {e}")
            raise HTTPException(status_code=400, detail="Invalid payload")

        event_id = get_field(event, 'id')
        event_type = get_field(event, 'type')

        if await is_webhook_event_processed(event_id):
            logger.info(f"[WEBHOOK] Duplicate event skipped: {event_id}")
            return {'status': 'duplicate', 'event_id': event_id}

        can_process, reason = await self.lock.check_and_mark_webhook_processing(
            event_id,
            event_type,
            payload=event.to_dict() if hasattr(event, 'to_dict') else None
        )
        if not can_process:
            logger.info(f"[WEBHOOK] Skipping event {event_id}: {reason}")
            return {'status': 'duplicate', 'event_id': event_id, 'message': reason}

        logger.info(f"[WEBHOOK] Processing event type: {event_type} (ID: {event_id})")

        try:
            await self._route_event(event, event_type)
        except Exception as e:
            logger.error(f"[WEBHOOK] Error processing {event_type} (severity=high): {e}", exc_info=True)
            await self.lock.mark_webhook_failed(event_id, f"{type(e).__name__}: {str(e)[:500]}")
            raise HTTPException(status_code=500, detail="Webhook processing failed")

        await self.lock.mark_webhook_completed(event_id)
        await mark_webhook_event_processed(event_id)

        return {'status': 'success', 'event_id': event_id, 'event_type': event_type}

    async def _route_event(self, event: Any, event_type: str) -> None:
        """
        Route event to the appropriate handler.

        Args:
            event: Stripe event object
            event_type: Event type string
        """
        from .handlers.checkout import CheckoutEventHandler
        from .handlers.invoice import InvoiceEventHandler
        from .handlers.schedule import ScheduleEventHandler
        from .handlers.subscription import SubscriptionEventHandler

        context = self.ctx

        if event_type == 'checkout.session.completed':
            await CheckoutEventHandler.handle_checkout_completed(event, context)

        elif event_type == 'invoice.paid':
            await InvoiceEventHandler.handle_invoice_paid(event, context)

        elif event_type == 'invoice.payment_failed':
            await InvoiceEventHandler.handle_invoice_failed(event, context)

        elif event_type == 'customer.subscription.updated':
            await SubscriptionEventHandler.handle_subscription_updated(event, context)

        elif event_type == 'customer.subscription.deleted':
            await SubscriptionEventHandler.handle_subscription_deleted(event, context)

        elif event_type == 'subscription_schedule.updated':
            await ScheduleEventHandler.handle_schedule_updated(event, context)

        else:
            logger.debug(f"[WEBHOOK] Unhandled event type: {event_type}")


# Global instance
webhook_service = WebhookService()
