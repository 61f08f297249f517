"""
Endpoint Dependencies

Shared dependencies for billing API endpoints.
"""

import logging
from typing import NoReturn, Optional

from fastapi import Depends, Header, HTTPException, Request

from tutor_backend.core.conf import settings
from tutor_backend.src.billing.external.stripe.webhooks import WebhookService
from tutor_backend.src.billing.shared.exceptions import (
    BillingError,
    CircuitBreakerOpenError,
    SubscriptionFullyCanceledError,
)
from tutor_backend.src.billing.subscriptions.context import BillingContext, get_billing_context
from tutor_backend.src.billing.subscriptions.service import SubscriptionService

logger = logging.getLogger(__name__)

CREATE_NEW_SUBSCRIPTION = 'CREATE_NEW_SUBSCRIPTION'


async def get_current_parent_id(
    parent_id: Optional[str] = Header(None, alias="X-Parent-Id")
) -> str:
    """
    Parent account making the request.

    The authentication gateway in front of this service resolves the session
    and forwards the parent id. This is a dependency that can be overridden
    in tests.
    """
    if not parent_id:
        raise HTTPException(status_code=401, detail="Missing parent identity")
    return parent_id


def get_request_billing_context(request: Request) -> BillingContext:
    """Context built by the application lifespan, or the process default."""
    context = getattr(request.app.state, 'billing_context', None)
    return context or get_billing_context()


def get_subscription_service(
    context: BillingContext = Depends(get_request_billing_context)
) -> SubscriptionService:
    return SubscriptionService(context)


def get_webhook_service(
    context: BillingContext = Depends(get_request_billing_context)
) -> WebhookService:
    return WebhookService(context)


async def verify_billing_enabled() -> bool:
    """
    Dependency to check if billing is enabled.

    Raises:
        HTTPException: 503 when no Stripe secret key is configured
    """
    if not settings.BILLING_ENABLED:
        raise HTTPException(status_code=503, detail="Billing is not enabled")
    return True


def raise_billing_http_error(e: Exception, operation: str) -> NoReturn:
    """
    Translate an error raised by a billing operation into an HTTP error.

    - CircuitBreakerOpenError: 503
    - BillingError: 400 with the error payload; a fully canceled
      subscription also tells the client to start a new checkout
    - anything else: 500
    """
    if isinstance(e, CircuitBreakerOpenError):
        logger.warning(f"[BILLING] Stripe unavailable while {operation}: {e.message}")
        raise HTTPException(status_code=503, detail=e.to_dict())

    if isinstance(e, BillingError):
        detail = e.to_dict()
        if isinstance(e, SubscriptionFullyCanceledError):
            detail['action'] = CREATE_NEW_SUBSCRIPTION
        logger.info(f"[BILLING] {operation} refused: {e.code}")
        raise HTTPException(status_code=400, detail=detail)

    logger.error(f"[BILLING] Error {operation}: {e}", exc_info=True)
    raise HTTPException(status_code=500, detail="Internal billing error")
