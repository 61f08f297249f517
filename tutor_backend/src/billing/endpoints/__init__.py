"""
Billing Endpoints Module

API routes for billing operations.

Routers:
- subscriptions: Checkout, portal, status, cancel, resume, prorata
- children: Add, remove, cancel pending removal
- webhooks: Stripe webhook processing (only when billing is enabled)

Usage:
    from tutor_backend.src.billing.endpoints import build_billing_router

    app.include_router(build_billing_router(), prefix="/api/v1/billing")
"""

from fastapi import APIRouter

from tutor_backend.core.conf import Settings, settings as default_settings
from .subscriptions import router as subscriptions_router
from .children import router as children_router
from .webhooks import router as webhooks_router
from .dependencies import get_current_parent_id, verify_billing_enabled


def build_billing_router(settings: Settings = None) -> APIRouter:
    """
    Assemble the billing routers.

    Without a Stripe secret key the webhook route is not mounted; the other
    routes stay and answer 503.
    """
    settings = settings or default_settings

    billing_router = APIRouter()
    billing_router.include_router(subscriptions_router)
    billing_router.include_router(children_router)
    if settings.BILLING_ENABLED:
        billing_router.include_router(webhooks_router)
    return billing_router


__all__ = [
    'build_billing_router',
    'subscriptions_router',
    'children_router',
    'webhooks_router',
    'get_current_parent_id',
    'verify_billing_enabled',
]
