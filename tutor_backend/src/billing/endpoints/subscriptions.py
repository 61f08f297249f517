"""
Subscription Endpoints

API endpoints for family subscription management.
"""

import logging
from typing import Dict, List

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from tutor_backend.src.billing.subscriptions.service import SubscriptionService
from .dependencies import (
    get_current_parent_id,
    get_subscription_service,
    raise_billing_http_error,
    verify_billing_enabled,
)

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/subscriptions",
    tags=["billing-subscriptions"],
    dependencies=[Depends(verify_billing_enabled)],
)


# ============================================================================
# Request Models
# ============================================================================

class CreateCheckoutRequest(BaseModel):
    """Request for checkout session creation."""
    children_ids: List[str] = Field(min_length=1)
    success_url: str
    cancel_url: str


class CreatePortalRequest(BaseModel):
    """Request for customer portal session."""
    return_url: str


# ============================================================================
# Endpoints
# ============================================================================

@router.post("/checkout")
async def create_checkout_session(
    request: CreateCheckoutRequest,
    parent_id: str = Depends(get_current_parent_id),
    service: SubscriptionService = Depends(get_subscription_service)
) -> Dict:
    """Create a Stripe checkout session for the selected children."""
    try:
        result = await service.create_checkout_session(
            parent_id=parent_id,
            children_ids=request.children_ids,
            success_url=request.success_url,
            cancel_url=request.cancel_url,
        )
        return result.to_dict()
    except Exception as e:
        raise_billing_http_error(e, "creating checkout")


@router.post("/portal")
async def create_portal_session(
    request: CreatePortalRequest,
    parent_id: str = Depends(get_current_parent_id),
    service: SubscriptionService = Depends(get_subscription_service)
) -> Dict:
    """Create Stripe customer portal session."""
    try:
        result = await service.create_portal_session(parent_id, request.return_url)
        return result.to_dict()
    except Exception as e:
        raise_billing_http_error(e, "creating portal")


@router.get("/status")
async def get_subscription_status(
    parent_id: str = Depends(get_current_parent_id),
    service: SubscriptionService = Depends(get_subscription_service)
) -> Dict:
    """Live subscription status, or ``{"subscription": null}``."""
    try:
        info = await service.get_subscription_status(parent_id)
    except Exception as e:
        raise_billing_http_error(e, "reading status")
    if info is None:
        return {'subscription': None}
    return info.to_dict()


@router.post("/cancel")
async def cancel_subscription(
    parent_id: str = Depends(get_current_parent_id),
    service: SubscriptionService = Depends(get_subscription_service)
) -> Dict:
    """
    Cancel subscription.

    Children keep premium until the end of the billing period.
    """
    try:
        info = await service.cancel_subscription(parent_id)
        return info.to_dict()
    except Exception as e:
        raise_billing_http_error(e, "cancelling")


@router.post("/resume")
async def resume_subscription(
    parent_id: str = Depends(get_current_parent_id),
    service: SubscriptionService = Depends(get_subscription_service)
) -> Dict:
    """Resume a subscription set to end at period end."""
    try:
        info = await service.resume_subscription(parent_id)
        return info.to_dict()
    except Exception as e:
        raise_billing_http_error(e, "resuming")


@router.get("/prorata")
async def get_add_children_prorata(
    children_count: int = Query(..., ge=1),
    parent_id: str = Depends(get_current_parent_id),
    service: SubscriptionService = Depends(get_subscription_service)
) -> Dict:
    """Preview the immediate charge for adding children."""
    try:
        result = await service.calculate_add_children_prorata(parent_id, children_count)
        return result.to_dict()
    except Exception as e:
        raise_billing_http_error(e, "calculating prorata")
