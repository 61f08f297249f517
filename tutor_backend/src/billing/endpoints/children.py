"""
Children Endpoints

Add children to or remove children from the family subscription.
"""

import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends
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
    prefix="/subscriptions/children",
    tags=["billing-children"],
    dependencies=[Depends(verify_billing_enabled)],
)


class ChildrenRequest(BaseModel):
    """Children to add or remove."""
    children_ids: List[str] = Field(min_length=1)


class CancelPendingRemovalRequest(BaseModel):
    """Child to keep; omit to keep every child pending removal."""
    child_id: Optional[str] = None


@router.post("/add")
async def add_children(
    request: ChildrenRequest,
    parent_id: str = Depends(get_current_parent_id),
    service: SubscriptionService = Depends(get_subscription_service)
) -> Dict:
    """Add children now; the remaining days are invoiced immediately."""
    try:
        info = await service.add_children(parent_id, request.children_ids)
        return info.to_dict()
    except Exception as e:
        raise_billing_http_error(e, "adding children")


@router.post("/remove")
async def remove_children(
    request: ChildrenRequest,
    parent_id: str = Depends(get_current_parent_id),
    service: SubscriptionService = Depends(get_subscription_service)
) -> Dict:
    """Schedule children to leave at the end of the period."""
    try:
        info = await service.remove_children(parent_id, request.children_ids)
        return info.to_dict()
    except Exception as e:
        raise_billing_http_error(e, "removing children")


@router.post("/cancel-pending-removal")
async def cancel_pending_removal(
    request: Optional[CancelPendingRemovalRequest] = None,
    parent_id: str = Depends(get_current_parent_id),
    service: SubscriptionService = Depends(get_subscription_service)
) -> Dict:
    """Keep children that were scheduled to leave."""
    child_id = request.child_id if request else None
    try:
        info = await service.cancel_pending_removal(parent_id, child_id)
    except Exception as e:
        raise_billing_http_error(e, "cancelling pending removal")
    if info is None:
        return {'subscription': None}
    return info.to_dict()
