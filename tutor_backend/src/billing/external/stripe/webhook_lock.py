"""
Webhook Event Lock

Durable deduplication of Stripe events across API workers, backed by the
``webhook_events`` table:

    processing -> completed
               -> failed      (next delivery may retry)

A ``processing`` row older than the processing window is treated as
abandoned and can be claimed again. Every method swallows its own database
errors: event handlers are idempotent upserts, so running an event twice is
accepted while dropping one is not.
"""

import logging
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert

from tutor_backend.app.billing.model import WebhookEvent
from tutor_backend.core.conf import settings
from tutor_backend.utils.timezone import timezone

logger = logging.getLogger(__name__)

ERROR_MESSAGE_MAX_LENGTH = 1000


class WebhookEventStatus(str, Enum):
    PROCESSING = 'processing'
    COMPLETED = 'completed'
    FAILED = 'failed'


def _session():
    from tutor_backend.database.db import async_db_session

    return async_db_session.begin()


class WebhookLock:
    """Claims and settles ``webhook_events`` rows."""

    @staticmethod
    def _claim_refused(row: Optional[WebhookEvent], event_id: str) -> Optional[str]:
        """Reason the event may not be claimed, or None when it may."""
        if row is None:
            return None
        if row.status == WebhookEventStatus.COMPLETED.value:
            return "Event already processed"
        if row.status == WebhookEventStatus.PROCESSING.value:
            age = (timezone.now() - row.created_at).total_seconds()
            if age < settings.STRIPE_WEBHOOK_PROCESSING_WINDOW_SECONDS:
                return "Event currently being processed"
            logger.warning(f"[WEBHOOK LOCK] Event {event_id} abandoned after {int(age)}s, claiming again")
        elif row.status == WebhookEventStatus.FAILED.value:
            logger.info(f"[WEBHOOK LOCK] Retrying failed event {event_id}")
        return None

    @classmethod
    async def check_and_mark_webhook_processing(
        cls,
        event_id: str,
        event_type: str,
        payload: Optional[Dict[str, Any]] = None
    ) -> Tuple[bool, str]:
        """
        Claim an event for processing.

        The row is read ``FOR UPDATE`` so two workers receiving the same
        delivery cannot both claim it.

        Args:
            event_id: Stripe event ID
            event_type: Stripe event type
            payload: Event body kept for inspection

        Returns:
            (can_process, reason)
        """
        try:
            async with _session() as session:
                row = await session.scalar(
                    select(WebhookEvent).where(WebhookEvent.id == event_id).with_for_update()
                )
                refused = cls._claim_refused(row, event_id)
                if refused:
                    return False, refused

                now = timezone.now()
                await session.execute(
                    insert(WebhookEvent)
                    .values(
                        id=event_id,
                        event_type=event_type,
                        status=WebhookEventStatus.PROCESSING.value,
                        payload=payload,
                        created_at=now,
                    )
                    .on_conflict_do_update(
                        index_elements=[WebhookEvent.id],
                        set_={
                            'status': WebhookEventStatus.PROCESSING.value,
                            'error_message': None,
                            'created_at': now,
                        },
                    )
                )
            return True, "Processing"

        except Exception as e:
            logger.error(f"[WEBHOOK LOCK] Could not claim event {event_id}, processing anyway: {e}")
            return True, f"Lock error: {e}"

    @classmethod
    async def _settle(cls, event_id: str, status: WebhookEventStatus, error_message: Optional[str] = None) -> bool:
        try:
            async with _session() as session:
                await session.execute(
                    update(WebhookEvent)
                    .where(WebhookEvent.id == event_id)
                    .values(status=status.value, error_message=error_message, completed_at=timezone.now())
                )
            return True
        except Exception as e:
            logger.error(f"[WEBHOOK LOCK] Could not mark event {event_id} {status.value}: {e}")
            return False

    @classmethod
    async def mark_webhook_completed(cls, event_id: str) -> bool:
        """Mark an event processed; later deliveries are skipped."""
        settled = await cls._settle(event_id, WebhookEventStatus.COMPLETED)
        if settled:
            logger.debug(f"[WEBHOOK LOCK] Event {event_id} completed")
        return settled

    @classmethod
    async def mark_webhook_failed(cls, event_id: str, error_message: str) -> bool:
        """Mark an event failed so the next delivery retries it."""
        settled = await cls._settle(event_id, WebhookEventStatus.FAILED, error_message[:ERROR_MESSAGE_MAX_LENGTH])
        if settled:
            logger.warning(f"[WEBHOOK LOCK] Event {event_id} failed: {error_message[:100]}")
        return settled
