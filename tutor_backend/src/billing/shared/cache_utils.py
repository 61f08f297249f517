"""
Cache Utilities for Billing

Redis markers for processed webhook events. The database lock in
``webhook_lock`` is authoritative; these keys only short-circuit redelivery
of events that are already known to be done.
"""

import logging

from tutor_backend.core.conf import settings

logger = logging.getLogger(__name__)


def webhook_event_key(event_id: str) -> str:
    return f"{settings.STRIPE_WEBHOOK_REDIS_PREFIX}:{event_id}"


async def is_webhook_event_processed(event_id: str) -> bool:
    """
    Check the Redis marker for a webhook event.

    Args:
        event_id: Stripe event ID

    Returns:
        True if the event was marked processed, False if not or on error
    """
    try:
        from tutor_backend.database.redis import redis_client

        return bool(await redis_client.exists(webhook_event_key(event_id)))

    except Exception as e:
        logger.warning(f"[CACHE] Failed to read webhook marker for {event_id}: {e}")
        return False


async def mark_webhook_event_processed(event_id: str, ttl: int = None) -> bool:
    """
    Mark a webhook event as processed.

    Args:
        event_id: Stripe event ID
        ttl: Marker lifetime in seconds (default STRIPE_WEBHOOK_DEDUP_TTL_SECONDS)

    Returns:
        True if the marker was written, False on error
    """
    try:
        from tutor_backend.database.redis import redis_client

        await redis_client.setex(
            webhook_event_key(event_id),
            ttl or settings.STRIPE_WEBHOOK_DEDUP_TTL_SECONDS,
            '1'
        )
        logger.debug(f"[CACHE] Marked webhook event {event_id} as processed")
        return True

    except Exception as e:
        logger.warning(f"[CACHE] Failed to write webhook marker for {event_id}: {e}")
        return False
