"""
Redis Client

Shared async Redis connection used for short-lived billing keys
(webhook de-duplication markers).
"""

import logging

from redis.asyncio import Redis
from redis.exceptions import AuthenticationError, TimeoutError

from tutor_backend.core.conf import settings

logger = logging.getLogger(__name__)


class RedisCli(Redis):
    """Async Redis client configured from settings."""

    def __init__(self) -> None:
        super().__init__(
            host=settings.REDIS_HOST,
            port=settings.REDIS_PORT,
            username=settings.REDIS_USERNAME,
            password=settings.REDIS_PASSWORD or None,
            db=settings.REDIS_DATABASE,
            socket_timeout=settings.REDIS_TIMEOUT,
            socket_connect_timeout=settings.REDIS_TIMEOUT,
            socket_keepalive=True,
            health_check_interval=30,
            decode_responses=True,
        )

    async def open(self) -> None:
        """Ping Redis once at start-up so misconfiguration shows in the logs."""
        try:
            await self.ping()
        except TimeoutError:
            logger.error('[REDIS] Connection timed out')
        except AuthenticationError:
            logger.error('[REDIS] Authentication failed')
        except Exception as e:
            logger.error(f'[REDIS] Connection error: {e}')


# 创建 redis 客户端单例
redis_client: RedisCli = RedisCli()
