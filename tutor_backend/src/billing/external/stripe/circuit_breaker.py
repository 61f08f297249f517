"""
Stripe Circuit Breaker

Stops calling Stripe after repeated failures so a Stripe outage does not
turn every billing request into a slow timeout.

States:
- CLOSED: calls pass through
- OPEN: calls are refused with CircuitBreakerOpenError
- HALF_OPEN: the next call is let through to test recovery

State lives in the ``circuit_breaker_state`` table so every API worker sees
the same circuit.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Optional

import stripe
from sqlalchemy import text

from tutor_backend.core.conf import settings
from tutor_backend.utils.timezone import timezone
from ...shared.exceptions import CircuitBreakerOpenError

logger = logging.getLogger(__name__)


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitSnapshot:
    state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0
    last_failure_time: Optional[datetime] = None


class StripeCircuitBreaker:
    """
    Circuit breaker for Stripe API calls.

    Usage:
        breaker = StripeCircuitBreaker()
        customer = await breaker.safe_call(stripe.Customer.create_async, email="...")
    """

    def __init__(
        self,
        circuit_name: str = "stripe_api",
        failure_threshold: int = None,
        recovery_timeout: int = None,
        expected_exception: type = None
    ):
        """
        Args:
            circuit_name: Row key in circuit_breaker_state
            failure_threshold: Consecutive failures before opening
            recovery_timeout: Seconds before an open circuit is retried
            expected_exception: Errors that count as failures (default stripe.StripeError)
        """
        self.circuit_name = circuit_name
        self.failure_threshold = failure_threshold or settings.STRIPE_CIRCUIT_FAILURE_THRESHOLD
        self.recovery_timeout = recovery_timeout or settings.STRIPE_CIRCUIT_RECOVERY_TIMEOUT
        self.expected_exception = expected_exception or stripe.StripeError
        self._lock = asyncio.Lock()

    async def safe_call(self, func: Callable, *args, **kwargs) -> Any:
        """
        Execute a Stripe API call with circuit breaker protection.

        Returns:
            Result from the Stripe API call

        Raises:
            CircuitBreakerOpenError: If the circuit refuses the call
            stripe.StripeError: If the call itself fails
        """
        async with self._lock:
            snapshot = await self._get_circuit_state()

            if not await self._should_allow_request(snapshot):
                reset_time = None
                if snapshot.last_failure_time:
                    reset_time = snapshot.last_failure_time.timestamp() + self.recovery_timeout
                logger.warning(f"[CIRCUIT BREAKER] Request blocked - circuit is {snapshot.state.value}")
                raise CircuitBreakerOpenError(service_name=self.circuit_name, reset_time=reset_time)

            try:
                result = await func(*args, **kwargs)
            except self.expected_exception as e:
                await self._record_failure(snapshot, str(e))
                raise

            await self._record_success()
            return result

    async def get_status(self) -> Dict:
        """Current circuit state and thresholds."""
        snapshot = await self._get_circuit_state()
        return {
            'circuit_name': self.circuit_name,
            'state': snapshot.state.value,
            'failure_count': snapshot.failure_count,
            'last_failure_time': snapshot.last_failure_time.isoformat() if snapshot.last_failure_time else None,
            'failure_threshold': self.failure_threshold,
            'recovery_timeout': self.recovery_timeout,
        }

    async def _should_allow_request(self, snapshot: CircuitSnapshot) -> bool:
        if snapshot.state == CircuitState.OPEN:
            if snapshot.last_failure_time is None:
                return False
            elapsed = (timezone.now() - snapshot.last_failure_time).total_seconds()
            if elapsed < self.recovery_timeout:
                return False
            await self._transition_to_half_open()
        return True

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    async def _get_circuit_state(self) -> CircuitSnapshot:
        """Read the circuit row; a missing or unreadable row means CLOSED."""
        try:
            from tutor_backend.database.db import async_db_session

            async with async_db_session() as session:
                result = await session.execute(
                    text("""
                        SELECT state, failure_count, last_failure_time
                        FROM circuit_breaker_state
                        WHERE circuit_name = :circuit_name
                    """),
                    {"circuit_name": self.circuit_name}
                )
                row = result.fetchone()

            if row is None:
                return CircuitSnapshot()
            return CircuitSnapshot(
                state=CircuitState(row.state),
                failure_count=row.failure_count or 0,
                last_failure_time=row.last_failure_time,
            )

        except Exception as e:
            logger.error(f"[CIRCUIT BREAKER] Error reading state from DB: {e}, defaulting to CLOSED")
            return CircuitSnapshot()

    async def _record_success(self):
        try:
            from tutor_backend.database.db import async_db_session

            async with async_db_session() as session:
                await session.execute(
                    text("""
                        INSERT INTO circuit_breaker_state
                            (circuit_name, state, failure_count, success_count, last_success_time, created_at, updated_at)
                        VALUES (:circuit_name, :state, 0, 1, :now, :now, :now)
                        ON CONFLICT (circuit_name) DO UPDATE SET
                            state = :state,
                            failure_count = 0,
                            success_count = circuit_breaker_state.success_count + 1,
                            last_success_time = :now,
                            updated_at = :now
                    """),
                    {"circuit_name": self.circuit_name, "state": CircuitState.CLOSED.value, "now": timezone.now()}
                )
                await session.commit()

        except Exception as e:
            logger.error(f"[CIRCUIT BREAKER] Failed to record success: {e}")

    async def _record_failure(self, snapshot: CircuitSnapshot, error_message: str):
        failure_count = snapshot.failure_count + 1
        new_state = CircuitState.OPEN if failure_count >= self.failure_threshold else CircuitState.CLOSED

        try:
            from tutor_backend.database.db import async_db_session

            async with async_db_session() as session:
                await session.execute(
                    text("""
                        INSERT INTO circuit_breaker_state
                            (circuit_name, state, failure_count, success_count, last_failure_time, created_at, updated_at)
                        VALUES (:circuit_name, :state, :failure_count, 0, :now, :now, :now)
                        ON CONFLICT (circuit_name) DO UPDATE SET
                            state = :state,
                            failure_count = :failure_count,
                            last_failure_time = :now,
                            updated_at = :now
                    """),
                    {
                        "circuit_name": self.circuit_name,
                        "state": new_state.value,
                        "failure_count": failure_count,
                        "now": timezone.now()
                    }
                )
                await session.commit()

        except Exception as e:
            logger.error(f"[CIRCUIT BREAKER] Failed to record failure: {e}")
            return

        if new_state == CircuitState.OPEN:
            logger.warning(f"[CIRCUIT BREAKER] Circuit opened after {failure_count} failures: {error_message}")
        else:
            logger.debug(f"[CIRCUIT BREAKER] Recorded failure #{failure_count} for {self.circuit_name}")

    async def _transition_to_half_open(self):
        try:
            from tutor_backend.database.db import async_db_session

            async with async_db_session() as session:
                await session.execute(
                    text("""
                        UPDATE circuit_breaker_state
                        SET state = :state, failure_count = 0, updated_at = :now
                        WHERE circuit_name = :circuit_name
                    """),
                    {"circuit_name": self.circuit_name, "state": CircuitState.HALF_OPEN.value, "now": timezone.now()}
                )
                await session.commit()

            logger.info(f"[CIRCUIT BREAKER] Transitioned {self.circuit_name} to half-open")
        except Exception as e:
            logger.error(f"[CIRCUIT BREAKER] Failed to transition to half-open: {e}")


# Global circuit breaker instance
stripe_circuit_breaker = StripeCircuitBreaker()
