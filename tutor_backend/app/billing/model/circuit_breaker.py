from datetime import datetime

import sqlalchemy as sa

from sqlalchemy.orm import Mapped, mapped_column

from tutor_backend.common.model import DataClassBase, TimeZone
from tutor_backend.utils.timezone import timezone


class CircuitBreakerState(DataClassBase):
    """Shared circuit breaker state"""

    __tablename__ = 'circuit_breaker_state'

    circuit_name: Mapped[str] = mapped_column(sa.String(100), primary_key=True)
    state: Mapped[str] = mapped_column(sa.String(20), default='closed')
    failure_count: Mapped[int] = mapped_column(default=0)
    success_count: Mapped[int] = mapped_column(default=0)
    last_failure_time: Mapped[datetime | None] = mapped_column(TimeZone, default=None)
    last_success_time: Mapped[datetime | None] = mapped_column(TimeZone, default=None)
    created_at: Mapped[datetime] = mapped_column(TimeZone, default_factory=timezone.now)
    updated_at: Mapped[datetime] = mapped_column(TimeZone, default_factory=timezone.now)
