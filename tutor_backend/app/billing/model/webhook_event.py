from datetime import datetime

import sqlalchemy as sa

from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from tutor_backend.common.model import DataClassBase, TimeZone
from tutor_backend.utils.timezone import timezone


class WebhookEvent(DataClassBase):
    """Processed Stripe webhook events"""

    __tablename__ = 'webhook_events'

    id: Mapped[str] = mapped_column(sa.String(255), primary_key=True, comment='Stripe event id')
    event_type: Mapped[str] = mapped_column(sa.String(100), index=True)
    status: Mapped[str] = mapped_column(sa.String(20), default='processing', comment='processing | completed | failed')
    payload: Mapped[dict | None] = mapped_column(JSONB, default=None)
    error_message: Mapped[str | None] = mapped_column(sa.Text, default=None)
    created_at: Mapped[datetime] = mapped_column(TimeZone, default_factory=timezone.now)
    completed_at: Mapped[datetime | None] = mapped_column(TimeZone, default=None)
