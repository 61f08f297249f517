from datetime import datetime

import sqlalchemy as sa

from sqlalchemy.orm import Mapped, mapped_column

from tutor_backend.common.model import Base, TimeZone, id_key
from tutor_backend.database.db import uuid4_str


class FamilyBilling(Base):
    """Per-family billing ledger"""

    __tablename__ = 'family_billing'

    id: Mapped[id_key] = mapped_column(init=False, default_factory=uuid4_str)
    parent_id: Mapped[str] = mapped_column(sa.String(255), unique=True, index=True, comment='Paying parent')

    # Stripe references
    stripe_customer_id: Mapped[str | None] = mapped_column(
        sa.String(255), unique=True, index=True, default=None, comment='Stripe customer'
    )
    stripe_subscription_id: Mapped[str | None] = mapped_column(
        sa.String(255), unique=True, index=True, default=None, comment='Stripe subscription'
    )
    billing_status: Mapped[str] = mapped_column(
        sa.String(50), index=True, default='active', comment='active | canceled | expired | past_due'
    )

    # Current period
    current_period_start: Mapped[datetime | None] = mapped_column(TimeZone, default=None)
    current_period_end: Mapped[datetime | None] = mapped_column(TimeZone, default=None)

    # Amounts for the period being paid now
    premium_children_count: Mapped[int] = mapped_column(default=0, comment='Children billed this period')
    monthly_amount_cents: Mapped[int] = mapped_column(default=0, comment='Amount billed this period')
    last_payment_amount_cents: Mapped[int | None] = mapped_column(default=None)
    last_payment_at: Mapped[datetime | None] = mapped_column(TimeZone, default=None)
