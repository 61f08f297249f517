import sqlalchemy as sa

from sqlalchemy.orm import Mapped, mapped_column

from tutor_backend.common.model import Base, id_key
from tutor_backend.database.db import uuid4_str


class SubscriptionPlan(Base):
    """Subscription plans (free / premium)"""

    __tablename__ = 'subscription_plans'

    id: Mapped[id_key] = mapped_column(init=False, default_factory=uuid4_str)
    name: Mapped[str] = mapped_column(sa.String(50), unique=True, comment='Plan name: free | premium')
    display_name: Mapped[str] = mapped_column(sa.String(100), comment='Display name')

    # Pricing in minor units
    price_first_child_cents: Mapped[int] = mapped_column(default=0, comment='First child monthly price')
    price_additional_child_cents: Mapped[int] = mapped_column(default=0, comment='Additional child monthly price')
    currency: Mapped[str] = mapped_column(sa.String(3), default='EUR', comment='ISO currency')

    # Stripe identifiers
    stripe_product_id: Mapped[str | None] = mapped_column(sa.String(255), default=None, comment='Stripe product')
    stripe_price_id_first_child: Mapped[str | None] = mapped_column(
        sa.String(255), default=None, comment='Stripe price for the first child'
    )
    stripe_price_id_additional_child: Mapped[str | None] = mapped_column(
        sa.String(255), default=None, comment='Stripe price for each additional child'
    )

    is_active: Mapped[bool] = mapped_column(default=True, comment='Whether the plan is offered')
