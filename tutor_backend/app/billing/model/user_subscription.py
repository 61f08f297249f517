import sqlalchemy as sa

from sqlalchemy.orm import Mapped, mapped_column

from tutor_backend.common.model import Base, id_key
from tutor_backend.database.db import uuid4_str


class UserSubscription(Base):
    """Per-child plan entitlement"""

    __tablename__ = 'user_subscriptions'

    id: Mapped[id_key] = mapped_column(init=False, default_factory=uuid4_str)
    user_id: Mapped[str] = mapped_column(sa.String(255), unique=True, index=True, comment='Child user id')
    plan_id: Mapped[str] = mapped_column(sa.String(36), comment='subscription_plans.id')
    status: Mapped[str] = mapped_column(sa.String(20), default='active', comment='active | paused | canceled')
    tokens_used_today: Mapped[int] = mapped_column(default=0)
