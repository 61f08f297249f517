from datetime import datetime
from typing import Annotated

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase, Mapped, MappedAsDataclass, declared_attr, mapped_column

from tutor_backend.utils.timezone import timezone

# String UUID primary key
id_key = Annotated[
    str,
    mapped_column(sa.String(36), primary_key=True, index=True, sort_order=-999, comment='Primary key id'),
]

# Timezone-aware timestamp column type
TimeZone = sa.DateTime(timezone=True)


class MappedBase(AsyncAttrs, DeclarativeBase):
    """Declarative base for all tables."""

    @declared_attr.directive
    def __table_args__(cls) -> dict:
        return {'comment': cls.__doc__ or ''}


class DataClassBase(MappedAsDataclass, MappedBase):
    """Dataclass-style declarative base."""

    __abstract__ = True


class DateTimeMixin(MappedAsDataclass):
    """Created/updated timestamps."""

    created_at: Mapped[datetime] = mapped_column(
        TimeZone, init=False, default_factory=timezone.now, sort_order=998, comment='Created at'
    )
    updated_at: Mapped[datetime] = mapped_column(
        TimeZone, init=False, default_factory=timezone.now, onupdate=timezone.now, sort_order=999, comment='Updated at'
    )


class Base(DataClassBase, DateTimeMixin):
    """Base class for tables with timestamps."""

    __abstract__ = True
