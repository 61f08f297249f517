"""
Billing Configuration

Plan configuration and billing constants for family subscriptions.

Pricing comes from the ``subscription_plans`` table: a ``free`` row and a
``premium`` row carrying the Stripe product, the first-child price and the
additional-child price. The rows are read once and kept in a
``PlanConfigStore`` instance that the application creates at start-up and
hands to every subscription handler.

Usage:
    from tutor_backend.src.billing.shared.config import PlanConfigStore

    plans = PlanConfigStore()
    await plans.load()
    premium = await plans.require_premium_config()
    print(premium.price_first_child_cents)  # 1500
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, List, Optional

from tutor_backend.core.conf import settings
from .exceptions import NoPlanConfiguredError

logger = logging.getLogger(__name__)


# =============================================================================
# BILLING CONSTANTS
# =============================================================================
# Fallback period length when Stripe omits period bounds (30 days)
DEFAULT_PERIOD_SECONDS: int = 30 * 24 * 60 * 60

SECONDS_PER_DAY: int = 24 * 60 * 60


class BillingStatus(str, Enum):
    """Values of family_billing.billing_status."""
    ACTIVE = "active"
    CANCELED = "canceled"
    EXPIRED = "expired"
    PAST_DUE = "past_due"


class EntitlementStatus(str, Enum):
    """Values of user_subscriptions.status."""
    ACTIVE = "active"
    PAUSED = "paused"
    CANCELED = "canceled"


class ScheduleEndBehavior(str, Enum):
    """What Stripe does once the last schedule phase ends."""
    RELEASE = "release"
    CANCEL = "cancel"


# =============================================================================
# PLAN DEFINITIONS
# =============================================================================
@dataclass(frozen=True)
class PlanRow:
    """One active row of subscription_plans."""
    id: str
    name: str
    stripe_product_id: Optional[str] = None
    stripe_price_id_first_child: Optional[str] = None
    stripe_price_id_additional_child: Optional[str] = None
    price_first_child_cents: int = 0
    price_additional_child_cents: int = 0


@dataclass(frozen=True)
class PremiumPlanConfig:
    """
    Stripe identifiers and prices of the premium plan.

    Attributes:
        product_id: Stripe product id
        price_id_first_child: Price charged once per family
        price_id_additional_child: Price charged per extra child
        price_first_child_cents: Amount of the first-child price
        price_additional_child_cents: Amount of the additional-child price
    """
    product_id: str
    price_id_first_child: str
    price_id_additional_child: str
    price_first_child_cents: int
    price_additional_child_cents: int


@dataclass(frozen=True)
class PlanCatalog:
    """Immutable snapshot of the plan rows."""
    free_plan_id: Optional[str] = None
    premium_plan_id: Optional[str] = None
    premium: Optional[PremiumPlanConfig] = None

    @classmethod
    def from_rows(
        cls,
        rows: List[PlanRow],
        free_plan_name: str = None,
        premium_plan_name: str = None
    ) -> 'PlanCatalog':
        """Build a catalog from active plan rows."""
        free_plan_name = free_plan_name or settings.BILLING_FREE_PLAN_NAME
        premium_plan_name = premium_plan_name or settings.BILLING_PREMIUM_PLAN_NAME

        free_plan_id = None
        premium_plan_id = None
        premium = None

        for row in rows:
            if row.name == free_plan_name:
                free_plan_id = row.id
            elif row.name == premium_plan_name:
                premium_plan_id = row.id
                if row.stripe_product_id and row.stripe_price_id_first_child and row.stripe_price_id_additional_child:
                    premium = PremiumPlanConfig(
                        product_id=row.stripe_product_id,
                        price_id_first_child=row.stripe_price_id_first_child,
                        price_id_additional_child=row.stripe_price_id_additional_child,
                        price_first_child_cents=row.price_first_child_cents,
                        price_additional_child_cents=row.price_additional_child_cents,
                    )

        return cls(free_plan_id=free_plan_id, premium_plan_id=premium_plan_id, premium=premium)


async def load_active_plan_rows() -> List[PlanRow]:
    """Read active plan rows from the database."""
    from sqlalchemy import select

    from tutor_backend.app.billing.model import SubscriptionPlan
    from tutor_backend.database.db import async_db_session

    async with async_db_session() as session:
        result = await session.execute(
            select(SubscriptionPlan).where(SubscriptionPlan.is_active.is_(True))
        )
        return [
            PlanRow(
                id=plan.id,
                name=plan.name,
                stripe_product_id=plan.stripe_product_id,
                stripe_price_id_first_child=plan.stripe_price_id_first_child,
                stripe_price_id_additional_child=plan.stripe_price_id_additional_child,
                price_first_child_cents=plan.price_first_child_cents,
                price_additional_child_cents=plan.price_additional_child_cents,
            )
            for plan in result.scalars().all()
        ]


# =============================================================================
# PLAN CONFIG STORE
# =============================================================================
class PlanConfigStore:
    """
    Loads plan rows once and answers plan lookups from memory.

    A single instance is created by the application and injected into the
    subscription handlers. ``invalidate()`` drops the snapshot so the next
    lookup reloads it, for use after plan rows are edited.
    """

    def __init__(self, loader: Callable[[], Awaitable[List[PlanRow]]] = None):
        self._loader = loader or load_active_plan_rows
        self._catalog: Optional[PlanCatalog] = None
        self._lock = asyncio.Lock()

    @classmethod
    def preloaded(cls, catalog: PlanCatalog) -> 'PlanConfigStore':
        """Store that already holds a catalog and never hits the database."""
        store = cls(loader=None)
        store._catalog = catalog
        return store

    @property
    def is_loaded(self) -> bool:
        return self._catalog is not None

    async def load(self) -> PlanCatalog:
        """Load plan rows if not loaded yet and return the snapshot."""
        if self._catalog is not None:
            return self._catalog

        async with self._lock:
            if self._catalog is None:
                rows = await self._loader()
                self._catalog = PlanCatalog.from_rows(rows)
                logger.info(
                    f"[PLAN CONFIG] Loaded {len(rows)} active plans "
                    f"(premium configured: {self._catalog.premium is not None})"
                )
        return self._catalog

    def invalidate(self) -> None:
        """Forget the snapshot; the next lookup reloads plan rows."""
        self._catalog = None
        logger.info("[PLAN CONFIG] Plan cache invalidated")

    async def free_plan_id(self) -> Optional[str]:
        return (await self.load()).free_plan_id

    async def premium_plan_id(self) -> Optional[str]:
        return (await self.load()).premium_plan_id

    async def premium_config(self) -> Optional[PremiumPlanConfig]:
        """
        Get the premium plan pricing.

        Returns:
            PremiumPlanConfig, or None when the premium row is missing or
            incomplete (logged at error level)
        """
        premium = (await self.load()).premium
        if premium is None:
            logger.error("[PLAN CONFIG] Premium plan not properly configured in database (severity=high)")
        return premium

    async def require_premium_config(self) -> PremiumPlanConfig:
        """
        Get the premium plan pricing or fail.

        Raises:
            NoPlanConfiguredError: If the premium plan is not usable
        """
        premium = await self.premium_config()
        if premium is None:
            raise NoPlanConfiguredError()
        return premium
