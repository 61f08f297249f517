import logging

from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI

from tutor_backend.core.conf import Settings, settings as default_settings
from tutor_backend.src.billing.endpoints import build_billing_router
from tutor_backend.src.billing.subscriptions.context import BillingContext

logger = logging.getLogger(__name__)


health_router = APIRouter()


@health_router.get("/health")
async def health_check():
    return {"status": "ok"}


@asynccontextmanager
async def register_init(app: FastAPI):
    """Manage application lifespan events."""
    from tutor_backend.database.redis import redis_client

    context: BillingContext = app.state.billing_context

    await redis_client.open()
    try:
        await context.plans.load()
    except Exception as e:
        # plans are loaded again on first use
        logger.error(f"[PLAN CONFIG] Failed to load plans during startup: {e}")

    yield

    await redis_client.aclose()


def register_app(settings: Settings = None, context: BillingContext = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Application settings (defaults to the process settings)
        context: Billing collaborators (defaults to a fresh BillingContext)

    Returns:
        FastAPI application
    """
    settings = settings or default_settings

    app = FastAPI(
        title=settings.FASTAPI_TITLE,
        description=settings.FASTAPI_DESCRIPTION,
        docs_url=settings.FASTAPI_DOCS_URL,
        redoc_url=settings.FASTAPI_REDOC_URL,
        openapi_url=settings.FASTAPI_OPENAPI_URL,
        lifespan=register_init,
    )
    app.state.billing_context = context or BillingContext()

    if not settings.BILLING_ENABLED:
        logger.warning("[BILLING] STRIPE_SECRET_KEY not set, billing routes answer 503 and webhooks are not mounted")

    app.include_router(health_router)
    app.include_router(
        build_billing_router(settings),
        prefix=f"{settings.FASTAPI_API_V1_PATH}/billing",
        tags=["Billing"],
    )
    return app
