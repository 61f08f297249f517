"""
Stripe API Client Wrapper

Circuit-breaker protected access to the Stripe objects family billing uses:
customers, subscriptions, subscription schedules, checkout and billing
portal sessions. Every call goes through ``StripeAPIWrapper`` so failures
are counted in one place.
"""

import logging
from typing import Any, Callable, Dict

import stripe

from tutor_backend.core.conf import settings
from .circuit_breaker import stripe_circuit_breaker

logger = logging.getLogger(__name__)

stripe.api_key = settings.STRIPE_SECRET_KEY
stripe.max_network_retries = settings.STRIPE_MAX_NETWORK_RETRIES


class StripeAPIWrapper:
    """
    Safe wrapper for Stripe API calls with circuit breaker protection.

    All methods are async class methods that can be called directly:
        customer = await StripeAPIWrapper.create_customer(email="parent@example.com")
    """

    _circuit_breaker = stripe_circuit_breaker

    @classmethod
    def _ensure_stripe_configured(cls):
        if not settings.STRIPE_SECRET_KEY:
            raise ValueError("STRIPE_SECRET_KEY not configured")

    @classmethod
    async def safe_stripe_call(cls, func: Callable, *args, **kwargs) -> Any:
        """
        Execute a Stripe API call through the circuit breaker.

        Args:
            func: Async Stripe API function
            *args: Positional arguments
            **kwargs: Keyword arguments

        Returns:
            Result from Stripe API
        """
        cls._ensure_stripe_configured()
        return await cls._circuit_breaker.safe_call(func, *args, **kwargs)

    @classmethod
    async def get_circuit_status(cls) -> Dict:
        return await cls._circuit_breaker.get_status()

    # -------------------------------------------------------------------------
    # Customer Operations
    # -------------------------------------------------------------------------

    @classmethod
    async def create_customer(cls, **kwargs) -> 'stripe.Customer':
        """
        Create a new Stripe customer.

        Args:
            email: Customer email
            name: Customer name
            metadata: parentId and type

        Returns:
            Stripe Customer object
        """
        return await cls.safe_stripe_call(stripe.Customer.create_async, **kwargs)

    # -------------------------------------------------------------------------
    # Subscription Operations
    # -------------------------------------------------------------------------

    @classmethod
    async def retrieve_subscription(cls, subscription_id: str, **kwargs) -> 'stripe.Subscription':
        """Retrieve a subscription by ID (pass expand=[...] as needed)."""
        return await cls.safe_stripe_call(stripe.Subscription.retrieve_async, subscription_id, **kwargs)

    @classmethod
    async def modify_subscription(cls, subscription_id: str, **kwargs) -> 'stripe.Subscription':
        """Modify items, metadata or cancellation flags of a subscription."""
        return await cls.safe_stripe_call(stripe.Subscription.modify_async, subscription_id, **kwargs)

    # -------------------------------------------------------------------------
    # Checkout / Portal
    # -------------------------------------------------------------------------

    @classmethod
    async def create_checkout_session(cls, **kwargs) -> 'stripe.checkout.Session':
        """
        Create a Stripe Checkout session.

        Args:
            mode: 'subscription'
            customer: Stripe customer ID
            line_items: First-child and additional-child prices
            success_url: Redirect URL on success
            cancel_url: Redirect URL on cancel
            metadata: Family metadata, also copied to subscription_data

        Returns:
            Stripe Checkout Session object
        """
        return await cls.safe_stripe_call(stripe.checkout.Session.create_async, **kwargs)

    @classmethod
    async def create_billing_portal_session(cls, **kwargs) -> 'stripe.billing_portal.Session':
        """Create a billing portal session (customer, return_url)."""
        return await cls.safe_stripe_call(stripe.billing_portal.Session.create_async, **kwargs)

    # -------------------------------------------------------------------------
    # Subscription Schedule Operations
    # -------------------------------------------------------------------------

    @classmethod
    async def create_subscription_schedule(cls, **kwargs) -> 'stripe.SubscriptionSchedule':
        """Create a schedule, usually with from_subscription=<id>."""
        return await cls.safe_stripe_call(stripe.SubscriptionSchedule.create_async, **kwargs)

    @classmethod
    async def retrieve_subscription_schedule(cls, schedule_id: str, **kwargs) -> 'stripe.SubscriptionSchedule':
        return await cls.safe_stripe_call(stripe.SubscriptionSchedule.retrieve_async, schedule_id, **kwargs)

    @classmethod
    async def update_subscription_schedule(cls, schedule_id: str, **kwargs) -> 'stripe.SubscriptionSchedule':
        """Replace phases, end_behavior or metadata of a schedule."""
        return await cls.safe_stripe_call(stripe.SubscriptionSchedule.modify_async, schedule_id, **kwargs)

    @classmethod
    async def release_subscription_schedule(cls, schedule_id: str) -> 'stripe.SubscriptionSchedule':
        """Release a schedule, leaving the subscription as it is now."""
        return await cls.safe_stripe_call(stripe.SubscriptionSchedule.release_async, schedule_id)

    # -------------------------------------------------------------------------
    # Webhooks
    # -------------------------------------------------------------------------

    @staticmethod
    def construct_webhook_event(payload: bytes, sig_header: str) -> 'stripe.Event':
        """
        Verify a webhook signature and parse the event.

        Raises:
            ValueError: Invalid payload
            stripe.SignatureVerificationError: Invalid signature
        """
        return stripe.Webhook.construct_event(
            payload,
            sig_header,
            settings.STRIPE_WEBHOOK_SECRET,
            tolerance=settings.STRIPE_WEBHOOK_TOLERANCE_SECONDS,
        )
