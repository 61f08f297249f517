"""
Billing Exceptions

Custom exception classes for billing-related errors.
Every business rule of the family subscription flow has its own error
class so routes can map them without inspecting messages.
"""


class BillingError(Exception):
    """
    Base exception for all billing-related errors.

    All billing exceptions inherit from this class, allowing for
    broad exception handling when needed.
    """

    def __init__(self, message: str, code: str = "BILLING_ERROR", details: dict = None):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Convert exception to dictionary for API responses."""
        return {
            'error': self.code,
            'message': self.message,
            'details': self.details
        }


class SubscriptionError(BillingError):
    """
    Raised when a family subscription operation violates a business rule.

    Subclasses carry a fixed code and message; the optional parent id is
    attached to the details for logging.
    """

    default_code = "SUBSCRIPTION_ERROR"
    default_message = "Subscription error"

    def __init__(
        self,
        message: str = None,
        code: str = None,
        parent_id: str = None
    ):
        super().__init__(
            message=message or self.default_message,
            code=code or self.default_code,
            details={'parent_id': parent_id} if parent_id else {}
        )
        self.parent_id = parent_id


class NoPlanConfiguredError(SubscriptionError):
    """The premium plan row is missing or lacks Stripe identifiers."""
    default_code = "NO_PLAN_CONFIGURED"
    default_message = "Premium plan not configured in database"


class NoSubscriptionError(SubscriptionError):
    """The family ledger does not reference a subscription."""
    default_code = "NO_SUBSCRIPTION"
    default_message = "No active subscription found"


class ExistingSubscriptionError(SubscriptionError):
    """Checkout refused: the family already pays for an active subscription."""
    default_code = "EXISTING_SUBSCRIPTION"
    default_message = "User already has an active subscription"


class SubscriptionCanceledPendingError(SubscriptionError):
    """Checkout refused: the subscription must be resumed instead."""
    default_code = "SUBSCRIPTION_CANCELED_PENDING"
    default_message = "Subscription is pending cancellation"


class ParentNotFoundError(SubscriptionError):
    """The parent account does not exist."""
    default_code = "PARENT_NOT_FOUND"
    default_message = "Parent not found"


class NoCustomerError(SubscriptionError):
    """The family has no Stripe customer yet."""
    default_code = "NO_CUSTOMER"
    default_message = "No Stripe customer found for this parent"


class NoPendingChangesError(SubscriptionError):
    """There is no schedule to cancel."""
    default_code = "NO_PENDING_CHANGES"
    default_message = "No pending changes to cancel"


class SubscriptionFullyCanceledError(SubscriptionError):
    """The remote subscription is terminated; a new checkout is required."""
    default_code = "SUBSCRIPTION_FULLY_CANCELED"
    default_message = "Subscription is fully canceled. Please create a new subscription."


class NoChildrenError(SubscriptionError):
    """Checkout was requested for an empty set of children."""
    default_code = "NO_CHILDREN"
    default_message = "At least one child must be selected"


class ChildrenAlreadySubscribedError(SubscriptionError):
    """Every child to add is already on the family subscription."""
    default_code = "CHILDREN_ALREADY_SUBSCRIBED"
    default_message = "Children are already included in the subscription"


class ChildrenNotSubscribedError(SubscriptionError):
    """None of the children to remove is on the family subscription."""
    default_code = "CHILDREN_NOT_SUBSCRIBED"
    default_message = "Children are not included in the subscription"


class WebhookError(BillingError):
    """
    Raised when there's an issue processing a webhook.

    Examples:
        - Invalid signature
        - Missing metadata
        - Processing failed
    """

    def __init__(
        self,
        message: str = "Webhook processing error",
        code: str = "WEBHOOK_ERROR",
        event_id: str = None,
        event_type: str = None
    ):
        details = {}
        if event_id:
            details['event_id'] = event_id
        if event_type:
            details['event_type'] = event_type

        super().__init__(
            message=message,
            code=code,
            details=details
        )
        self.event_id = event_id
        self.event_type = event_type


class CircuitBreakerOpenError(BillingError):
    """Raised when the circuit breaker is open and preventing calls."""

    def __init__(
        self,
        message: str = "Circuit breaker is open. Service temporarily unavailable.",
        service_name: str = "stripe",
        reset_time: float = None
    ):
        super().__init__(
            message=message,
            code="CIRCUIT_BREAKER_OPEN",
            details={
                'service_name': service_name,
                'reset_time': reset_time
            }
        )
        self.service_name = service_name
        self.reset_time = reset_time
