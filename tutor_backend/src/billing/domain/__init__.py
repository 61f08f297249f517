"""Domain entities for billing module."""

from .subscription import CheckoutResult, CustomerResult, PortalResult, ProrataCalculation, SubscriptionInfo

__all__ = [
    'CheckoutResult',
    'CustomerResult',
    'PortalResult',
    'ProrataCalculation',
    'SubscriptionInfo',
]
