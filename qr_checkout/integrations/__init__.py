"""External integrations: BNB APIs and the purchase webhook."""
from .bnb_auth import AuthenticationError, BankAuthClient
from .bnb_client import BNBQRClient, ProviderError
from .purchase_webhook import NotificationError, NotificationResult, PurchaseWebhookNotifier

__all__ = [
    "AuthenticationError",
    "BankAuthClient",
    "BNBQRClient",
    "ProviderError",
    "NotificationError",
    "NotificationResult",
    "PurchaseWebhookNotifier",
]
