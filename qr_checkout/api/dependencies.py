"""
Service wiring for the API.

Routes receive a ``CheckoutServices`` bundle through ``Depends(get_services)``
so tests can swap the whole graph with ``app.dependency_overrides``.
"""
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

import httpx

from qr_checkout.config import Settings, get_settings
from qr_checkout.core.lifecycle import PaymentLifecycle
from qr_checkout.core.qr_payment import QRPaymentService
from qr_checkout.core.status_poller import StatusPoller
from qr_checkout.core.store import PaymentStore
from qr_checkout.integrations.bnb_auth import BankAuthClient
from qr_checkout.integrations.bnb_client import BNBQRClient
from qr_checkout.integrations.purchase_webhook import PurchaseWebhookNotifier
from qr_checkout.monitoring.health import HealthCheck


@dataclass
class CheckoutServices:
    settings: Settings
    auth_client: BankAuthClient
    bnb_client: BNBQRClient
    store: PaymentStore
    poller: StatusPoller
    notifier: PurchaseWebhookNotifier
    qr_service: QRPaymentService
    lifecycle: PaymentLifecycle
    health: HealthCheck

    async def close(self) -> None:
        await self.auth_client.close()
        await self.bnb_client.close()
        await self.notifier.close()


def build_services(
    settings: Settings,
    auth_http: Optional[httpx.AsyncClient] = None,
    bnb_http: Optional[httpx.AsyncClient] = None,
    webhook_http: Optional[httpx.AsyncClient] = None,
) -> CheckoutServices:
    """
    Build the service graph from settings.

    Args:
        settings: Application settings
        auth_http: Optional HTTP client for the BNB auth API
        bnb_http: Optional HTTP client for the BNB QR API
        webhook_http: Optional HTTP client for purchase webhooks
    """
    store = PaymentStore(settings.payments_file)
    auth_client = BankAuthClient(settings=settings, http_client=auth_http)
    bnb_client = BNBQRClient(auth_client, settings=settings, http_client=bnb_http)
    poller = StatusPoller(bnb_client)
    notifier = PurchaseWebhookNotifier(store, settings=settings, http_client=webhook_http)
    return CheckoutServices(
        settings=settings,
        auth_client=auth_client,
        bnb_client=bnb_client,
        store=store,
        poller=poller,
        notifier=notifier,
        qr_service=QRPaymentService(bnb_client, store, poller=poller, settings=settings),
        lifecycle=PaymentLifecycle(poller, store, notifier),
        health=HealthCheck(store, auth_client),
    )


@lru_cache()
def get_services() -> CheckoutServices:
    """Process-wide service graph built from cached settings."""
    return build_services(get_settings())
