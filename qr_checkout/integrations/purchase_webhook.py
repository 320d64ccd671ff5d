"""
Purchase webhook forwarding.

Implements:
- Destination routing between the main and upsell endpoints
- A fixed-shape ``purchase.completed`` payload
- Optional HMAC-SHA256 body signature
- Linear-backoff retries
- At-most-once delivery guarded by the store's ``webhook_notified`` flag
"""
import asyncio
import hashlib
import hmac
import json
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from qr_checkout.config import Settings, get_settings
from qr_checkout.core.models import (
    PRODUCT_TYPE_MAIN,
    PRODUCT_TYPE_UPSELL,
    PaymentRecord,
    utc_timestamp,
)
from qr_checkout.core.store import PaymentStore, StorageError
from qr_checkout.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

EVENT_NAME = "purchase.completed"
PAYLOAD_VERSION = "1.0"
PROVIDER_TAG = "BNB-QR-Simple"

SKIP_STORAGE_MISSING = "storage_missing"
SKIP_PAYMENT_NOT_FOUND = "payment_not_found"
SKIP_ALREADY_NOTIFIED = "already_notified"
SKIP_NOT_PAID = "not_paid"
SKIP_NO_DESTINATION = "no_destination"


class NotificationError(Exception):
    """Raised when every delivery attempt failed."""

    pass


@dataclass
class NotificationResult:
    """Result of ``notify_once``: ok, skipped with a reason, or failed."""

    outcome: str
    reason: Optional[str] = None
    error: Optional[str] = None
    destination: Optional[str] = None

    @classmethod
    def ok(cls, destination: str) -> "NotificationResult":
        return cls(outcome="ok", destination=destination)

    @classmethod
    def skipped(cls, reason: str) -> "NotificationResult":
        return cls(outcome="skipped", reason=reason)

    @classmethod
    def failed(cls, error: str, destination: Optional[str] = None) -> "NotificationResult":
        return cls(outcome="failed", error=error, destination=destination)


def sign_body(secret: str, body: bytes) -> str:
    """Hex HMAC-SHA256 of the exact request body."""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def resolve_destination_kind(record: PaymentRecord) -> str:
    """
    Pick ``main`` or ``upsell``.

    An explicit product type wins; otherwise a product name containing
    "upsell" selects the upsell endpoint. Everything else goes to main.
    """
    product_type = (record.product_type or "").lower()
    if product_type in (PRODUCT_TYPE_UPSELL, PRODUCT_TYPE_MAIN):
        return product_type
    if PRODUCT_TYPE_UPSELL in (record.product or "").lower():
        return PRODUCT_TYPE_UPSELL
    return PRODUCT_TYPE_MAIN


def build_purchase_payload(record: PaymentRecord) -> Dict[str, Any]:
    """Build the ``purchase.completed`` envelope for a paid record."""
    return {
        "event": EVENT_NAME,
        "version": PAYLOAD_VERSION,
        "provider": PROVIDER_TAG,
        "payment_id": record.payment_id or record.qr_id,
        "status": "paid",
        "currency": record.currency or "BOB",
        "amount_bob": float(record.amount_bob or 0),
        "paid_at": record.payment_date or utc_timestamp(),
        "product": record.product,
        "product_type": record.product_type or PRODUCT_TYPE_MAIN,
        "customer": {
            "name": record.customer.name or None,
            "email": record.customer.email or None,
            "phone": record.customer.phone or None,
        },
        "extras": record.extras or [],
        "meta": {
            "transaction_id": record.transaction_id or None,
            "gloss": record.gloss,
            "provider_status_code": record.provider_status_code,
            "provider_qr_id": record.provider_qr_id,
            "voucher_id": record.voucher_id,
            "created_at": record.created_at,
            "updated_at": utc_timestamp(),
        },
    }


class PurchaseWebhookNotifier:
    """Delivers the purchase webhook at most once per payment."""

    def __init__(
        self,
        store: PaymentStore,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize the notifier.

        Args:
            store: Payment store holding the notification flag
            settings: Optional settings (uses cached settings if not provided)
            http_client: Optional HTTP client for the webhook endpoints
            sleep: Coroutine used to wait between delivery attempts
        """
        self.settings = settings or get_settings()
        self.store = store
        self.http_client = http_client or httpx.AsyncClient(
            timeout=self.settings.purchase_webhook_timeout
        )
        self.sleep = sleep
        # Per-payment locks, dropped once no caller holds or awaits them
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    def destination_url(self, kind: str) -> Optional[str]:
        if kind == PRODUCT_TYPE_UPSELL:
            return self.settings.purchase_webhook_upsell_url
        return self.settings.purchase_webhook_main_url

    async def notify_once(self, payment_id: str) -> NotificationResult:
        """
        Send the purchase webhook for ``payment_id`` unless already sent.

        Preconditions are checked in order and short-circuit into a skipped
        result without any network call. Calls for the same payment id are
        serialized so a concurrent caller observes ``already_notified``.
        """
        payment_id = str(payment_id)
        lock = self._locks.setdefault(payment_id, asyncio.Lock())
        self._lock_users[payment_id] = self._lock_users.get(payment_id, 0) + 1
        try:
            async with lock:
                result = await self._notify(payment_id)
        finally:
            self._lock_users[payment_id] -= 1
            if not self._lock_users[payment_id]:
                del self._lock_users[payment_id]
                del self._locks[payment_id]

        metrics.record_webhook_notification(result.outcome, result.reason or "")
        if result.outcome == "skipped":
            logger.info("purchase_webhook_skipped", payment_id=payment_id, reason=result.reason)
        return result

    async def _notify(self, payment_id: str) -> NotificationResult:
        if not self.store.exists():
            return NotificationResult.skipped(SKIP_STORAGE_MISSING)
        try:
            record = self.store.get(payment_id)
        except StorageError as e:
            logger.error("purchase_webhook_store_unreadable", payment_id=payment_id, error=str(e))
            return NotificationResult.skipped(SKIP_STORAGE_MISSING)

        if record is None:
            return NotificationResult.skipped(SKIP_PAYMENT_NOT_FOUND)
        if record.webhook_notified:
            return NotificationResult.skipped(SKIP_ALREADY_NOTIFIED)
        if not record.paid:
            return NotificationResult.skipped(SKIP_NOT_PAID)

        kind = resolve_destination_kind(record)
        url = self.destination_url(kind)
        if not url:
            return NotificationResult.skipped(SKIP_NO_DESTINATION)

        payload = build_purchase_payload(record)
        body = json.dumps(payload, ensure_ascii=False, separators=(",", ":")).encode("utf-8")
        headers = {"Content-Type": "application/json", "X-Event": EVENT_NAME}
        if self.settings.purchase_webhook_secret:
            headers["X-Signature"] = sign_body(self.settings.purchase_webhook_secret, body)

        try:
            await self._deliver(url, kind, body, headers)
        except NotificationError as e:
            logger.error(
                "purchase_webhook_failed",
                payment_id=payment_id,
                destination=kind,
                error=str(e),
            )
            return NotificationResult.failed(str(e), destination=kind)

        try:
            self.store.mark_notified(payment_id)
        except StorageError as e:
            # Delivered but not recorded: the next paid poll will send it again
            logger.error("purchase_webhook_flag_not_saved", payment_id=payment_id, error=str(e))
            return NotificationResult.failed(str(e), destination=kind)

        logger.info("purchase_webhook_delivered", payment_id=payment_id, destination=kind, url=url)
        return NotificationResult.ok(kind)

    async def _deliver(
        self, url: str, kind: str, body: bytes, headers: Dict[str, str]
    ) -> httpx.Response:
        """
        POST the body with linear backoff between attempts.

        Raises:
            NotificationError: When all attempts failed
        """
        delay = self.settings.purchase_webhook_retry_delay
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(httpx.HTTPError),
            stop=stop_after_attempt(self.settings.purchase_webhook_max_attempts),
            wait=wait_incrementing(start=delay, increment=delay),
            sleep=self.sleep,
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    metrics.record_webhook_attempt(kind)
                    response = await self.http_client.post(url, content=body, headers=headers)
                    response.raise_for_status()
                    return response
        except httpx.HTTPError as e:
            raise NotificationError(f"Webhook delivery to {kind} failed: {e}") from e
        raise NotificationError(f"Webhook delivery to {kind} was not attempted")

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self.http_client.aclose()
