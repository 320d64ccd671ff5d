"""
Payment lifecycle: status refresh and its side effects.

A status refresh asks BNB for the QR state, reconciles terminal states into
the store and, once the payment reads as paid, fires the purchase webhook.
"""
from typing import Any, Dict

import structlog

from qr_checkout.core.models import STATUS_PAID, TERMINAL_STATUSES, utc_timestamp
from qr_checkout.core.status_poller import StatusPoller
from qr_checkout.core.store import PaymentStore, StorageError
from qr_checkout.integrations.purchase_webhook import PurchaseWebhookNotifier

logger = structlog.get_logger(__name__)


class PaymentLifecycle:
    """Coordinates the poller, the store and the purchase webhook."""

    def __init__(
        self,
        poller: StatusPoller,
        store: PaymentStore,
        notifier: PurchaseWebhookNotifier,
    ):
        self.poller = poller
        self.store = store
        self.notifier = notifier

    async def refresh_status(self, payment_id: str) -> Dict[str, Any]:
        """
        Check a payment live and apply the consequences.

        A status stored as paid is reported as paid even if BNB answers
        pending or cannot be reached. Webhook problems are logged and never
        change the response.

        Returns:
            Dict[str, Any]: success, payment_id, status, is_paid, payment_date,
                amount and updated_at
        """
        payment_id = str(payment_id)
        result = await self.poller.check_status(payment_id)

        status = result.status
        record = None
        try:
            if result.conclusive and status in TERMINAL_STATUSES:
                record = self.store.record_status(
                    payment_id,
                    status,
                    provider_status_code=result.provider_status_code,
                    provider_qr_id=result.provider_qr_id,
                    voucher_id=result.voucher_id,
                )
            else:
                record = self.store.get(payment_id)
        except StorageError as e:
            logger.error("payment_status_not_persisted", payment_id=payment_id, error=str(e))

        if record is not None:
            status = STATUS_PAID if record.paid else record.status
            if status != result.status:
                logger.info(
                    "payment_status_reconciled",
                    payment_id=payment_id,
                    observed_status=result.status,
                    stored_status=status,
                )

        if status == STATUS_PAID:
            notification = await self.notifier.notify_once(payment_id)
            if notification.outcome == "failed":
                logger.warning(
                    "purchase_webhook_will_retry_on_next_poll",
                    payment_id=payment_id,
                    error=notification.error,
                )

        return {
            "success": True,
            "payment_id": payment_id,
            "status": status,
            "is_paid": status == STATUS_PAID,
            "payment_date": record.payment_date if record else None,
            "amount": record.amount_bob if record else None,
            "updated_at": utc_timestamp(),
        }
