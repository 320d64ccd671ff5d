"""
QR payment creation.

Flow:
1. Validate customer and amount
2. Generate a local transaction id
3. Normalize the amount to BOB with two decimals
4. Ask BNB for a single-use QR that expires tomorrow
5. Persist the payment record
6. Run one diagnostic status check
"""
import secrets
import string
import time
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

import structlog

from qr_checkout.config import Settings, get_settings
from qr_checkout.core.models import (
    PRODUCT_TYPE_MAIN,
    STATUS_PENDING,
    Customer,
    PaymentRecord,
)
from qr_checkout.core.status_poller import StatusPoller
from qr_checkout.core.store import PaymentStore
from qr_checkout.integrations.bnb_auth import AuthenticationError
from qr_checkout.integrations.bnb_client import BNBQRClient, ProviderError
from qr_checkout.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

CURRENCY = "BOB"
_BASE36 = string.digits + string.ascii_lowercase


class PaymentError(Exception):
    """Base exception for payment processing errors."""

    pass


class PaymentValidationError(PaymentError):
    """Raised when payment input validation fails."""

    pass


def generate_transaction_id(prefix: str = "MENT") -> str:
    """Local id in the form ``<prefix>_<epoch millis>_<random base36>``."""
    timestamp = int(time.time() * 1000)
    suffix = "".join(secrets.choice(_BASE36) for _ in range(13))
    return f"{prefix}_{timestamp}_{suffix}"


def to_cents(amount: Any) -> Decimal:
    return Decimal(str(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def convert_brl_to_bob(amount_brl: Any, rate: float = 1.5) -> Decimal:
    return to_cents(Decimal(str(amount_brl)) * Decimal(str(rate)))


def expiration_date(today: Optional[date] = None) -> str:
    """The QR expires at the end of the following day (UTC)."""
    today = today or datetime.now(timezone.utc).date()
    return (today + timedelta(days=1)).isoformat()


def as_data_uri(image: Optional[str]) -> str:
    if image and image.startswith("data:image"):
        return image
    return f"data:image/png;base64,{image or ''}"


@dataclass
class PaymentResult:
    """Outcome of a QR creation, successful or not."""

    success: bool
    transaction_id: Optional[str] = None
    payment_id: Optional[str] = None
    qr_id: Optional[str] = None
    qr_code_image: Optional[str] = None
    qr_code_text: Optional[str] = None
    amount_bob: Optional[float] = None
    currency: str = CURRENCY
    expires_at: Optional[str] = None
    status: Optional[str] = None
    gloss: Optional[str] = None
    error: Optional[str] = None
    details: Any = None
    code: int = 200
    record: Optional[PaymentRecord] = field(default=None, repr=False)

    @classmethod
    def failure(cls, error: str, details: Any, code: int = 500) -> "PaymentResult":
        return cls(success=False, error=error, details=details, code=code)

    @classmethod
    def from_record(cls, record: PaymentRecord) -> "PaymentResult":
        return cls(
            success=True,
            transaction_id=record.transaction_id,
            payment_id=record.payment_id,
            qr_id=record.qr_id,
            qr_code_image=record.qr_code_image,
            qr_code_text=record.qr_code_text,
            amount_bob=record.amount_bob,
            currency=record.currency,
            expires_at=record.expires_at,
            status=record.status,
            gloss=record.gloss,
            record=record,
        )


class QRPaymentService:
    """Creates BNB QR payments and records them in the store."""

    def __init__(
        self,
        bnb_client: BNBQRClient,
        store: PaymentStore,
        poller: Optional[StatusPoller] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.bnb_client = bnb_client
        self.store = store
        self.poller = poller or StatusPoller(bnb_client)

    @staticmethod
    def _validate(customer: Customer, amount: Any) -> Decimal:
        """
        Check the required inputs.

        Raises:
            PaymentValidationError: If name, email or a positive amount is missing
        """
        if not customer.name or not customer.email or amount in (None, ""):
            raise PaymentValidationError("Required fields: customer (name, email), amount")
        try:
            value = Decimal(str(amount))
        except InvalidOperation:
            raise PaymentValidationError("Amount must be a number")
        if not value.is_finite() or value <= 0:
            raise PaymentValidationError("Amount must be greater than zero")
        return value

    def _normalize_amount(self, amount: Decimal) -> Decimal:
        """
        Convert to BOB cents.

        Raises:
            PaymentValidationError: If the amount cannot be represented in cents
        """
        try:
            if self.settings.amount_currency == "BRL":
                amount_bob = convert_brl_to_bob(amount, self.settings.brl_to_bob_rate)
            else:
                amount_bob = to_cents(amount)
        except InvalidOperation:
            raise PaymentValidationError("Amount is too large")
        if amount_bob <= 0:
            raise PaymentValidationError("Amount must be greater than zero")
        return amount_bob

    async def create_payment(
        self,
        customer: Customer | Dict[str, Any],
        amount: Any,
        extras: Optional[List[Any]] = None,
        product: Optional[str] = None,
        product_type: Optional[str] = None,
    ) -> PaymentResult:
        """
        Create a QR payment.

        Args:
            customer: Buyer details; name and email are required
            amount: Positive amount in the configured currency
            extras: Auxiliary line items stored verbatim
            product: Product name (defaults to the configured product)
            product_type: ``main`` or ``upsell``; routes the purchase webhook

        Returns:
            PaymentResult: Success with QR data, or failure with provider details

        Raises:
            PaymentValidationError: If input validation fails
        """
        if not isinstance(customer, Customer):
            customer = Customer.model_validate(customer or {})

        try:
            amount_bob = self._normalize_amount(self._validate(customer, amount))
        except PaymentValidationError as e:
            metrics.record_qr_creation("validation_error")
            logger.warning("qr_payment_validation_failed", error=str(e), amount=str(amount))
            raise

        transaction_id = generate_transaction_id(self.settings.transaction_prefix)
        qr_request = {
            "currency": CURRENCY,
            "gloss": f"{self.settings.gloss_prefix} - {customer.name}",
            "amount": f"{amount_bob:.2f}",
            "singleUse": True,
            "expirationDate": expiration_date(),
        }

        logger.info(
            "qr_payment_creation_started",
            transaction_id=transaction_id,
            amount_bob=float(amount_bob),
            customer=customer.name,
            expiration_date=qr_request["expirationDate"],
        )

        try:
            data = await self.bnb_client.create_qr(qr_request)
        except (ProviderError, AuthenticationError) as e:
            metrics.record_qr_creation("provider_error")
            code = getattr(e, "status_code", 500)
            details = getattr(e, "detail", str(e))
            logger.error(
                "qr_payment_creation_failed",
                transaction_id=transaction_id,
                error=str(e),
                status_code=code,
            )
            return PaymentResult.failure(
                "Error creating the payment QR code", details=details, code=code
            )

        qr_id = data.get("qrId") or data.get("id")
        if not qr_id:
            metrics.record_qr_creation("provider_error")
            logger.error("qr_payment_missing_qr_id", transaction_id=transaction_id)
            return PaymentResult.failure(
                "Error creating the payment QR code", details="BNB response has no QR id"
            )
        qr_id = str(qr_id)
        image = data.get("qr") or data.get("qrImage") or data.get("qrContent")

        record = PaymentRecord(
            transaction_id=transaction_id,
            payment_id=qr_id,
            qr_id=qr_id,
            qr_code_image=as_data_uri(image),
            amount_bob=float(amount_bob),
            currency=CURRENCY,
            status=STATUS_PENDING,
            expires_at=qr_request["expirationDate"],
            customer=customer,
            extras=extras or [],
            product=product or self.settings.default_product,
            product_type=product_type or PRODUCT_TYPE_MAIN,
            gloss=qr_request["gloss"],
        )
        self.store.put(record)
        metrics.record_qr_creation("created", float(amount_bob))

        logger.info(
            "qr_payment_created",
            transaction_id=transaction_id,
            payment_id=qr_id,
            has_qr_image=bool(image),
        )

        if self.settings.diagnostic_status_check:
            await self._diagnostic_check(qr_id)

        return PaymentResult.from_record(record)

    async def _diagnostic_check(self, qr_id: str) -> None:
        result = await self.poller.check_status(qr_id)
        if result.is_paid:
            # A brand new single-use QR cannot have been paid yet
            logger.warning(
                "qr_reported_paid_on_creation",
                qr_id=qr_id,
                provider_status_code=result.provider_status_code,
            )
        else:
            logger.info(
                "qr_initial_status",
                qr_id=qr_id,
                status=result.status,
                conclusive=result.conclusive,
            )
