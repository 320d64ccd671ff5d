"""
Payment record model persisted in the JSON store.
"""
from datetime import datetime, timezone
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field

STATUS_PENDING = "pending"
STATUS_PAID = "paid"
STATUS_EXPIRED = "expired"
STATUS_ERROR = "error"

PAYMENT_STATUSES = (STATUS_PENDING, STATUS_PAID, STATUS_EXPIRED, STATUS_ERROR)
TERMINAL_STATUSES = (STATUS_PAID, STATUS_EXPIRED, STATUS_ERROR)

PRODUCT_TYPE_MAIN = "main"
PRODUCT_TYPE_UPSELL = "upsell"


def utc_timestamp() -> str:
    """Current UTC time as an ISO-8601 string with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class Customer(BaseModel):
    """Buyer contact details."""

    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


class PaymentRecord(BaseModel):
    """
    One QR payment, keyed by the BNB-issued QR id.

    ``is_paid`` mirrors ``status == "paid"`` for callers that only read the flag.
    Unknown keys found in the store are kept so older records survive a rewrite.
    """

    model_config = ConfigDict(extra="allow")

    transaction_id: str
    payment_id: str
    qr_id: str
    qr_code_image: str
    qr_code_text: Optional[str] = None
    amount_bob: float
    currency: str = "BOB"
    status: str = STATUS_PENDING
    is_paid: bool = False
    expires_at: str
    customer: Customer
    extras: List[Any] = Field(default_factory=list)
    product: str
    product_type: str = PRODUCT_TYPE_MAIN
    gloss: Optional[str] = None
    created_at: str = Field(default_factory=utc_timestamp)
    updated_at: Optional[str] = None
    payment_date: Optional[str] = None
    provider_status_code: Optional[Any] = None
    provider_qr_id: Optional[Any] = None
    voucher_id: Optional[Any] = None
    webhook_notified: bool = False
    webhook_notified_at: Optional[str] = None

    @property
    def paid(self) -> bool:
        return self.status == STATUS_PAID or self.is_paid
