"""Core payment logic: records, storage, QR creation and status polling."""
from .models import Customer, PaymentRecord
from .qr_payment import PaymentError, PaymentResult, PaymentValidationError, QRPaymentService
from .status_poller import PollResult, StatusPoller, normalize_status
from .store import PaymentStore, StorageError

__all__ = [
    "Customer",
    "PaymentRecord",
    "PaymentError",
    "PaymentResult",
    "PaymentValidationError",
    "QRPaymentService",
    "PollResult",
    "StatusPoller",
    "normalize_status",
    "PaymentStore",
    "StorageError",
]
