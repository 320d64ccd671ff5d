"""FastAPI application and routes."""
from .main import app
from .schemas import (
    CreatePaymentRequest,
    CreatePaymentResponse,
    PaymentDetailResponse,
    PaymentStatusResponse,
)

__all__ = [
    "app",
    "CreatePaymentRequest",
    "CreatePaymentResponse",
    "PaymentDetailResponse",
    "PaymentStatusResponse",
]
