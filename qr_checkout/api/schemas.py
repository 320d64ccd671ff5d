"""
Pydantic schemas for API request/response models.

Request fields are optional on purpose: missing customer data or amounts are
reported by the payment service as a 400 with a readable message.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class CustomerIn(BaseModel):
    """Buyer details sent by the checkout form."""

    name: Optional[str] = Field(default=None, description="Customer full name")
    email: Optional[str] = Field(default=None, description="Customer email")
    phone: Optional[str] = Field(default=None, description="Customer phone")


class CreatePaymentRequest(BaseModel):
    """Request schema for creating a QR payment."""

    customer: Optional[CustomerIn] = Field(default=None, description="Buyer details")
    amount: Optional[float] = Field(default=None, description="Amount to charge (BOB)")
    extras: Optional[List[Any]] = Field(default=None, description="Auxiliary line items")
    product: Optional[str] = Field(default=None, description="Product name")
    product_type: Optional[str] = Field(default=None, description="main or upsell")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "customer": {"name": "Ana", "email": "ana@example.com", "phone": "+59170000000"},
                    "amount": 100,
                    "extras": [],
                    "product_type": "main",
                }
            ]
        }
    }


class CreatePaymentResponse(BaseModel):
    """Response schema for QR payment creation."""

    success: bool = True
    payment_id: str = Field(..., description="BNB QR id, used as payment id")
    qr_id: str = Field(..., description="BNB QR id")
    qr_code_image: str = Field(..., description="QR image as a data URI")
    qr_code_text: Optional[str] = Field(default=None, description="Always null")
    amount_bob: float = Field(..., description="Charged amount in BOB")
    expires_at: str = Field(..., description="QR expiration date (YYYY-MM-DD)")
    status: str = Field(..., description="Payment status")
    gloss: Optional[str] = Field(default=None, description="QR description")


class PaymentStatusResponse(BaseModel):
    """Response schema for a live status check."""

    success: bool = True
    payment_id: str = Field(..., description="Payment id")
    status: str = Field(..., description="pending, paid, expired or error")
    is_paid: bool = Field(..., description="True when status is paid")
    payment_date: Optional[str] = Field(default=None, description="Settlement timestamp")
    amount: Optional[float] = Field(default=None, description="Stored amount in BOB")
    updated_at: str = Field(..., description="Response timestamp (ISO 8601)")


class PaymentDetailResponse(BaseModel):
    """Response schema for a stored payment record."""

    success: bool = True
    payment: Dict[str, Any] = Field(..., description="Stored payment record")


class ErrorResponse(BaseModel):
    """Error body shared by every endpoint."""

    success: bool = False
    error: str = Field(..., description="Human-readable error")
    details: Optional[Any] = Field(default=None, description="Provider or validation details")


class BankCallbackResponse(BaseModel):
    """Acknowledgement of a bank callback."""

    received: bool = True


class HealthCheckResponse(BaseModel):
    """Response schema for health checks."""

    status: str = Field(..., description="Overall health status (healthy/unhealthy)")
    checks: Optional[Dict[str, Any]] = Field(default=None, description="Individual service checks")
    message: Optional[str] = Field(default=None, description="Status message")
