"""
API routes for QR checkout.
"""
from typing import Any, Dict

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.responses import FileResponse, HTMLResponse, JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from qr_checkout.core.qr_payment import PaymentValidationError
from qr_checkout.core.store import StorageError

from .dependencies import CheckoutServices, get_services
from .schemas import (
    BankCallbackResponse,
    CreatePaymentRequest,
    CreatePaymentResponse,
    ErrorResponse,
    HealthCheckResponse,
    PaymentDetailResponse,
    PaymentStatusResponse,
)

logger = structlog.get_logger(__name__)

payment_router = APIRouter(prefix="/api", tags=["payments"])
webhook_router = APIRouter(prefix="/webhook", tags=["webhooks"])
pages_router = APIRouter(tags=["pages"])
monitoring_router = APIRouter(tags=["monitoring"])


def error_response(status_code: int, error: str, details: Any = None) -> JSONResponse:
    body: Dict[str, Any] = {"success": False, "error": error}
    if details is not None:
        body["details"] = details
    return JSONResponse(status_code=status_code, content=body)


@payment_router.post(
    "/create-payment",
    response_model=CreatePaymentResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    summary="Create a QR payment",
)
async def create_payment(
    request: CreatePaymentRequest,
    services: CheckoutServices = Depends(get_services),
) -> Any:
    """Issue a BNB QR for the customer and store the pending payment."""
    customer = request.customer.model_dump() if request.customer else {}
    logger.info(
        "api_create_payment_request",
        customer=customer.get("name"),
        email=customer.get("email"),
        amount=request.amount,
        product_type=request.product_type or "main",
    )

    try:
        result = await services.qr_service.create_payment(
            customer=customer,
            amount=request.amount,
            extras=request.extras,
            product=request.product,
            product_type=request.product_type,
        )
    except PaymentValidationError as e:
        return error_response(status.HTTP_400_BAD_REQUEST, str(e))

    if not result.success:
        logger.error("api_create_payment_failed", error=result.error, details=result.details)
        return error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR, result.error or "Payment failed", result.details
        )

    logger.info(
        "api_create_payment_success",
        payment_id=result.payment_id,
        amount_bob=result.amount_bob,
        status=result.status,
    )
    return CreatePaymentResponse(
        payment_id=result.payment_id,
        qr_id=result.qr_id,
        qr_code_image=result.qr_code_image,
        qr_code_text=result.qr_code_text,
        amount_bob=result.amount_bob,
        expires_at=result.expires_at,
        status=result.status,
        gloss=result.gloss,
    )


@payment_router.get(
    "/payment-status/{payment_id}",
    response_model=PaymentStatusResponse,
    summary="Check payment status",
    description="Live status check; a paid result is persisted and triggers the purchase webhook",
)
async def payment_status(
    payment_id: str,
    services: CheckoutServices = Depends(get_services),
) -> Dict[str, Any]:
    """Poll BNB for the QR status."""
    result = await services.lifecycle.refresh_status(payment_id)
    logger.info(
        "api_payment_status",
        payment_id=payment_id,
        status=result["status"],
        is_paid=result["is_paid"],
    )
    return result


@payment_router.get(
    "/payment/{payment_id}",
    response_model=PaymentDetailResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Get stored payment",
)
async def payment_detail(
    payment_id: str,
    services: CheckoutServices = Depends(get_services),
) -> Any:
    """Return the stored payment record."""
    try:
        record = services.store.get(payment_id)
    except StorageError as e:
        logger.error("api_payment_detail_error", payment_id=payment_id, error=str(e))
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")

    if record is None:
        return error_response(status.HTTP_404_NOT_FOUND, "Payment not found")
    return {"success": True, "payment": record.model_dump(mode="json")}


@webhook_router.post(
    "/payment",
    response_model=BankCallbackResponse,
    summary="BNB payment callback",
    description="Acknowledges bank callbacks; payments are confirmed by polling",
)
async def bank_callback(request: Request) -> Dict[str, Any]:
    """Log and acknowledge a bank-initiated callback."""
    body = await request.body()
    logger.info("bank_callback_received", body=body.decode("utf-8", errors="replace"))
    return {"received": True}


SUCCESS_PAGE = """<!DOCTYPE html>
<html lang="es">
  <head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Pago Aprobado</title>
  </head>
  <body>
    <main style="max-width: 32rem; margin: 4rem auto; text-align: center; font-family: sans-serif;">
      <h2>¡Pago Aprobado!</h2>
      <p>Tu compra ha sido procesada exitosamente.</p>
      <p>Recibirás un email con el acceso al curso en breve.</p>
      <a href="/">Volver al inicio</a>
    </main>
  </body>
</html>
"""


@pages_router.get("/", include_in_schema=False)
async def root(services: CheckoutServices = Depends(get_services)) -> Any:
    """Landing page when configured, service descriptor otherwise."""
    landing_page = services.settings.landing_page
    if landing_page is not None and landing_page.is_file():
        return FileResponse(landing_page)
    return {
        "service": services.settings.app_name,
        "status": "operational",
        "environment": services.settings.app_env,
        "docs": "/docs",
        "health": "/health",
        "metrics": "/metrics",
    }


@pages_router.get("/success", response_class=HTMLResponse, include_in_schema=False)
async def success_page() -> str:
    return SUCCESS_PAGE


@monitoring_router.get(
    "/health",
    response_model=HealthCheckResponse,
    summary="Health check",
)
async def health(services: CheckoutServices = Depends(get_services)) -> Dict[str, Any]:
    """Health check endpoint for monitoring."""
    return await services.health.check_all()


@monitoring_router.get("/health/live", response_model=HealthCheckResponse, summary="Liveness probe")
async def liveness(services: CheckoutServices = Depends(get_services)) -> Dict[str, Any]:
    return await services.health.liveness()


@monitoring_router.get(
    "/health/ready", response_model=HealthCheckResponse, summary="Readiness probe"
)
async def readiness(services: CheckoutServices = Depends(get_services)) -> Dict[str, Any]:
    """Readiness probe endpoint."""
    result = await services.health.readiness()
    if result["status"] != "healthy":
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=result)
    return result


@monitoring_router.get("/metrics", include_in_schema=False)
async def prometheus_metrics() -> Response:
    """Expose Prometheus metrics."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
