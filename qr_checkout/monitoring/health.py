"""
Health check endpoints for readiness/liveness probes.

Checks:
- Payment store readability
- BNB authentication
"""
from typing import TYPE_CHECKING, Any, Dict

import structlog

if TYPE_CHECKING:
    from qr_checkout.core.store import PaymentStore
    from qr_checkout.integrations.bnb_auth import BankAuthClient

logger = structlog.get_logger(__name__)


class HealthCheckError(Exception):
    """Raised when health check fails."""

    pass


class HealthCheck:
    """
    Health check service for monitoring system dependencies.

    Provides:
    - Payment store check
    - BNB authentication check
    - Overall system health status
    """

    def __init__(self, store: "PaymentStore", auth_client: "BankAuthClient") -> None:
        self.store = store
        self.auth_client = auth_client

    async def check_store(self) -> Dict[str, Any]:
        """
        Check that the payment file can be read.

        Raises:
            HealthCheckError: If the store file is unreadable or corrupted
        """
        try:
            count = len(self.store.all())
        except Exception as e:
            logger.error("store_health_check_failed", error=str(e))
            raise HealthCheckError(f"Payment store check failed: {str(e)}")

        return {
            "status": "healthy",
            "service": "payment_store",
            "message": f"{count} payment(s) stored" if self.store.exists() else "Store not created yet",
        }

    async def check_bnb(self) -> Dict[str, Any]:
        """
        Check that a BNB token can be obtained (uses the cached token when valid).

        Raises:
            HealthCheckError: If authentication fails
        """
        try:
            await self.auth_client.ensure_valid_token()
        except Exception as e:
            logger.error("bnb_health_check_failed", error=str(e))
            raise HealthCheckError(f"BNB authentication check failed: {str(e)}")

        return {
            "status": "healthy",
            "service": "bnb",
            "message": "BNB authentication successful",
            "token_expiry": self.auth_client.token_expiry.isoformat()
            if self.auth_client.token_expiry
            else None,
        }

    async def check_all(self) -> Dict[str, Any]:
        """Run all health checks."""
        checks = {}
        all_healthy = True

        for name, check in (("payment_store", self.check_store), ("bnb", self.check_bnb)):
            try:
                checks[name] = await check()
            except HealthCheckError as e:
                checks[name] = {"status": "unhealthy", "service": name, "error": str(e)}
                all_healthy = False

        return {
            "status": "healthy" if all_healthy else "unhealthy",
            "checks": checks,
        }

    async def liveness(self) -> Dict[str, Any]:
        """Simple check that the application is running."""
        return {
            "status": "alive",
            "message": "Application is running",
        }

    async def readiness(self) -> Dict[str, Any]:
        """Checks if the application is ready to accept traffic."""
        return await self.check_all()
