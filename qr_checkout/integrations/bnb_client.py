"""
BNB QR Simple API client.

Every request carries the current bearer token. A 401 response drops the
token and replays the request once with a fresh one.
"""
import time
from typing import Any, Dict, Optional

import httpx
import structlog

from qr_checkout.config import Settings, get_settings
from qr_checkout.integrations.bnb_auth import AuthenticationError, BankAuthClient
from qr_checkout.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)


class ProviderError(Exception):
    """Raised when the BNB API fails or reports a business failure."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        detail: Optional[Any] = None,
    ):
        """
        Initialize provider error.

        Args:
            message: Error message
            status_code: HTTP-style status code for the caller
            detail: Provider error payload or message
        """
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail if detail is not None else message


class BNBQRClient:
    """Thin async wrapper over the QR Simple endpoints."""

    def __init__(
        self,
        auth_client: BankAuthClient,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings or get_settings()
        self.auth_client = auth_client
        self.http_client = http_client or httpx.AsyncClient(
            base_url=self.settings.bnb_qr_url,
            timeout=self.settings.bnb_api_timeout,
            headers={"Content-Type": "application/json", "Accept": "application/json"},
        )

    async def _send(self, path: str, payload: Dict[str, Any]) -> httpx.Response:
        token = await self.auth_client.ensure_valid_token()
        return await self.http_client.post(
            path, json=payload, headers={"Authorization": f"Bearer {token}"}
        )

    async def _post(self, operation: str, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        POST to the QR API with token handling.

        Args:
            operation: Metric label for the call
            path: Endpoint path under the QR base URL
            payload: JSON body

        Returns:
            Dict[str, Any]: Decoded response body

        Raises:
            AuthenticationError: If the token cannot be obtained or is rejected twice
            ProviderError: On transport failures, non-2xx responses or bad JSON
        """
        start_time = time.time()
        try:
            response = await self._send(path, payload)

            if response.status_code == 401:
                logger.warning("bnb_token_rejected", operation=operation)
                self.auth_client.invalidate()
                response = await self._send(path, payload)
                if response.status_code == 401:
                    raise AuthenticationError("BNB rejected a freshly issued token")

            response.raise_for_status()
            data = response.json()
        except AuthenticationError:
            metrics.record_bnb_api_call(operation, "auth_error", time.time() - start_time)
            raise
        except httpx.HTTPStatusError as e:
            metrics.record_bnb_api_call(operation, "http_error", time.time() - start_time)
            detail = _response_detail(e.response)
            logger.error(
                "bnb_api_http_error",
                operation=operation,
                status_code=e.response.status_code,
                detail=detail,
            )
            raise ProviderError(
                f"BNB {operation} failed with HTTP {e.response.status_code}",
                status_code=e.response.status_code,
                detail=detail,
            ) from e
        except httpx.HTTPError as e:
            metrics.record_bnb_api_call(operation, "network_error", time.time() - start_time)
            logger.error("bnb_api_network_error", operation=operation, error=str(e))
            raise ProviderError(f"BNB {operation} request failed: {e}", status_code=502) from e
        except ValueError as e:
            metrics.record_bnb_api_call(operation, "bad_response", time.time() - start_time)
            raise ProviderError(f"BNB {operation} returned invalid JSON", status_code=502) from e

        metrics.record_bnb_api_call(operation, "ok", time.time() - start_time)
        if not isinstance(data, dict):
            raise ProviderError(f"BNB {operation} returned an unexpected body", status_code=502)
        return data

    async def create_qr(self, qr_request: Dict[str, Any]) -> Dict[str, Any]:
        """Create a QR with its image (``/main/getQRWithImageAsync``)."""
        data = await self._post("create_qr", "/main/getQRWithImageAsync", qr_request)
        logger.debug("bnb_create_qr_response", success=data.get("success"))
        if not data.get("success"):
            message = data.get("message") or "Error creating QR code"
            raise ProviderError(message, status_code=500, detail=message)
        return data

    async def get_qr_status(self, qr_id: str) -> Dict[str, Any]:
        """Fetch the current status of a QR (``/main/getQRStatusAsync``)."""
        data = await self._post("qr_status", "/main/getQRStatusAsync", {"qrId": str(qr_id)})
        logger.debug("bnb_qr_status_response", qr_id=qr_id, response=data)
        if data.get("success") is False:
            message = data.get("message") or "Failed to query QR status"
            raise ProviderError(message, status_code=500, detail=message)
        return data

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self.http_client.aclose()


def _response_detail(response: httpx.Response) -> Any:
    try:
        body = response.json()
    except ValueError:
        return response.text or None
    if isinstance(body, dict) and body.get("message"):
        return body["message"]
    return body
