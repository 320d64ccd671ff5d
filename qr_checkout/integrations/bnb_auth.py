"""
BNB client authentication.

Obtains bearer tokens from the BNB ClientAuthentication API and caches them
on the client instance until shortly before they expire.
"""
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import httpx
import structlog

from qr_checkout.config import Settings, get_settings
from qr_checkout.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuthenticationError(Exception):
    """Raised when a BNB token cannot be obtained."""

    pass


class BankAuthClient:
    """
    Owns the BNB bearer token and its expiry.

    The token is reused while ``now < expiry``; expiry is the issuance time
    plus the quoted lifetime minus a safety margin.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Initialize the auth client.

        Args:
            settings: Optional settings (uses cached settings if not provided)
            http_client: Optional HTTP client for the auth API
            clock: Callable returning the current aware datetime
        """
        self.settings = settings or get_settings()
        self.http_client = http_client or httpx.AsyncClient(
            base_url=self.settings.bnb_auth_url,
            timeout=self.settings.bnb_auth_timeout,
            headers={"Content-Type": "application/json", "Accept": "application/json"},
        )
        self.clock = clock
        self.access_token: Optional[str] = None
        self.token_expiry: Optional[datetime] = None

    @property
    def has_valid_token(self) -> bool:
        return (
            self.access_token is not None
            and self.token_expiry is not None
            and self.clock() < self.token_expiry
        )

    def invalidate(self) -> None:
        """Drop the cached token so the next call re-authenticates."""
        self.access_token = None
        self.token_expiry = None

    async def ensure_valid_token(self) -> str:
        """
        Return a currently valid bearer token, authenticating if needed.

        Raises:
            AuthenticationError: If BNB rejects the credentials or is unreachable
        """
        if self.has_valid_token:
            return self.access_token  # type: ignore[return-value]
        return await self.authenticate()

    async def authenticate(self) -> str:
        """
        Request a fresh token from BNB and cache it.

        Returns:
            str: The new bearer token

        Raises:
            AuthenticationError: If authentication fails
        """
        if not self.settings.bnb_account_id or not self.settings.bnb_authorization_id:
            self.invalidate()
            metrics.record_token_refresh("failure")
            raise AuthenticationError("BNB credentials are not configured")

        logger.info("bnb_authentication_started", auth_url=self.settings.bnb_auth_url)

        try:
            response = await self.http_client.post(
                "/auth/token",
                json={
                    "accountId": self.settings.bnb_account_id,
                    "authorizationId": self.settings.bnb_authorization_id,
                },
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            self.invalidate()
            metrics.record_token_refresh("failure")
            status_code = getattr(getattr(e, "response", None), "status_code", None)
            logger.error("bnb_authentication_failed", status_code=status_code, error=str(e))
            raise AuthenticationError(f"BNB authentication failed: {e}") from e

        if not data.get("success") or not data.get("message"):
            self.invalidate()
            metrics.record_token_refresh("failure")
            message = data.get("message") or "authentication rejected"
            logger.error("bnb_authentication_rejected", reason=message)
            raise AuthenticationError(f"BNB authentication failed: {message}")

        # The token is returned in the "message" field
        self.access_token = data["message"]
        self.token_expiry = self.clock() + timedelta(
            seconds=self.settings.bnb_token_validity_seconds
        )
        metrics.record_token_refresh("success")

        logger.info("bnb_authentication_succeeded", token_expiry=self.token_expiry.isoformat())
        return self.access_token

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self.http_client.aclose()
