"""Application settings using Pydantic for environment-based configuration."""
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application Configuration
    app_name: str = Field(default="qr-checkout", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/production)")
    log_level: str = Field(default="INFO", description="Logging level")
    debug: bool = Field(default=False, description="Debug mode")

    # API Configuration
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=3000, description="API port")
    allowed_origins: str = Field(default="*", description="CORS allowed origins (comma-separated)")
    landing_page: Optional[Path] = Field(
        default=None, description="HTML file served at / (JSON descriptor when unset)"
    )

    # BNB Configuration
    bnb_auth_url: str = Field(
        default="https://marketapi.bnb.com.bo/ClientAuthentication.API/api/v1",
        description="BNB client authentication API base URL",
    )
    bnb_qr_url: str = Field(
        default="https://marketapi.bnb.com.bo/QRSimple.API/api/v1",
        description="BNB QR Simple API base URL",
    )
    bnb_account_id: str = Field(default="", description="BNB account id credential")
    bnb_authorization_id: str = Field(default="", description="BNB authorization id credential")
    bnb_token_lifetime_seconds: int = Field(default=3600, description="Token lifetime quoted by BNB")
    bnb_token_safety_margin_seconds: int = Field(
        default=300, description="Seconds subtracted from the token lifetime before refreshing"
    )
    bnb_auth_timeout: float = Field(default=15.0, description="Auth request timeout (seconds)")
    bnb_api_timeout: float = Field(default=30.0, description="QR API request timeout (seconds)")

    # Payment Configuration
    payments_file: Path = Field(default=Path("payments.json"), description="JSON payment store")
    transaction_prefix: str = Field(default="MENT", description="Local transaction id prefix")
    gloss_prefix: str = Field(default="Mentoría", description="Prefix of the QR description")
    default_product: str = Field(
        default="Mentoría de Cero al Millón", description="Product name when none is given"
    )
    amount_currency: str = Field(
        default="BOB", description="Currency the incoming amount is denominated in (BOB/BRL)"
    )
    brl_to_bob_rate: float = Field(default=1.5, description="Fixed BRL to BOB exchange rate")
    diagnostic_status_check: bool = Field(
        default=True, description="Query the QR status right after creating it"
    )

    # Purchase Webhook Configuration
    purchase_webhook_main_url: Optional[str] = Field(
        default=None, description="Destination for main product purchases"
    )
    purchase_webhook_upsell_url: Optional[str] = Field(
        default=None, description="Destination for upsell purchases"
    )
    purchase_webhook_secret: Optional[str] = Field(
        default=None, description="Shared secret for the X-Signature HMAC header"
    )
    purchase_webhook_timeout: float = Field(default=15.0, description="Webhook timeout (seconds)")
    purchase_webhook_max_attempts: int = Field(default=3, description="Webhook delivery attempts")
    purchase_webhook_retry_delay: float = Field(
        default=0.5, description="Base delay for linear webhook retry backoff (seconds)"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v.upper()

    @field_validator("amount_currency")
    @classmethod
    def validate_amount_currency(cls, v: str) -> str:
        """Only BOB amounts and BRL amounts converted to BOB are supported."""
        if v.upper() not in ("BOB", "BRL"):
            raise ValueError("amount_currency must be BOB or BRL")
        return v.upper()

    def get_allowed_origins_list(self) -> List[str]:
        """Parse allowed origins from comma-separated string."""
        return [origin.strip() for origin in self.allowed_origins.split(",")]

    @property
    def bnb_token_validity_seconds(self) -> int:
        """Effective token validity window after issuance."""
        return self.bnb_token_lifetime_seconds - self.bnb_token_safety_margin_seconds


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()
