"""
Application Configuration — Environment & Settings
Centralizes all config from .env with Pydantic Settings for validation.
"""
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings

from ascendancy.exceptions import ConfigurationError

# Resolve paths relative to backend/ directory
BASE_DIR = Path(__file__).resolve().parent.parent

ADUMO_API_URLS = {
    "staging": "https://staging-apiv3.adumoonline.com",
    "production": "https://apiv3.adumoonline.com",
}
ADUMO_FORM_URLS = {
    "staging": "https://staging-apiv2.adumoonline.com/product/payment/v1/initialisevirtual",
    "production": "https://apiv2.adumoonline.com/product/payment/v1/initialisevirtual",
}


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # --- Core ---
    APP_NAME: str = "Ascendancy Investor API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: list[str] = ["*"]

    # --- Database ---
    DATABASE_URL: str = f"sqlite:///{BASE_DIR / 'data' / 'ascendancy.db'}"

    # --- Adumo Online ---
    ADUMO_MERCHANT_ID: str = ""
    ADUMO_APPLICATION_ID: str = ""
    ADUMO_JWT_SECRET: str = ""
    ADUMO_CLIENT_ID: str = ""
    ADUMO_CLIENT_SECRET: str = ""
    ADUMO_ENVIRONMENT: Literal["staging", "production"] = "staging"
    ADUMO_API_BASE_URL: str = ""    # overrides the environment default
    ADUMO_FORM_URL: str = ""
    ADUMO_ISSUER: str = "The Ascendancy Project"
    ADUMO_TIMEOUT_SECONDS: float = 30.0
    ADUMO_COLLECTION_DAY: int = 1
    ADUMO_CURRENCY: str = "ZAR"

    # --- Public URLs ---
    PUBLIC_BASE_URL: str = "http://localhost:8000"
    FRONTEND_BASE_URL: str = "http://localhost:5173"

    # --- Security ---
    SESSION_SECRET: str = ""
    SESSION_EXPIRY_DAYS: int = 7
    WEBHOOK_SECRET: str = ""
    OTP_EXPIRY_MINUTES: int = 10
    OTP_PURGE_INTERVAL_SECONDS: int = 3600
    ASSERTION_TTL_MINUTES: int = 10
    ASSERTION_LEEWAY_SECONDS: int = 30

    # --- SMTP ---
    SMTP_HOST: str = ""
    SMTP_PORT: int = 587
    SMTP_USERNAME: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_FROM: str = "Opian Rewards <no-reply@opianrewards.co.za>"
    SMTP_USE_SSL: bool = False

    class Config:
        env_file = str(BASE_DIR / ".env")
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"

    @property
    def smtp_configured(self) -> bool:
        return bool(self.SMTP_HOST and self.SMTP_USERNAME and self.SMTP_PASSWORD)


@lru_cache()
def get_settings() -> Settings:
    """Cached settings singleton."""
    return Settings()


@dataclass(frozen=True)
class GatewayConfig:
    """Validated Adumo credentials and endpoints, built once at startup."""

    merchant_id: str
    application_id: str
    jwt_secret: str
    client_id: str
    client_secret: str
    api_base_url: str
    form_url: str
    issuer: str
    currency: str
    collection_day: int
    timeout_seconds: float
    assertion_ttl_minutes: int
    assertion_leeway_seconds: int
    return_url: str
    notify_url: str

    @classmethod
    def from_settings(cls, settings: Settings) -> "GatewayConfig":
        required = {
            "ADUMO_MERCHANT_ID": settings.ADUMO_MERCHANT_ID,
            "ADUMO_APPLICATION_ID": settings.ADUMO_APPLICATION_ID,
            "ADUMO_JWT_SECRET": settings.ADUMO_JWT_SECRET,
            "ADUMO_CLIENT_ID": settings.ADUMO_CLIENT_ID,
            "ADUMO_CLIENT_SECRET": settings.ADUMO_CLIENT_SECRET,
        }
        missing = [name for name, value in required.items() if not value]
        if missing:
            raise ConfigurationError(
                f"Missing gateway configuration: {', '.join(missing)}"
            )
        if not 1 <= settings.ADUMO_COLLECTION_DAY <= 28:
            raise ConfigurationError("ADUMO_COLLECTION_DAY must be between 1 and 28")

        public = settings.PUBLIC_BASE_URL.rstrip("/")
        return cls(
            merchant_id=settings.ADUMO_MERCHANT_ID,
            application_id=settings.ADUMO_APPLICATION_ID,
            jwt_secret=settings.ADUMO_JWT_SECRET,
            client_id=settings.ADUMO_CLIENT_ID,
            client_secret=settings.ADUMO_CLIENT_SECRET,
            api_base_url=(settings.ADUMO_API_BASE_URL or ADUMO_API_URLS[settings.ADUMO_ENVIRONMENT]).rstrip("/"),
            form_url=settings.ADUMO_FORM_URL or ADUMO_FORM_URLS[settings.ADUMO_ENVIRONMENT],
            issuer=settings.ADUMO_ISSUER,
            currency=settings.ADUMO_CURRENCY,
            collection_day=settings.ADUMO_COLLECTION_DAY,
            timeout_seconds=settings.ADUMO_TIMEOUT_SECONDS,
            assertion_ttl_minutes=settings.ASSERTION_TTL_MINUTES,
            assertion_leeway_seconds=settings.ASSERTION_LEEWAY_SECONDS,
            return_url=f"{public}/payment-return",
            notify_url=f"{public}/api/payment-webhook",
        )


@lru_cache()
def get_gateway_config() -> GatewayConfig:
    """Cached gateway config. Raises ConfigurationError when credentials are missing."""
    return GatewayConfig.from_settings(get_settings())
