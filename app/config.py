"""
Application configuration using pydantic-settings.
Loads from environment variables / .env file.
"""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Application
    app_name: str = "fotos-escolares"
    app_env: Literal["development", "staging", "production"] = "development"
    debug: bool = False

    # API Server
    host: str = "0.0.0.0"
    port: int = 8000
    backend_url: str = "http://localhost:8000"
    frontend_url: str = "http://localhost:3000"

    # Postgres
    database_url: str = ""

    # Redis (empty = process-local replay cache)
    redis_url: str = ""

    # Mercado Pago
    mercadopago_access_token: str = ""
    mercadopago_webhook_secret: str = ""
    mercadopago_api_url: str = "https://api.mercadopago.com"

    # Object storage for original photos
    supabase_url: str = ""
    supabase_service_role_key: str = ""
    original_bucket_name: str = "original-photos"

    # Admin
    admin_api_key: str = ""

    # Outbound HTTP
    http_timeout_seconds: float = 10.0

    # Webhook processing policy
    payment_fetch_delay_seconds: float = 3.0
    processor_fetch_attempts: int = 3
    processor_fetch_retry_delay_seconds: float = 1.0
    replay_ttl_seconds: int = 300
    webhook_signature_tolerance_seconds: int = 0

    # Download policy
    max_downloads: int = 3
    download_window_days: int = 7

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
