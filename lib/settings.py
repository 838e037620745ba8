"""
Settings module - Pydantic env configuration
"""
from functools import lru_cache

from pydantic_settings import BaseSettings
from pydantic import PostgresDsn


class Settings(BaseSettings):
    """Application settings from environment variables"""

    # Database (from env)
    database_url: PostgresDsn

    # Redis
    redis_url: str = "redis://localhost:6379/0"

    # App
    app_name: str = "Referkit"
    debug: bool = False
    environment: str = "development"

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    base_url: str = "http://localhost:8000"

    # Security (tokens are issued by the identity provider)
    secret_key: str
    algorithm: str = "HS256"

    # Attribution
    attribution_cookie_name: str = "ref_code"
    attribution_cookie_days: int = 30
    link_cache_ttl_seconds: int = 60
    fallback_url: str = "/"
    ip_hash_salt: str = "referkit"

    # Fraud heuristics
    fraud_velocity_threshold: float = 50.0  # clicks per hour
    fraud_same_ip_threshold: int = 10  # clicks per IP per link
    fraud_window_minutes: int = 60

    # Webhooks
    webhook_secret: str = "dev_secret_change_in_production"
    require_webhook_signature: bool = False

    # Rate limiting
    rate_limit_enabled: bool = True
    rate_limit_per_minute: int = 600
    rate_limit_per_hour: int = 20000

    # CORS Settings
    cors_origins: str = "*"  # Comma-separated list or "*" for all

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore"
    }

    @property
    def attribution_cookie_max_age(self) -> int:
        return self.attribution_cookie_days * 24 * 60 * 60

    @property
    def webhook_signature_required(self) -> bool:
        return self.require_webhook_signature or self.environment == "production"


@lru_cache
def get_settings() -> Settings:
    return Settings()
