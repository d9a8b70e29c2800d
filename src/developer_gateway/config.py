from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str = "sqlite:///./developer_gateway.db"
    store_timeout_ms: int = 250

    # Redis (optional: auth cache and rate windows)
    redis_url: str = "redis://localhost:6379"
    redis_enabled: bool = True

    # End-user sessions (issued by the platform's user service)
    secret_key: str = "change-this-secret-key-in-production"
    session_algorithm: str = "HS256"

    # Credentials
    key_environment: str = "live"
    max_keys_per_user: int = 5
    auth_cache_ttl_seconds: int = 30

    # Metering defaults for new developers
    default_monthly_limit: int = 1000
    default_rate_limit_per_minute: int = 100

    # Server Settings
    debug: bool = False
    log_level: str = "info"
    log_json: bool = True
    host: str = "0.0.0.0"
    port: int = 8000
    allowed_origins: str = "http://localhost:3000"
    service_name: Optional[str] = "developer-gateway"

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"

    @property
    def origins(self) -> list[str]:
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]


# Global settings instance
settings = Settings()
