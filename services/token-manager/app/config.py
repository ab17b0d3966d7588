"""
Configuration management for the token manager.

Loads and validates environment variables for the application.
"""

from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    """

    # Service Configuration
    APP_NAME: str = "Augment Token Manager"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False
    HOST: str = "0.0.0.0"
    PORT: int = 3000

    # Storage Configuration
    STORAGE_BACKEND: str = "sql"  # "sql" or "redis"
    DATABASE_URL: str = "sqlite:///./token_manager.db"
    DATABASE_POOL_SIZE: int = 10
    REDIS_URL: str = "redis://localhost:6379/0"

    # Session Configuration
    SESSION_SECRET: str = "change-me-in-production"
    SESSION_EXPIRY_HOURS: int = 24
    USER_CREDENTIALS: str = "admin:admin123"

    # Password Hashing
    PASSWORD_HASH_ROUNDS: int = 12

    # CORS Configuration (comma-separated string)
    CORS_ORIGINS: str = "http://localhost:5173"

    # Rate Limiting
    RATE_LIMIT_WINDOW_MS: int = 900000
    RATE_LIMIT_MAX_REQUESTS: int = 100
    AUTH_RATE_LIMIT_MAX_REQUESTS: int = 5
    AUTH_RATE_LIMIT_WINDOW_SECONDS: int = 60
    AUTH_RATE_LIMIT_BLOCK_SECONDS: int = 300

    # Upstream Services
    AUTH_BASE_URL: str = "https://auth.augmentcode.com"
    APP_BASE_URL: str = "https://app.augmentcode.com"
    OAUTH_CLIENT_ID: str = "v"
    SHARE_API_BASE_URL: str = "https://public.ks666.win"
    PORTAL_API_BASE_URL: str = "https://portal.withorb.com/api/v1"
    HTTP_TIMEOUT_SECONDS: float = 30.0
    APP_SESSION_CACHE_TTL: int = 3600

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    def get_cors_origins(self) -> List[str]:
        """Get CORS origins as a list."""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def uses_redis_storage(self) -> bool:
        """Whether records are kept in the Redis key-value backend."""
        return self.STORAGE_BACKEND.lower() == "redis"


# Global settings instance
settings = Settings()
