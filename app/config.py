"""
Application Configuration - Pydantic Settings for type-safe config.

NO DICTIONARIES - All configuration is strongly typed.
FAIL FAST - Critical config is validated at startup.
"""

import sys

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when critical configuration is missing or invalid."""

    pass


DEFAULT_ALLOWED_ORIGINS = (
    "https://www.bharatcloudtechnologies.online",
    "https://bharatcloudtechnologies.online",
    "http://localhost:3000",
    "http://localhost:5173",
    "http://localhost:5000",
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database Configuration - NO DEFAULT for production safety
    database_url: str = ""
    database_pool_size: int = 10
    database_max_overflow: int = 10
    database_pool_timeout: int = 30
    database_pool_recycle: int = 3600
    run_migrations_on_startup: bool = False

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 5000
    api_title: str = "Key Hub API"
    api_version: str = "1.0.0"
    api_description: str = "Quota-gated access to shared AI tool API keys"
    environment: str = "development"  # development or production

    # Bearer tokens
    jwt_secret: str = ""  # generate with: openssl rand -hex 32
    jwt_algorithm: str = "HS256"
    jwt_expire_days: int = 30

    # Copy quota
    copy_window_days: int = 30
    free_copy_limit: int = 2
    premium_copy_limit: int = 50
    default_key_lifetime_days: int = 30

    # Realtime mirror (Firebase Realtime Database REST endpoint)
    mirror_url: str = ""  # e.g. https://<project>-default-rtdb.firebaseio.com
    mirror_auth_token: str = ""
    mirror_path: str = "apiKeys"
    mirror_timeout_seconds: float = 10.0

    # CORS - comma-separated extra origins
    frontend_url: str = ""

    # Reverse proxies allowed to set X-Forwarded-For - comma-separated peer IPs
    trusted_proxies: str = ""

    # Rate limits (requests per window)
    rate_limit_enabled: bool = True
    general_rate_limit: int = 100
    general_rate_window_seconds: int = 15 * 60
    auth_rate_limit: int = 5
    auth_rate_window_seconds: int = 15 * 60
    admin_rate_limit: int = 20
    admin_rate_window_seconds: int = 60
    copy_rate_limit: int = 10
    copy_rate_window_seconds: int = 60 * 60

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or console

    # Observability - Tracing
    tracing_enabled: bool = False
    otlp_endpoint: str = "http://otel-collector:4317"
    otlp_insecure: bool = True
    service_name: str = "key-hub-api"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def validate_critical_config(self) -> "Settings":
        """
        FAIL FAST: Validate critical configuration at startup.

        The app MUST NOT start if critical config is missing.
        """
        errors: list[str] = []

        if not self.database_url:
            errors.append("DATABASE_URL is required but empty or missing")
        elif not self.database_url.startswith(("postgresql", "postgres")):
            errors.append(
                f"DATABASE_URL must be a PostgreSQL URL, got: {self.database_url[:20]}..."
            )

        if not self.jwt_secret:
            errors.append("JWT_SECRET is required but empty or missing")
        elif len(self.jwt_secret) < 32:
            errors.append("JWT_SECRET must be at least 32 characters")

        if self.free_copy_limit < 0 or self.premium_copy_limit < 0:
            errors.append("Copy limits must be non-negative")

        if errors:
            error_msg = "\n".join(
                [
                    "",
                    "=" * 60,
                    "CRITICAL CONFIGURATION ERROR - APPLICATION CANNOT START",
                    "=" * 60,
                    *[f"  ✗ {e}" for e in errors],
                    "=" * 60,
                    "",
                ]
            )
            print(error_msg, file=sys.stderr)
            raise ConfigurationError(error_msg)

        return self

    @property
    def is_production(self) -> bool:
        """True when running with production error reporting."""
        return self.environment.lower() == "production"

    @property
    def mirror_enabled(self) -> bool:
        """Mirror sync is active only when an endpoint is configured."""
        return bool(self.mirror_url)

    @property
    def trusted_proxy_ips(self) -> frozenset[str]:
        """Peers whose X-Forwarded-For header is believed."""
        return frozenset(ip.strip() for ip in self.trusted_proxies.split(",") if ip.strip())

    @property
    def allowed_origins(self) -> list[str]:
        """Default CORS origins plus any from FRONTEND_URL."""
        origins = list(DEFAULT_ALLOWED_ORIGINS)
        for origin in self.frontend_url.split(","):
            origin = origin.strip()
            if origin and origin not in origins:
                origins.append(origin)
        return origins


# Global settings instance - validates at import time
settings = Settings()


def get_settings() -> Settings:
    """Get application settings instance."""
    return settings
