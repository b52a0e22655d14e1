"""Gateway configuration using Pydantic Settings."""

from enum import Enum
from functools import lru_cache

from pydantic import Field, RedisDsn, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Application environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class PayPalEnvironment(str, Enum):
    """PayPal API environment."""

    SANDBOX = "sandbox"
    LIVE = "live"


class StoreBackend(str, Enum):
    """Where account records, counters and usage logs live."""

    REDIS = "redis"
    MEMORY = "memory"


class IdentityBackend(str, Enum):
    """How bearer credentials are exchanged for an identity."""

    REMOTE = "remote"  # ask the identity provider's /auth/v1/user endpoint
    JWT = "jwt"  # verify the provider-issued JWT locally


PAYPAL_HOSTS = {
    PayPalEnvironment.SANDBOX: "https://api-m.sandbox.paypal.com",
    PayPalEnvironment.LIVE: "https://api-m.paypal.com",
}


def _is_set(value: str | SecretStr | None) -> bool:
    if value is None:
        return False
    if isinstance(value, SecretStr):
        value = value.get_secret_value()
    return bool(value) and "<" not in value


class Settings(BaseSettings):
    """Gateway configuration settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ============ Environment ============
    environment: Environment = Environment.DEVELOPMENT
    log_level: LogLevel = LogLevel.INFO
    debug: bool = False
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # CORS
    frontend_url: str = Field(
        default="http://localhost:5173",
        description="Single origin allowed to call the API from a browser",
    )

    # ============ Quota ============
    free_daily_messages: int = Field(default=30, ge=0)
    daily_usage_retention_days: int = Field(
        default=30,
        ge=1,
        description="How long per-day message counters are kept",
    )

    # ============ Identity provider ============
    identity_backend: IdentityBackend = IdentityBackend.REMOTE
    supabase_url: str = "http://localhost:54321"
    supabase_service_role_key: SecretStr | None = None
    supabase_jwt_secret: SecretStr | None = None
    supabase_jwt_audience: str = "authenticated"
    jwt_algorithm: str = "HS256"

    # ============ Account store ============
    account_store_backend: StoreBackend = StoreBackend.REDIS
    redis_url: RedisDsn = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL",
    )

    # ============ Upstream inference ============
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    openrouter_api_key: SecretStr | None = None
    openrouter_app_title: str = "AI Chat Desktop"
    completion_temperature: float = 0.7
    completion_max_tokens: int = 2048
    # None leaves the upstream call unbounded
    upstream_timeout_seconds: float | None = None

    # ============ PayPal ============
    paypal_client_id: str = "<YOUR_PAYPAL_CLIENT_ID>"
    paypal_client_secret: SecretStr = SecretStr("<YOUR_PAYPAL_CLIENT_SECRET>")
    paypal_webhook_id: str = "<YOUR_PAYPAL_WEBHOOK_ID>"
    paypal_plan_id: str = "<YOUR_PAYPAL_PLAN_ID>"
    paypal_env: PayPalEnvironment = PayPalEnvironment.SANDBOX
    paypal_base_url: str | None = None
    paypal_brand_name: str = "ChatWindows"

    # ============ Monitoring ============
    sentry_dsn: str | None = None
    prometheus_enabled: bool = True

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == Environment.PRODUCTION

    @property
    def paypal_api_base(self) -> str:
        """PayPal REST host, explicit override first."""
        return (self.paypal_base_url or PAYPAL_HOSTS[self.paypal_env]).rstrip("/")

    @property
    def paypal_configured(self) -> bool:
        """True once every PayPal credential is filled in."""
        return all(
            _is_set(v)
            for v in (
                self.paypal_client_id,
                self.paypal_client_secret,
                self.paypal_webhook_id,
                self.paypal_plan_id,
            )
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
