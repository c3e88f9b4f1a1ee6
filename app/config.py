# app/config.py
import os
from functools import lru_cache
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # === General ===
    app_env: str = "local"  # local | development | production | test
    app_version: str = "0.1.0"
    site_url: str = "http://localhost:3000"
    allowed_origins: List[str] = ["http://localhost:3000"]

    # === Database ===
    database_url: str = "sqlite:///./scopeguard.db"

    # === Auth / sessions ===
    jwt_secret: str = Field("change-me-dev-secret", description="HS256 secret for session tokens")
    jwt_exp_hours: int = 24
    session_cookie_name: str = "session"

    # === AWS & S3 ===
    AWS_REGION: str = Field("us-east-1", description="AWS region for S3")
    S3_BUCKET: Optional[str] = Field(None, description="Bucket for lead photos and documents")
    S3_ENDPOINT_URL: Optional[str] = None
    S3_BASE_URL: Optional[str] = None
    S3_FORCE_PATH_STYLE: bool = False
    PRESIGN_EXPIRES_SECONDS: int = 600  # 10 min
    max_photo_mb: int = 15
    max_document_mb: int = 50
    max_documents_per_lead: int = 10

    # === Stripe ===
    stripe_secret_key: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None
    stripe_currency: str = "usd"

    # === Postmark ===
    POSTMARK_SERVER_TOKEN: Optional[str] = None
    POSTMARK_FROM: Optional[str] = None
    POSTMARK_REPLY_TO: Optional[str] = None

    # === Anthropic ===
    anthropic_api_key: Optional[str] = None
    ai_model_vision: str = "claude-3-5-sonnet-20241022"
    ai_model_text: str = "claude-3-5-sonnet-20241022"
    ai_max_attempts: int = 3
    ai_timeout_seconds: float = 30.0
    ai_vision_timeout_seconds: float = 45.0
    ai_scope_timeout_seconds: float = 60.0
    ai_plan_timeout_seconds: float = 90.0
    # USD per calendar month; unset means no budget is reported
    ai_monthly_budget_usd: Optional[float] = None
    ai_max_parallel_photos: int = 4
    ai_breaker_threshold: int = 5
    ai_breaker_cooldown_seconds: float = 60.0

    # === Redis ===
    redis_url: str = "redis://localhost:6379/0"

    # === Logging ===
    log_level: str = "INFO"

    # === Rate Limiting ===
    rate_limit_backend: str = "memory"  # memory | redis
    rate_limit_window_seconds: int = 10
    rate_limit_strict: int = 10
    rate_limit_moderate: int = 30
    rate_limit_lenient: int = 100
    rate_limit_global: str = "1000/minute"

    # === Estimates ===
    estimate_link_days: int = 30
    auto_analyze_on_intake: bool = True

    # === Metrics / error reporting ===
    metrics_enabled: bool = True
    sentry_dsn: Optional[str] = None

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def is_development(self) -> bool:
        return self.app_env.lower() == "development"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Singleton Settings instance with simple per-environment overrides."""
    s = Settings()

    env = os.getenv("ENVIRONMENT", s.app_env).lower()
    if env == "production":
        s.log_level = "WARNING"
        s.rate_limit_backend = "redis"
    elif env == "development":
        s.log_level = "DEBUG"
        s.rate_limit_strict = 20
        s.rate_limit_moderate = 60
        s.rate_limit_lenient = 200

    return s


# Module-level export so `from app.config import settings` keeps working
settings = get_settings()
