"""Application configuration management."""
from pydantic import model_validator, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from sqlalchemy.engine.url import make_url, URL
from typing import Optional
import logging

SQLITE_LOCAL_URL = "sqlite+aiosqlite:///./pizza_promo.db"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str = SQLITE_LOCAL_URL
    db_pool_size: int = 5
    db_max_overflow: int = 10

    # Application
    environment: str = "development"
    frontend_url: str = "https://www.mycrushpizza.com"
    allowed_origins: str = ""  # Comma-separated, overrides the development defaults

    # Número Ganador
    force_win: bool = False  # Every attempt hits the target (testing only)
    ftw_every: int = 0  # Force a win every N attempts (0 disables)
    lock_minutes: int = 10  # Cooldown after a win

    # Perfect Timing
    timing_target_ms: int = 9990
    timing_tolerance_ms: int = 40
    timing_lock_minutes: int = 10

    # Sales service (coupon issuance)
    sales_api_base_url: str = ""
    sales_api_key: str = ""
    sales_coupon_path: str = "/api/coupons/issue"
    sales_coupon_hours: int = 24
    sales_timeout_seconds: float = 5.0
    game_channel: str = "GAME"
    numero_ganador_game_id: int = 1
    perfect_timing_game_id: int = 2

    # Admin notifications (SMTP)
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_from: str = ""
    smtp_use_tls: bool = True
    smtp_timeout_seconds: float = 10.0
    admin_email: str = ""

    @field_validator("sales_api_base_url", mode="before")
    @classmethod
    def strip_base_url(cls, value):
        """Drop trailing slashes so paths can be appended directly."""
        if value is None:
            return ""
        return str(value).strip().rstrip("/")

    @field_validator("sales_coupon_path")
    @classmethod
    def normalize_coupon_path(cls, value: str) -> str:
        value = (value or "").strip()
        if value and not value.startswith("/"):
            value = "/" + value
        return value

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def coupon_service_configured(self) -> bool:
        """Coupon issuance needs both the sales base URL and its API key."""
        return bool(self.sales_api_base_url and self.sales_api_key)

    @property
    def smtp_configured(self) -> bool:
        return bool(self.smtp_host and self.admin_email)

    def get_allowed_origins(self) -> list[str]:
        """Parse the comma-separated ALLOWED_ORIGINS value."""
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]

    @model_validator(mode="after")
    def validate_all_config(self):
        """Validate game configuration and normalize Postgres URLs."""
        logger = logging.getLogger(__name__)

        if self.ftw_every < 0:
            raise ValueError("ftw_every must be zero (disabled) or a positive integer")

        if self.lock_minutes < 0 or self.timing_lock_minutes < 0:
            raise ValueError("lock minutes must not be negative")

        if self.timing_tolerance_ms <= 0:
            raise ValueError("timing_tolerance_ms must be positive")

        if self.sales_coupon_hours < 1:
            raise ValueError("sales_coupon_hours must be at least 1 hour")

        if self.environment == "production" and self.force_win:
            raise ValueError("force_win cannot be enabled in production")

        # Database URL normalization
        url = self.database_url
        if not url:
            logger.warning("Empty DATABASE_URL, using SQLite fallback")
            self.database_url = SQLITE_LOCAL_URL
            return self

        parsed: Optional[URL] = None
        try:
            parsed = make_url(url)
        except Exception as e:  # pragma: no cover
            logger.error(f"Failed to parse DATABASE_URL: {e}")
            self.database_url = SQLITE_LOCAL_URL
            return self

        drivername = parsed.drivername
        if drivername.startswith("postgres") and "+asyncpg" not in drivername:
            old_drivername = drivername
            parsed = parsed.set(drivername="postgresql+asyncpg")
            logger.info(f"Driver normalized: {old_drivername} -> {parsed.drivername}")
        elif drivername == "sqlite":
            parsed = parsed.set(drivername="sqlite+aiosqlite")
            logger.info("Driver normalized: sqlite -> sqlite+aiosqlite")

        # Use render_as_string to properly re-encode special characters in password
        self.database_url = parsed.render_as_string(hide_password=False)
        return self

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
