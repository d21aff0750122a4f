import logging

from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import Optional

class Settings(BaseSettings):
    # Environment
    ENV: str = "development"
    CONFIG_STRICT: bool = False

    # Database
    DATABASE_URL: str = "sqlite:///./bookstreak.db"
    TEST_DATABASE_URL: Optional[str] = None

    # Auth
    JWT_SECRET: Optional[str] = None
    JWT_ALGORITHM: str = "HS256"
    ALLOW_HEADER_AUTH: bool = True  # X-User-Id fallback (dev/tests only)

    # Streak policy
    DEFAULT_DAILY_PAGE_GOAL: int = 10
    DEFAULT_FREEZE_ALLOWANCE: int = 3
    FREEZE_GRANT_PERIOD_DAYS: int = 30
    MAX_CALENDAR_DAYS: int = 366

    # HTTP
    CORS_ORIGINS: str = "http://localhost:5173"  # comma-separated

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]


settings = Settings()


def validate_config(strict: Optional[bool] = None, settings_obj: Optional[Settings] = None, logger: Optional[logging.Logger] = None) -> bool:
    """Validate required configuration.

    In strict mode raise RuntimeError; otherwise emit warnings only.
    Secrets are not logged, only missing keys.
    """
    cfg = settings_obj or settings
    log = logger or logging.getLogger("bookstreak")
    strict_mode = strict if strict is not None else getattr(cfg, "CONFIG_STRICT", False)

    problems = []
    if cfg.ENV.lower() != "development" and not cfg.JWT_SECRET:
        problems.append("Missing required configuration: JWT_SECRET")
    if cfg.ENV.lower() == "production" and cfg.ALLOW_HEADER_AUTH:
        problems.append("ALLOW_HEADER_AUTH must be disabled in production")
    if cfg.DEFAULT_DAILY_PAGE_GOAL < 1:
        problems.append("DEFAULT_DAILY_PAGE_GOAL must be positive")

    for message in problems:
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)

    return not problems
