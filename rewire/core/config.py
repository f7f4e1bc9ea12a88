import logging
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import Optional

KNOWN_FORMULA_VERSIONS = ("v1", "v2")


class Settings(BaseSettings):
    # Environment
    ENV: str = "development"
    CONFIG_STRICT: bool = False

    # Database
    DATABASE_URL: Optional[str] = None
    TEST_DATABASE_URL: Optional[str] = None

    # Meter
    METER_TIMEZONE: str = "UTC"  # single fixed day boundary for streaks
    METER_FORMULA_VERSION: str = "v2"  # v1 = legacy linear, v2 = logarithmic
    METER_MAX_WRITE_RETRIES: int = 3

    # HTTP
    CORS_ALLOWED_ORIGINS: str = "*"  # comma-separated

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.CORS_ALLOWED_ORIGINS.split(",") if o.strip()]


settings = Settings()


def meter_zone(settings_obj: Optional[Settings] = None) -> ZoneInfo:
    """Timezone that defines calendar-day boundaries for the meter."""
    cfg = settings_obj or settings
    return ZoneInfo(cfg.METER_TIMEZONE)


def validate_config(strict: Optional[bool] = None, settings_obj: Optional[Settings] = None, logger: Optional[logging.Logger] = None) -> bool:
    """Validate required configuration.

    In strict mode raise RuntimeError; otherwise emit warnings only.
    Secrets are not logged, only missing keys. An unknown timezone or
    formula version is always fatal because every computation depends on it.
    """
    cfg = settings_obj or settings
    log = logger or logging.getLogger("rewire")
    strict_mode = strict if strict is not None else getattr(cfg, "CONFIG_STRICT", False)

    try:
        meter_zone(cfg)
    except (ZoneInfoNotFoundError, ValueError):
        raise RuntimeError(f"Unknown METER_TIMEZONE: {cfg.METER_TIMEZONE}")

    if cfg.METER_FORMULA_VERSION not in KNOWN_FORMULA_VERSIONS:
        raise RuntimeError(f"Unknown METER_FORMULA_VERSION: {cfg.METER_FORMULA_VERSION}")

    if cfg.METER_MAX_WRITE_RETRIES < 1:
        raise RuntimeError("METER_MAX_WRITE_RETRIES must be at least 1")

    required_keys = [
        "DATABASE_URL",
    ]

    missing = [key for key in required_keys if not getattr(cfg, key, None)]
    if missing:
        message = f"Missing required configuration: {', '.join(missing)}"
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)

    return True
