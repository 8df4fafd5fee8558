import logging

from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import Optional

class Settings(BaseSettings):
    # Environment
    ENV: str = "development"
    CONFIG_STRICT: bool = False

    # Database (unset -> in-memory document store)
    DATABASE_URL: Optional[str] = None
    TEST_DATABASE_URL: Optional[str] = None

    # App URLs
    APP_URL: str = "http://localhost:3000"

    # Invitations & shareable links
    INVITATION_TTL_DAYS: int = 7
    TOKEN_BYTES: int = 32

    # Outbound webhooks
    WEBHOOK_TIMEOUT_SECONDS: float = 5.0
    WEBHOOK_USER_AGENT: str = "Excel-Analysis-Platform-Webhook/1.0"

    # SendGrid (invitation email)
    SENDGRID_API_KEY: Optional[str] = None
    SENDGRID_FROM_EMAIL: str = "no-reply@sheetshare.local"
    SENDGRID_FROM_NAME: str = "Excel Analysis Platform"

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )
settings = Settings()


def validate_config(strict: Optional[bool] = None, settings_obj: Optional[Settings] = None, logger: Optional[logging.Logger] = None) -> bool:
    """Validate required configuration.

    In strict mode raise RuntimeError; otherwise emit warnings only.
    Secrets are not logged, only missing keys.
    """
    cfg = settings_obj or settings
    log = logger or logging.getLogger("sheetshare")
    strict_mode = strict if strict is not None else getattr(cfg, "CONFIG_STRICT", False)

    required_keys = [
        "DATABASE_URL",
        "SENDGRID_API_KEY",
    ]

    missing = [key for key in required_keys if not getattr(cfg, key, None)]
    if missing:
        message = f"Missing required configuration: {', '.join(missing)}"
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)

    if cfg.WEBHOOK_TIMEOUT_SECONDS <= 0:
        message = "WEBHOOK_TIMEOUT_SECONDS must be positive"
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)

    return True
