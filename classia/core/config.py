import logging

from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import Optional

class Settings(BaseSettings):
    # Environment
    ENV: str = "development"
    CONFIG_STRICT: bool = False

    # Database
    DATABASE_URL: Optional[str] = None
    TEST_DATABASE_URL: Optional[str] = None

    # Caller auth
    AUTH_JWT_SECRET: Optional[str] = None
    ALLOW_HEADER_AUTH: bool = False  # X-User-Id fallback, development and tests only

    # Admin access
    ADMIN_KEY: Optional[str] = None

    # Quota tiers
    FREE_TIER_LIMIT: int = 10
    PRO_TIER_LIMIT: int = 100
    SUBSCRIPTION_PERIOD_DAYS: int = 30

    # Completion service (Groq)
    GROQ_API_KEY: Optional[str] = None
    COMPLETION_MODEL: str = "llama-3.1-8b-instant"
    COMPLETION_TEMPERATURE: float = 0.7
    COMPLETION_MAX_TOKENS: int = 3000
    COMPLETION_TIMEOUT_SECONDS: float = 60.0

    # Payment processor (Asaas)
    ASAAS_API_KEY: Optional[str] = None
    ASAAS_API_URL: str = "https://www.asaas.com/api/v3"
    ASAAS_WEBHOOK_TOKEN: Optional[str] = None
    WEBHOOK_AUTH_MODE: str = "token"  # "token" | "hmac"
    WEBHOOK_HMAC_SECRET: Optional[str] = None
    PAYMENT_TIMEOUT_SECONDS: float = 15.0

    # CORS
    CORS_ORIGINS: str = "http://localhost:5173"  # comma-separated

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )
settings = Settings()

HEADER_AUTH_ENVS = ("development", "test")


def validate_config(strict: Optional[bool] = None, settings_obj: Optional[Settings] = None, logger: Optional[logging.Logger] = None) -> bool:
    """Validate required configuration.

    In strict mode raise RuntimeError; otherwise emit warnings only.
    Secrets are not logged, only missing keys.
    """
    cfg = settings_obj or settings
    log = logger or logging.getLogger("classia")
    strict_mode = strict if strict is not None else getattr(cfg, "CONFIG_STRICT", False)

    required_keys = [
        "DATABASE_URL",
        "AUTH_JWT_SECRET",
        "GROQ_API_KEY",
        "ASAAS_API_KEY",
    ]
    if (cfg.WEBHOOK_AUTH_MODE or "token").lower() == "hmac":
        required_keys.append("WEBHOOK_HMAC_SECRET")
    else:
        required_keys.append("ASAAS_WEBHOOK_TOKEN")

    missing = [key for key in required_keys if not getattr(cfg, key, None)]
    if missing:
        message = f"Missing required configuration: {', '.join(missing)}"
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)

    if cfg.ALLOW_HEADER_AUTH and (cfg.ENV or "").lower() not in HEADER_AUTH_ENVS:
        log.warning(f"ALLOW_HEADER_AUTH is enabled in {cfg.ENV}; X-User-Id is trusted without a token")

    return True
