import logging

from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import Optional

class Settings(BaseSettings):
    # Environment
    ENV: str = "development"
    CONFIG_STRICT: bool = False

    # Persistence
    STORE_BACKEND: str = "memory"  # memory | sql
    DATABASE_URL: Optional[str] = None

    # Provider calls
    PROVIDER_TIMEOUT_SECONDS: float = 60.0

    # Keyless image fallback
    FREE_IMAGE_BASE_URL: str = "https://source.unsplash.com"
    FREE_IMAGE_SIZE: str = "800x600"
    FREE_IMAGE_DEFAULT_KEYWORD: str = "business"

    # Observability / Tracing
    OTEL_ENABLED: bool = False
    OTEL_EXPORTER: str = "console"  # console | memory

    # HTTP surface
    CORS_ORIGINS: str = "http://localhost:3000"

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def cors_origins(self) -> list[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]


settings = Settings()


def validate_config(strict: Optional[bool] = None, settings_obj: Optional[Settings] = None, logger: Optional[logging.Logger] = None) -> bool:
    """Validate configuration consistency.

    In strict mode raise RuntimeError; otherwise emit warnings only.
    Secrets are never part of this config; provider keys live in the store.
    """
    cfg = settings_obj or settings
    log = logger or logging.getLogger("coredna")
    strict_mode = strict if strict is not None else getattr(cfg, "CONFIG_STRICT", False)

    problems = []
    backend = (cfg.STORE_BACKEND or "").lower()
    if backend not in {"memory", "sql"}:
        problems.append(f"STORE_BACKEND must be 'memory' or 'sql', got '{cfg.STORE_BACKEND}'")
    if backend == "sql" and not cfg.DATABASE_URL:
        problems.append("STORE_BACKEND=sql requires DATABASE_URL")
    if cfg.PROVIDER_TIMEOUT_SECONDS <= 0:
        problems.append("PROVIDER_TIMEOUT_SECONDS must be positive")

    if problems:
        message = f"Invalid configuration: {'; '.join(problems)}"
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)
        return False

    return True
