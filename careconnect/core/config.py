from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings

# .env at the project root: careconnect/core/config.py -> core -> careconnect -> root
_ROOT = Path(__file__).resolve().parent.parent.parent
_ENV_FILE = _ROOT / ".env"


class Settings(BaseSettings):
    secret_key: str = "change-me-in-production"
    database_url: str = "sqlite:///./careconnect.db"
    # Comma separated origin list; "*" allows any origin
    cors_origins: str = "*"
    log_level: str = "INFO"
    # Max requests per IP per minute (slowapi)
    rate_limit_enabled: bool = True
    rate_limit_per_minute: int = 60
    rate_limit_register_per_minute: int = 3
    # Chat-completions provider (OpenAI compatible gateway)
    ai_api_key: str = ""
    ai_base_url: str = "https://ai.gateway.healthai.dev/v1"
    ai_model: str = "google/gemini-2.5-flash"
    ai_temperature: float = 0.7
    ai_max_tokens: int = 1000
    ai_timeout_seconds: float = 30.0
    # Per-user quotas
    ai_requests_per_hour: int = 20
    ai_request_cooldown_seconds: float = 5.0
    uploads_per_hour: int = 5
    upload_max_mb: int = 10
    # Document storage (one directory per user below it)
    storage_dir: str = str(_ROOT / "data" / "documents")
    signed_url_ttl_seconds: int = 3600
    admin_secret: str = ""

    model_config = {
        "env_file": _ENV_FILE if _ENV_FILE.is_file() else ".env",
        "extra": "ignore",
    }

    @field_validator("ai_api_key", "admin_secret", mode="before")
    @classmethod
    def strip_secret(cls, v: str | None) -> str:
        """Trailing whitespace from copy/paste breaks bearer auth."""
        return (v or "").strip()


settings = Settings()


def is_ai_configured() -> bool:
    return bool(settings.ai_api_key)


def upload_max_bytes() -> int:
    return settings.upload_max_mb * 1024 * 1024
