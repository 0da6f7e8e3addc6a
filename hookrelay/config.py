from __future__ import annotations

import os
from typing import Any, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError

load_dotenv()


class Settings(BaseModel):
    DATABASE_PATH: str = Field(default="hookrelay.db")
    API_TOKEN: str = Field(default="dev_token")  # simple bearer for the gateway
    API_KEYS: str = Field(default="", description="comma-separated API keys")
    CORS_ALLOW_ORIGINS: str = Field(default="*")
    LOG_LEVEL: str = Field(default="INFO")
    RATE_LIMIT_ENABLED: bool = Field(default=True)
    RATE_LIMIT_PER_MINUTE: int = Field(default=100)
    RATE_LIMIT_BURST: int = Field(default=20)
    MAX_RETRIES: int = Field(default=5, ge=1)
    BACKOFF_BASE_SECONDS: float = Field(default=0.5, ge=0)
    BACKOFF_MAX_SECONDS: Optional[float] = Field(default=None, ge=0)
    PACING_SECONDS: float = Field(default=2.0, ge=0)
    BATCH_MIN_SIZE: int = Field(default=20, ge=1)
    BATCH_DIVISOR: int = Field(default=10, ge=1)
    MAX_BATCH_ITEMS: Optional[int] = Field(default=None, ge=1)
    DELIVERY_TIMEOUT_SECONDS: float = Field(default=10.0, gt=0)
    SEED_ON_START: bool = Field(default=False)
    SEED_TARGET_URLS: str = Field(default="", description="comma-separated URLs")


def _load_settings(existing: Settings | None = None) -> Settings:
    values: dict[str, Any] = {}
    for name, field in Settings.model_fields.items():
        env_value = os.getenv(name)
        if env_value is None:
            if existing is not None and hasattr(existing, name):
                values[name] = getattr(existing, name)
                continue
            values[name] = field.get_default(call_default_factory=True)
        elif env_value == "" and field.default is None:
            values[name] = None
        else:
            values[name] = env_value

    try:
        return Settings(**values)
    except ValidationError as exc:
        bad = sorted({str(error["loc"][0]) for error in exc.errors() if error.get("loc")})
        raise RuntimeError(
            f"Invalid environment configuration: {', '.join(bad)}"
        ) from exc


settings = _load_settings()


def reload_settings() -> Settings:
    global settings
    fresh = _load_settings(settings)
    settings.__dict__.update(fresh.__dict__)
    return settings


def split_csv(value: str) -> list[str]:
    return [part.strip() for part in value.split(",") if part.strip()]
