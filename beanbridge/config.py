from __future__ import annotations

import os
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError

load_dotenv()


class Settings(BaseModel):
    LOG_LEVEL: str = Field(default="INFO")
    CORS_ALLOW_ORIGINS: str = Field(default="*")
    SWEEP_ENABLED: bool = Field(default=True)
    SWEEP_INTERVAL_SECONDS: int = Field(default=30, ge=1)
    SWEEP_JITTER_SECONDS: int = Field(default=0, ge=0)
    SWEEP_BACKOFF_MAX_SECONDS: int = Field(default=60, ge=1)
    DEFAULT_FRESHNESS_SECONDS: float = Field(
        default=60.0, gt=0, description="timeout for clients without listeners"
    )
    PULL_STORE: str = Field(default="beanbridge:type=NotificationStore")
    PULL_MAX_ENTRIES: int = Field(default=100, ge=1)
    PULL_FRESHNESS_SECONDS: float = Field(default=60.0, gt=0)


def _load_settings(existing: Settings | None = None) -> Settings:
    values: dict[str, Any] = {}
    for name, field in Settings.model_fields.items():
        env_value = os.getenv(name)
        if env_value is None:
            if existing is not None and hasattr(existing, name):
                values[name] = getattr(existing, name)
                continue
            values[name] = field.get_default(call_default_factory=True)
        else:
            values[name] = env_value

    try:
        return Settings(**values)
    except ValidationError as exc:
        invalid = sorted({str(error["loc"][0]) for error in exc.errors() if error.get("loc")})
        raise RuntimeError(
            f"Invalid environment variables: {', '.join(invalid)}"
        ) from exc


settings = _load_settings()


def reload_settings() -> Settings:
    global settings
    fresh = _load_settings(settings)
    settings.__dict__.update(fresh.__dict__)
    return settings
