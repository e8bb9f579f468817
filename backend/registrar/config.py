from __future__ import annotations

from pathlib import Path

from pydantic import Field, field_validator
from pydantic.aliases import AliasChoices
from pydantic_settings import BaseSettings, SettingsConfigDict


BACKEND_DIR = Path(__file__).resolve().parents[1]


class ClientSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=BACKEND_DIR / ".env",
        env_file_encoding="utf-8",
        env_prefix="REGISTRAR_",
        extra="ignore",
    )

    api_url: str = Field(default="http://127.0.0.1:8000")
    # Bearer token issued by the portal's auth service.
    token: str | None = Field(default=None, validation_alias=AliasChoices("REGISTRAR_TOKEN", "token"))
    timeout_seconds: float = Field(default=30.0, gt=0)
    default_capacity: int = Field(default=30, ge=1)
    environment: str = Field(default="development", validation_alias=AliasChoices("ENVIRONMENT", "environment"))

    @field_validator("api_url")
    @classmethod
    def _normalize_api_url(cls, v: str) -> str:
        return v.strip().rstrip("/")

    @field_validator("token")
    @classmethod
    def _normalize_token(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip()
        return v or None
