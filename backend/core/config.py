from __future__ import annotations

from pathlib import Path

from pydantic import Field, field_validator
from pydantic.aliases import AliasChoices
from pydantic_settings import BaseSettings, SettingsConfigDict


BACKEND_DIR = Path(__file__).resolve().parents[1]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=BACKEND_DIR / ".env", env_file_encoding="utf-8", extra="ignore")

    database_url: str = Field(validation_alias=AliasChoices("database_url", "DATABASE_URL"))

    # Auth. Tokens are issued by the portal's auth service; this API only verifies them.
    jwt_secret_key: str = Field(
        validation_alias=AliasChoices("jwt_secret_key", "jwt_secret", "JWT_SECRET_KEY", "JWT_SECRET")
    )
    jwt_algorithm: str = Field(default="HS256", validation_alias=AliasChoices("jwt_algorithm", "JWT_ALGORITHM"))
    access_token_expire_minutes: int = Field(
        default=480,
        validation_alias=AliasChoices("access_token_expire_minutes", "ACCESS_TOKEN_EXPIRE_MINUTES"),
    )
    staff_roles: str = Field(
        default="ADMIN,REGISTRAR",
        validation_alias=AliasChoices("staff_roles", "STAFF_ROLES"),
    )

    # Block policies
    default_section_capacity: int = Field(
        default=30,
        ge=1,
        validation_alias=AliasChoices("default_section_capacity", "DEFAULT_SECTION_CAPACITY"),
    )
    default_max_overcap: int = Field(
        default=5,
        ge=0,
        validation_alias=AliasChoices("default_max_overcap", "DEFAULT_MAX_OVERCAP"),
    )
    assignable_students_limit: int = Field(
        default=200,
        ge=1,
        le=500,
        validation_alias=AliasChoices("assignable_students_limit", "ASSIGNABLE_STUDENTS_LIMIT"),
    )

    # Runtime
    environment: str = Field(default="development", validation_alias=AliasChoices("environment", "ENVIRONMENT"))
    frontend_origin: str = Field(
        default="http://localhost:5173",
        validation_alias=AliasChoices("frontend_origin", "FRONTEND_ORIGIN"),
    )

    @field_validator("frontend_origin")
    @classmethod
    def _normalize_frontend_origin(cls, v: str) -> str:
        # Starlette CORS expects the Origin to match exactly (no trailing slash).
        return v.strip().rstrip("/")

    @field_validator("staff_roles")
    @classmethod
    def _normalize_staff_roles(cls, v: str) -> str:
        roles = [r.strip().upper() for r in (v or "").split(",") if r.strip()]
        if not roles:
            raise ValueError("STAFF_ROLES must name at least one role")
        return ",".join(roles)

    @property
    def staff_role_set(self) -> set[str]:
        return set(self.staff_roles.split(","))


settings = Settings()
