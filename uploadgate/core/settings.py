# uploadgate/core/settings.py
import os
import string
from functools import lru_cache
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StorageDisk(BaseModel):
    """Een logisch opslagdoel (bucket + regio + credentials)."""

    bucket: str
    region: str = "eu-west-1"
    key: Optional[str] = None
    secret: Optional[str] = None
    session_token: Optional[str] = None
    endpoint_url: Optional[str] = None
    addressing_style: str = "virtual"


STORAGE_PATH_PLACEHOLDERS = frozenset({"resource", "resource_id"})


class UploadFieldConfig(BaseModel):
    """An upload-enabled field on a resource."""

    resource: str
    field: str
    disk: str = "s3"
    storage_path: Optional[str] = None  # mag {resource} / {resource_id} bevatten
    keep_original_name: bool = False
    can_upload: bool = True
    allowed_roles: List[str] = Field(default_factory=list)

    @field_validator("storage_path")
    @classmethod
    def _known_placeholders(cls, v: Optional[str]) -> Optional[str]:
        if not v:
            return v
        try:
            names = [name for _, name, _, _ in string.Formatter().parse(v) if name is not None]
        except ValueError as e:
            raise ValueError(f"invalid storage_path {v!r}: {e}") from e
        unknown = [n for n in names if n not in STORAGE_PATH_PLACEHOLDERS]
        if unknown:
            raise ValueError(
                f"storage_path {v!r} uses unknown placeholder(s) {unknown}; allowed: {sorted(STORAGE_PATH_PLACEHOLDERS)}"
            )
        return v


class Settings(BaseSettings):
    # === Algemene app settings ===
    APP_NAME: str = "uploadgate"
    app_env: str = "local"  # local | development | production
    log_level: str = "INFO"

    # === Storage ===
    STORAGE_DISKS: Dict[str, StorageDisk] = Field(
        default_factory=lambda: {"s3": StorageDisk(bucket="uploadgate-files")}
    )
    UPLOAD_FIELDS: List[UploadFieldConfig] = Field(default_factory=list)

    # === Multipart ===
    PRESIGN_EXPIRES_SECONDS: int = 1200  # 20 min
    MAX_PART_NUMBER: int = 10_000
    VERIFY_SESSION_ON_SIGN: bool = True
    SESSION_RETENTION_SECONDS: int = 24 * 3600

    # === Auth ===
    JWT_SECRET: str = "change-me"
    JWT_ALGORITHM: str = "HS256"

    # === HTTP ===
    ROUTE_PREFIX: str = "/s3-multipart"
    CORS_ALLOW_ORIGINS: List[str] = []  # expliciet configureren, bv. ["https://admin.example.com"]
    CORS_ALLOW_CREDENTIALS: bool = True
    CORS_ALLOW_HEADERS: List[str] = [
        "Authorization",
        "Origin",
        "Content-Type",
        "Accept",
        "X-CSRF-TOKEN",
    ]

    # === Rate limiting ===
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_DEFAULT: str = "600/minute"

    # === Sentry ===
    SENTRY_DSN: Optional[str] = None

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @model_validator(mode="after")
    def _fields_reference_known_disks(self) -> "Settings":
        for f in self.UPLOAD_FIELDS:
            if f.disk not in self.STORAGE_DISKS:
                raise ValueError(
                    f"upload field {f.resource}.{f.field} references unknown disk '{f.disk}'"
                )
        return self

    @model_validator(mode="after")
    def _no_wildcard_origin_with_credentials(self) -> "Settings":
        if self.CORS_ALLOW_CREDENTIALS and "*" in self.CORS_ALLOW_ORIGINS:
            raise ValueError("CORS_ALLOW_ORIGINS may not contain '*' when CORS_ALLOW_CREDENTIALS is enabled")
        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Singleton Settings instance met simpele env-overrides."""
    s = Settings()

    env = os.getenv("ENVIRONMENT", s.app_env).lower()
    if env == "production":
        s.log_level = "WARNING"
    elif env == "development":
        s.log_level = "DEBUG"

    return s
