"""
Application configuration models and helpers.

Centralizes settings for both integrations (MyCase and Google Drive), the
token store backend and the OAuth handshake so routes, clients and scripts
share one configuration surface.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

import os

from pydantic import AnyHttpUrl, Field, HttpUrl, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_env_file(path: str = ".env") -> None:
    """Best-effort load key=value pairs from a .env file into the environment."""
    env_path = Path(path)
    if not env_path.exists():
        return
    for raw_line in env_path.read_text().splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if not sep:
            continue
        key = key.strip()
        if not key or key in os.environ:
            continue
        cleaned = value.strip().strip('"').strip("'")
        os.environ[key] = cleaned


_load_env_file()


class MyCaseSettings(BaseSettings):
    """Configuration for the MyCase case-management API."""

    model_config = SettingsConfigDict(populate_by_name=True)

    client_id: str = Field(..., validation_alias="MYCASE_CLIENT_ID")
    client_secret: str = Field(..., validation_alias="MYCASE_CLIENT_SECRET")
    redirect_uri: AnyHttpUrl = Field(..., validation_alias="MYCASE_REDIRECT_URI")
    authorize_url: str = Field(
        "https://api.mycase.com/oauth/authorize",
        validation_alias="MYCASE_AUTHORIZE_URL",
    )
    token_url: str = Field(
        "https://auth.mycase.com/tokens", validation_alias="MYCASE_TOKEN_URL"
    )
    api_base_url: str = Field(
        "https://external-integrations.mycase.com/v1",
        validation_alias="MYCASE_API_BASE_URL",
    )
    scope: str = Field("read write", validation_alias="MYCASE_SCOPE")
    page_size: int = Field(100, validation_alias="MYCASE_PAGE_SIZE")


class GoogleSettings(BaseSettings):
    """Configuration required for interacting with Google APIs."""

    model_config = SettingsConfigDict(populate_by_name=True)

    client_id: str = Field(..., validation_alias="GOOGLE_CLIENT_ID")
    client_secret: str = Field(..., validation_alias="GOOGLE_CLIENT_SECRET")
    redirect_uri: AnyHttpUrl = Field(..., validation_alias="GOOGLE_REDIRECT_URI")
    scopes: str = Field(
        "https://www.googleapis.com/auth/drive.file "
        "https://www.googleapis.com/auth/drive.readonly",
        validation_alias="GOOGLE_SCOPES",
        description="Space-delimited scopes requested during authorization.",
    )
    drive_root_folder_id: Optional[str] = Field(
        None,
        validation_alias="GOOGLE_DRIVE_ROOT_FOLDER_ID",
        description="Folder used for uploads when the caller names none.",
    )

    @property
    def scope_list(self) -> list[str]:
        return self.scopes.replace(",", " ").split()


class OAuthSettings(BaseSettings):
    """OAuth flow configuration shared by both integrations."""

    model_config = SettingsConfigDict(populate_by_name=True)

    state_ttl_seconds: int = Field(900, validation_alias="OAUTH_STATE_TTL")
    refresh_skew_seconds: int = Field(
        300,
        validation_alias="OAUTH_REFRESH_SKEW_SECONDS",
        description="Refresh access tokens this long before they expire.",
    )
    http_timeout_seconds: float = Field(10.0, validation_alias="OAUTH_HTTP_TIMEOUT")


class StorageSettings(BaseSettings):
    """Where OAuth token records are persisted."""

    model_config = SettingsConfigDict(populate_by_name=True)

    backend: Literal["sqlite", "dynamodb"] = Field(
        "sqlite", validation_alias="TOKEN_STORE_BACKEND"
    )
    sqlite_path: str = Field("data/tokens.db", validation_alias="TOKEN_STORE_PATH")
    dynamodb_table_name: Optional[str] = Field(
        None, validation_alias="DYNAMODB_TABLE_NAME"
    )
    region_name: str = Field("us-east-1", validation_alias="AWS_REGION")

    @model_validator(mode="after")
    def _require_table_for_dynamodb(self) -> "StorageSettings":
        if self.backend == "dynamodb" and not self.dynamodb_table_name:
            raise ValueError(
                "DYNAMODB_TABLE_NAME is required when TOKEN_STORE_BACKEND=dynamodb."
            )
        return self


class SecuritySettings(BaseSettings):
    """Security-related configuration."""

    model_config = SettingsConfigDict(populate_by_name=True)

    token_encryption_secret: Optional[str] = Field(
        None,
        validation_alias="TOKEN_ENCRYPTION_SECRET",
        description=(
            "Secret used to derive the symmetric key for encrypting stored tokens."
        ),
    )
    previous_token_encryption_secrets: str = Field(
        "",
        validation_alias="TOKEN_ENCRYPTION_PREVIOUS_SECRETS",
        description="Comma-separated retired secrets still accepted for decryption.",
    )
    state_secret: Optional[str] = Field(
        None,
        validation_alias="OAUTH_STATE_SECRET",
        description="Key for signing OAuth state values.",
    )

    @property
    def previous_secrets(self) -> list[str]:
        return [
            secret.strip()
            for secret in self.previous_token_encryption_secrets.split(",")
            if secret.strip()
        ]


class SessionSettings(BaseSettings):
    """How the hosting environment hands us the authenticated staff user."""

    model_config = SettingsConfigDict(populate_by_name=True)

    user_header: str = Field(
        "X-Authenticated-User", validation_alias="SESSION_USER_HEADER"
    )


class AppSettings(BaseSettings):
    """Root settings object for the FastAPI application."""

    model_config = SettingsConfigDict(populate_by_name=True)

    environment: str = Field("development", validation_alias="APP_ENV")
    log_level: str = Field("INFO", validation_alias="APP_LOG_LEVEL")
    frontend_base_url: Optional[HttpUrl] = Field(
        None,
        validation_alias="FRONTEND_BASE_URL",
        description="Where browsers land after completing an OAuth flow.",
    )
    max_upload_bytes: int = Field(
        25 * 1024 * 1024, validation_alias="MAX_UPLOAD_BYTES"
    )
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    session: SessionSettings = Field(default_factory=SessionSettings)
    oauth: OAuthSettings = Field(default_factory=OAuthSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    mycase: MyCaseSettings = Field(default_factory=MyCaseSettings)
    google: GoogleSettings = Field(default_factory=GoogleSettings)


@lru_cache()
def get_settings() -> AppSettings:
    """Return a cached settings object."""
    return AppSettings()  # type: ignore[call-arg]


__all__ = [
    "AppSettings",
    "GoogleSettings",
    "MyCaseSettings",
    "OAuthSettings",
    "SecuritySettings",
    "SessionSettings",
    "StorageSettings",
    "get_settings",
]
