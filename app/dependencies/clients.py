"""
Factory functions to provide shared clients and services as FastAPI dependencies.
"""

from datetime import timedelta
from functools import lru_cache

from app.clients import (
    GoogleDriveClient,
    GoogleOAuthClient,
    MyCaseClient,
    MyCaseOAuthClient,
    OAuthClient,
    OAuthStateEncoder,
    TokenStore,
    build_token_store,
)
from app.core.config import get_settings
from app.models.oauth import Integration
from app.services import DriveUploadService, TokenCipherService, TokenRefresher


@lru_cache()
def _settings():
    """Internal helper to cache settings for client factories."""
    return get_settings()


@lru_cache()
def get_token_cipher_service() -> TokenCipherService:
    """Provide symmetric encryption helper for token storage."""
    settings = _settings()
    secret = settings.security.token_encryption_secret or settings.google.client_secret
    return TokenCipherService(
        secret=secret, previous_secrets=settings.security.previous_secrets
    )


@lru_cache()
def get_token_store() -> TokenStore:
    """Provide the configured token store backend."""
    return build_token_store(_settings().storage, get_token_cipher_service())


@lru_cache()
def get_oauth_state_encoder() -> OAuthStateEncoder:
    """Provide an OAuth state encoder keyed by the state secret."""
    settings = _settings()
    secret = (
        settings.security.state_secret
        or settings.security.token_encryption_secret
        or settings.google.client_secret
    )
    return OAuthStateEncoder(secret_key=secret)


@lru_cache()
def get_mycase_oauth_client() -> MyCaseOAuthClient:
    settings = _settings()
    return MyCaseOAuthClient(settings.mycase, timeout=settings.oauth.http_timeout_seconds)


@lru_cache()
def get_google_oauth_client() -> GoogleOAuthClient:
    settings = _settings()
    return GoogleOAuthClient(settings.google, timeout=settings.oauth.http_timeout_seconds)


def get_oauth_clients() -> dict[Integration, OAuthClient]:
    """Authority clients keyed by integration, for the handshake routes."""
    return {
        Integration.MYCASE: get_mycase_oauth_client(),
        Integration.GOOGLE: get_google_oauth_client(),
    }


def _refresh_skew() -> timedelta:
    return timedelta(seconds=_settings().oauth.refresh_skew_seconds)


@lru_cache()
def get_mycase_token_refresher() -> TokenRefresher:
    return TokenRefresher(
        store=get_token_store(),
        oauth_client=get_mycase_oauth_client(),
        skew=_refresh_skew(),
    )


@lru_cache()
def get_google_token_refresher() -> TokenRefresher:
    return TokenRefresher(
        store=get_token_store(),
        oauth_client=get_google_oauth_client(),
        skew=_refresh_skew(),
    )


@lru_cache()
def get_mycase_client() -> MyCaseClient:
    """Provide MyCase API client instance."""
    settings = _settings()
    return MyCaseClient(
        get_mycase_token_refresher(),
        settings.mycase,
        timeout=settings.oauth.http_timeout_seconds,
    )


@lru_cache()
def get_drive_client() -> GoogleDriveClient:
    """Provide Google Drive client instance."""
    settings = _settings()
    return GoogleDriveClient(
        get_google_token_refresher(),
        drive_root_folder_id=settings.google.drive_root_folder_id,
    )


def get_drive_upload_service() -> DriveUploadService:
    """Build the evidence upload service."""
    return DriveUploadService(
        get_drive_client(), max_bytes=_settings().max_upload_bytes
    )


__all__ = [
    "get_drive_client",
    "get_drive_upload_service",
    "get_google_oauth_client",
    "get_google_token_refresher",
    "get_mycase_client",
    "get_mycase_oauth_client",
    "get_mycase_token_refresher",
    "get_oauth_clients",
    "get_oauth_state_encoder",
    "get_token_cipher_service",
    "get_token_store",
]
