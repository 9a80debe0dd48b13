"""Expose dependency helpers for FastAPI routers."""

from .clients import (
    get_drive_client,
    get_drive_upload_service,
    get_google_oauth_client,
    get_google_token_refresher,
    get_mycase_client,
    get_mycase_oauth_client,
    get_mycase_token_refresher,
    get_oauth_clients,
    get_oauth_state_encoder,
    get_token_cipher_service,
    get_token_store,
)
from .config import get_app_settings
from .session import get_session_context

__all__ = [
    "get_app_settings",
    "get_drive_client",
    "get_drive_upload_service",
    "get_google_oauth_client",
    "get_google_token_refresher",
    "get_mycase_client",
    "get_mycase_oauth_client",
    "get_mycase_token_refresher",
    "get_oauth_clients",
    "get_oauth_state_encoder",
    "get_session_context",
    "get_token_cipher_service",
    "get_token_store",
]
