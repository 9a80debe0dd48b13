"""Expose constructed client wrappers."""

from .google_drive import GoogleDriveClient
from .mycase import MyCaseClient
from .oauth import GoogleOAuthClient, MyCaseOAuthClient, OAuthClient, OAuthStateEncoder
from .token_store import (
    DynamoDBTokenStore,
    SQLiteTokenStore,
    TokenStore,
    build_token_store,
)

__all__ = [
    "DynamoDBTokenStore",
    "GoogleDriveClient",
    "GoogleOAuthClient",
    "MyCaseClient",
    "MyCaseOAuthClient",
    "OAuthClient",
    "OAuthStateEncoder",
    "SQLiteTokenStore",
    "TokenStore",
    "build_token_store",
]
