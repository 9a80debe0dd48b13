"""Schemas related to OAuth flows and the caller's session."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class OAuthCallbackPayload(BaseModel):
    """Payload sent to complete the OAuth callback exchange."""

    code: Optional[str] = Field(None, description="Authorization code from the authority.")
    state: Optional[str] = Field(None, description="Opaque state issued when starting OAuth.")
    error: Optional[str] = Field(None, description="Error reported by the authority.")


class SessionContext(BaseModel):
    """Staff identity supplied by the hosting environment's authentication."""

    user_id: str


class ConnectionStatus(BaseModel):
    integration: str
    subject: str
    connected: bool
    expires_at: Optional[datetime] = None
    scope: Optional[str] = None


__all__ = ["ConnectionStatus", "OAuthCallbackPayload", "SessionContext"]
