"""
Domain models for OAuth token persistence.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Integration(str, Enum):
    """Third-party authorities this service holds credentials for."""

    MYCASE = "mycase"
    GOOGLE = "google"


# MyCase is connected once for the whole office rather than per staff user.
OFFICE_SUBJECT = "office"


class TokenGrant(BaseModel):
    """Normalized token endpoint response."""

    access_token: str
    refresh_token: Optional[str] = None
    expires_in: int
    scope: Optional[str] = None

    def expires_at(self, issued_at: datetime) -> datetime:
        """Absolute expiry derived from the server-declared lifetime."""
        return issued_at + timedelta(seconds=self.expires_in)


class TokenRecord(BaseModel):
    """One stored credential, keyed by (integration, subject)."""

    integration: Integration
    subject: str = Field(..., description="Singleton key or staff user id.")
    access_token: str
    refresh_token: str
    expires_at: datetime
    scope: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def needs_refresh(self, *, skew: timedelta, now: Optional[datetime] = None) -> bool:
        """True once ``now`` has entered the refresh window before expiry."""
        current = now or utcnow()
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return current >= expires_at - skew

    def same_credentials(self, other: "TokenRecord") -> bool:
        """Compare everything except persistence timestamps."""
        ignored = {"created_at", "updated_at"}
        return self.model_dump(exclude=ignored) == other.model_dump(exclude=ignored)

    @classmethod
    def from_grant(
        cls,
        grant: TokenGrant,
        *,
        integration: Integration,
        subject: str,
        issued_at: datetime,
        previous: Optional["TokenRecord"] = None,
    ) -> "TokenRecord":
        """Build a record from a token grant, carrying over what the grant omits."""
        refresh_token = grant.refresh_token or (previous.refresh_token if previous else None)
        if not refresh_token:
            raise ValueError("Token grant did not include a refresh token.")
        return cls(
            integration=integration,
            subject=subject,
            access_token=grant.access_token,
            refresh_token=refresh_token,
            expires_at=grant.expires_at(issued_at),
            scope=grant.scope or (previous.scope if previous else None),
            created_at=previous.created_at if previous else issued_at,
            updated_at=issued_at,
        )


__all__ = [
    "Integration",
    "OFFICE_SUBJECT",
    "TokenGrant",
    "TokenRecord",
    "utcnow",
]
