"""
Helpers for retrieving and refreshing stored OAuth tokens.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from app.clients.oauth import OAuthClient
from app.clients.token_store import TokenStore
from app.core.errors import OAuthTokenExchangeError, RefreshFailedError
from app.models.oauth import Integration, TokenRecord, utcnow

logger = logging.getLogger(__name__)


class TokenRefresher:
    """Keeps one integration's stored tokens usable, refreshing on demand."""

    DEFAULT_SKEW = timedelta(minutes=5)

    def __init__(
        self,
        *,
        store: TokenStore,
        oauth_client: OAuthClient,
        skew: timedelta = DEFAULT_SKEW,
    ) -> None:
        self._store = store
        self._oauth = oauth_client
        self._skew = skew

    @property
    def integration(self) -> Integration:
        return self._oauth.integration

    async def load(self, subject: str) -> TokenRecord:
        """Read the stored record; ``NotConnectedError`` when there is none."""
        return await self._store.get(self.integration, subject)

    async def get_fresh_token(self, subject: str) -> TokenRecord:
        """Load the subject's record and make sure it is outside the refresh window."""
        record = await self.load(subject)
        return await self.ensure_fresh(record)

    async def ensure_fresh(self, record: TokenRecord) -> TokenRecord:
        """
        Return ``record`` untouched while it is outside the refresh window.

        Otherwise perform a single refresh exchange, persist the new record and
        return it. A rejected exchange raises ``RefreshFailedError`` and leaves
        the stored record as it was; callers must send the user back through
        the authorization flow rather than retry.
        """
        if not record.needs_refresh(skew=self._skew):
            return record

        refreshed_at = utcnow()
        try:
            grant = await self._oauth.refresh_token(record.refresh_token)
        except OAuthTokenExchangeError as exc:
            logger.warning(
                "Refreshing %s token for %s failed", self.integration.value, record.subject
            )
            raise RefreshFailedError(
                f"{self.integration.value} authorization expired; please reconnect.",
                integration=self.integration.value,
                detail=str(exc),
            ) from exc

        refreshed = TokenRecord.from_grant(
            grant,
            integration=self.integration,
            subject=record.subject,
            issued_at=refreshed_at,
            previous=record,
        )
        stored = await self._store.upsert(self.integration, record.subject, refreshed)
        logger.info(
            "Refreshed %s token for %s; expires at %s",
            self.integration.value,
            record.subject,
            stored.expires_at.isoformat(),
        )
        return stored


__all__ = ["TokenRefresher"]
