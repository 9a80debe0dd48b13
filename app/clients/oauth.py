"""
OAuth authority clients.

These helpers build authorization URLs, exchange authorization codes and
refresh tokens against the MyCase and Google token endpoints, and sign the
state value that carries the subject across the browser redirect.
"""

from __future__ import annotations

import base64
import binascii
import hmac
import json
import logging
from hashlib import sha256
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx

from app.core.config import GoogleSettings, MyCaseSettings
from app.core.errors import InvalidStateError, OAuthTokenExchangeError
from app.models.oauth import Integration, TokenGrant

logger = logging.getLogger(__name__)


class OAuthStateEncoder:
    """Encode and decode OAuth state values to guard against tampering."""

    _SIGNATURE_BYTES = 32

    def __init__(self, secret_key: str) -> None:
        self._secret_key = secret_key.encode("utf-8")

    def encode(self, payload: Dict[str, Any]) -> str:
        serialized = json.dumps(payload, separators=(",", ":"), sort_keys=True)
        signature = hmac.new(self._secret_key, serialized.encode("utf-8"), sha256).digest()
        return base64.urlsafe_b64encode(signature + serialized.encode("utf-8")).decode("utf-8")

    def decode(self, token: Optional[str]) -> Dict[str, Any]:
        if not token:
            raise InvalidStateError("Missing OAuth state.")
        try:
            decoded = base64.urlsafe_b64decode(token.encode("utf-8"))
        except (binascii.Error, ValueError) as exc:
            raise InvalidStateError("Malformed OAuth state.") from exc

        signature, serialized = decoded[: self._SIGNATURE_BYTES], decoded[self._SIGNATURE_BYTES :]
        expected_signature = hmac.new(self._secret_key, serialized, sha256).digest()
        if not serialized or not hmac.compare_digest(signature, expected_signature):
            raise InvalidStateError("Invalid OAuth state signature.")

        try:
            payload = json.loads(serialized)
        except ValueError as exc:
            raise InvalidStateError("Malformed OAuth state payload.") from exc
        if not isinstance(payload, dict):
            raise InvalidStateError("Malformed OAuth state payload.")
        return payload


class OAuthClient:
    """Authorization-code and refresh-token grants against one authority."""

    integration: Integration

    def __init__(
        self,
        *,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        scope: str,
        authorize_url: str,
        token_url: str,
        json_body: bool = False,
        extra_authorize_params: Optional[Dict[str, str]] = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client_id = client_id
        self._client_secret = client_secret
        self._redirect_uri = redirect_uri
        self._scope = scope
        self._authorize_url = authorize_url
        self.token_url = token_url
        self._json_body = json_body
        self._extra_authorize_params = dict(extra_authorize_params or {})
        self._timeout = timeout
        self._transport = transport

    def build_authorization_url(self, state: str) -> str:
        """Construct the authority's consent URL."""
        params = {
            "response_type": "code",
            "client_id": self._client_id,
            "redirect_uri": self._redirect_uri,
            "scope": self._scope,
            **self._extra_authorize_params,
            "state": state,
        }
        return f"{self._authorize_url}?{urlencode(params)}"

    async def exchange_authorization_code(self, code: str) -> TokenGrant:
        """Exchange an authorization code for an access/refresh token pair."""
        grant = await self._request_token(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self._redirect_uri,
            }
        )
        if not grant.refresh_token:
            raise OAuthTokenExchangeError(
                f"{self.integration.value} did not issue a refresh token."
            )
        return grant

    async def refresh_token(self, refresh_token: str) -> TokenGrant:
        """Mint a new access token from a stored refresh token."""
        return await self._request_token(
            {"grant_type": "refresh_token", "refresh_token": refresh_token}
        )

    async def _request_token(self, payload: Dict[str, str]) -> TokenGrant:
        body = {
            **payload,
            "client_id": self._client_id,
            "client_secret": self._client_secret,
        }
        request_kwargs: Dict[str, Any] = {"json": body} if self._json_body else {"data": body}

        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.post(
                    self.token_url,
                    headers={"Accept": "application/json"},
                    **request_kwargs,
                )
        except httpx.HTTPError as exc:
            raise OAuthTokenExchangeError(
                f"Token endpoint unreachable: {exc}"
            ) from exc

        if response.status_code != httpx.codes.OK:
            logger.warning(
                "%s token endpoint rejected %s grant with status %s",
                self.integration.value,
                payload["grant_type"],
                response.status_code,
            )
            raise OAuthTokenExchangeError(response.text)

        try:
            token_payload = response.json()
        except ValueError as exc:
            raise OAuthTokenExchangeError("Token endpoint returned invalid JSON.") from exc
        if not isinstance(token_payload, dict):
            raise OAuthTokenExchangeError("Token endpoint returned a non-object payload.")

        access_token = token_payload.get("access_token")
        expires_in = token_payload.get("expires_in")
        if not access_token or not expires_in:
            raise OAuthTokenExchangeError(
                f"Incomplete token payload returned from {self.integration.value}."
            )

        try:
            return TokenGrant(
                access_token=access_token,
                refresh_token=token_payload.get("refresh_token"),
                expires_in=int(expires_in),
                scope=token_payload.get("scope"),
            )
        except (TypeError, ValueError) as exc:
            raise OAuthTokenExchangeError(
                f"Malformed token payload returned from {self.integration.value}."
            ) from exc


class MyCaseOAuthClient(OAuthClient):
    """MyCase's authority, which expects JSON token requests."""

    integration = Integration.MYCASE

    def __init__(
        self,
        settings: MyCaseSettings,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(
            client_id=settings.client_id,
            client_secret=settings.client_secret,
            redirect_uri=str(settings.redirect_uri),
            scope=settings.scope,
            authorize_url=settings.authorize_url,
            token_url=settings.token_url,
            json_body=True,
            timeout=timeout,
            transport=transport,
        )


class GoogleOAuthClient(OAuthClient):
    """Google's authority; offline access so a refresh token is issued."""

    integration = Integration.GOOGLE

    AUTH_BASE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
    TOKEN_URL = "https://oauth2.googleapis.com/token"

    def __init__(
        self,
        settings: GoogleSettings,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(
            client_id=settings.client_id,
            client_secret=settings.client_secret,
            redirect_uri=str(settings.redirect_uri),
            scope=" ".join(settings.scope_list),
            authorize_url=self.AUTH_BASE_URL,
            token_url=self.TOKEN_URL,
            extra_authorize_params={
                "access_type": "offline",
                "include_granted_scopes": "true",
                "prompt": "consent",
            },
            timeout=timeout,
            transport=transport,
        )


__all__ = [
    "GoogleOAuthClient",
    "MyCaseOAuthClient",
    "OAuthClient",
    "OAuthStateEncoder",
]
