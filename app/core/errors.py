"""
Error taxonomy for the integration layer and its HTTP mapping.

Integration clients never recover from these locally. Each one tells the
caller whether the integration was never authorized, whether the existing
authorization is broken and must be redone, or whether the upstream call
failed transiently.
"""

from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class IntegrationError(Exception):
    """Base class for integration failures surfaced to callers."""

    status_code: int = HTTPStatus.BAD_GATEWAY
    reason: str = "integration_error"

    def __init__(self, message: str, *, integration: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.integration = integration


class NotConnectedError(IntegrationError):
    """No token record exists for the subject; the flow was never completed."""

    status_code = HTTPStatus.UNAUTHORIZED
    reason = "not_connected"


class RefreshFailedError(IntegrationError):
    """The authority rejected the refresh exchange; re-authorization required."""

    status_code = HTTPStatus.UNAUTHORIZED
    reason = "reauthorize"

    def __init__(
        self,
        message: str,
        *,
        integration: Optional[str] = None,
        detail: Optional[str] = None,
    ) -> None:
        super().__init__(message, integration=integration)
        self.detail = detail


class UnauthorizedError(IntegrationError):
    """The remote API rejected a nominally fresh access token."""

    status_code = HTTPStatus.UNAUTHORIZED
    reason = "reauthorize"


class InvalidStateError(IntegrationError):
    """The OAuth callback state is missing, tampered with, or expired."""

    status_code = HTTPStatus.BAD_REQUEST
    reason = "invalid_state"


class IntegrationAPIError(IntegrationError):
    """Transient upstream failure: network error or unexpected status."""

    status_code = HTTPStatus.BAD_GATEWAY
    reason = "upstream_error"

    def __init__(
        self,
        message: str,
        *,
        integration: Optional[str] = None,
        upstream_status: Optional[int] = None,
    ) -> None:
        super().__init__(message, integration=integration)
        self.upstream_status = upstream_status


class OAuthTokenExchangeError(Exception):
    """Raised when a token endpoint rejects an exchange or returns junk."""


_REAUTHORIZE_ERRORS = (NotConnectedError, RefreshFailedError, UnauthorizedError)


def authorization_path(integration: Optional[str]) -> Optional[str]:
    """Path of the endpoint that starts the authorization flow."""
    if not integration:
        return None
    return f"/api/auth/{integration}/authorize"


async def _integration_error_handler(
    request: Request, exc: IntegrationError
) -> JSONResponse:
    content: dict = {"error": exc.message, "reason": exc.reason}
    if isinstance(exc, _REAUTHORIZE_ERRORS):
        content["needs_oauth"] = True
        content["oauth_url"] = authorization_path(exc.integration)
    if isinstance(exc, IntegrationAPIError):
        logger.warning(
            "Upstream %s call failed for %s: %s",
            exc.integration,
            request.url.path,
            exc.message,
        )
    return JSONResponse(status_code=int(exc.status_code), content=content)


def register_exception_handlers(app: FastAPI) -> None:
    """Map the integration error taxonomy onto HTTP responses."""
    app.add_exception_handler(IntegrationError, _integration_error_handler)  # type: ignore[arg-type]


__all__ = [
    "IntegrationAPIError",
    "IntegrationError",
    "InvalidStateError",
    "NotConnectedError",
    "OAuthTokenExchangeError",
    "RefreshFailedError",
    "UnauthorizedError",
    "authorization_path",
    "register_exception_handlers",
]
