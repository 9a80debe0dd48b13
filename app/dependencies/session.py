"""
Session dependency: who is calling.

The hosting environment authenticates staff before requests reach this
service and forwards the user id in a trusted header. Identity is never
recovered by decoding bearer tokens here.
"""

from fastapi import Depends, HTTPException, Request, status

from app.core.config import AppSettings
from app.schemas import SessionContext

from .config import get_app_settings


def get_session_context(
    request: Request,
    settings: AppSettings = Depends(get_app_settings),
) -> SessionContext:
    """FastAPI dependency returning the authenticated staff user."""
    user_id = request.headers.get(settings.session.user_header, "").strip()
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    return SessionContext(user_id=user_id)


__all__ = ["get_session_context"]
