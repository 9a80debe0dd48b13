"""FastAPI dependency for injecting configuration."""

from app.core.config import AppSettings, get_settings


def get_app_settings() -> AppSettings:
    """Application settings; tests override this to tweak redirects and limits."""
    return get_settings()


__all__ = ["get_app_settings"]
