"""Service layer exports."""

from .drive_upload import DriveUploadService
from .token_cipher import TokenCipherService
from .token_refresher import TokenRefresher

__all__ = [
    "DriveUploadService",
    "TokenCipherService",
    "TokenRefresher",
]
