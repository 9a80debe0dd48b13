"""Public schema exports."""

from .auth import ConnectionStatus, OAuthCallbackPayload, SessionContext
from .drive import (
    DriveFile,
    DriveFolder,
    DriveFolderListing,
    DriveUploadResult,
)
from .mycase import CaseSummary, CaseSummaryList

__all__ = [
    "CaseSummary",
    "CaseSummaryList",
    "ConnectionStatus",
    "DriveFile",
    "DriveFolder",
    "DriveFolderListing",
    "DriveUploadResult",
    "OAuthCallbackPayload",
    "SessionContext",
]
