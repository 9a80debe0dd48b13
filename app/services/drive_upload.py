"""
Business logic for attaching evidence files to Google Drive.
"""

from __future__ import annotations

from typing import Optional

from fastapi import HTTPException, UploadFile, status

from app.clients import GoogleDriveClient
from app.schemas import DriveUploadResult

_DEFAULT_MIME_TYPE = "application/octet-stream"


class DriveUploadService:
    """Validate an uploaded evidence file and hand it to Drive."""

    def __init__(self, drive_client: GoogleDriveClient, *, max_bytes: int) -> None:
        self._drive = drive_client
        self._max_bytes = max_bytes

    async def upload(
        self,
        *,
        user_id: str,
        upload: UploadFile,
        file_name: Optional[str] = None,
        folder_id: Optional[str] = None,
    ) -> DriveUploadResult:
        name = (file_name or upload.filename or "").strip()
        if not name:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="No file name provided.",
            )

        # One byte past the limit is enough to know the file is too large.
        payload = await upload.read(self._max_bytes + 1)
        if not payload:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="No file provided.",
            )

        if len(payload) > self._max_bytes:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=(
                    f"File {name} exceeds "
                    f"{self._max_bytes // (1024 * 1024)}MB limit."
                ),
            )

        uploaded = await self._drive.upload_file(
            user_id=user_id,
            file_name=name,
            content=payload,
            mime_type=upload.content_type or _DEFAULT_MIME_TYPE,
            folder_id=folder_id or None,
        )
        return DriveUploadResult(file=uploaded)


__all__ = ["DriveUploadService"]
