"""Google Drive client wrapper."""

from __future__ import annotations

import asyncio
import io
import logging
from typing import Any, Callable, Dict, List, Optional, TYPE_CHECKING

from google.auth.exceptions import RefreshError
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaIoBaseUpload

from app.core.errors import IntegrationAPIError, UnauthorizedError
from app.models.oauth import Integration
from app.schemas.drive import DriveFile, DriveFolder

if TYPE_CHECKING:  # pragma: no cover - type hints only
    from app.services.token_refresher import TokenRefresher

logger = logging.getLogger(__name__)

_FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"


def _quote(value: str) -> str:
    """Quote a value for a Drive search query."""
    escaped = value.replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


def build_drive_service(credentials: Credentials) -> Any:
    return build("drive", "v3", credentials=credentials, cache_discovery=False)


class GoogleDriveClient:
    """Browse folders and upload evidence files in a staff user's Drive."""

    def __init__(
        self,
        token_refresher: "TokenRefresher",
        drive_root_folder_id: str | None = None,
        *,
        service_factory: Callable[[Credentials], Any] = build_drive_service,
    ) -> None:
        self._tokens = token_refresher
        self._drive_root_folder_id = drive_root_folder_id
        self._service_factory = service_factory

    async def list_folders(self, *, user_id: str, parent_id: str = "root") -> List[DriveFolder]:
        """List non-trashed folders directly under ``parent_id``, ordered by name."""
        credentials = await self._credentials(user_id)
        query = (
            f"{_quote(parent_id)} in parents and mimeType='{_FOLDER_MIME_TYPE}' and trashed=false"
        )

        def _execute_list() -> List[Dict[str, Any]]:
            service = self._service_factory(credentials)
            files: List[Dict[str, Any]] = []
            page_token: Optional[str] = None
            while True:
                response = (
                    service.files()
                    .list(
                        q=query,
                        fields="files(id, name, modifiedTime, iconLink), nextPageToken",
                        pageSize=100,
                        orderBy="name",
                        pageToken=page_token,
                    )
                    .execute()
                )
                files.extend(response.get("files", []))
                page_token = response.get("nextPageToken")
                if not page_token:
                    return files

        files = await self._run(_execute_list)
        return [DriveFolder.model_validate(item) for item in files]

    async def upload_file(
        self,
        *,
        user_id: str,
        file_name: str,
        content: bytes,
        mime_type: str,
        folder_id: Optional[str] = None,
    ) -> DriveFile:
        """Multipart-upload a file and return its Drive metadata."""
        credentials = await self._credentials(user_id)
        target_folder = folder_id or self._drive_root_folder_id

        def _execute_upload() -> Dict[str, Any]:
            service = self._service_factory(credentials)
            file_metadata: Dict[str, Any] = {"name": file_name}
            if target_folder:
                file_metadata["parents"] = [target_folder]

            media = MediaIoBaseUpload(io.BytesIO(content), mimetype=mime_type, resumable=False)
            return (
                service.files()
                .create(
                    body=file_metadata,
                    media_body=media,
                    fields="id, name, webViewLink, mimeType",
                )
                .execute()
            )

        created = await self._run(_execute_upload)
        if not created.get("webViewLink"):
            created["webViewLink"] = f"https://drive.google.com/file/d/{created['id']}/view"
        logger.info("Uploaded %s to Drive as %s", file_name, created["id"])
        return DriveFile.model_validate(created)

    async def _credentials(self, user_id: str) -> Credentials:
        record = await self._tokens.get_fresh_token(user_id)
        # Token only: the refresher owns refreshing, google-auth must not.
        return Credentials(token=record.access_token)

    async def _run(self, func: Callable[[], Any]) -> Any:
        try:
            return await asyncio.to_thread(func)
        except RefreshError as exc:
            raise UnauthorizedError(
                "Google Drive rejected the stored authorization; please reconnect.",
                integration=Integration.GOOGLE.value,
            ) from exc
        except HttpError as exc:
            status_code = getattr(exc.resp, "status", None)
            if status_code == 401:
                raise UnauthorizedError(
                    "Google Drive rejected the stored authorization; please reconnect.",
                    integration=Integration.GOOGLE.value,
                ) from exc
            raise IntegrationAPIError(
                f"Google Drive API error: {status_code}",
                integration=Integration.GOOGLE.value,
                upstream_status=int(status_code) if status_code else None,
            ) from exc


__all__ = ["GoogleDriveClient", "build_drive_service"]
