"""Schemas for Google Drive folder browsing and uploads."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class DriveFolder(BaseModel):
    """A folder as returned by the Drive ``files.list`` endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    modified_time: Optional[str] = Field(None, alias="modifiedTime")
    icon_link: Optional[str] = Field(None, alias="iconLink")


class DriveFolderListing(BaseModel):
    folders: list[DriveFolder]
    parent_id: str


class DriveFile(BaseModel):
    """Metadata for an uploaded Drive file."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    web_view_link: Optional[str] = Field(None, alias="webViewLink")
    mime_type: Optional[str] = Field(None, alias="mimeType")


class DriveUploadResult(BaseModel):
    success: bool = True
    file: DriveFile


__all__ = [
    "DriveFile",
    "DriveFolder",
    "DriveFolderListing",
    "DriveUploadResult",
]
