"""Data models for Microsoft Graph sites, drives, drive items and upload sessions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

# Graph API JSON field names
FIELD_ID = "id"
FIELD_NAME = "name"
FIELD_WEB_URL = "webUrl"
FIELD_SIZE = "size"
FIELD_FOLDER = "folder"
FIELD_UPLOAD_URL = "uploadUrl"
FIELD_EXPIRATION = "expirationDateTime"
FIELD_NEXT_EXPECTED_RANGES = "nextExpectedRanges"
FIELD_CONFLICT_BEHAVIOR = "@microsoft.graph.conflictBehavior"

# OData response keys
ODATA_NEXT_LINK = "@odata.nextLink"
ODATA_VALUE = "value"

# Conflict policies
CONFLICT_FAIL = "fail"
CONFLICT_REPLACE = "replace"

# Well-known item id of a drive's root folder
ROOT_ITEM_ID = "root"


@dataclass
class Site:
    """A SharePoint site."""

    id: str
    name: str
    web_url: str

    @classmethod
    def from_json(cls, raw: dict[str, Any]) -> Site:
        return cls(
            id=raw.get(FIELD_ID, ""),
            name=raw.get(FIELD_NAME, ""),
            web_url=raw.get(FIELD_WEB_URL, ""),
        )


@dataclass
class Drive:
    """A document library exposed as a drive."""

    id: str
    name: str
    web_url: str

    @classmethod
    def from_json(cls, raw: dict[str, Any]) -> Drive:
        return cls(
            id=raw.get(FIELD_ID, ""),
            name=raw.get(FIELD_NAME, ""),
            web_url=raw.get(FIELD_WEB_URL, ""),
        )


@dataclass
class DriveItem:
    """A file or folder within a drive."""

    id: str
    name: str
    web_url: str
    size: int
    is_folder: bool

    @classmethod
    def from_json(cls, raw: dict[str, Any]) -> DriveItem:
        return cls(
            id=raw.get(FIELD_ID, ""),
            name=raw.get(FIELD_NAME, ""),
            web_url=raw.get(FIELD_WEB_URL, ""),
            size=int(raw.get(FIELD_SIZE) or 0),
            is_folder=FIELD_FOLDER in raw,
        )


@dataclass(frozen=True)
class ResolvedTarget:
    """Opaque identifiers of the folder a file will be uploaded into."""

    site_id: str
    drive_id: str
    folder_id: str


@dataclass
class UploadSession:
    """Server-allocated session accepting sequential byte-range chunks.

    Attributes:
        upload_url: Pre-authorized, time-limited URL chunks are PUT to.
        chunk_size: Bytes per chunk; a multiple of 320 KiB.
        total_bytes: Size of the file being transferred.
        bytes_sent: Bytes acknowledged by the server so far.
        expiration: Server-reported expiry timestamp, if any.
    """

    upload_url: str
    chunk_size: int
    total_bytes: int
    bytes_sent: int = 0
    expiration: str = ""

    @property
    def complete(self) -> bool:
        return self.bytes_sent >= self.total_bytes


@dataclass(frozen=True)
class UploadResult:
    """Outcome of a successful upload."""

    web_url: str
    item_id: str
    name: str
    size: int
    chunked: bool
