"""Upload a local file into a drive folder, directly or through an upload session."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING, Any, BinaryIO
from urllib.parse import quote

from sharepoint_uploader.exceptions import UploadFailure
from sharepoint_uploader.graph.errors import GraphApiError, describe_failure
from sharepoint_uploader.graph.models import (
    CONFLICT_REPLACE,
    FIELD_CONFLICT_BEHAVIOR,
    FIELD_EXPIRATION,
    FIELD_UPLOAD_URL,
    DriveItem,
    UploadResult,
    UploadSession,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from sharepoint_uploader.graph.client import GraphClient

logger = logging.getLogger(__name__)

# Files below this size go up in a single request.
SMALL_FILE_THRESHOLD = 4 * 1024 * 1024

# Upload session chunks must be a multiple of this size (except the last).
CHUNK_ALIGNMENT = 320 * 1024
DEFAULT_CHUNK_SIZE = CHUNK_ALIGNMENT

# Status codes of the final chunk; intermediate chunks answer 202.
_UPLOAD_COMPLETE_STATUSES = frozenset({200, 201})


def validate_chunk_size(chunk_size: int) -> None:
    """Raise ValueError unless ``chunk_size`` is a positive multiple of 320 KiB."""
    if chunk_size <= 0 or chunk_size % CHUNK_ALIGNMENT != 0:
        raise ValueError(
            f"chunk size must be a positive multiple of {CHUNK_ALIGNMENT} bytes; got {chunk_size}"
        )


class UploadEngine:
    """Transfers one local file into a resolved drive folder."""

    def __init__(
        self,
        graph_client: GraphClient,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        progress_callback: Callable[[int, int], None] | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        """Initialise the upload engine.

        Args:
            graph_client: Authenticated GraphClient instance.
            chunk_size: Bytes per upload session chunk; a multiple of 320 KiB.
            progress_callback: Called with (bytes_sent, total_bytes) as data is
                accepted by the server.
            log: Logger to report through; defaults to the module logger.

        Raises:
            ValueError: If ``chunk_size`` is not aligned to 320 KiB.
        """
        validate_chunk_size(chunk_size)
        self._graph = graph_client
        self._chunk_size = chunk_size
        self._progress_callback = progress_callback
        self._logger = log or logger

    def upload(
        self,
        drive_id: str,
        folder_id: str,
        local_file_path: str | os.PathLike[str],
    ) -> UploadResult:
        """Upload a file into a folder, replacing any item with the same name.

        Files smaller than 4 MiB are sent in one request; larger files go
        through a resumable upload session.

        Args:
            drive_id: Drive containing the target folder.
            folder_id: Item id of the target folder.
            local_file_path: Path of the file to upload.

        Returns:
            UploadResult describing the uploaded item.

        Raises:
            UploadFailure: If the transfer fails or the response has no webUrl.
        """
        path = Path(local_file_path)
        try:
            size = path.stat().st_size
        except OSError as exc:
            raise UploadFailure(describe_failure(f"Reading {path}", exc)) from exc

        chunked = size >= SMALL_FILE_THRESHOLD
        item_path = f"/drives/{drive_id}/items/{folder_id}:/{quote(path.name)}:"
        self._logger.info(
            "[upload] uploading file; name:%s;size:%d;chunked:%s", path.name, size, chunked
        )

        try:
            if chunked:
                raw = self._upload_large(item_path, path, size)
            else:
                raw = self._upload_small(item_path, path, size)
        except (GraphApiError, OSError) as exc:
            message = describe_failure(f"Upload of {path.name}", exc)
            self._logger.error("[upload] %s", message)
            raise UploadFailure(message) from exc

        item = DriveItem.from_json(raw)
        if not item.web_url:
            raise UploadFailure(
                f"Upload of {path.name} failed: response did not include a webUrl"
            )
        self._logger.info("[upload] upload complete; web_url:%s", item.web_url)
        return UploadResult(
            web_url=item.web_url,
            item_id=item.id,
            name=item.name or path.name,
            size=size,
            chunked=chunked,
        )

    def _upload_small(self, item_path: str, path: Path, size: int) -> dict[str, Any]:
        """Replace the item's content with the whole file in one PUT."""
        content = path.read_bytes()
        raw = self._graph.put_content(f"{item_path}/content", content)
        self._report_progress(size, size)
        return raw

    def _upload_large(self, item_path: str, path: Path, size: int) -> dict[str, Any]:
        """Send the file through an upload session, one chunk at a time, in order."""
        session = self.create_session(item_path, size)
        with path.open("rb") as stream:
            return self.send_chunks(session, stream)

    def create_session(self, item_path: str, size: int) -> UploadSession:
        """Request an upload session that replaces any existing item.

        Raises:
            UploadFailure: If the response carries no upload URL.
        """
        body = {"item": {FIELD_CONFLICT_BEHAVIOR: CONFLICT_REPLACE}}
        raw = self._graph.post_json(f"{item_path}/createUploadSession", body)
        upload_url = raw.get(FIELD_UPLOAD_URL)
        if not upload_url:
            raise UploadFailure("Upload session creation failed: response has no uploadUrl")
        self._logger.info(
            "[create_session] upload session created; expires:%s",
            raw.get(FIELD_EXPIRATION, ""),
        )
        return UploadSession(
            upload_url=upload_url,
            chunk_size=self._chunk_size,
            total_bytes=size,
            expiration=raw.get(FIELD_EXPIRATION, ""),
        )

    def send_chunks(self, session: UploadSession, stream: BinaryIO) -> dict[str, Any]:
        """PUT sequential, non-overlapping chunks until the session is complete.

        Args:
            session: Session to upload into; ``bytes_sent`` is advanced in place.
            stream: Binary stream positioned at ``session.bytes_sent``.

        Returns:
            The drive item returned with the final chunk.

        Raises:
            UploadFailure: If the stream ends early or the final chunk is not
                acknowledged as complete.
        """
        status = 0
        raw: dict[str, Any] = {}
        while not session.complete:
            remaining = session.total_bytes - session.bytes_sent
            chunk = stream.read(min(session.chunk_size, remaining))
            if not chunk:
                raise UploadFailure(
                    f"Upload failed: file ended after {session.bytes_sent} of "
                    f"{session.total_bytes} bytes"
                )
            status, raw = self._graph.put_chunk(
                session.upload_url, chunk, session.bytes_sent, session.total_bytes
            )
            session.bytes_sent += len(chunk)
            self._logger.debug(
                "[send_chunks] chunk accepted; status:%d;bytes_sent:%d;total:%d",
                status,
                session.bytes_sent,
                session.total_bytes,
            )
            self._report_progress(session.bytes_sent, session.total_bytes)

        if status not in _UPLOAD_COMPLETE_STATUSES:
            raise UploadFailure(
                f"Upload failed: final chunk answered HTTP {status}; the upload did not complete"
            )
        return raw

    def _report_progress(self, sent: int, total: int) -> None:
        if self._progress_callback is not None:
            self._progress_callback(sent, total)
