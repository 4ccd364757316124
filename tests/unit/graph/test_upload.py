"""Unit tests for graph/upload.py: direct and chunked upload paths."""

from io import BytesIO
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from sharepoint_uploader.exceptions import UploadFailure
from sharepoint_uploader.graph.errors import GraphApiError, GraphTransportError, ODataError
from sharepoint_uploader.graph.models import UploadSession
from sharepoint_uploader.graph.upload import (
    CHUNK_ALIGNMENT,
    SMALL_FILE_THRESHOLD,
    UploadEngine,
    validate_chunk_size,
)

WEB_URL = "https://contoso.sharepoint.com/sites/team/Documents/file.bin"

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _write_file(tmp_path: Path, size: int, name: str = "file.bin") -> Path:
    path = tmp_path / name
    path.write_bytes((bytes(range(251)) * (size // 251 + 1))[:size])
    return path


def _chunk_responder(final_status: int = 201, web_url: str = WEB_URL):
    """Return a put_chunk side effect answering 202 until the last byte arrives."""

    def respond(upload_url: str, chunk: bytes, start: int, total: int) -> tuple[int, dict]:
        if start + len(chunk) >= total:
            return final_status, {"id": "item-1", "name": "file.bin", "webUrl": web_url}
        return 202, {"nextExpectedRanges": [f"{start + len(chunk)}-"]}

    return respond


def _make_engine(
    chunk_size: int = CHUNK_ALIGNMENT,
) -> tuple[UploadEngine, MagicMock, MagicMock]:
    """Return (engine, mock_graph_client, mock_progress_callback)."""
    mock_graph = MagicMock()
    mock_graph.put_content.return_value = {"id": "item-1", "name": "file.bin", "webUrl": WEB_URL}
    mock_graph.post_json.return_value = {
        "uploadUrl": "https://contoso.sharepoint.com/_api/upload?session=1",
        "expirationDateTime": "2030-01-01T00:00:00Z",
    }
    mock_graph.put_chunk.side_effect = _chunk_responder()
    progress = MagicMock()
    engine = UploadEngine(mock_graph, chunk_size=chunk_size, progress_callback=progress)
    return engine, mock_graph, progress


# ---------------------------------------------------------------------------
# Chunk size validation tests
# ---------------------------------------------------------------------------


class TestValidateChunkSize:
    @pytest.mark.parametrize("size", [CHUNK_ALIGNMENT, 10 * CHUNK_ALIGNMENT])
    def test_aligned_sizes_accepted(self, size: int) -> None:
        validate_chunk_size(size)

    @pytest.mark.parametrize("size", [0, -CHUNK_ALIGNMENT, 1000, CHUNK_ALIGNMENT + 1])
    def test_unaligned_sizes_rejected(self, size: int) -> None:
        with pytest.raises(ValueError):
            validate_chunk_size(size)

    def test_engine_rejects_unaligned_size(self) -> None:
        with pytest.raises(ValueError):
            UploadEngine(MagicMock(), chunk_size=4 * 1024 * 1024 + 1)


# ---------------------------------------------------------------------------
# Path selection tests
# ---------------------------------------------------------------------------


class TestPathSelection:
    def test_just_under_threshold_uses_direct_path(self, tmp_path: Path) -> None:
        engine, mock_graph, _ = _make_engine()
        path = _write_file(tmp_path, SMALL_FILE_THRESHOLD - 1)

        result = engine.upload("d1", "f1", path)

        assert result.chunked is False
        mock_graph.put_content.assert_called_once()
        mock_graph.post_json.assert_not_called()
        mock_graph.put_chunk.assert_not_called()

    def test_exactly_threshold_uses_chunked_path(self, tmp_path: Path) -> None:
        engine, mock_graph, _ = _make_engine()
        path = _write_file(tmp_path, SMALL_FILE_THRESHOLD)

        result = engine.upload("d1", "f1", path)

        assert result.chunked is True
        mock_graph.put_content.assert_not_called()
        mock_graph.post_json.assert_called_once()


# ---------------------------------------------------------------------------
# Direct path tests
# ---------------------------------------------------------------------------


class TestDirectUpload:
    def test_puts_content_addressed_by_name(self, tmp_path: Path) -> None:
        engine, mock_graph, progress = _make_engine()
        path = _write_file(tmp_path, 1234, name="q3 notes.txt")

        result = engine.upload("d1", "f1", path)

        mock_graph.put_content.assert_called_once_with(
            "/drives/d1/items/f1:/q3%20notes.txt:/content", path.read_bytes()
        )
        assert result.web_url == WEB_URL
        assert result.size == 1234
        progress.assert_called_once_with(1234, 1234)

    def test_empty_file_uses_direct_path(self, tmp_path: Path) -> None:
        engine, mock_graph, _ = _make_engine()
        path = _write_file(tmp_path, 0)

        engine.upload("d1", "root", path)

        mock_graph.put_content.assert_called_once_with(
            "/drives/d1/items/root:/file.bin:/content", b""
        )

    def test_missing_web_url_is_upload_failure(self, tmp_path: Path) -> None:
        engine, mock_graph, _ = _make_engine()
        mock_graph.put_content.return_value = {"id": "item-1"}

        with pytest.raises(UploadFailure, match="webUrl"):
            engine.upload("d1", "f1", _write_file(tmp_path, 10))

    def test_graph_error_is_translated(self, tmp_path: Path) -> None:
        engine, mock_graph, _ = _make_engine()
        mock_graph.put_content.side_effect = GraphApiError(
            507, "Quota exceeded", ODataError("quotaLimitReached", "Quota exceeded")
        )

        with pytest.raises(UploadFailure) as exc_info:
            engine.upload("d1", "f1", _write_file(tmp_path, 10))

        message = str(exc_info.value)
        assert message.startswith("Upload of file.bin failed: HTTP 507; ")
        assert "quotaLimitReached" in message

    def test_unreadable_answer_is_upload_failure(self, tmp_path: Path) -> None:
        engine, mock_graph, _ = _make_engine()
        mock_graph.put_content.side_effect = GraphTransportError(
            "PUT content: response body is not JSON", 200
        )

        with pytest.raises(UploadFailure, match="not JSON"):
            engine.upload("d1", "f1", _write_file(tmp_path, 10))

    def test_missing_local_file_is_upload_failure(self, tmp_path: Path) -> None:
        engine, mock_graph, _ = _make_engine()

        with pytest.raises(UploadFailure):
            engine.upload("d1", "f1", tmp_path / "absent.bin")
        mock_graph.put_content.assert_not_called()


# ---------------------------------------------------------------------------
# Chunked path tests
# ---------------------------------------------------------------------------


class TestChunkedUpload:
    def test_session_requested_with_replace_policy(self, tmp_path: Path) -> None:
        engine, mock_graph, _ = _make_engine()

        engine.upload("d1", "f1", _write_file(tmp_path, SMALL_FILE_THRESHOLD + 5))

        mock_graph.post_json.assert_called_once_with(
            "/drives/d1/items/f1:/file.bin:/createUploadSession",
            {"item": {"@microsoft.graph.conflictBehavior": "replace"}},
        )

    def test_chunk_ranges_contiguous_and_cover_file_once(self, tmp_path: Path) -> None:
        engine, mock_graph, _ = _make_engine()
        size = 5 * 1024 * 1024 + 12345
        path = _write_file(tmp_path, size)

        result = engine.upload("d1", "f1", path)

        calls = [c.args for c in mock_graph.put_chunk.call_args_list]
        offsets = [start for _, _, start, _ in calls]
        lengths = [len(chunk) for _, chunk, _, _ in calls]
        assert offsets[0] == 0
        for previous, length, current in zip(offsets, lengths, offsets[1:]):
            assert current == previous + length
        assert sum(lengths) == size
        assert all(total == size for _, _, _, total in calls)
        assert all(length == CHUNK_ALIGNMENT for length in lengths[:-1])
        assert b"".join(chunk for _, chunk, _, _ in calls) == path.read_bytes()
        assert result.web_url == WEB_URL

    def test_progress_reported_per_chunk(self, tmp_path: Path) -> None:
        engine, _, progress = _make_engine(chunk_size=4 * CHUNK_ALIGNMENT)
        size = SMALL_FILE_THRESHOLD + 1

        engine.upload("d1", "f1", _write_file(tmp_path, size))

        reported = [c.args for c in progress.call_args_list]
        assert reported[-1] == (size, size)
        assert [sent for sent, _ in reported] == sorted(sent for sent, _ in reported)

    def test_session_without_upload_url_fails_fast(self, tmp_path: Path) -> None:
        engine, mock_graph, _ = _make_engine()
        mock_graph.post_json.return_value = {"expirationDateTime": "2030-01-01T00:00:00Z"}

        with pytest.raises(UploadFailure, match="uploadUrl"):
            engine.upload("d1", "f1", _write_file(tmp_path, SMALL_FILE_THRESHOLD))
        mock_graph.put_chunk.assert_not_called()

    def test_final_chunk_without_web_url_is_upload_failure(self, tmp_path: Path) -> None:
        engine, mock_graph, _ = _make_engine()
        mock_graph.put_chunk.side_effect = _chunk_responder(web_url="")

        with pytest.raises(UploadFailure, match="webUrl"):
            engine.upload("d1", "f1", _write_file(tmp_path, SMALL_FILE_THRESHOLD))

    def test_final_chunk_not_acknowledged_is_upload_failure(self, tmp_path: Path) -> None:
        engine, mock_graph, _ = _make_engine()
        mock_graph.put_chunk.side_effect = _chunk_responder(final_status=202)

        with pytest.raises(UploadFailure, match="did not complete"):
            engine.upload("d1", "f1", _write_file(tmp_path, SMALL_FILE_THRESHOLD))

    def test_chunk_rejection_aborts_without_retry(self, tmp_path: Path) -> None:
        engine, mock_graph, _ = _make_engine()
        mock_graph.put_chunk.side_effect = GraphApiError(416, "Requested range not satisfiable")

        with pytest.raises(UploadFailure, match="^Upload of file.bin failed: "):
            engine.upload("d1", "f1", _write_file(tmp_path, SMALL_FILE_THRESHOLD))
        assert mock_graph.put_chunk.call_count == 1


class TestSendChunks:
    def test_short_stream_is_upload_failure(self) -> None:
        engine, _, _ = _make_engine()
        session = UploadSession(upload_url="https://u", chunk_size=CHUNK_ALIGNMENT, total_bytes=100)

        with pytest.raises(UploadFailure, match="ended after 40 of 100"):
            engine.send_chunks(session, BytesIO(b"x" * 40))
