"""Microsoft Graph API client authenticated through a CredentialProvider."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any
from urllib import request as urllib_request
from urllib.error import HTTPError

from sharepoint_uploader.graph.errors import GraphApiError, GraphTransportError, ODataError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sharepoint_uploader.auth.providers import CredentialProvider

logger = logging.getLogger(__name__)

DEFAULT_GRAPH_ENDPOINT = "graph.microsoft.com"


def graph_base_url(graph_endpoint: str = DEFAULT_GRAPH_ENDPOINT) -> str:
    """Return the v1.0 API base URL for a Graph endpoint host."""
    return f"https://{graph_endpoint}/v1.0"


class GraphClient:
    """Authenticated client for Microsoft Graph API."""

    def __init__(
        self,
        credential: CredentialProvider,
        base_url: str | None = None,
        scopes: Sequence[str] | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        """Initialise the client.

        Args:
            credential: Provider of bearer tokens for Graph requests.
            base_url: Graph API base URL, without a trailing slash; None uses
                the public Graph endpoint.
            scopes: Scopes to request; None uses the provider's defaults.
            log: Logger to report through; defaults to the module logger.
        """
        self._credential = credential
        self._base_url = (base_url or graph_base_url()).rstrip("/")
        self._scopes = list(scopes) if scopes is not None else None
        self._logger = log or logger

    @property
    def base_url(self) -> str:
        return self._base_url

    def _authorization(self) -> str:
        token = self._credential.acquire(self._scopes)
        return f"Bearer {token.token}"

    def get(self, path: str) -> dict[str, Any]:
        """Perform an authenticated GET request to the Graph API.

        Args:
            path: URL path relative to the base URL (must start with '/'), or
                an absolute URL such as an ``@odata.nextLink``.

        Returns:
            Parsed JSON response body as a dict.

        Raises:
            AuthFailure: If no token can be acquired.
            GraphApiError: If the API returns a non-2xx status code.
        """
        req = urllib_request.Request(
            self._url(path),
            headers={
                "Authorization": self._authorization(),
                "Accept": "application/json",
            },
            method="GET",
        )
        _, body = self._send(req)
        return body

    def post_json(self, path: str, body: dict[str, Any]) -> dict[str, Any]:
        """Perform an authenticated POST request with a JSON body.

        Args:
            path: URL path relative to the base URL (must start with '/').
            body: JSON-serializable request body.

        Returns:
            Parsed JSON response body as a dict.

        Raises:
            AuthFailure: If no token can be acquired.
            GraphApiError: If the API returns a non-2xx status code.
        """
        req = urllib_request.Request(
            self._url(path),
            data=json.dumps(body).encode("utf-8"),
            headers={
                "Authorization": self._authorization(),
                "Accept": "application/json",
                "Content-Type": "application/json",
            },
            method="POST",
        )
        _, response = self._send(req)
        return response

    def put_content(
        self,
        path: str,
        content: bytes,
        content_type: str = "application/octet-stream",
    ) -> dict[str, Any]:
        """Perform an authenticated PUT request uploading raw content.

        Args:
            path: URL path relative to the base URL (must start with '/').
            content: Raw bytes to upload.
            content_type: MIME type for the Content-Type header.

        Returns:
            Parsed JSON response body (the created or replaced drive item).

        Raises:
            AuthFailure: If no token can be acquired.
            GraphApiError: If the API returns a non-2xx status code.
        """
        req = urllib_request.Request(
            self._url(path),
            data=content,
            headers={
                "Authorization": self._authorization(),
                "Accept": "application/json",
                "Content-Type": content_type,
            },
            method="PUT",
        )
        _, response = self._send(req)
        return response

    def put_chunk(
        self,
        upload_url: str,
        chunk: bytes,
        start: int,
        total_size: int,
    ) -> tuple[int, dict[str, Any]]:
        """PUT one byte range of a file to an upload session.

        The session URL is pre-authorized, so no Authorization header is sent.

        Args:
            upload_url: Absolute upload session URL.
            chunk: Bytes of this range.
            start: Offset of the first byte of the chunk within the file.
            total_size: Size of the whole file in bytes.

        Returns:
            Tuple of (HTTP status code, parsed JSON body).

        Raises:
            GraphApiError: If the session rejects the chunk.
        """
        end = start + len(chunk) - 1
        req = urllib_request.Request(
            upload_url,
            data=chunk,
            headers={
                "Content-Length": str(len(chunk)),
                "Content-Range": f"bytes {start}-{end}/{total_size}",
            },
            method="PUT",
        )
        return self._send(req)

    def _url(self, path: str) -> str:
        if path.startswith(("https://", "http://")):
            return path
        return f"{self._base_url}{path}"

    def _send(self, req: urllib_request.Request) -> tuple[int, dict[str, Any]]:
        """Execute a request and decode its JSON body.

        Raises:
            GraphApiError: If the server answers with a non-2xx status code.
            GraphTransportError: If no response arrives or its body is not JSON.
        """
        self._logger.debug("[_send] request; method:%s;url:%s", req.get_method(), req.full_url)
        try:
            with urllib_request.urlopen(req) as resp:
                status = resp.status
                raw = resp.read()
        except HTTPError as exc:
            raise _api_error(exc) from exc
        except OSError as exc:
            # URLError, timeouts and dropped connections.
            self._logger.error(
                "[_send] request failed; method:%s;url:%s;error:%s",
                req.get_method(),
                req.full_url,
                exc,
            )
            raise GraphTransportError(f"{req.get_method()} {req.full_url}: {exc}") from exc

        if not raw:
            return status, {}
        try:
            return status, json.loads(raw)
        except ValueError as exc:
            raise GraphTransportError(
                f"{req.get_method()} {req.full_url}: response body is not JSON", status
            ) from exc


def _api_error(exc: HTTPError) -> GraphApiError:
    """Build a GraphApiError from an HTTPError, parsing a Graph error body if present."""
    raw = exc.read()
    error: ODataError | None = None
    try:
        error = ODataError.from_body(json.loads(raw))
    except ValueError:
        error = None

    message = error.message if error is not None and error.message else str(exc.reason)
    return GraphApiError(exc.code, message, error)
