"""SharePoint uploader: credential, then target resolution, then transfer."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING

from sharepoint_uploader.auth.providers import credential_provider_from_config
from sharepoint_uploader.exceptions import ConfigurationError
from sharepoint_uploader.graph.client import GraphClient, graph_base_url
from sharepoint_uploader.graph.resolver import ResourceResolver
from sharepoint_uploader.graph.upload import DEFAULT_CHUNK_SIZE, UploadEngine

if TYPE_CHECKING:
    from collections.abc import Callable

    from sharepoint_uploader.auth.providers import CredentialProvider
    from sharepoint_uploader.config import UploaderConfig
    from sharepoint_uploader.graph.models import UploadResult

logger = logging.getLogger(__name__)


class SharePointUploader:
    """Uploads one local file into a configured document library folder."""

    def __init__(
        self,
        credential: CredentialProvider,
        site_url: str,
        library_name: str,
        folder_path: str = "",
        graph_client: GraphClient | None = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        progress_callback: Callable[[int, int], None] | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        """Initialise the uploader.

        Args:
            credential: Provider of bearer tokens.
            site_url: Full SharePoint site URL.
            library_name: Exact document library name.
            folder_path: Slash-separated folder inside the library; empty
                means the library root.
            graph_client: Client to use; built from ``credential`` if None.
            chunk_size: Upload session chunk size in bytes.
            progress_callback: Called with (bytes_sent, total_bytes).
            log: Logger injected into every component.
        """
        self._credential = credential
        self._site_url = site_url
        self._library_name = library_name
        self._folder_path = folder_path
        self._logger = log or logger
        self._graph = graph_client or GraphClient(credential, log=log)
        self._resolver = ResourceResolver(self._graph, log=log)
        self._engine = UploadEngine(
            self._graph,
            chunk_size=chunk_size,
            progress_callback=progress_callback,
            log=log,
        )

    @property
    def folder_path(self) -> str:
        return self._folder_path

    @property
    def graph_client(self) -> GraphClient:
        return self._graph

    def upload(self, local_file_path: str | os.PathLike[str]) -> UploadResult:
        """Upload a local file and return where it ended up.

        Steps run strictly in order: input check, token acquisition, target
        resolution, transfer.

        Args:
            local_file_path: Path of the file to upload.

        Returns:
            UploadResult with the web URL of the uploaded item.

        Raises:
            ConfigurationError: If the file does not exist or is not a regular file.
            AuthFailure: If no token can be acquired.
            ResolutionFailure: If the site, library or folder cannot be resolved.
            UploadFailure: If the transfer fails.
        """
        path = Path(local_file_path)
        if not path.exists():
            raise ConfigurationError(f"Local file not found: {path}")
        if not path.is_file():
            raise ConfigurationError(f"Local path is not a regular file: {path}")

        self._logger.info(
            "[upload] starting upload; file:%s;site:%s;library:%s;folder:%s",
            path,
            self._site_url,
            self._library_name,
            self._folder_path or "/",
        )
        self._credential.acquire()
        target = self._resolver.resolve(self._site_url, self._library_name, self._folder_path)
        self._logger.info(
            "[upload] resolved target; site_id:%s;drive_id:%s;folder_id:%s",
            target.site_id,
            target.drive_id,
            target.folder_id,
        )
        result = self._engine.upload(target.drive_id, target.folder_id, path)
        self._logger.info("[upload] file uploaded; web_url:%s", result.web_url)
        return result


def uploader_from_config(
    config: UploaderConfig,
    folder_path: str | None = None,
    progress_callback: Callable[[int, int], None] | None = None,
    log: logging.Logger | None = None,
) -> SharePointUploader:
    """Construct a SharePointUploader from application configuration.

    The configuration is validated first, so an invalid setup fails before
    any network call.

    Args:
        config: Application configuration instance.
        folder_path: Overrides ``config.folder_path`` when given.
        progress_callback: Called with (bytes_sent, total_bytes).
        log: Logger injected into every component.

    Returns:
        Configured SharePointUploader instance.

    Raises:
        ConfigurationError: If the configuration is invalid.
    """
    config.validate()
    credential = credential_provider_from_config(config, log=log)
    client = GraphClient(credential, base_url=graph_base_url(config.graph_endpoint), log=log)
    return SharePointUploader(
        credential=credential,
        site_url=config.site_url,
        library_name=config.library_name,
        folder_path=config.folder_path if folder_path is None else folder_path,
        graph_client=client,
        chunk_size=config.chunk_size,
        progress_callback=progress_callback,
        log=log,
    )
