"""Resolve a site URL, library name and folder path into Graph identifiers."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING
from urllib.parse import quote, urlparse

from sharepoint_uploader.exceptions import ConfigurationError, ResolutionFailure
from sharepoint_uploader.graph.errors import (
    GraphApiError,
    describe_failure,
    is_name_conflict,
)
from sharepoint_uploader.graph.models import (
    CONFLICT_FAIL,
    FIELD_CONFLICT_BEHAVIOR,
    FIELD_FOLDER,
    FIELD_NAME,
    ODATA_NEXT_LINK,
    ODATA_VALUE,
    ROOT_ITEM_ID,
    Drive,
    DriveItem,
    ResolvedTarget,
    Site,
)

if TYPE_CHECKING:
    from sharepoint_uploader.graph.client import GraphClient

logger = logging.getLogger(__name__)

HTTP_NOT_FOUND = 404


def site_path_key(site_url: str) -> str:
    """Build the Graph site key ``{host}:/{path}`` from a site URL.

    Args:
        site_url: Full site URL, e.g. ``https://contoso.sharepoint.com/sites/team``.

    Returns:
        Site key such as ``contoso.sharepoint.com:/sites/team``, or the bare
        host name for the tenant root site.

    Raises:
        ConfigurationError: If the URL has no host name.
    """
    parsed = urlparse(site_url)
    if not parsed.hostname:
        raise ConfigurationError(f"Site URL has no host name: {site_url!r}")
    path = parsed.path.strip("/")
    if not path:
        return parsed.hostname
    return f"{parsed.hostname}:/{path}"


def split_folder_path(folder_path: str) -> list[str]:
    """Split a folder path on '/' and drop empty segments."""
    return [segment for segment in folder_path.split("/") if segment]


class ResourceResolver:
    """Maps human-facing site, library and folder names onto Graph ids."""

    def __init__(self, graph_client: GraphClient, log: logging.Logger | None = None) -> None:
        """Initialise the resolver.

        Args:
            graph_client: Authenticated GraphClient instance.
            log: Logger to report through; defaults to the module logger.
        """
        self._graph = graph_client
        self._logger = log or logger
        self._resolved: dict[tuple[str, str, str], ResolvedTarget] = {}

    def resolve(self, site_url: str, library_name: str, folder_path: str = "") -> ResolvedTarget:
        """Resolve (and create where needed) the upload target folder.

        Results are memoized for the lifetime of this resolver.

        Args:
            site_url: Full site URL.
            library_name: Exact, case-sensitive document library name.
            folder_path: Slash-separated folder path; empty means library root.

        Returns:
            ResolvedTarget with site, drive and folder ids.

        Raises:
            ResolutionFailure: If any lookup or folder creation fails.
        """
        key = (site_url, library_name, folder_path)
        cached = self._resolved.get(key)
        if cached is not None:
            return cached

        site_id = self.resolve_site(site_url)
        drive_id = self.resolve_library(site_id, library_name)
        folder_id = self.ensure_folder(drive_id, folder_path)
        target = ResolvedTarget(site_id=site_id, drive_id=drive_id, folder_id=folder_id)
        self._resolved[key] = target
        return target

    def resolve_site(self, site_url: str) -> str:
        """Look up the id of a site from its URL.

        A missing site and a site the caller may not read are indistinguishable
        to the API, so both surface as a ResolutionFailure carrying the
        server's message.
        """
        key = site_path_key(site_url)
        self._logger.info("[resolve_site] looking up site; key:%s", key)
        try:
            raw = self._graph.get(f"/sites/{key}")
        except GraphApiError as exc:
            message = describe_failure("Site lookup", exc)
            self._logger.error("[resolve_site] %s", message)
            raise ResolutionFailure(message) from exc

        site = Site.from_json(raw)
        if not site.id:
            raise ResolutionFailure(f"Site lookup failed: response for {key} has no id")
        self._logger.info("[resolve_site] resolved site; site_id:%s", site.id)
        return site.id

    def resolve_library(self, site_id: str, library_name: str) -> str:
        """Find the drive whose name exactly matches ``library_name``.

        Matching is exact and case-sensitive. There is no partial or fuzzy
        fallback.
        """
        self._logger.info("[resolve_library] looking up library; name:%s", library_name)
        drives: list[Drive] = []
        next_path: str | None = f"/sites/{site_id}/drives"
        try:
            while next_path is not None:
                response = self._graph.get(next_path)
                drives.extend(Drive.from_json(raw) for raw in response.get(ODATA_VALUE, []))
                next_path = response.get(ODATA_NEXT_LINK)
        except GraphApiError as exc:
            message = describe_failure("Library lookup", exc)
            self._logger.error("[resolve_library] %s", message)
            raise ResolutionFailure(message) from exc

        for drive in drives:
            if drive.name == library_name and drive.id:
                self._logger.info("[resolve_library] resolved library; drive_id:%s", drive.id)
                return drive.id

        available = ", ".join(sorted(d.name for d in drives))
        raise ResolutionFailure(
            f"Library lookup failed: no library named {library_name!r} "
            f"(available: {available or 'none'})"
        )

    def ensure_folder(self, drive_id: str, folder_path: str) -> str:
        """Resolve a folder path segment by segment, creating missing folders.

        Empty segments are ignored, so ``"/a//b/"`` and ``"a/b"`` are the same
        path. An empty path is the drive root and needs no request.

        Args:
            drive_id: Drive containing the folder.
            folder_path: Slash-separated folder path.

        Returns:
            Item id of the deepest folder.

        Raises:
            ResolutionFailure: If a lookup or creation fails for any reason
                other than a concurrent creator winning the race.
        """
        parent_id = ROOT_ITEM_ID
        for name in split_folder_path(folder_path):
            existing = self._find_child(drive_id, parent_id, name)
            if existing is None:
                existing = self._create_folder(drive_id, parent_id, name)
            parent_id = existing.id
        return parent_id

    def _find_child(self, drive_id: str, parent_id: str, name: str) -> DriveItem | None:
        """Return the folder named ``name`` under ``parent_id``, or None if absent."""
        path = f"/drives/{drive_id}/items/{parent_id}:/{quote(name)}"
        try:
            raw = self._graph.get(path)
        except GraphApiError as exc:
            if exc.status_code == HTTP_NOT_FOUND:
                return None
            message = describe_failure(f"Folder lookup of {name!r}", exc)
            self._logger.error("[_find_child] %s", message)
            raise ResolutionFailure(message) from exc

        item = DriveItem.from_json(raw)
        if not item.id:
            return None
        if not item.is_folder:
            raise ResolutionFailure(
                f"Folder lookup failed: {name!r} exists but is not a folder"
            )
        return item

    def _create_folder(self, drive_id: str, parent_id: str, name: str) -> DriveItem:
        """Create ``name`` under ``parent_id`` without overwriting an existing item."""
        body = {
            FIELD_NAME: name,
            FIELD_FOLDER: {},
            FIELD_CONFLICT_BEHAVIOR: CONFLICT_FAIL,
        }
        try:
            raw = self._graph.post_json(f"/drives/{drive_id}/items/{parent_id}/children", body)
        except GraphApiError as exc:
            if not is_name_conflict(exc):
                message = describe_failure(f"Folder creation of {name!r}", exc)
                self._logger.error("[_create_folder] %s", message)
                raise ResolutionFailure(message) from exc

            # Another creator won the race; use its folder.
            self._logger.info("[_create_folder] folder created concurrently; name:%s", name)
            existing = self._find_child(drive_id, parent_id, name)
            if existing is None:
                raise ResolutionFailure(
                    f"Folder creation of {name!r} failed: name conflict reported "
                    "but the folder could not be found"
                ) from exc
            return existing

        created = DriveItem.from_json(raw)
        if not created.id:
            raise ResolutionFailure(f"Folder creation of {name!r} failed: response has no id")
        self._logger.info("[_create_folder] created folder; name:%s;item_id:%s", name, created.id)
        return created
