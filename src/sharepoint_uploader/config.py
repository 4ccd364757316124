"""Application configuration loaded from environment variables or a JSON file."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from sharepoint_uploader.exceptions import ConfigurationError
from sharepoint_uploader.graph.client import DEFAULT_GRAPH_ENDPOINT
from sharepoint_uploader.graph.upload import DEFAULT_CHUNK_SIZE, validate_chunk_size

ENV_PREFIX = "SPU_"

DEFAULT_AUTH_RECORD_FILE = "AuthAccount.json"
DEFAULT_CONFIG_FILE = "Config.json"
DEFAULT_LOGIN_ENDPOINT = "login.microsoftonline.com"


class AuthMode(str, Enum):
    """Credential strategy used to obtain tokens."""

    CERTIFICATE = "certificate"
    INTERACTIVE = "interactive"
    CHAINED = "chained"
    CLIENT_ASSERTION = "client_assertion"


# Modes that cannot work without a certificate source.
_CERTIFICATE_MODES = frozenset({AuthMode.CERTIFICATE, AuthMode.CLIENT_ASSERTION})


@dataclass(frozen=True)
class UploaderConfig:
    """Centralized application configuration.

    Required fields have no defaults. Exactly one certificate source is used:
    ``certificate_path`` (with optional password) takes precedence over
    ``certificate_thumbprint`` with ``store_name``/``store_location``.
    """

    # Required
    site_url: str
    library_name: str
    tenant_id: str
    client_id: str

    # Target
    folder_path: str = ""

    # Authentication
    auth_mode: AuthMode | None = None
    certificate_path: str | None = None
    certificate_password: str | None = None
    certificate_thumbprint: str | None = None
    store_name: str = "My"
    store_location: str = "CurrentUser"
    auth_record_file: str = DEFAULT_AUTH_RECORD_FILE
    redirect_port: int | None = None
    login_endpoint: str = DEFAULT_LOGIN_ENDPOINT
    graph_endpoint: str = DEFAULT_GRAPH_ENDPOINT

    # Transfer
    chunk_size: int = DEFAULT_CHUNK_SIZE

    # Logging
    log_level: str = "INFO"
    log_dir: str = "Logs"
    retained_log_files: int = 10

    @property
    def effective_auth_mode(self) -> AuthMode:
        """The configured mode, or the one implied by the certificate settings."""
        if self.auth_mode is not None:
            return self.auth_mode
        if self.certificate_path or self.certificate_thumbprint:
            return AuthMode.CERTIFICATE
        return AuthMode.INTERACTIVE

    def validate(self) -> None:
        """Check every setting and report all problems at once.

        Raises:
            ConfigurationError: If any required value is missing or invalid.
        """
        problems: list[str] = []
        for name in ("site_url", "library_name", "tenant_id", "client_id"):
            if not str(getattr(self, name) or "").strip():
                problems.append(f"{name} is required")

        mode = self.effective_auth_mode
        has_certificate = bool(self.certificate_path or self.certificate_thumbprint)
        if mode in _CERTIFICATE_MODES and not has_certificate:
            problems.append(
                f"auth mode {mode.value!r} requires certificate_path or certificate_thumbprint"
            )
        if self.certificate_path and not Path(self.certificate_path).is_file():
            problems.append(f"certificate file not found: {self.certificate_path}")
        if mode in (AuthMode.INTERACTIVE, AuthMode.CHAINED) and not self.auth_record_file:
            problems.append(f"auth mode {mode.value!r} requires auth_record_file")

        try:
            validate_chunk_size(self.chunk_size)
        except ValueError as exc:
            problems.append(str(exc))
        if self.retained_log_files < 1:
            problems.append("retained_log_files must be at least 1")

        if problems:
            raise ConfigurationError("Invalid configuration: " + "; ".join(problems))


def load_config() -> UploaderConfig:
    """Construct an UploaderConfig from environment variables.

    Required environment variables:
        SPU_SITE_URL: Full SharePoint site URL.
        SPU_LIBRARY_NAME: Document library name (exact match).
        SPU_TENANT_ID: Azure AD tenant ID.
        SPU_CLIENT_ID: Azure AD application (client) ID.

    Optional environment variables:
        SPU_FOLDER_PATH, SPU_AUTH_MODE, SPU_CERTIFICATE_PATH,
        SPU_CERTIFICATE_PASSWORD, SPU_CERTIFICATE_THUMBPRINT, SPU_STORE_NAME,
        SPU_STORE_LOCATION, SPU_AUTH_RECORD_FILE, SPU_REDIRECT_PORT,
        SPU_LOGIN_ENDPOINT, SPU_GRAPH_ENDPOINT, SPU_CHUNK_SIZE, SPU_LOG_LEVEL,
        SPU_LOG_DIR, SPU_RETAINED_LOG_FILES.

    Returns:
        Configured UploaderConfig instance.

    Raises:
        ConfigurationError: If a required variable is missing or a value
            cannot be parsed.
    """
    names = {
        "site_url": "SITE_URL",
        "library_name": "LIBRARY_NAME",
        "tenant_id": "TENANT_ID",
        "client_id": "CLIENT_ID",
        "folder_path": "FOLDER_PATH",
        "auth_mode": "AUTH_MODE",
        "certificate_path": "CERTIFICATE_PATH",
        "certificate_password": "CERTIFICATE_PASSWORD",
        "certificate_thumbprint": "CERTIFICATE_THUMBPRINT",
        "store_name": "STORE_NAME",
        "store_location": "STORE_LOCATION",
        "auth_record_file": "AUTH_RECORD_FILE",
        "redirect_port": "REDIRECT_PORT",
        "login_endpoint": "LOGIN_ENDPOINT",
        "graph_endpoint": "GRAPH_ENDPOINT",
        "chunk_size": "CHUNK_SIZE",
        "log_level": "LOG_LEVEL",
        "log_dir": "LOG_DIR",
        "retained_log_files": "RETAINED_LOG_FILES",
    }
    values = {
        field: os.environ[f"{ENV_PREFIX}{suffix}"]
        for field, suffix in names.items()
        if f"{ENV_PREFIX}{suffix}" in os.environ
    }
    return _build_config(values, source="environment")


# JSON keys (lower-cased) of the "SharePoint" and "Log" sections.
_FILE_SHAREPOINT_KEYS = {
    "siteurl": "site_url",
    "libraryname": "library_name",
    "folderpath": "folder_path",
    "tenantid": "tenant_id",
    "clientid": "client_id",
    "authmode": "auth_mode",
    "certificatepath": "certificate_path",
    "certificatepassword": "certificate_password",
    "thumbprint": "certificate_thumbprint",
    "certificatethumbprint": "certificate_thumbprint",
    "storename": "store_name",
    "storelocation": "store_location",
    "authrecordfile": "auth_record_file",
    "redirectport": "redirect_port",
    "loginendpoint": "login_endpoint",
    "graphendpoint": "graph_endpoint",
    "chunksize": "chunk_size",
}
_FILE_LOG_KEYS = {
    "level": "log_level",
    "directory": "log_dir",
    "retainedfilecountlimit": "retained_log_files",
}


def load_config_file(path: str | Path = DEFAULT_CONFIG_FILE) -> UploaderConfig:
    """Construct an UploaderConfig from a JSON document.

    The document has a ``SharePoint`` section and an optional ``Log``
    section; key names are matched case-insensitively, e.g.::

        {"SharePoint": {"SiteUrl": "...", "LibraryName": "Documents", ...},
         "Log": {"Level": "Information", "RetainedFileCountLimit": 10}}

    Args:
        path: Location of the configuration file.

    Returns:
        Configured UploaderConfig instance.

    Raises:
        ConfigurationError: If the file is missing or malformed, or a
            required value is absent.
    """
    config_path = Path(path)
    try:
        document = json.loads(config_path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ConfigurationError(f"Configuration file not found: {config_path}") from exc
    except (OSError, ValueError) as exc:
        raise ConfigurationError(
            f"Configuration file could not be read: {config_path}: {exc}"
        ) from exc
    if not isinstance(document, dict):
        raise ConfigurationError(
            f"Configuration file must contain a JSON object: {config_path}"
        )

    sections = {str(k).lower(): v for k, v in document.items()}
    values: dict[str, Any] = {}
    for section, keys in (("sharepoint", _FILE_SHAREPOINT_KEYS), ("log", _FILE_LOG_KEYS)):
        raw = sections.get(section) or {}
        if not isinstance(raw, dict):
            raise ConfigurationError(f"Section {section!r} must be a JSON object: {config_path}")
        for key, value in raw.items():
            field = keys.get(str(key).lower())
            if field is not None and value is not None and value != "":
                values[field] = value
    return _build_config(values, source=str(config_path))


def _build_config(values: dict[str, Any], source: str) -> UploaderConfig:
    """Convert raw string/JSON values into an UploaderConfig."""
    required = ("site_url", "library_name", "tenant_id", "client_id")
    missing = [name for name in required if not str(values.get(name) or "").strip()]
    if missing:
        raise ConfigurationError(
            f"Missing required configuration in {source}: {', '.join(missing)}"
        )

    converted = dict(values)
    try:
        if "auth_mode" in converted:
            converted["auth_mode"] = AuthMode(str(converted["auth_mode"]).strip().lower())
        for name in ("chunk_size", "retained_log_files", "redirect_port"):
            if name in converted:
                converted[name] = int(converted[name])
    except ValueError as exc:
        raise ConfigurationError(f"Invalid configuration value in {source}: {exc}") from exc
    return UploaderConfig(**converted)
