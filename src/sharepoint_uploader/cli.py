"""Command-line entry point: ``sharepoint-upload FILE``."""

from __future__ import annotations

import argparse
import dataclasses
import logging
import sys
from typing import TYPE_CHECKING

from sharepoint_uploader import __version__
from sharepoint_uploader.config import AuthMode, load_config, load_config_file
from sharepoint_uploader.exceptions import UploaderError
from sharepoint_uploader.logging_config import configure_logging
from sharepoint_uploader.orchestration.uploader import uploader_from_config

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sharepoint_uploader.config import UploaderConfig

logger = logging.getLogger("sharepoint_uploader.cli")

EXIT_SUCCESS = 0
EXIT_FAILURE = 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sharepoint-upload",
        description="Upload a local file to a SharePoint document library.",
    )
    parser.add_argument("file", help="local file to upload")
    parser.add_argument(
        "--config",
        metavar="PATH",
        help="JSON configuration file; SPU_* environment variables are used when omitted",
    )
    parser.add_argument("--folder", metavar="PATH", help="target folder inside the library")
    parser.add_argument("--library", metavar="NAME", help="document library name")
    parser.add_argument(
        "--auth-mode",
        choices=[mode.value for mode in AuthMode],
        help="credential strategy (inferred from the certificate settings by default)",
    )
    parser.add_argument("--log-level", metavar="LEVEL", help="minimum log level")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def apply_overrides(config: UploaderConfig, args: argparse.Namespace) -> UploaderConfig:
    """Return ``config`` with any command-line overrides applied."""
    overrides: dict[str, object] = {}
    if args.folder is not None:
        overrides["folder_path"] = args.folder
    if args.library is not None:
        overrides["library_name"] = args.library
    if args.auth_mode is not None:
        overrides["auth_mode"] = AuthMode(args.auth_mode)
    if args.log_level is not None:
        overrides["log_level"] = args.log_level
    return dataclasses.replace(config, **overrides) if overrides else config


def main(argv: Sequence[str] | None = None) -> int:
    """Run one upload and return the process exit code.

    Returns:
        0 on success, 1 on any configuration, authentication, resolution or
        upload failure.
    """
    args = build_parser().parse_args(argv)

    try:
        config = load_config_file(args.config) if args.config else load_config()
        config = apply_overrides(config, args)
    except UploaderError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_FAILURE

    configure_logging(config.log_level, config.log_dir, config.retained_log_files)
    try:
        uploader = uploader_from_config(config)
        result = uploader.upload(args.file)
    except UploaderError as exc:
        logger.error("[main] upload failed; error:%s", exc)
        return EXIT_FAILURE

    print(result.web_url)
    return EXIT_SUCCESS
