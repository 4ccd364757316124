"""Unit tests for cli.py: argument handling and exit codes."""

import json
import os
from pathlib import Path
from unittest.mock import MagicMock, patch
from urllib.error import URLError

import pytest

from sharepoint_uploader.cli import main
from sharepoint_uploader.config import AuthMode
from sharepoint_uploader.exceptions import ResolutionFailure
from sharepoint_uploader.graph.models import UploadResult

_ENV = {
    "SPU_SITE_URL": "https://contoso.sharepoint.com/sites/team",
    "SPU_LIBRARY_NAME": "Documents",
    "SPU_TENANT_ID": "tid",
    "SPU_CLIENT_ID": "cid",
}

_RESULT = UploadResult(
    web_url="https://contoso.sharepoint.com/sites/team/Documents/q3.pdf",
    item_id="item-1",
    name="q3.pdf",
    size=4,
    chunked=False,
)


@pytest.fixture
def mock_factory():
    """Patch logging setup and the uploader factory; yield the factory mock."""
    with (
        patch("sharepoint_uploader.cli.configure_logging"),
        patch("sharepoint_uploader.cli.uploader_from_config") as factory,
    ):
        factory.return_value.upload.return_value = _RESULT
        yield factory


class TestMain:
    def test_success_prints_web_url(
        self, mock_factory: MagicMock, capsys: pytest.CaptureFixture[str]
    ) -> None:
        with patch.dict(os.environ, _ENV, clear=True):
            code = main(["q3.pdf"])

        assert code == 0
        assert capsys.readouterr().out.strip() == _RESULT.web_url
        mock_factory.return_value.upload.assert_called_once_with("q3.pdf")

    def test_command_line_overrides_environment(self, mock_factory: MagicMock) -> None:
        argv = [
            "q3.pdf",
            "--folder",
            "Shared/Reports",
            "--library",
            "Archive",
            "--auth-mode",
            "chained",
            "--log-level",
            "DEBUG",
        ]
        with patch.dict(os.environ, _ENV, clear=True):
            main(argv)

        config = mock_factory.call_args.args[0]
        assert config.folder_path == "Shared/Reports"
        assert config.library_name == "Archive"
        assert config.auth_mode is AuthMode.CHAINED
        assert config.log_level == "DEBUG"

    def test_config_file(self, mock_factory: MagicMock, tmp_path: Path) -> None:
        config_file = tmp_path / "Config.json"
        config_file.write_text(
            json.dumps(
                {
                    "SharePoint": {
                        "SiteUrl": "https://contoso.sharepoint.com/sites/other",
                        "LibraryName": "Documents",
                        "TenantId": "tid",
                        "ClientId": "cid",
                    }
                }
            )
        )

        with patch.dict(os.environ, {}, clear=True):
            code = main(["q3.pdf", "--config", str(config_file)])

        assert code == 0
        config = mock_factory.call_args.args[0]
        assert config.site_url == "https://contoso.sharepoint.com/sites/other"

    def test_failure_returns_one(self, mock_factory: MagicMock) -> None:
        mock_factory.return_value.upload.side_effect = ResolutionFailure(
            "Library lookup failed: no library named 'Docs'"
        )

        with patch.dict(os.environ, _ENV, clear=True):
            assert main(["q3.pdf"]) == 1

    def test_missing_configuration_returns_one(
        self, mock_factory: MagicMock, capsys: pytest.CaptureFixture[str]
    ) -> None:
        with patch.dict(os.environ, {}, clear=True):
            code = main(["q3.pdf"])

        assert code == 1
        assert "Missing required configuration" in capsys.readouterr().err
        mock_factory.assert_not_called()

    def test_file_argument_required(self) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main([])
        assert exc_info.value.code == 2

    def test_network_failure_returns_one(
        self,
        mock_credential: MagicMock,
        tmp_path: Path,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        local_file = tmp_path / "q3.pdf"
        local_file.write_bytes(b"%PDF")

        with (
            patch.dict(os.environ, _ENV, clear=True),
            patch("sharepoint_uploader.cli.configure_logging"),
            patch(
                "sharepoint_uploader.orchestration.uploader.credential_provider_from_config",
                return_value=mock_credential,
            ),
            patch(
                "sharepoint_uploader.graph.client.urllib_request.urlopen",
                side_effect=URLError("Name or service not known"),
            ),
        ):
            code = main([str(local_file)])

        assert code == 1
        assert capsys.readouterr().out == ""
