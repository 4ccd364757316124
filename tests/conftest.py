"""Pytest configuration: adds src/ to sys.path and shares Graph test doubles."""

import os
import sys
from unittest.mock import MagicMock

import pytest

# Add src/ to Python path so tests can import from sharepoint_uploader
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))


@pytest.fixture
def mock_credential() -> MagicMock:
    """A CredentialProvider stand-in that always returns the same token."""
    credential = MagicMock()
    credential.acquire.return_value = MagicMock(token="fake-token-abc", expires_on=9e9)
    return credential
