"""Pytest configuration and shared fixtures for backupftp tests."""

import pytest
from pathlib import Path
from typing import Generator
from unittest.mock import patch

from backupftp.ftp.session import FTPSession, FTPSessionConfig
from tests.unit.fake_ftp import FakeFTP


# Test constants
TEST_FTP_USER = "testuser"
TEST_FTP_PASS = "testpass"
TEST_ENDPOINT = "ftp://backup.local"


@pytest.fixture
def fake_ftp() -> FakeFTP:
    """Provide an empty in-memory FTP server."""
    return FakeFTP()


@pytest.fixture
def session(fake_ftp: FakeFTP) -> Generator[FTPSession, None, None]:
    """Provide a session whose connections all reach fake_ftp."""
    config = FTPSessionConfig(endpoint=TEST_ENDPOINT, username=TEST_FTP_USER)
    with patch("backupftp.ftp.session.FTP", return_value=fake_ftp):
        yield FTPSession(config, password=TEST_FTP_PASS)


@pytest.fixture
def temp_settings_file(tmp_path: Path) -> Generator[Path, None, None]:
    """Provide a temporary settings file path for testing."""
    settings_file = tmp_path / "settings.json"
    yield settings_file
    # Cleanup handled by tmp_path fixture


@pytest.fixture
def sample_backup(tmp_path: Path) -> Path:
    """Create a mock database backup file of 3000 bytes."""
    backup_file = tmp_path / "sales_full.bak"
    backup_file.write_bytes(bytes(range(250)) * 12)
    return backup_file
