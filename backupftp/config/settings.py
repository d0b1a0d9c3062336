"""Client settings management for backupftp.

Provides ClientSettings dataclass and SettingsManager for persistence.
Settings hold the defaults new sessions and transfers are built from;
the password is never part of them (see CredentialManager).
"""

import json
import logging
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Optional

from backupftp.config.paths import get_log_file_path, get_settings_path
from backupftp.ftp.session import DEFAULT_SESSION_NAME, FTPSessionConfig
from backupftp.ftp.transfer import ConflictAction, FileTransfer
from backupftp.utils.logging import get_logger, setup_logging

logger = get_logger("settings")


@dataclass
class ClientSettings:
    """Client settings that persist between runs."""

    # FTP connection defaults
    last_endpoint: str = ""
    last_username: str = "anonymous"
    use_tls: bool = False
    ignore_cert_errors: bool = False
    keep_alive: bool = False
    binary_mode: bool = True
    passive_mode: bool = True
    connect_timeout: float = 30
    read_timeout: float = 60

    # Transfer defaults
    buffer_size: int = FileTransfer.DEFAULT_BUFFER_SIZE
    conflict_action: str = ConflictAction.CANCEL.value

    # Logging
    log_level: str = "INFO"

    def to_dict(self) -> dict:
        """Convert settings to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "ClientSettings":
        """Create settings from dictionary, ignoring unknown keys."""
        valid_fields = {f.name for f in cls.__dataclass_fields__.values()}
        filtered = {k: v for k, v in data.items() if k in valid_fields}
        return cls(**filtered)

    @property
    def conflict_policy(self) -> ConflictAction:
        """Stored conflict action, CANCEL if the stored value is unknown."""
        try:
            return ConflictAction(self.conflict_action)
        except ValueError:
            return ConflictAction.CANCEL

    def to_session_config(
        self,
        session_name: str = DEFAULT_SESSION_NAME,
        endpoint: Optional[str] = None
    ) -> FTPSessionConfig:
        """
        Build a session config from these defaults.

        Args:
            session_name: Name of the new session
            endpoint: Endpoint overriding ``last_endpoint``

        Raises:
            ValueError: If the resulting config is invalid
        """
        return FTPSessionConfig(
            endpoint=endpoint or self.last_endpoint,
            username=self.last_username,
            use_tls=self.use_tls,
            ignore_cert_errors=self.ignore_cert_errors,
            keep_alive=self.keep_alive,
            binary_mode=self.binary_mode,
            passive_mode=self.passive_mode,
            session_name=session_name,
            connect_timeout=self.connect_timeout,
            read_timeout=self.read_timeout,
        )


class SettingsManager:
    """Manages client settings persistence."""

    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize settings manager.

        Args:
            config_path: Optional custom path, defaults to platform standard
        """
        self._config_path = config_path or get_settings_path()
        self._settings: Optional[ClientSettings] = None

    @property
    def config_path(self) -> Path:
        """Path to settings file."""
        return self._config_path

    def load(self) -> ClientSettings:
        """
        Load settings from disk.

        Returns:
            ClientSettings instance (defaults if file not found)
        """
        if self._config_path.exists():
            try:
                with open(self._config_path, "r", encoding="utf-8") as f:
                    data = json.load(f)
                self._settings = ClientSettings.from_dict(data)
            except (json.JSONDecodeError, IOError) as e:
                # Invalid or unreadable file, use defaults
                logger.warning(f"Ignoring unreadable settings file {self._config_path}: {e}")
                self._settings = ClientSettings()
        else:
            self._settings = ClientSettings()

        return self._settings

    def save(self, settings: ClientSettings) -> None:
        """
        Persist settings to disk.

        Args:
            settings: Settings to save
        """
        self._settings = settings

        # Ensure parent directory exists
        self._config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(self._config_path, "w", encoding="utf-8") as f:
            json.dump(settings.to_dict(), f, indent=2)

    def reset(self) -> ClientSettings:
        """
        Reset to default settings.

        Returns:
            Default ClientSettings instance
        """
        self._settings = ClientSettings()

        # Remove existing file
        if self._config_path.exists():
            self._config_path.unlink()

        return self._settings

    def update(self, **kwargs) -> ClientSettings:
        """
        Update specific settings fields.

        Args:
            **kwargs: Field names and new values

        Returns:
            Updated ClientSettings instance
        """
        if self._settings is None:
            self.load()

        for key, value in kwargs.items():
            if hasattr(self._settings, key):
                setattr(self._settings, key, value)

        self.save(self._settings)
        return self._settings


def setup_client_logging(
    settings: ClientSettings,
    log_file: Optional[Path] = None,
    console: bool = False
) -> logging.Logger:
    """
    Configure library logging from stored settings.

    Args:
        settings: Settings providing the log level
        log_file: Log file path (default: the per-user log file)
        console: Whether to also log to stdout

    Returns:
        Configured library logger
    """
    return setup_logging(
        settings.log_level,
        log_file=log_file or get_log_file_path(),
        console=console
    )
