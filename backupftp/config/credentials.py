"""Credential storage for backupftp.

Uses the system keyring (Windows Credential Manager, macOS Keychain,
Linux Secret Service) to store FTP passwords. The plaintext password is
handed to FTPSession and never written to settings or logs.
"""

from typing import Optional

import keyring
from keyring.errors import KeyringError

from backupftp.ftp.paths import normalize_path


class CredentialManager:
    """FTP password storage using the system keyring."""

    SERVICE_NAME = "backupftp"

    def _make_key(self, endpoint: str, username: str) -> str:
        """
        Create a unique key for the credential.

        Endpoints are normalized so ``host`` and ``ftp://host/`` share
        one entry.
        """
        return f"{normalize_path(endpoint)}:{username}"

    def save_password(self, endpoint: str, username: str, password: str) -> bool:
        """
        Save FTP password.

        Returns:
            True if saved successfully, False otherwise
        """
        try:
            keyring.set_password(self.SERVICE_NAME, self._make_key(endpoint, username), password)
            return True
        except KeyringError:
            return False

    def get_password(self, endpoint: str, username: str) -> Optional[str]:
        """
        Retrieve saved password.

        Returns:
            Password string or None if not found
        """
        try:
            return keyring.get_password(self.SERVICE_NAME, self._make_key(endpoint, username))
        except KeyringError:
            return None

    def delete_password(self, endpoint: str, username: str) -> bool:
        """
        Remove saved password.

        Returns:
            True if deleted successfully, False otherwise
        """
        try:
            keyring.delete_password(self.SERVICE_NAME, self._make_key(endpoint, username))
            return True
        except KeyringError:
            return False

    def has_password(self, endpoint: str, username: str) -> bool:
        """Check if a password is saved."""
        return self.get_password(endpoint, username) is not None
