"""Configuration module for backupftp.

This module handles client settings and credentials:
- ClientSettings / SettingsManager: JSON-based defaults for new sessions
- CredentialManager: FTP password storage via keyring
- Paths: Per-platform application directories
"""
