"""Utility module for backupftp.

This module provides cross-cutting utilities:
- Logging: Configured logging with PII redaction
- Validators: Input validation for sessions, transfers and paths
"""
