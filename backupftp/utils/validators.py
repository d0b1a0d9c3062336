"""Input validators for backupftp.

Provides validation functions for session parameters, transfer
options and local paths. Each returns an ``(is_valid, error)`` tuple.
"""

import re
from pathlib import Path
from typing import Optional, Tuple, Union


# IPv4 address pattern
IPV4_PATTERN = re.compile(
    r'^(?:(?:25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?)\.){3}'
    r'(?:25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?)$'
)

# Hostname pattern (simplified)
HOSTNAME_PATTERN = re.compile(
    r'^(?=.{1,253}$)(?!-)[A-Za-z0-9-]{1,63}(?<!-)(\.[A-Za-z0-9-]{1,63})*$'
)

MIN_BUFFER_SIZE = 512
MAX_BUFFER_SIZE = 16 * 1024 * 1024


def validate_host(host: str) -> Tuple[bool, Optional[str]]:
    """
    Validate a host (IP address or hostname).

    Args:
        host: Host string to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not host or not host.strip():
        return False, "Host is required"

    host = host.strip()

    if IPV4_PATTERN.match(host) or HOSTNAME_PATTERN.match(host):
        return True, None

    return False, f"Invalid host: {host}. Must be a valid IP address or hostname."


def validate_port(port: int) -> Tuple[bool, Optional[str]]:
    """
    Validate a port number.

    Args:
        port: Port number to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not isinstance(port, int):
        try:
            port = int(port)
        except (ValueError, TypeError):
            return False, "Port must be a number"

    if port < 1 or port > 65535:
        return False, f"Port must be between 1 and 65535, got {port}"

    return True, None


def validate_timeout(timeout: float) -> Tuple[bool, Optional[str]]:
    """
    Validate a timeout value in seconds.

    Args:
        timeout: Timeout in seconds

    Returns:
        Tuple of (is_valid, error_message)
    """
    try:
        timeout = float(timeout)
    except (ValueError, TypeError):
        return False, "Timeout must be a number"

    if timeout < 1 or timeout > 600:
        return False, f"Timeout must be between 1 and 600 seconds, got {timeout:g}"

    return True, None


def validate_buffer_size(buffer_size: int) -> Tuple[bool, Optional[str]]:
    """Validate a transfer buffer size in bytes."""
    if not isinstance(buffer_size, int) or isinstance(buffer_size, bool):
        return False, "Buffer size must be an integer"

    if buffer_size < MIN_BUFFER_SIZE or buffer_size > MAX_BUFFER_SIZE:
        return False, (
            f"Buffer size must be between {MIN_BUFFER_SIZE} and "
            f"{MAX_BUFFER_SIZE} bytes, got {buffer_size}"
        )

    return True, None


def validate_file_path(
    path: Union[str, Path],
    must_exist: bool = True
) -> Tuple[bool, Optional[str]]:
    """
    Validate a local file path.

    Args:
        path: Path to validate
        must_exist: If True, file must exist

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not path:
        return False, "File path is required"

    if isinstance(path, str):
        path = Path(path)

    if must_exist:
        if not path.exists():
            return False, f"File does not exist: {path}"
        if not path.is_file():
            return False, f"Path is not a file: {path}"

    return True, None


def validate_name_filter(pattern: str) -> Tuple[bool, Optional[str]]:
    """
    Validate a shell-style name filter.

    Filters apply to bare names, so they may not contain a slash.
    """
    if not pattern:
        return False, "Filter is required"

    if "/" in pattern:
        return False, f"Filter must match names, not paths: {pattern}"

    return True, None
