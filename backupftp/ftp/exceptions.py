"""FTP-specific exceptions for backupftp.

Custom exception hierarchy for FTP operations. Every error carries the
path or endpoint involved and the original error, so a caller's log line
is actionable on its own.
"""


class FTPError(Exception):
    """Base exception for all FTP-related errors."""

    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error

    def __str__(self) -> str:
        if self.original_error:
            return f"{self.message}: {self.original_error}"
        return self.message


class FTPConnectionError(FTPError):
    """Endpoint unreachable or session could not be established."""

    def __init__(self, host: str, port: int, original_error: Exception = None):
        self.host = host
        self.port = port
        message = f"Failed to connect to {host}:{port}"
        super().__init__(message, original_error)


class FTPAuthenticationError(FTPConnectionError):
    """FTP authentication (login) failed."""

    def __init__(
        self,
        username: str,
        host: str = "",
        port: int = 0,
        original_error: Exception = None
    ):
        super().__init__(host, port, original_error)
        self.username = username
        self.message = f"Authentication failed for user '{username}'"
        self.args = (self.message,)


class FTPNotConnectedError(FTPError):
    """Operation attempted on a closed session."""

    def __init__(self, operation: str = "Operation"):
        message = f"{operation} requires an open FTP session"
        super().__init__(message)


class FTPTimeoutError(FTPError):
    """FTP operation timed out."""

    def __init__(self, operation: str = "Operation", timeout: float = 30):
        self.timeout = timeout
        message = f"{operation} timed out after {timeout} seconds"
        super().__init__(message)


class FTPNotFoundError(FTPError):
    """Remote path does not exist."""

    def __init__(self, path: str, original_error: Exception = None):
        self.path = path
        message = f"Remote path not found: '{path}'"
        super().__init__(message, original_error)


class FTPParseError(FTPError):
    """A listing line (or one of its fields) could not be parsed."""

    def __init__(self, line: str, reason: str):
        self.line = line
        self.reason = reason
        message = f"Cannot parse listing line '{line}': {reason}"
        super().__init__(message)


class FTPLocalIOError(FTPError):
    """Local file missing, unreadable or unwritable."""

    def __init__(self, path: str, operation: str, original_error: Exception = None):
        self.path = path
        self.operation = operation
        message = f"Failed to {operation} local path '{path}'"
        super().__init__(message, original_error)


class FTPProtocolError(FTPError):
    """Unexpected server reply during an operation."""

    def __init__(self, path: str, operation: str, original_error: Exception = None):
        self.path = path
        self.operation = operation
        message = f"Failed to {operation} '{path}'"
        super().__init__(message, original_error)


class FTPTransferCancelled(FTPError):
    """Transfer was cancelled between two buffer reads."""

    def __init__(self, path: str, bytes_transferred: int = 0):
        self.path = path
        self.bytes_transferred = bytes_transferred
        message = f"Transfer of '{path}' cancelled after {bytes_transferred} bytes"
        super().__init__(message)
