"""FTP session management for backupftp.

Provides FTPSessionConfig (immutable connection parameters), FTPSession
(per-request connections built from a config) and SessionStore
(an explicit, thread-safe registry of sessions keyed by name).
"""

import socket
import ssl
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from ftplib import FTP, FTP_TLS, all_errors, error_perm
from typing import Dict, Iterator, List, Optional, Tuple

from backupftp.ftp.exceptions import (
    FTPAuthenticationError,
    FTPConnectionError,
    FTPError,
    FTPNotConnectedError,
    FTPNotFoundError,
    FTPProtocolError,
    FTPTimeoutError,
)
from backupftp.ftp.paths import (
    base_name,
    join_path,
    normalize_path,
    parent_path,
    server_path,
    split_endpoint,
    url_scheme,
)
from backupftp.utils.logging import get_logger
from backupftp.utils.validators import validate_host, validate_port, validate_timeout

logger = get_logger("session")

DEFAULT_SESSION_NAME = "default"


class ConnectionState(Enum):
    """FTP connection state."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


@dataclass(frozen=True)
class FTPSessionConfig:
    """FTP session configuration. The password is kept out of it."""
    endpoint: str
    username: str = "anonymous"
    use_tls: bool = False
    ignore_cert_errors: bool = False
    keep_alive: bool = False
    binary_mode: bool = True
    passive_mode: bool = True
    session_name: str = DEFAULT_SESSION_NAME
    connect_timeout: float = 30
    read_timeout: float = 60

    def __post_init__(self):
        """Validate configuration after initialization."""
        if not self.endpoint or not self.endpoint.strip():
            raise ValueError("Endpoint is required")
        if not self.session_name:
            raise ValueError("Session name is required")

        scheme = url_scheme(self.endpoint)
        if scheme not in (None, "ftp"):
            hint = ", set use_tls=True for FTPS" if scheme == "ftps" else ""
            raise ValueError(f"Unsupported endpoint scheme '{scheme}://'{hint}")

        host, port = self.address
        for is_valid, error in (
            validate_host(host),
            validate_port(port),
            validate_timeout(self.connect_timeout),
            validate_timeout(self.read_timeout),
        ):
            if not is_valid:
                raise ValueError(error)

    @property
    def url(self) -> str:
        """Normalized endpoint URL, e.g. ``ftp://host:21/base``."""
        return normalize_path(self.endpoint)

    @property
    def address(self) -> Tuple[str, int]:
        """(host, port) of the endpoint."""
        return split_endpoint(self.url)

    @property
    def host(self) -> str:
        return self.address[0]

    @property
    def port(self) -> int:
        return self.address[1]


class FTPSession:
    """
    Builds logged-in FTP connections from a session config.

    Every operation is a single request. Without keep-alive each request
    opens and closes its own connection; with keep-alive one connection is
    reused behind a lock and dropped after any failure.
    """

    def __init__(self, config: FTPSessionConfig, password: str = ""):
        """
        Initialize the session.

        Args:
            config: Session configuration
            password: FTP password (held privately, never logged)
        """
        self._config = config
        self._password = password
        self._lock = threading.RLock()
        self._ftp: Optional[FTP] = None
        self._closed = False
        self._state = ConnectionState.DISCONNECTED
        self._connected_at: Optional[datetime] = None
        self._last_activity: Optional[datetime] = None
        self._error_message: Optional[str] = None

    @property
    def config(self) -> FTPSessionConfig:
        """Session configuration."""
        return self._config

    @property
    def name(self) -> str:
        """Session name used as registry key."""
        return self._config.session_name

    @property
    def url(self) -> str:
        """Normalized endpoint URL."""
        return self._config.url

    @property
    def state(self) -> ConnectionState:
        """State of the most recent connection."""
        return self._state

    @property
    def is_connected(self) -> bool:
        """True while a kept-alive connection is open."""
        return self._ftp is not None and self._state == ConnectionState.CONNECTED

    @property
    def is_closed(self) -> bool:
        """True once close() has been called."""
        return self._closed

    @property
    def connected_at(self) -> Optional[datetime]:
        """Timestamp when the last connection was established."""
        return self._connected_at

    @property
    def last_activity(self) -> Optional[datetime]:
        """Timestamp of last successful request."""
        return self._last_activity

    @property
    def error_message(self) -> Optional[str]:
        """Last error message if state is ERROR."""
        return self._error_message

    def resolve(self, path: str = "") -> str:
        """Normalize a path against this session's endpoint."""
        return normalize_path(self._config.url, path)

    def _create_client(self) -> FTP:
        if not self._config.use_tls:
            return FTP()

        context = ssl.create_default_context()
        if self._config.ignore_cert_errors:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        return FTP_TLS(context=context)

    def _open(self) -> FTP:
        """
        Establish a logged-in FTP connection.

        Raises:
            FTPConnectionError: If connection fails
            FTPAuthenticationError: If login fails
            FTPTimeoutError: If connection times out
        """
        config = self._config
        self._state = ConnectionState.CONNECTING
        self._error_message = None
        ftp = self._create_client()

        try:
            # Connect to server
            try:
                ftp.connect(
                    host=config.host,
                    port=config.port,
                    timeout=config.connect_timeout
                )
            except socket.timeout:
                raise FTPTimeoutError("Connection", config.connect_timeout)
            except OSError as e:
                raise FTPConnectionError(config.host, config.port, e)

            # Login (FTP_TLS negotiates AUTH TLS here)
            try:
                ftp.login(user=config.username, passwd=self._password)
            except error_perm as e:
                raise FTPAuthenticationError(config.username, config.host, config.port, e)

            if config.use_tls:
                ftp.prot_p()
            ftp.set_pasv(config.passive_mode)

            # Later control and data reads use the read timeout
            ftp.timeout = config.read_timeout
            if ftp.sock is not None:
                ftp.sock.settimeout(config.read_timeout)

        except (FTPConnectionError, FTPTimeoutError) as e:
            self._state = ConnectionState.ERROR
            self._error_message = str(e)
            self._release(ftp)
            raise
        except all_errors as e:
            self._state = ConnectionState.ERROR
            self._error_message = str(e)
            self._release(ftp)
            raise FTPConnectionError(config.host, config.port, e)

        self._state = ConnectionState.CONNECTED
        self._connected_at = datetime.now()
        self._last_activity = self._connected_at
        logger.debug(f"Opened connection for session '{self.name}' to {config.host}:{config.port}")
        return ftp

    @staticmethod
    def _release(ftp: FTP) -> None:
        """Close an FTP connection gracefully."""
        try:
            ftp.quit()
        except Exception:
            # Best effort close
            try:
                ftp.close()
            except Exception:
                pass

    def _drop(self) -> None:
        """Forget the kept-alive connection."""
        if self._ftp is not None:
            self._release(self._ftp)
        self._ftp = None
        self._state = ConnectionState.DISCONNECTED

    def _update_activity(self) -> None:
        """Update last activity timestamp."""
        self._last_activity = datetime.now()

    def _kept_alive(self) -> FTP:
        if self._ftp is not None:
            try:
                self._ftp.voidcmd("NOOP")
                return self._ftp
            except all_errors:
                logger.debug(f"Kept-alive connection of session '{self.name}' went stale, reconnecting")
                self._drop()
        self._ftp = self._open()
        return self._ftp

    @contextmanager
    def request(self) -> Iterator[FTP]:
        """
        Yield a logged-in FTP connection for one operation.

        Raises:
            FTPNotConnectedError: If the session was closed
        """
        if self._closed:
            raise FTPNotConnectedError(f"Session '{self.name}'")

        if not self._config.keep_alive:
            ftp = self._open()
            try:
                yield ftp
                self._update_activity()
            finally:
                self._release(ftp)
                self._state = ConnectionState.DISCONNECTED
            return

        with self._lock:
            ftp = self._kept_alive()
            try:
                yield ftp
            except BaseException:
                self._drop()
                raise
            self._update_activity()

    @contextmanager
    def command(self, url: str, operation: str) -> Iterator[FTP]:
        """
        request() with server errors mapped onto the FTPError hierarchy.

        Args:
            url: Normalized URL the operation works on
            operation: Verb used in error messages ("list", "delete", ...)
        """
        try:
            with self.request() as ftp:
                yield ftp
        except FTPError:
            raise
        except socket.timeout:
            raise FTPTimeoutError(f"{operation.capitalize()} '{url}'", self._config.read_timeout)
        except all_errors as e:
            raise FTPProtocolError(url, operation, e)

    def set_transfer_type(self, ftp: FTP) -> None:
        """Switch the connection to the configured transfer type."""
        ftp.voidcmd("TYPE I" if self._config.binary_mode else "TYPE A")

    def check(self) -> None:
        """
        Verify the endpoint is reachable and accepts the credentials.

        Raises:
            FTPConnectionError: If connection or login fails
        """
        with self.command(self.url, "open") as ftp:
            ftp.voidcmd("NOOP")

    def size(self, path: str = "") -> int:
        """
        Query the size of a remote path.

        Args:
            path: Remote path or URL

        Returns:
            Size in bytes, or -1 if the path is a directory

        Raises:
            FTPNotFoundError: If the path does not exist
        """
        url = self.resolve(path)
        target = server_path(url)

        with self.command(url, "query size of") as ftp:
            # Many servers refuse SIZE in ASCII mode
            ftp.voidcmd("TYPE I")
            try:
                size = ftp.size(target)
            except error_perm as e:
                if not str(e).startswith("550"):
                    raise
                if self._is_directory(ftp, target):
                    return -1
                raise FTPNotFoundError(url, e)

        if size is None:
            raise FTPProtocolError(url, "query size of")
        return size

    @staticmethod
    def _is_directory(ftp: FTP, target: str) -> bool:
        current = ftp.pwd()
        try:
            ftp.cwd(target)
        except error_perm:
            return False
        ftp.cwd(current)
        return True

    def list_raw(self, path: str = "") -> str:
        """
        Fetch the raw LIST output for a directory.

        Args:
            path: Remote directory path or URL

        Returns:
            Listing text, one entry per line
        """
        url = self.resolve(path)
        lines: List[str] = []
        with self.command(url, "list") as ftp:
            ftp.retrlines(f"LIST {server_path(url)}", lines.append)
        logger.debug(f"Listed {url}: {len(lines)} lines")
        return "\n".join(lines)

    def delete_file(self, path: str) -> None:
        """Delete a remote file."""
        url = self.resolve(path)
        with self.command(url, "delete") as ftp:
            ftp.delete(server_path(url))
        logger.info(f"Deleted {url}")

    def remove_directory(self, path: str) -> None:
        """Remove an empty remote directory."""
        url = self.resolve(path)
        with self.command(url, "remove directory") as ftp:
            ftp.rmd(server_path(url))
        logger.info(f"Removed directory {url}")

    def make_directory(self, path: str) -> str:
        """
        Create a remote directory.

        Returns:
            URL of the created directory
        """
        url = self.resolve(path)
        with self.command(url, "create directory") as ftp:
            ftp.mkd(server_path(url))
        logger.info(f"Created directory {url}")
        return url

    def rename(self, path: str, new_name: str) -> str:
        """
        Rename a remote file or directory within its parent.

        Args:
            path: Remote path or URL to rename
            new_name: New bare name

        Returns:
            URL of the renamed item
        """
        if not new_name or "/" in new_name:
            raise ValueError(f"New name must be a bare name, got '{new_name}'")

        url = self.resolve(path)
        target = join_path(parent_path(url), new_name)
        with self.command(url, "rename") as ftp:
            ftp.rename(server_path(url), server_path(target))
        logger.info(f"Renamed {base_name(url)} to {new_name} in {parent_path(url)}")
        return target

    def close(self) -> None:
        """Close the session and any kept-alive connection."""
        with self._lock:
            self._drop()
            self._closed = True

    def __enter__(self) -> "FTPSession":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"FTPSession(name={self.name!r}, url={self.url!r}, state={self._state.value})"


def connect(
    config: FTPSessionConfig,
    password: str = "",
    store: Optional["SessionStore"] = None
) -> FTPSession:
    """
    Create a session and verify the endpoint accepts it.

    Args:
        config: Session configuration
        password: FTP password
        store: Optional registry to publish the session in, replacing any
            session with the same name

    Returns:
        Validated FTPSession

    Raises:
        FTPConnectionError: If the endpoint is unreachable
        FTPAuthenticationError: If the credentials are rejected
        FTPTimeoutError: If connecting times out
    """
    session = FTPSession(config, password)
    try:
        session.check()
    except FTPError:
        session.close()
        raise

    logger.info(f"Session '{config.session_name}' connected to {config.url} as {config.username}")
    if store is not None:
        store.register(session)
    return session


class SessionStore:
    """Thread-safe registry of sessions keyed by session name."""

    def __init__(self):
        self._sessions: Dict[str, FTPSession] = {}
        self._lock = threading.Lock()

    def connect(self, config: FTPSessionConfig, password: str = "") -> FTPSession:
        """Connect a new session and register it under its name."""
        return connect(config, password, store=self)

    def register(self, session: FTPSession) -> Optional[FTPSession]:
        """
        Register a session, replacing one with the same name.

        Returns:
            The replaced session (already closed), if any
        """
        with self._lock:
            previous = self._sessions.get(session.name)
            self._sessions[session.name] = session

        if previous is not None and previous is not session:
            logger.debug(f"Replacing session '{session.name}'")
            previous.close()
            return previous
        return None

    def get(self, name: str = DEFAULT_SESSION_NAME) -> Optional[FTPSession]:
        """Find a session by name."""
        with self._lock:
            return self._sessions.get(name)

    def remove(self, name: str) -> Optional[FTPSession]:
        """Unregister and close a session."""
        with self._lock:
            session = self._sessions.pop(name, None)
        if session is not None:
            session.close()
        return session

    def names(self) -> List[str]:
        """Names of all registered sessions."""
        with self._lock:
            return sorted(self._sessions)

    def close_all(self) -> None:
        """Close and forget every session."""
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for session in sessions:
            session.close()

    def __contains__(self, name: str) -> bool:
        with self._lock:
            return name in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
