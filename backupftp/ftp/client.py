"""High-level FTP client for backupftp.

Bundles a session with its scanner, transfer engine and remover so a
backup or restore job can drive everything through one object.
"""

from pathlib import Path
from typing import List, Optional, Union

from backupftp.ftp.listing import ListingEntry
from backupftp.ftp.remover import ConfirmCallback, RemoteRemover, RemoveStatus
from backupftp.ftp.scanner import RemoteScanner
from backupftp.ftp.session import FTPSession, FTPSessionConfig, SessionStore, connect
from backupftp.ftp.transfer import (
    ConflictAction,
    ConflictPolicy,
    FileTransfer,
    ProgressCallback,
    TransferResult,
)


class FTPClient:
    """
    Facade over one session.

    Usage:
        config = FTPSessionConfig(endpoint="ftp://backup.local/sql")
        with FTPClient.connect(config, password) as client:
            for entry in client.list(recurse=True, file_filter="*.bak") or []:
                client.get(entry.full_path, "/restore")
    """

    def __init__(
        self,
        session: FTPSession,
        buffer_size: int = FileTransfer.DEFAULT_BUFFER_SIZE,
        on_conflict: ConflictPolicy = ConflictAction.CANCEL,
        confirm_recursive: Union[bool, ConfirmCallback] = False
    ):
        self._session = session
        self._scanner = RemoteScanner(session)
        self._transfer = FileTransfer(session, buffer_size=buffer_size, on_conflict=on_conflict)
        self._remover = RemoteRemover(session, confirm_recursive=confirm_recursive)

    @classmethod
    def connect(
        cls,
        config: FTPSessionConfig,
        password: str = "",
        store: Optional[SessionStore] = None,
        **kwargs
    ) -> "FTPClient":
        """Connect a session (validating the endpoint) and wrap it."""
        return cls(connect(config, password, store=store), **kwargs)

    @property
    def session(self) -> FTPSession:
        return self._session

    @property
    def transfer(self) -> FileTransfer:
        """Transfer engine, e.g. to cancel() a running transfer."""
        return self._transfer

    def list(
        self,
        path: str = "",
        recurse: bool = False,
        depth: int = 0,
        name_filter: str = "*",
        file_filter: Optional[str] = None
    ) -> Optional[List[ListingEntry]]:
        """See RemoteScanner.scan."""
        return self._scanner.scan(path, recurse, depth, name_filter, file_filter)

    def size(self, path: str = "") -> int:
        """See FTPSession.size."""
        return self._session.size(path)

    def put(
        self,
        local_file: Union[str, Path],
        remote_dir: str = "",
        overwrite: bool = False,
        buffer_size: Optional[int] = None,
        on_progress: Optional[ProgressCallback] = None,
        on_conflict: Optional[ConflictPolicy] = None
    ) -> Optional[ListingEntry]:
        """See FileTransfer.upload."""
        return self._transfer.upload(
            local_file, remote_dir, overwrite,
            on_progress=on_progress, on_conflict=on_conflict, buffer_size=buffer_size
        )

    def get(
        self,
        remote_path: str,
        local_dir: Union[str, Path],
        recreate_folders: bool = False,
        overwrite: bool = False,
        buffer_size: Optional[int] = None,
        on_progress: Optional[ProgressCallback] = None,
        on_conflict: Optional[ConflictPolicy] = None
    ) -> TransferResult:
        """See FileTransfer.download."""
        return self._transfer.download(
            remote_path, local_dir, recreate_folders, overwrite,
            on_progress=on_progress, on_conflict=on_conflict, buffer_size=buffer_size
        )

    def remove(self, path: str, recurse: bool = False) -> RemoveStatus:
        """See RemoteRemover.remove."""
        return self._remover.remove(path, recurse)

    def rename(self, path: str, new_name: str) -> str:
        """See FTPSession.rename."""
        return self._session.rename(path, new_name)

    def mkdir(self, path: str) -> str:
        """See FTPSession.make_directory."""
        return self._session.make_directory(path)

    def close(self) -> None:
        self._session.close()

    def __enter__(self) -> "FTPClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
