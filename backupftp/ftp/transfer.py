"""File transfers for backupftp.

Uploads and downloads files in fixed-size buffers, resuming partial
transfers from the size already present at the destination.
"""

import ssl
import threading
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Tuple, Union

from backupftp.ftp.exceptions import (
    FTPLocalIOError,
    FTPNotFoundError,
    FTPProtocolError,
    FTPTransferCancelled,
)
from backupftp.ftp.listing import ListingEntry
from backupftp.ftp.paths import base_name, join_path, path_segments, server_path
from backupftp.ftp.scanner import RemoteScanner
from backupftp.ftp.session import FTPSession
from backupftp.utils.logging import get_logger
from backupftp.utils.validators import validate_buffer_size, validate_file_path

logger = get_logger("transfer")

# Suffix of the temporary file a fresh download is written to
PARTIAL_SUFFIX = ".part"


class ConflictAction(Enum):
    """What to do when the transfer target already exists."""
    OVERWRITE = "overwrite"
    CANCEL = "cancel"
    RESUME = "resume"


@dataclass(frozen=True)
class TransferConflict:
    """An existing target found before a transfer."""
    source_path: str
    target_path: str
    source_size: int
    target_size: int
    choices: Tuple[ConflictAction, ...]

    @property
    def can_resume(self) -> bool:
        """True if resume was offered (target shorter than source)."""
        return ConflictAction.RESUME in self.choices


@dataclass
class TransferProgress:
    """Progress information for a transfer."""
    remote_path: str
    local_path: str
    bytes_transferred: int
    bytes_total: int

    @property
    def percent(self) -> float:
        """Transfer progress as percentage (0-100)."""
        return (self.bytes_transferred / max(self.bytes_total, 1)) * 100.0


class TransferStatus(Enum):
    """Outcome of a download."""
    COMPLETED = "completed"
    RESUMED = "resumed"
    SKIPPED = "skipped"
    DIRECTORY = "directory"


@dataclass
class TransferResult:
    """Result of downloading a single remote file."""
    remote_path: str
    local_path: Optional[str]
    status: TransferStatus
    bytes_transferred: int = 0
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        """True if bytes were moved to completion."""
        return self.status in (TransferStatus.COMPLETED, TransferStatus.RESUMED)


# Type aliases for callbacks
ProgressCallback = Callable[[TransferProgress], None]
ConflictResolver = Callable[[TransferConflict], ConflictAction]
ConflictPolicy = Union[ConflictAction, ConflictResolver]


class FileTransfer:
    """Handles uploads and downloads for one session."""

    # Block size for FTP transfers (8KB)
    DEFAULT_BUFFER_SIZE = 8192

    def __init__(
        self,
        session: FTPSession,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
        on_conflict: ConflictPolicy = ConflictAction.CANCEL
    ):
        """
        Initialize the transfer engine.

        Args:
            session: Session used for every request
            buffer_size: Default bytes per read
            on_conflict: Default decision (or resolver) for existing targets
        """
        self._session = session
        self._buffer_size = self._check_buffer_size(buffer_size)
        self._on_conflict = on_conflict
        self._cancelled = threading.Event()

    @property
    def is_cancelled(self) -> bool:
        """True if current operation was cancelled."""
        return self._cancelled.is_set()

    def cancel(self) -> None:
        """Cancel the running transfer at its next buffer boundary."""
        self._cancelled.set()

    def reset_cancel(self) -> None:
        """Reset cancellation flag for new operation."""
        self._cancelled.clear()

    @staticmethod
    def _check_buffer_size(buffer_size: int) -> int:
        is_valid, error = validate_buffer_size(buffer_size)
        if not is_valid:
            raise ValueError(error)
        return buffer_size

    def _resolve_conflict(
        self,
        conflict: TransferConflict,
        on_conflict: Optional[ConflictPolicy]
    ) -> ConflictAction:
        policy = on_conflict if on_conflict is not None else self._on_conflict
        action = policy if isinstance(policy, ConflictAction) else policy(conflict)

        if not isinstance(action, ConflictAction):
            raise TypeError(
                f"Conflict resolver must return a ConflictAction, got {action!r} "
                f"for {conflict.target_path}"
            )
        if action not in conflict.choices:
            logger.warning(
                f"Cannot {action.value} {conflict.target_path} "
                f"(source {conflict.source_size} bytes, target {conflict.target_size} bytes), skipping"
            )
            return ConflictAction.CANCEL
        return action

    @staticmethod
    def _conflict(source: str, target: str, source_size: int, target_size: int) -> TransferConflict:
        choices = [ConflictAction.OVERWRITE, ConflictAction.CANCEL]
        if target_size < source_size:
            choices.append(ConflictAction.RESUME)
        return TransferConflict(source, target, source_size, target_size, tuple(choices))

    def _report(
        self,
        on_progress: Optional[ProgressCallback],
        remote_path: str,
        local_path: Path,
        transferred: int,
        total: int
    ) -> None:
        if on_progress and not self._cancelled.is_set():
            on_progress(TransferProgress(
                remote_path=remote_path,
                local_path=str(local_path),
                bytes_transferred=transferred,
                bytes_total=total
            ))

    def _remote_size(self, url: str) -> Optional[int]:
        """Remote size, or None if nothing exists at ``url``."""
        try:
            return self._session.size(url)
        except FTPNotFoundError:
            return None

    def upload(
        self,
        local_file: Union[str, Path],
        remote_dir: str = "",
        overwrite: bool = False,
        on_progress: Optional[ProgressCallback] = None,
        on_conflict: Optional[ConflictPolicy] = None,
        buffer_size: Optional[int] = None
    ) -> Optional[ListingEntry]:
        """
        Upload a local file into a remote directory.

        Args:
            local_file: File to upload
            remote_dir: Remote directory path or URL
            overwrite: Replace an existing remote file without asking
            on_progress: Optional callback for progress updates
            on_conflict: Decision for an existing remote file (default:
                the engine's policy)
            buffer_size: Bytes per read (default: the engine's)

        Returns:
            Listing entry of the uploaded file, or None if the conflict
            decision was to cancel

        Raises:
            FTPLocalIOError: If the local file is missing or unreadable
            FTPTransferCancelled: If cancel() was called mid-transfer
        """
        local_path = Path(local_file)
        is_valid, error = validate_file_path(local_path)
        if not is_valid:
            raise FTPLocalIOError(str(local_path), "read", FileNotFoundError(error))
        buffer_size = self._check_buffer_size(buffer_size or self._buffer_size)

        target = join_path(self._session.resolve(remote_dir), local_path.name)
        local_size = local_path.stat().st_size
        offset = 0

        if not overwrite:
            remote_size = self._remote_size(target)
            if remote_size is not None and remote_size < 0:
                raise FTPProtocolError(target, "upload over directory")
            if remote_size is not None:
                conflict = self._conflict(str(local_path), target, local_size, remote_size)
                action = self._resolve_conflict(conflict, on_conflict)
                if action is ConflictAction.CANCEL:
                    logger.info(f"Upload of {local_path.name} cancelled: {target} exists")
                    return None
                if action is ConflictAction.RESUME:
                    offset = remote_size

        start_time = time.time()
        sent = self._send(local_path, target, offset, local_size, buffer_size, on_progress)
        logger.info(
            f"Uploaded {local_path.name} to {target}: {sent} bytes"
            f"{f' from offset {offset}' if offset else ''} in {time.time() - start_time:.1f}s"
        )

        entries = RemoteScanner(self._session).scan(target)
        return entries[0] if entries else None

    def _send(
        self,
        local_path: Path,
        target: str,
        offset: int,
        total: int,
        buffer_size: int,
        on_progress: Optional[ProgressCallback]
    ) -> int:
        """Stream a local file to the server, appending when offset > 0."""
        command = f"{'APPE' if offset else 'STOR'} {server_path(target)}"
        transferred = offset

        try:
            source = open(local_path, "rb")
        except OSError as e:
            raise FTPLocalIOError(str(local_path), "read", e)

        with source, self._session.command(target, "upload") as ftp:
            source.seek(offset)
            # storbinary() would force TYPE I over the configured transfer type
            self._session.set_transfer_type(ftp)
            conn = ftp.transfercmd(command)
            try:
                while True:
                    if self._cancelled.is_set():
                        raise FTPTransferCancelled(target, transferred - offset)
                    try:
                        block = source.read(buffer_size)
                    except OSError as e:
                        raise FTPLocalIOError(str(local_path), "read", e)
                    if not block:
                        break
                    conn.sendall(block)
                    transferred += len(block)
                    self._report(on_progress, target, local_path, transferred, total)
                if isinstance(conn, ssl.SSLSocket):
                    conn.unwrap()
            finally:
                conn.close()
            ftp.voidresp()

        return transferred - offset

    def download(
        self,
        remote_path: str,
        local_dir: Union[str, Path],
        recreate_folders: bool = False,
        overwrite: bool = False,
        on_progress: Optional[ProgressCallback] = None,
        on_conflict: Optional[ConflictPolicy] = None,
        buffer_size: Optional[int] = None
    ) -> TransferResult:
        """
        Download a remote file into a local directory.

        Args:
            remote_path: Remote file path or URL
            local_dir: Local destination directory
            recreate_folders: Mirror the remote directory structure
                under ``local_dir``
            overwrite: Replace an existing local file without asking
            on_progress: Optional callback for progress updates
            on_conflict: Decision for an existing local file (default:
                the engine's policy)
            buffer_size: Bytes per read (default: the engine's)

        Returns:
            TransferResult; status DIRECTORY if the path is a directory

        Raises:
            FTPNotFoundError: If the remote path does not exist
            FTPLocalIOError: If the local target cannot be written
            FTPTransferCancelled: If cancel() was called mid-transfer
        """
        buffer_size = self._check_buffer_size(buffer_size or self._buffer_size)
        url = self._session.resolve(remote_path)
        remote_size = self._session.size(url)
        if remote_size < 0:
            logger.info(f"Skipping {url}: directories are not downloadable")
            return TransferResult(remote_path=url, local_path=None, status=TransferStatus.DIRECTORY)

        target = self._local_target(url, Path(local_dir), recreate_folders)
        offset = 0

        if target.exists() and not overwrite:
            local_size = target.stat().st_size
            conflict = self._conflict(url, str(target), remote_size, local_size)
            action = self._resolve_conflict(conflict, on_conflict)
            if action is ConflictAction.CANCEL:
                logger.info(f"Download of {url} cancelled: {target} exists")
                return TransferResult(remote_path=url, local_path=str(target), status=TransferStatus.SKIPPED)
            if action is ConflictAction.RESUME:
                offset = local_size

        start_time = time.time()
        received = self._receive(url, target, offset, remote_size, buffer_size, on_progress)
        duration = time.time() - start_time
        logger.info(f"Downloaded {url} to {target}: {received} bytes in {duration:.1f}s")

        return TransferResult(
            remote_path=url,
            local_path=str(target),
            status=TransferStatus.RESUMED if offset else TransferStatus.COMPLETED,
            bytes_transferred=received,
            duration_seconds=duration
        )

    @staticmethod
    def _local_target(url: str, local_dir: Path, recreate_folders: bool) -> Path:
        if recreate_folders:
            target = local_dir.joinpath(*path_segments(url))
        else:
            target = local_dir / base_name(url)

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FTPLocalIOError(str(target.parent), "create", e)
        if target.is_dir():
            raise FTPLocalIOError(str(target), "write", IsADirectoryError("Target is a directory"))
        return target

    def _receive(
        self,
        url: str,
        target: Path,
        offset: int,
        total: int,
        buffer_size: int,
        on_progress: Optional[ProgressCallback]
    ) -> int:
        """
        Stream a remote file to disk, continuing at offset > 0.

        A fresh download is written to a ``.part`` sibling that replaces
        the target only once the server confirms the transfer; the local
        file is not opened until RETR has been accepted.
        """
        partial = target if offset else target.with_name(target.name + PARTIAL_SUFFIX)
        transferred = offset
        sink = None

        try:
            with self._session.command(url, "download") as ftp:
                self._session.set_transfer_type(ftp)
                conn = ftp.transfercmd(f"RETR {server_path(url)}", rest=offset or None)
                try:
                    sink = self._open_sink(partial, "ab" if offset else "wb")
                    while True:
                        if self._cancelled.is_set():
                            raise FTPTransferCancelled(url, transferred - offset)
                        block = conn.recv(buffer_size)
                        if not block:
                            break
                        try:
                            sink.write(block)
                        except OSError as e:
                            raise FTPLocalIOError(str(partial), "write", e)
                        transferred += len(block)
                        self._report(on_progress, url, target, transferred, total)
                    if isinstance(conn, ssl.SSLSocket):
                        conn.unwrap()
                finally:
                    conn.close()
                    if sink is not None:
                        sink.close()
                ftp.voidresp()
        except Exception:
            if partial != target:
                self._settle_partial(partial, target, transferred > 0)
            raise

        if partial != target:
            try:
                partial.replace(target)
            except OSError as e:
                raise FTPLocalIOError(str(target), "write", e)
        return transferred - offset

    @staticmethod
    def _open_sink(path: Path, mode: str):
        try:
            return open(path, mode)
        except OSError as e:
            raise FTPLocalIOError(str(path), "write", e)

    @staticmethod
    def _settle_partial(partial: Path, target: Path, received: bool) -> None:
        """
        Clean up after a failed fresh download.

        Received bytes become the target when there was none, so the
        download can be resumed later; otherwise the existing target is
        left untouched and the partial file is discarded.
        """
        if not partial.exists():
            return
        try:
            if received and not target.exists():
                partial.replace(target)
                logger.info(f"Kept partial download as {target} for resume")
            else:
                partial.unlink()
        except OSError as e:
            logger.warning(f"Could not clean up partial download {partial}: {e}")

    def upload_files(
        self,
        local_files: Iterable[Union[str, Path]],
        remote_dir: str = "",
        **kwargs
    ) -> List[Optional[ListingEntry]]:
        """
        Upload several files into one remote directory.

        Stops at the first failure; the error propagates.
        """
        self.reset_cancel()
        return [self.upload(local_file, remote_dir, **kwargs) for local_file in local_files]

    def download_entries(
        self,
        entries: Iterable[ListingEntry],
        local_dir: Union[str, Path],
        **kwargs
    ) -> List[TransferResult]:
        """
        Download the files of a scan result; directories are skipped.

        Stops at the first failure; the error propagates.
        """
        self.reset_cancel()
        return [
            self.download(entry.full_path, local_dir, **kwargs)
            for entry in entries
            if entry.is_file
        ]
