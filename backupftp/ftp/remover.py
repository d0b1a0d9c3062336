"""Remote delete for backupftp.

Deletes files directly and directories bottom-up. Removing a
non-empty directory needs either ``recurse=True`` or a confirmation
supplied by the caller up front; the library never prompts.
"""

from enum import Enum
from typing import Callable, List, Union

from backupftp.ftp.exceptions import FTPProtocolError
from backupftp.ftp.listing import ListingEntry
from backupftp.ftp.scanner import RemoteScanner
from backupftp.ftp.session import FTPSession
from backupftp.utils.logging import get_logger

logger = get_logger("remover")


class RemoveStatus(Enum):
    """Outcome of a remove call."""
    REMOVED = "removed"
    ABORTED = "aborted"


# Receives the directory URL and its immediate children
ConfirmCallback = Callable[[str, List[ListingEntry]], bool]


class RemoteRemover:
    """Removes remote files and directory trees."""

    def __init__(
        self,
        session: FTPSession,
        confirm_recursive: Union[bool, ConfirmCallback] = False
    ):
        """
        Initialize the remover.

        Args:
            session: Session used for every request
            confirm_recursive: Answer (or callback producing the answer)
                when a non-empty directory is removed without ``recurse``
        """
        self._session = session
        self._scanner = RemoteScanner(session)
        self._confirm_recursive = confirm_recursive

    def _confirmed(self, url: str, children: List[ListingEntry]) -> bool:
        if isinstance(self._confirm_recursive, bool):
            return self._confirm_recursive
        return bool(self._confirm_recursive(url, children))

    def remove(self, path: str, recurse: bool = False) -> RemoveStatus:
        """
        Remove a remote file or directory.

        Args:
            path: Remote path or URL
            recurse: Remove a non-empty directory without confirmation

        Returns:
            REMOVED, or ABORTED if recursive removal was not confirmed
            (nothing on the server is changed in that case)

        Raises:
            FTPNotFoundError: If the path does not exist
            FTPProtocolError: If any delete fails; remaining siblings are
                left untouched. Also raised before touching a directory
                whose listing has lines no dialect could read
        """
        url = self._session.resolve(path)

        if self._session.size(url) >= 0:
            self._session.delete_file(url)
            return RemoveStatus.REMOVED

        children = self._children(url)
        unreadable = [child for child in children if not child.is_recognized]
        if unreadable:
            raise FTPProtocolError(
                url, "remove",
                ValueError(f"Cannot read listing line '{unreadable[0].raw_line}' ({unreadable[0].parse_error})")
            )

        if children and not recurse:
            if not self._confirmed(url, children):
                logger.info(f"Removal of {url} aborted: directory has {len(children)} items")
                return RemoveStatus.ABORTED

        for child in children:
            if child.is_directory:
                self.remove(child.full_path, recurse=True)
            else:
                self._session.delete_file(child.full_path)

        self._session.remove_directory(url)
        return RemoveStatus.REMOVED

    def _children(self, url: str) -> List[ListingEntry]:
        return self._scanner.list_directory(url)
