"""Remote directory scanner for backupftp.

Lists remote directories and walks remote trees with an optional depth
bound and name filter.
"""

from datetime import datetime
from fnmatch import fnmatchcase
from typing import Iterable, List, Optional, Tuple

from backupftp.ftp.listing import ListingEntry, parse_listing
from backupftp.ftp.paths import base_name, parent_path
from backupftp.ftp.session import FTPSession
from backupftp.utils.logging import get_logger
from backupftp.utils.validators import validate_name_filter

logger = get_logger("scanner")


def sort_entries(entries: Iterable[ListingEntry]) -> List[ListingEntry]:
    """Sort by parent path, then directories before files, then name."""
    return sorted(entries, key=lambda e: (e.parent_path, not e.is_directory, e.name))


def matches_filter(name: str, pattern: str) -> bool:
    """Case-insensitive shell-style match of a bare name."""
    return fnmatchcase(name.lower(), pattern.lower())


class RemoteScanner:
    """Lists and walks remote directories."""

    def __init__(self, session: FTPSession):
        """
        Initialize the scanner.

        Args:
            session: Session used for every request
        """
        self._session = session
        self._last_scan: Optional[datetime] = None

    @property
    def session(self) -> FTPSession:
        return self._session

    @property
    def last_scan(self) -> Optional[datetime]:
        """Timestamp of last scan."""
        return self._last_scan

    def list_directory(self, path: str = "") -> List[ListingEntry]:
        """
        List one directory without recursion.

        Args:
            path: Remote directory path or URL

        Returns:
            Entries in server order
        """
        url = self._session.resolve(path)
        return parse_listing(self._session.list_raw(url), url)

    def scan(
        self,
        path: str = "",
        recurse: bool = False,
        depth: int = 0,
        name_filter: str = "*",
        file_filter: Optional[str] = None
    ) -> Optional[List[ListingEntry]]:
        """
        List a remote path, optionally recursing into sub-directories.

        Args:
            path: Remote path or URL; a file path yields just that file
            recurse: Descend into sub-directories
            depth: Maximum depth below ``path`` (0 = unbounded when
                recursing); a positive depth implies ``recurse``
            name_filter: Glob selecting which directories are returned;
                non-matching directories are still descended into
            file_filter: Optional glob selecting which files are returned

        Returns:
            Sorted entries, or None if nothing was found

        Raises:
            FTPNotFoundError: If the path does not exist
            ValueError: If depth is negative or a filter is malformed
        """
        if depth < 0:
            raise ValueError(f"Depth must be 0 or greater, got {depth}")
        for pattern in (name_filter, file_filter):
            if pattern is None:
                continue
            is_valid, error = validate_name_filter(pattern)
            if not is_valid:
                raise ValueError(error)

        root = self._session.resolve(path)
        if self._session.size(root) >= 0:
            entries = self._scan_file(root)
        else:
            entries = self._walk(root, recurse or depth > 0, depth, name_filter, file_filter)

        self._last_scan = datetime.now()
        logger.info(f"Scan of {root} complete: found {len(entries)} items")
        return sort_entries(entries) or None

    def _scan_file(self, url: str) -> List[ListingEntry]:
        name = base_name(url)
        return [entry for entry in self.list_directory(parent_path(url)) if entry.name == name]

    def _walk(
        self,
        root: str,
        recurse: bool,
        depth: int,
        name_filter: str,
        file_filter: Optional[str]
    ) -> List[ListingEntry]:
        results: List[ListingEntry] = []
        # (directory URL, levels below root)
        worklist: List[Tuple[str, int]] = [(root, 0)]

        while worklist:
            current, level = worklist.pop()
            logger.debug(f"Scanning {current} (level {level})")

            for entry in self.list_directory(current):
                if entry.is_directory:
                    if matches_filter(entry.name, name_filter):
                        results.append(entry)
                    if recurse and (depth == 0 or level + 1 < depth):
                        worklist.append((entry.full_path, level + 1))
                elif file_filter is None or matches_filter(entry.name, file_filter):
                    results.append(entry)

        return results
