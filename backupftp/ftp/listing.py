"""Directory listing parser for backupftp.

Turns the raw text of a LIST response into ListingEntry objects.
Servers do not announce their listing format, so the dialect is
detected from the first recognizable line of every response:

- Unix:  ``drwxr-xr-x 2 ftp ftp 0 Jun 19 12:58 sub``
- IIS6:  ``06-19-24 12:58PM <DIR> sub``
"""

import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import List, Optional

from backupftp.ftp.exceptions import FTPParseError
from backupftp.ftp.paths import join_path
from backupftp.utils.logging import get_logger

logger = get_logger("listing")


class Dialect(Enum):
    """Listing format spoken by a server."""
    UNKNOWN = "unknown"
    UNIX = "unix"
    IIS6 = "iis6"


# Numeric and date columns are matched as \S+; a column that fails to
# convert nulls that field only.
UNIX_LINE_PATTERN = re.compile(
    r"^(?P<type>[d-])?(?P<permissions>[rwxsStT-]{9})[+@.]?\s+"
    r"(?P<links>\S+)\s+(?P<owner>\S+)\s+(?P<group>\S+)\s+(?P<size>\S+)\s+"
    r"(?P<month>\S+)\s+(?P<day>\S+)\s+(?P<time>\S+)\s+(?P<name>.+)$"
)

IIS6_LINE_PATTERN = re.compile(
    r"^(?P<date>\d{1,2}-\d{1,2}-\d{2,4})\s+(?P<time>\d{1,2}:\d{2}\s*[AaPp][Mm])\s+"
    r"(?:(?P<dir><DIR>)|(?P<size>[\d,]+))\s+(?P<name>.+)$"
)

# "total 12" header printed by ls-based servers
TOTAL_LINE_PATTERN = re.compile(r"^total\s+\d+$", re.IGNORECASE)

MONTHS = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}

SIZE_UNITS = ["B", "KB", "MB", "GB", "TB", "PB"]

PSEUDO_ENTRIES = (".", "..")


@dataclass(frozen=True)
class ListingEntry:
    """One line of a directory listing."""
    name: str
    full_path: str
    parent_path: str
    is_directory: bool = False
    permissions: Optional[str] = None
    link_count: Optional[int] = None
    owner: Optional[str] = None
    group: Optional[str] = None
    size_bytes: Optional[int] = None
    size: str = ""
    modified_at: Optional[datetime] = None
    dialect: Dialect = Dialect.UNKNOWN
    raw_line: str = ""
    raw_size: Optional[str] = None
    raw_modified: Optional[str] = None
    parse_error: Optional[str] = None

    @property
    def is_file(self) -> bool:
        """True for parsed non-directory entries."""
        return not self.is_directory and self.parse_error is None

    @property
    def is_valid(self) -> bool:
        """True if every field of the line was parsed."""
        return self.parse_error is None

    @property
    def is_recognized(self) -> bool:
        """True if the line matched a listing format, even with bad fields."""
        return self.raw_size is not None


def humanize_size(num_bytes: int) -> str:
    """
    Render a byte count in the largest unit that keeps it below 1024.

    Args:
        num_bytes: Size in bytes

    Returns:
        Rounded size string such as "1KB" or "512B"
    """
    value = float(num_bytes)
    unit_index = 0
    while value >= 1024 and unit_index < len(SIZE_UNITS) - 1:
        value /= 1024
        unit_index += 1
    return f"{int(value + 0.5)}{SIZE_UNITS[unit_index]}"


def resolve_unix_date(month: str, day: str, time_or_year: str, now: datetime) -> datetime:
    """
    Convert the three date columns of a Unix listing line.

    ls omits the year for files modified within the last twelve months
    and prints the time instead; listings are never dated in the future.

    Args:
        month: Month abbreviation ("Jun")
        day: Day of month
        time_or_year: "HH:MM" or a four digit year
        now: Reference time for the year inference

    Returns:
        Modification timestamp

    Raises:
        ValueError: If any column is malformed
    """
    month_num = MONTHS.get(month.lower())
    if month_num is None:
        raise ValueError(f"unknown month '{month}'")
    day_num = int(day)

    if ":" in time_or_year:
        hour, minute = (int(part) for part in time_or_year.split(":", 1))
        year = now.year if month_num <= now.month else now.year - 1
        return datetime(year, month_num, day_num, hour, minute)

    if len(time_or_year) != 4:
        raise ValueError(f"invalid year '{time_or_year}'")
    return datetime(int(time_or_year), month_num, day_num)


def _parse_iis6_date(date: str, time: str) -> datetime:
    """Convert the IIS6 date and 12-hour time columns."""
    year_format = "%Y" if len(date.rsplit("-", 1)[-1]) == 4 else "%y"
    clock = time.replace(" ", "").upper()
    return datetime.strptime(f"{date} {clock}", f"%m-%d-{year_format} %I:%M%p")


def detect_dialect(line: str) -> Dialect:
    """
    Classify a single listing line.

    The Unix pattern is tried first; a line it does not match, or matches
    without a type flag, is tried as IIS6.

    Args:
        line: One line of LIST output

    Returns:
        Detected Dialect, UNKNOWN if neither format matches
    """
    match = UNIX_LINE_PATTERN.match(line)
    if match and match.group("type"):
        return Dialect.UNIX
    if IIS6_LINE_PATTERN.match(line):
        return Dialect.IIS6
    return Dialect.UNKNOWN


def _parse_unix_line(line: str, request_path: str, now: datetime) -> ListingEntry:
    match = UNIX_LINE_PATTERN.match(line)
    if not match or not match.group("type"):
        raise FTPParseError(line, "does not match the Unix listing format")

    name = match.group("name").strip()
    is_directory = match.group("type") == "d"
    raw_size = match.group("size")
    raw_modified = f"{match.group('month')} {match.group('day')} {match.group('time')}"
    errors = []

    try:
        link_count = int(match.group("links"))
    except ValueError:
        link_count = None
        errors.append(f"invalid link count '{match.group('links')}'")

    size_bytes = -1 if is_directory else None
    if not is_directory:
        try:
            size_bytes = int(raw_size)
        except ValueError:
            errors.append(f"invalid size '{raw_size}'")

    try:
        modified_at = resolve_unix_date(
            match.group("month"), match.group("day"), match.group("time"), now
        )
    except ValueError as e:
        modified_at = None
        errors.append(f"invalid date '{raw_modified}' ({e})")

    return ListingEntry(
        name=name,
        full_path=join_path(request_path, name),
        parent_path=request_path,
        is_directory=is_directory,
        permissions=match.group("permissions"),
        link_count=link_count,
        owner=match.group("owner"),
        group=match.group("group"),
        size_bytes=size_bytes,
        size=humanize_size(size_bytes) if size_bytes is not None and not is_directory else "",
        modified_at=modified_at,
        dialect=Dialect.UNIX,
        raw_line=line,
        raw_size=raw_size,
        raw_modified=raw_modified,
        parse_error="; ".join(errors) or None,
    )


def _parse_iis6_line(line: str, request_path: str) -> ListingEntry:
    match = IIS6_LINE_PATTERN.match(line)
    if not match:
        raise FTPParseError(line, "does not match the IIS6 listing format")

    name = match.group("name").strip()
    is_directory = match.group("dir") is not None
    raw_size = match.group("dir") or match.group("size")
    raw_modified = f"{match.group('date')} {match.group('time')}"
    parse_error = None

    size_bytes = -1 if is_directory else int(match.group("size").replace(",", ""))

    try:
        modified_at = _parse_iis6_date(match.group("date"), match.group("time"))
    except ValueError as e:
        modified_at = None
        parse_error = f"invalid date '{raw_modified}' ({e})"

    return ListingEntry(
        name=name,
        full_path=join_path(request_path, name),
        parent_path=request_path,
        is_directory=is_directory,
        size_bytes=size_bytes,
        size="" if is_directory else humanize_size(size_bytes),
        modified_at=modified_at,
        dialect=Dialect.IIS6,
        raw_line=line,
        raw_size=raw_size,
        raw_modified=raw_modified,
        parse_error=parse_error,
    )


def _unparsed_entry(line: str, request_path: str, dialect: Dialect, error: FTPParseError) -> ListingEntry:
    """Keep a line no dialect could read, for diagnostics."""
    name = line.strip()
    return ListingEntry(
        name=name,
        full_path=join_path(request_path, name),
        parent_path=request_path,
        dialect=dialect,
        raw_line=line,
        parse_error=error.reason,
    )


def parse_listing(
    text: str,
    request_path: str,
    now: Optional[datetime] = None
) -> List[ListingEntry]:
    """
    Parse a complete LIST response.

    The dialect is fixed by the first line that can be classified and is
    not re-evaluated for the rest of the response. Lines that cannot be
    read are returned with ``parse_error`` set instead of failing the call.

    Args:
        text: Raw multi-line LIST output
        request_path: Normalized URL of the listed directory
        now: Reference time for Unix year inference (default: now)

    Returns:
        Entries in server order
    """
    now = now or datetime.now()
    dialect = Dialect.UNKNOWN
    entries: List[ListingEntry] = []

    for raw_line in text.splitlines():
        line = raw_line.rstrip("\r\n")
        if not line.strip():
            continue
        if dialect in (Dialect.UNKNOWN, Dialect.UNIX) and TOTAL_LINE_PATTERN.match(line.strip()):
            continue

        if dialect is Dialect.UNKNOWN:
            dialect = detect_dialect(line)
            if dialect is not Dialect.UNKNOWN:
                logger.debug(f"Detected {dialect.value} listing dialect for {request_path}")

        try:
            if dialect is Dialect.UNIX:
                entry = _parse_unix_line(line, request_path, now)
            elif dialect is Dialect.IIS6:
                entry = _parse_iis6_line(line, request_path)
            else:
                raise FTPParseError(line, "unrecognized listing format")
        except FTPParseError as e:
            logger.warning(f"{e} (in {request_path})")
            entry = _unparsed_entry(line, request_path, dialect, e)

        if entry.name in PSEUDO_ENTRIES:
            continue
        entries.append(entry)

    return entries
